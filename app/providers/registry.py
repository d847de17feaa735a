from typing import Dict, Iterable, List, Optional

import httpx

from ..config import Settings
from ..core.routing.models import AssetRef, PlanStep
from .base import ProviderAdapter, ProviderError
from .bungee import BungeeAdapter
from .changenow import ChangeNowAdapter
from .jupiter import JupiterAdapter
from .native import NativeEvmAdapter
from .relay import RelayAdapter


class AdapterRegistry:
    """Provider name -> adapter, in preference order."""

    def __init__(self, adapters: Optional[Iterable[ProviderAdapter]] = None):
        self._adapters: Dict[str, ProviderAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: ProviderAdapter) -> None:
        self._adapters[adapter.name] = adapter

    def get(self, name: str) -> ProviderAdapter:
        adapter = self._adapters.get(name)
        if adapter is None:
            raise ProviderError(f"No adapter registered for provider '{name}'", provider=name)
        return adapter

    def for_step(self, step: PlanStep) -> ProviderAdapter:
        adapter = self.get(step.provider)
        if step.family not in adapter.families:
            raise ProviderError(
                f"Provider '{step.provider}' cannot execute {step.family.value} steps",
                provider=step.provider,
            )
        return adapter

    def candidates(self, source: AssetRef, destination: AssetRef) -> List[ProviderAdapter]:
        return [adapter for adapter in self._adapters.values() if adapter.supports(source, destination)]

    def names(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, name: str) -> bool:
        return name in self._adapters


def build_default_registry(
    config: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AdapterRegistry:
    """Adapters in routing preference order."""
    timeout = config.provider_quote_timeout_seconds
    return AdapterRegistry([
        NativeEvmAdapter(rpc_urls=config.evm_rpc_urls, timeout_s=config.status_poll_timeout_seconds,
                         transport=transport),
        JupiterAdapter(base_url=config.jupiter_base_url, rpc_url=config.solana_rpc_url, timeout_s=timeout,
                       transport=transport),
        RelayAdapter(base_url=config.relay_base_url or None, timeout_s=timeout, referrer=config.referrer,
                     transport=transport),
        BungeeAdapter(api_key=config.bungee_api_key, base_url=config.bungee_base_url or None, timeout_s=timeout,
                      transport=transport),
        ChangeNowAdapter(api_key=config.changenow_api_key, base_url=config.changenow_base_url, timeout_s=timeout,
                         transport=transport),
    ])
