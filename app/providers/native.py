"""Local wrap/unwrap of the native EVM token; no aggregator involved."""

from typing import Dict, Mapping, Optional

import httpx

from ..config import settings
from ..core.routing.models import Family, PlanStep, ProviderQuote, QuoteRequest, StepKind, WalletFamily
from ..core.routing.networks import wrap_kind
from .base import BuiltTransaction, ProviderAdapter, ProviderError, ProviderStatus, address_for
from .rpc import JsonRpcClient

WETH_DEPOSIT_SELECTOR = "0xd0e30db0"
WETH_WITHDRAW_SELECTOR = "0x2e1a7d4d"


class NativeEvmAdapter(ProviderAdapter):
    name = "native"
    families = frozenset({Family.EVM})

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        timeout_s: float = 8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_s = timeout_s
        self._rpc_urls = dict(rpc_urls if rpc_urls is not None else settings.evm_rpc_urls)
        self._transport = transport
        self._clients: Dict[int, JsonRpcClient] = {}

    def supports(self, source, destination) -> bool:
        return wrap_kind(source, destination) is not None

    def _rpc(self, chain_id: Optional[int]) -> JsonRpcClient:
        if chain_id is None or chain_id not in self._rpc_urls:
            raise ProviderError(f"No RPC URL configured for chain {chain_id}", provider=self.name)
        if chain_id not in self._clients:
            self._clients[chain_id] = JsonRpcClient(
                self._rpc_urls[chain_id],
                name=f"evm-rpc-{chain_id}",
                timeout_s=self.timeout_s,
                transport=self._transport,
            )
        return self._clients[chain_id]

    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        kind = wrap_kind(request.source, request.destination)
        if kind is None:
            raise ProviderError("Pair is not a native/wrapped pair", provider=self.name)
        return ProviderQuote(provider=self.name, estimated_amount_base=request.amount_base, raw={"kind": kind.value})

    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        if not address_for(wallet_addresses, WalletFamily.EVM):
            raise ProviderError("An EVM wallet address is required to build this step", provider=self.name)

        if step.kind is StepKind.WRAP:
            contract = step.to_asset.address
            data = WETH_DEPOSIT_SELECTOR
            value = str(step.amount_base)
        elif step.kind is StepKind.UNWRAP:
            contract = step.from_asset.address
            data = WETH_WITHDRAW_SELECTOR + format(step.amount_base, "x").rjust(64, "0")
            value = "0"
        else:
            raise ProviderError(f"Native adapter cannot build a {step.kind.value} step", provider=self.name)

        return BuiltTransaction(
            unsigned_tx={
                "family": Family.EVM.value,
                "type": "evm_transaction",
                "chainId": step.from_asset.chain_id,
                "to": contract,
                "data": data,
                "value": value,
            }
        )

    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        receipt = await self._rpc(step.from_asset.chain_id).call("eth_getTransactionReceipt", [tracking_id])
        if not receipt:
            return ProviderStatus(status="pending")
        if receipt.get("status") == "0x1":
            return ProviderStatus(status="success", raw=receipt)
        return ProviderStatus(status="reverted", raw=receipt, detail="Transaction reverted on chain")
