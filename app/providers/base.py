from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional

from ..core.routing.models import AssetRef, Family, PlanStep, ProviderQuote, QuoteRequest, WalletFamily


class ProviderError(Exception):
    """Provider rejected the request (unsupported pair, bad input). Not worth retrying."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.details = details or {}


class AmountOutOfRangeError(ProviderError):
    """Amount is below the provider minimum or above its maximum."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        min_amount_base: Optional[int] = None,
        max_amount_base: Optional[int] = None,
    ):
        super().__init__(message, provider=provider)
        self.min_amount_base = min_amount_base
        self.max_amount_base = max_amount_base


class ProviderUnavailableError(Exception):
    """Transport failure, timeout, rate limit or 5xx from the provider."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


@dataclass
class BuiltTransaction:
    """Unsigned payload for the client wallet plus the provider's tracking id."""
    unsigned_tx: Dict[str, Any]
    provider_ref: Optional[str] = None


@dataclass
class ProviderStatus:
    """Raw status in the provider's own vocabulary."""
    status: str
    raw: Dict[str, Any] = field(default_factory=dict)
    detail: Optional[str] = None


def address_for(wallet_addresses: Mapping[str, str], wallet: WalletFamily) -> Optional[str]:
    value = wallet_addresses.get(wallet.value) if wallet_addresses else None
    return value or None


class ProviderAdapter(ABC):
    """Quote / build / status / submit capability for one provider."""

    name: str
    families: FrozenSet[Family] = frozenset()
    timeout_s: float = 10

    def supports(self, source: AssetRef, destination: AssetRef) -> bool:
        """Whether this provider can quote the leg at all (static check, no I/O)."""
        return source.family in self.families and destination.family in self.families

    async def ready(self) -> bool:
        """Check if provider is configured to serve requests"""
        return True

    @abstractmethod
    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        """Quote a single leg"""

    @abstractmethod
    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        """Build the unsigned transaction for a plan step"""

    @abstractmethod
    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        """Fetch the raw status of a submitted step"""

    async def submit(self, step: PlanStep, tx_hash: str, provider_ref: Optional[str] = None) -> None:
        """Notify the provider about a broadcast transaction (optional)."""
        return None
