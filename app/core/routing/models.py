"""
Route plan models.

A RoutePlan is produced once by the planner and never mutated afterwards;
every type here is a frozen dataclass so accidental writes fail loudly.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class Family(str, Enum):
    """Blockchain ecosystem a network belongs to."""
    EVM = "EVM"
    SOLANA = "SOLANA"
    TON = "TON"
    TRON = "TRON"


class WalletFamily(str, Enum):
    """Wallet kind that has to sign a step."""
    EVM = "evm"
    TON = "ton"
    TRON = "tron"
    SOLANA = "solana"
    NONE = "none"

    @classmethod
    def for_family(cls, family: Family) -> "WalletFamily":
        return cls(family.value.lower())


class StepKind(str, Enum):
    SWAP = "SWAP"
    BRIDGE = "BRIDGE"
    TRANSFER = "TRANSFER"
    WRAP = "WRAP"
    UNWRAP = "UNWRAP"


@dataclass(frozen=True)
class AssetRef:
    """A token on a specific network."""
    network_id: str
    family: Family
    token_id: str
    symbol: str
    decimals: int
    address: Optional[str] = None               # None for native assets
    chain_id: Optional[int] = None              # Numeric id for EVM / Relay

    @property
    def is_native(self) -> bool:
        return self.address is None

    def same_asset(self, other: "AssetRef") -> bool:
        return self.network_id == other.network_id and self.token_id == other.token_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "networkId": self.network_id,
            "family": self.family.value,
            "tokenId": self.token_id,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "address": self.address,
            "chainId": self.chain_id,
        }


@dataclass(frozen=True)
class PlanStep:
    """One atomic operation of a route plan."""
    step_id: str
    kind: StepKind
    family: Family
    provider: str
    from_asset: AssetRef
    amount_base: int
    to_asset: AssetRef
    estimated_amount_base: int
    requires_wallet: WalletFamily
    quote: Mapping[str, Any] = field(default_factory=dict)
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stepId": self.step_id,
            "kind": self.kind.value,
            "family": self.family.value,
            "provider": self.provider,
            "from": {
                "networkId": self.from_asset.network_id,
                "tokenId": self.from_asset.token_id,
                "amountBase": str(self.amount_base),
                "decimals": self.from_asset.decimals,
            },
            "to": {
                "networkId": self.to_asset.network_id,
                "tokenId": self.to_asset.token_id,
                "estimatedAmountBase": str(self.estimated_amount_base),
                "decimals": self.to_asset.decimals,
            },
            "requiresWallet": self.requires_wallet.value,
            "quote": dict(self.quote),
            "notes": self.notes,
        }


@dataclass(frozen=True)
class PlanRequirements:
    wallets: Tuple[WalletFamily, ...] = ()
    approvals: Tuple[Mapping[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wallets": [wallet.value for wallet in self.wallets],
            "approvals": [dict(approval) for approval in self.approvals],
        }


@dataclass(frozen=True)
class RoutePlan:
    """Immutable ordered plan moving value from source to destination."""
    source: AssetRef
    destination: AssetRef
    amount_base: int
    steps: Tuple[PlanStep, ...]
    requires: PlanRequirements = field(default_factory=PlanRequirements)
    warnings: Tuple[str, ...] = ()
    wallet_addresses: Mapping[str, str] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: f"plan-{uuid.uuid4().hex[:16]}")
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def step_index(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.step_id == step_id:
                return index
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "from": {**self.source.to_dict(), "amountBase": str(self.amount_base)},
            "to": self.destination.to_dict(),
            "steps": [step.to_dict() for step in self.steps],
            "requires": self.requires.to_dict(),
            "warnings": list(self.warnings),
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class RoutePlanResult:
    """Planner outcome: either a plan or a typed failure."""
    plan: Optional[RoutePlan] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    debug: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.plan is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.plan is not None:
            return {"ok": True, "routePlan": self.plan.to_dict()}
        body: Dict[str, Any] = {"ok": False, "errorCode": self.error_code, "error": self.message}
        if self.debug:
            body["debug"] = self.debug
        return body


@dataclass(frozen=True)
class QuoteRequest:
    """Input handed to a provider adapter when quoting a single leg."""
    source: AssetRef
    destination: AssetRef
    amount_base: int
    sender: str
    recipient: str
    slippage_bps: int = 50


@dataclass(frozen=True)
class ProviderQuote:
    provider: str
    estimated_amount_base: int
    raw: Mapping[str, Any] = field(default_factory=dict)
    approvals: Tuple[Mapping[str, Any], ...] = ()
    min_amount_base: Optional[int] = None
    max_amount_base: Optional[int] = None
    notes: Optional[str] = None


def wallet_list(wallets: List[WalletFamily]) -> Tuple[WalletFamily, ...]:
    """De-duplicate wallet families keeping first-seen order."""
    seen: List[WalletFamily] = []
    for wallet in wallets:
        if wallet is not WalletFamily.NONE and wallet not in seen:
            seen.append(wallet)
    return tuple(seen)
