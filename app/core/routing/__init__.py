"""
Route Planning Module

Network/token registry and the immutable route plan models. The planner
itself lives in ``app.core.routing.planner`` because it depends on the
provider adapters, which in turn depend on these models.
"""

from .models import (
    AssetRef,
    Family,
    PlanRequirements,
    PlanStep,
    ProviderQuote,
    QuoteRequest,
    RoutePlan,
    RoutePlanResult,
    StepKind,
    WalletFamily,
)
from .networks import hub_asset, resolve_asset, resolve_network, wrap_kind

__all__ = [
    # Registry lookups
    "hub_asset",
    "resolve_asset",
    "resolve_network",
    "wrap_kind",
    # Models
    "AssetRef",
    "Family",
    "PlanRequirements",
    "PlanStep",
    "ProviderQuote",
    "QuoteRequest",
    "RoutePlan",
    "RoutePlanResult",
    "StepKind",
    "WalletFamily",
]
