"""
Route Planner

Turns (amount, from token/network, to token/network) into an ordered plan of
provider steps. Candidates come from the adapter registry in preference
order; when no adapter covers the pair directly the transfer is split into
two legs through the hub asset (USDT on Ethereum).
"""

import asyncio
import logging
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from ...providers.base import AmountOutOfRangeError, ProviderAdapter, ProviderError, ProviderUnavailableError
from ...providers.registry import AdapterRegistry
from ..errors import (
    AmountOutOfBoundsError,
    ErrorCode,
    NoRouteError,
    OrchestrationError,
    UpstreamUnavailableError,
    ValidationError,
)
from .models import (
    AssetRef,
    PlanRequirements,
    PlanStep,
    ProviderQuote,
    QuoteRequest,
    RoutePlan,
    RoutePlanResult,
    StepKind,
    WalletFamily,
    wallet_list,
)
from .networks import HUB_NETWORK_ID, hub_asset, resolve_asset, wrap_kind

logger = logging.getLogger(__name__)

# Used only for quoting when the user has not connected a wallet of that family
PLACEHOLDER_ADDRESSES: Dict[str, str] = {
    WalletFamily.EVM.value: "0x1111111111111111111111111111111111111111",
    WalletFamily.SOLANA.value: "11111111111111111111111111111111",
}

Leg = Tuple[AssetRef, AssetRef]

HUB_WARNING = f"No direct route; routing through {hub_asset().symbol} on {HUB_NETWORK_ID}"


def to_base_units(amount: Union[str, int, float, Decimal], decimals: int) -> int:
    """Convert a human amount to integer base units, truncating extra precision."""
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount '{amount}'")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be a positive number")

    base = int((value.scaleb(decimals)).to_integral_value(rounding=ROUND_DOWN))
    if base <= 0:
        raise ValidationError(f"Amount {amount} is below the token's smallest unit")
    return base


def normalize_wallets(wallet_addresses: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    wallets: Dict[str, str] = {}
    for key, value in (wallet_addresses or {}).items():
        name = key.value if isinstance(key, WalletFamily) else str(key).lower()
        if value and name in {w.value for w in WalletFamily if w is not WalletFamily.NONE}:
            wallets[name] = str(value).strip()
    return wallets


class RoutePlanner:
    def __init__(
        self,
        adapters: AdapterRegistry,
        *,
        slippage_bps: int = 50,
        quote_timeout_s: float = 10.0,
        placeholder_addresses: Optional[Mapping[str, str]] = None,
    ):
        self.adapters = adapters
        self.slippage_bps = slippage_bps
        self.quote_timeout_s = quote_timeout_s
        self.placeholder_addresses = {**PLACEHOLDER_ADDRESSES, **(placeholder_addresses or {})}

    async def compute_route_plan(
        self,
        amount: Union[str, int, float, Decimal],
        from_token: str,
        to_token: str,
        from_network: str,
        to_network: str,
        wallet_addresses: Optional[Mapping[str, Any]] = None,
    ) -> RoutePlanResult:
        try:
            plan = await self._plan(amount, from_token, to_token, from_network, to_network, wallet_addresses)
        except OrchestrationError as exc:
            logger.info(
                "No plan for %s %s/%s -> %s/%s: %s (%s)",
                amount, from_network, from_token, to_network, to_token, exc.message, exc.code.value,
            )
            return RoutePlanResult(error_code=exc.code.value, message=exc.message, debug=exc.details)
        except Exception:
            logger.exception("Route planning crashed")
            return RoutePlanResult(error_code=ErrorCode.INTERNAL_ERROR.value, message="Internal error while planning")

        logger.info(
            "Planned %s: %s steps via %s",
            plan.request_id, len(plan.steps), ", ".join(step.provider for step in plan.steps),
        )
        return RoutePlanResult(plan=plan)

    async def _plan(
        self,
        amount: Union[str, int, float, Decimal],
        from_token: str,
        to_token: str,
        from_network: str,
        to_network: str,
        wallet_addresses: Optional[Mapping[str, Any]],
    ) -> RoutePlan:
        source = resolve_asset(from_network, from_token)
        destination = resolve_asset(to_network, to_token)
        if source.same_asset(destination):
            raise ValidationError("Source and destination are the same asset")
        amount_base = to_base_units(amount, source.decimals)
        wallets = normalize_wallets(wallet_addresses)

        if self.adapters.candidates(source, destination):
            warnings: List[str] = []
            try:
                steps, approvals = await self._quote_legs([(source, destination)], amount_base, wallets)
            except NoRouteError:
                legs = self._hub_fallback(source, destination)
                if legs is None:
                    raise
                logger.info(
                    "Direct quotes rejected %s/%s -> %s/%s, retrying through the hub",
                    source.network_id, source.token_id, destination.network_id, destination.token_id,
                )
                steps, approvals = await self._quote_legs(legs, amount_base, wallets)
                warnings.append(HUB_WARNING)
        else:
            steps, approvals = await self._quote_legs(self._hub_legs(source, destination), amount_base, wallets)
            warnings = [HUB_WARNING]

        signer_wallets = [step.requires_wallet for step in steps]
        required = wallet_list(signer_wallets + [WalletFamily.for_family(destination.family)])
        for wallet in required:
            if wallet.value not in wallets:
                warnings.append(f"Connect a {wallet.value} wallet to execute this route")

        return RoutePlan(
            source=source,
            destination=destination,
            amount_base=amount_base,
            steps=tuple(steps),
            requires=PlanRequirements(wallets=required, approvals=tuple(approvals)),
            warnings=tuple(warnings),
            wallet_addresses=wallets,
        )

    async def _quote_legs(
        self,
        legs: List[Leg],
        amount_base: int,
        wallets: Mapping[str, str],
    ) -> Tuple[List[PlanStep], List[Mapping[str, Any]]]:
        steps: List[PlanStep] = []
        approvals: List[Mapping[str, Any]] = []
        leg_amount = amount_base
        for index, (leg_from, leg_to) in enumerate(legs):
            adapter, quote = await self._quote_leg(leg_from, leg_to, leg_amount, wallets)
            steps.append(self._step(index, leg_from, leg_to, leg_amount, adapter, quote))
            approvals.extend(quote.approvals)
            leg_amount = quote.estimated_amount_base
        return steps, approvals

    def _split_at_hub(self, source: AssetRef, destination: AssetRef) -> List[Leg]:
        hub = hub_asset()
        legs: List[Leg] = []
        if not source.same_asset(hub):
            legs.append((source, hub))
        if not destination.same_asset(hub):
            legs.append((hub, destination))
        return legs

    def _hub_legs(self, source: AssetRef, destination: AssetRef) -> List[Leg]:
        legs = self._split_at_hub(source, destination)
        unsupported = [leg for leg in legs if not self.adapters.candidates(*leg)]
        if unsupported or not legs:
            raise NoRouteError(
                f"No provider can move {source.symbol} on {source.network_id} "
                f"to {destination.symbol} on {destination.network_id}",
                details={
                    "unsupportedLegs": [
                        f"{a.network_id}:{a.token_id}->{b.network_id}:{b.token_id}" for a, b in unsupported
                    ],
                },
            )
        return legs

    def _hub_fallback(self, source: AssetRef, destination: AssetRef) -> Optional[List[Leg]]:
        """Hub legs to try after the direct pair was rejected, or None when the hub adds nothing."""
        legs = self._split_at_hub(source, destination)
        if len(legs) < 2 or not all(self.adapters.candidates(*leg) for leg in legs):
            return None
        return legs

    def _address(self, wallets: Mapping[str, str], asset: AssetRef) -> str:
        family = WalletFamily.for_family(asset.family).value
        return wallets.get(family) or self.placeholder_addresses.get(family, "")

    async def _quote_leg(
        self,
        source: AssetRef,
        destination: AssetRef,
        amount_base: int,
        wallets: Mapping[str, str],
    ) -> Tuple[ProviderAdapter, ProviderQuote]:
        request = QuoteRequest(
            source=source,
            destination=destination,
            amount_base=amount_base,
            sender=self._address(wallets, source),
            recipient=self._address(wallets, destination),
            slippage_bps=self.slippage_bps,
        )

        out_of_range: Optional[AmountOutOfRangeError] = None
        unavailable: List[str] = []
        rejected: List[str] = []
        for adapter in self.adapters.candidates(source, destination):
            try:
                quote = await asyncio.wait_for(adapter.get_quote(request), timeout=self.quote_timeout_s)
                return adapter, quote
            except AmountOutOfRangeError as exc:
                logger.info("%s: amount out of range for %s -> %s", adapter.name, source.symbol, destination.symbol)
                out_of_range = out_of_range or exc
            except asyncio.TimeoutError:
                unavailable.append(f"{adapter.name}: quote timed out")
            except ProviderUnavailableError as exc:
                unavailable.append(f"{adapter.name}: {exc.message}")
            except ProviderError as exc:
                rejected.append(f"{adapter.name}: {exc.message}")

        if out_of_range is not None:
            raise AmountOutOfBoundsError(
                out_of_range.message,
                details={
                    "provider": out_of_range.provider,
                    "minAmount": _str_or_none(out_of_range.min_amount_base),
                    "maxAmount": _str_or_none(out_of_range.max_amount_base),
                    "decimals": source.decimals,
                },
            )
        if unavailable:
            raise UpstreamUnavailableError(
                "Quote providers are unavailable, try again shortly",
                code=ErrorCode.PROVIDER_UNAVAILABLE,
                details={"providers": unavailable + rejected},
            )
        raise NoRouteError(
            f"No provider quoted {source.symbol} on {source.network_id} -> "
            f"{destination.symbol} on {destination.network_id}",
            details={"providers": rejected},
        )

    def _step(
        self,
        index: int,
        source: AssetRef,
        destination: AssetRef,
        amount_base: int,
        adapter: ProviderAdapter,
        quote: ProviderQuote,
    ) -> PlanStep:
        kind = wrap_kind(source, destination)
        if kind is None:
            kind = StepKind.SWAP if source.network_id == destination.network_id else StepKind.BRIDGE

        return PlanStep(
            step_id=f"step-{index + 1}",
            kind=kind,
            family=source.family,
            provider=adapter.name,
            from_asset=source,
            amount_base=amount_base,
            to_asset=destination,
            estimated_amount_base=quote.estimated_amount_base,
            requires_wallet=WalletFamily.for_family(source.family),
            quote={**quote.raw, "slippageBps": self.slippage_bps},
            notes=quote.notes,
        )


def _str_or_none(value: Optional[int]) -> Optional[str]:
    return str(value) if value is not None else None
