"""Shared fixtures: a scriptable provider adapter, poller and clock."""

from typing import Any, Dict, List, Mapping, Optional, Union

import pytest

from app.core.execution import ExecutionOrchestrator, ExecutionStore, NormalizedStatus, StatusPoller, StepState
from app.core.routing.models import (
    Family,
    PlanRequirements,
    PlanStep,
    ProviderQuote,
    QuoteRequest,
    RoutePlan,
    StepKind,
    WalletFamily,
)
from app.core.routing.networks import resolve_asset
from app.providers.base import BuiltTransaction, ProviderAdapter, ProviderStatus
from app.providers.registry import AdapterRegistry

EVM_WALLET = "0x50ac5CFcc81BB0872e85255D7079F8a529345D16"


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter(ProviderAdapter):
    """Adapter whose quotes, builds and statuses are scripted by the test."""

    families = frozenset({Family.EVM, Family.SOLANA, Family.TON, Family.TRON})

    def __init__(self, name: str = "fake", rate: float = 1.0):
        self.name = name
        self.rate = rate
        self.build_calls: List[str] = []
        self.build_errors: List[Exception] = []
        self.quote_error: Optional[Exception] = None
        self.statuses: List[Union[str, Exception]] = []
        self.submitted: List[str] = []
        self.supported = True

    def supports(self, source, destination) -> bool:
        return self.supported and super().supports(source, destination)

    async def get_quote(self, request: QuoteRequest) -> ProviderQuote:
        if self.quote_error is not None:
            raise self.quote_error
        return ProviderQuote(
            provider=self.name,
            estimated_amount_base=int(request.amount_base * self.rate),
            raw={"quoted": True},
        )

    async def build_transaction(self, step: PlanStep, wallet_addresses: Mapping[str, str]) -> BuiltTransaction:
        self.build_calls.append(step.step_id)
        if self.build_errors:
            raise self.build_errors.pop(0)
        return BuiltTransaction(
            unsigned_tx={"to": "0xrouter", "data": f"0x{len(self.build_calls):02x}", "stepId": step.step_id},
            provider_ref=f"ref-{step.step_id}",
        )

    async def get_status(self, tracking_id: str, step: PlanStep) -> ProviderStatus:
        next_status = self.statuses.pop(0) if self.statuses else "pending"
        if isinstance(next_status, Exception):
            raise next_status
        return ProviderStatus(status=next_status)

    async def submit(self, step: PlanStep, tx_hash: str, provider_ref: Optional[str] = None) -> None:
        self.submitted.append(tx_hash)


class ScriptedPoller(StatusPoller):
    """Returns queued normalized statuses (or raises queued exceptions)."""

    def __init__(self, adapters: AdapterRegistry):
        super().__init__(adapters, timeout_s=1.0)
        self.queue: List[Union[StepState, NormalizedStatus, Exception]] = []
        self.calls: List[Dict[str, Any]] = []

    def push(self, *items: Union[StepState, NormalizedStatus, Exception]) -> None:
        self.queue.extend(items)

    async def poll_provider_status(self, provider: str, tx_id: str, step: PlanStep) -> NormalizedStatus:
        self.calls.append({"provider": provider, "tx_id": tx_id, "step_id": step.step_id})
        item = self.queue.pop(0) if self.queue else StepState.CONFIRMING
        if isinstance(item, Exception):
            raise item
        if isinstance(item, StepState):
            message = "provider reported failure" if item is StepState.FAILED else None
            return NormalizedStatus(status=item, raw_status=item.value.lower(), message=message)
        return item


def make_plan(step_count: int = 1, provider: str = "fake", wallets: Optional[Dict[str, str]] = None) -> RoutePlan:
    """A plan of chained EVM legs: ethereum -> arbitrum -> optimism -> base ..."""
    hops = ["ethereum", "arbitrum", "optimism", "base", "polygon"]
    steps = []
    amount = 1_000_000
    for index in range(step_count):
        source = resolve_asset(hops[index % len(hops)], "usdc")
        destination = resolve_asset(hops[(index + 1) % len(hops)], "usdc")
        steps.append(
            PlanStep(
                step_id=f"step-{index + 1}",
                kind=StepKind.BRIDGE,
                family=Family.EVM,
                provider=provider,
                from_asset=source,
                amount_base=amount,
                to_asset=destination,
                estimated_amount_base=amount,
                requires_wallet=WalletFamily.EVM,
            )
        )
    return RoutePlan(
        source=steps[0].from_asset if steps else resolve_asset("ethereum", "usdc"),
        destination=steps[-1].to_asset if steps else resolve_asset("arbitrum", "usdc"),
        amount_base=amount,
        steps=tuple(steps),
        requires=PlanRequirements(wallets=(WalletFamily.EVM,)),
        wallet_addresses=wallets if wallets is not None else {"evm": EVM_WALLET},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def registry(fake_adapter: FakeAdapter) -> AdapterRegistry:
    return AdapterRegistry([fake_adapter])


@pytest.fixture
def poller(registry: AdapterRegistry) -> ScriptedPoller:
    return ScriptedPoller(registry)


@pytest.fixture
def store(clock: FakeClock) -> ExecutionStore:
    return ExecutionStore(inactivity_ttl_s=1800, retention_s=3600, clock=clock)


@pytest.fixture
def orchestrator(store: ExecutionStore, registry: AdapterRegistry, poller: ScriptedPoller) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(store, registry, poller, build_timeout_s=1.0)
