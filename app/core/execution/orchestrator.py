"""
Execution Orchestrator

Drives route plans through the client-signing handshake:

    PENDING -> AWAITING_SIGNATURE -> SUBMITTED -> CONFIRMING -> CONFIRMED
                                         \\______________\\___> FAILED

Every public operation runs under the execution's store lock, returns an
OperationResult and never raises. Progress is driven entirely by client
calls; nothing here loops or retries on its own.
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, Mapping, Optional, Union

from ...logging_config import execution_context
from ...providers.base import ProviderError, ProviderUnavailableError
from ...providers.registry import AdapterRegistry
from ..errors import (
    ErrorCode,
    ExpiredError,
    OrchestrationError,
    StateConflictError,
    UpstreamUnavailableError,
    ValidationError,
)
from ..routing.models import PlanStep, RoutePlan
from .models import Execution, ExecutionStep, OperationResult, utcnow
from .state_machine import ExecutionState, StepState, check_transition
from .status_poller import NormalizedStatus, StatusPoller
from .store import ExecutionStore

logger = logging.getLogger(__name__)


def new_execution_id() -> str:
    return f"exec-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


class ExecutionOrchestrator:
    def __init__(
        self,
        store: ExecutionStore,
        adapters: AdapterRegistry,
        poller: StatusPoller,
        build_timeout_s: float = 10.0,
        id_factory: Callable[[], str] = new_execution_id,
    ):
        self.store = store
        self.adapters = adapters
        self.poller = poller
        self.build_timeout_s = build_timeout_s
        self._id_factory = id_factory

    # =========================================================================
    # Public operations
    # =========================================================================

    async def create_execution(
        self,
        plan: RoutePlan,
        wallet_addresses: Optional[Mapping[str, str]] = None,
    ) -> OperationResult:
        """Create an execution and build its first step.

        Nothing is stored when the first build fails.
        """
        with execution_context(plan_id=plan.request_id):
            try:
                if not plan.steps:
                    raise ValidationError("Route plan has no steps")

                wallets: Dict[str, str] = {k: v for k, v in plan.wallet_addresses.items() if v}
                wallets.update({k: v for k, v in (wallet_addresses or {}).items() if v})

                execution = Execution(
                    id=self._id_factory(),
                    plan=plan,
                    steps=[ExecutionStep(step_id=step.step_id) for step in plan.steps],
                    wallet_addresses=wallets,
                )
                await self._build_step(execution, 0)
                await self.store.insert(execution)
                logger.info(
                    "Created execution %s for plan %s (%d steps)", execution.id, plan.request_id, len(plan.steps)
                )
                return OperationResult.success(execution.snapshot())
            except OrchestrationError as exc:
                logger.warning("Could not create execution for plan %s: %s", plan.request_id, exc.message)
                return OperationResult.failure(exc.code, exc.message, transient=exc.recoverable)
            except Exception:
                logger.exception("Unexpected error creating execution for plan %s", plan.request_id)
                return OperationResult.failure(ErrorCode.INTERNAL_ERROR, "Internal error while creating execution")

    async def update_step_state(
        self,
        execution_id: str,
        step_id: str,
        reported_state: Union[StepState, str],
        tx_hash: Optional[str] = None,
    ) -> OperationResult:
        """Apply a client-reported transition to the active step."""
        with execution_context(execution_id):
            try:
                state = _parse_state(reported_state)
                tx_hash = (tx_hash or "").strip() or None
                notify: Optional[Execution] = None

                async with self.store.locked(execution_id) as execution:
                    if execution is None:
                        return _not_found(execution_id)
                    try:
                        self._ensure_live(execution)
                        if await self._apply_report(execution, step_id, state, tx_hash):
                            notify = execution.snapshot()
                    except OrchestrationError as exc:
                        return self._failure(execution, exc)
                    result = OperationResult.success(execution.snapshot())

                if notify is not None:
                    await self._notify_submitted(notify, step_id)
                return result
            except OrchestrationError as exc:
                return OperationResult.failure(exc.code, exc.message)
            except Exception:
                logger.exception("Unexpected error updating %s step %s", execution_id, step_id)
                return OperationResult.failure(ErrorCode.INTERNAL_ERROR, "Internal error while updating step")

    async def poll_execution_status(self, execution_id: str) -> OperationResult:
        """Refresh the active step from its provider and return the snapshot.

        A failed provider call leaves every step untouched and comes back as a
        transient UPSTREAM_UNAVAILABLE result carrying the unchanged snapshot.
        """
        with execution_context(execution_id):
            try:
                async with self.store.locked(execution_id) as execution:
                    if execution is None:
                        return _not_found(execution_id)
                    try:
                        self._ensure_live(execution)
                        await self._refresh(execution)
                    except OrchestrationError as exc:
                        return self._failure(execution, exc)
                    return OperationResult.success(execution.snapshot())
            except Exception:
                logger.exception("Unexpected error polling execution %s", execution_id)
                return OperationResult.failure(ErrorCode.INTERNAL_ERROR, "Internal error while polling execution")

    async def get_execution(self, execution_id: str) -> OperationResult:
        """Pure read: no polling, no expiry check."""
        try:
            async with self.store.locked(execution_id) as execution:
                if execution is None:
                    return _not_found(execution_id)
                return OperationResult.success(execution.snapshot())
        except Exception:
            logger.exception("Unexpected error reading execution %s", execution_id)
            return OperationResult.failure(ErrorCode.INTERNAL_ERROR, "Internal error while reading execution")

    # =========================================================================
    # Internals (caller holds the execution's lock)
    # =========================================================================

    def _ensure_live(self, execution: Execution) -> None:
        if self.store.expire_if_stale(execution.id):
            raise ExpiredError(f"Execution {execution.id} expired after inactivity")

    def _failure(self, execution: Execution, exc: OrchestrationError) -> OperationResult:
        log = logger.warning if exc.code is not ErrorCode.EXPIRED else logger.info
        log("Execution %s: %s (%s)", execution.id, exc.message, exc.code.value)
        return OperationResult.failure(
            exc.code, exc.message, execution=execution.snapshot(), transient=exc.recoverable
        )

    def _transition(self, execution: Execution, index: int, to_state: StepState, *, external: bool = False) -> None:
        step = execution.steps[index]
        check_transition(step.state, to_state, external=external)
        logger.info("Execution %s: step %s %s -> %s", execution.id, step.step_id, step.state.value, to_state.value)
        step.state = to_state
        step.updated_at = utcnow()
        if to_state is not StepState.AWAITING_SIGNATURE:
            step.unsigned_tx = None

    async def _apply_report(
        self,
        execution: Execution,
        step_id: str,
        state: StepState,
        tx_hash: Optional[str],
    ) -> bool:
        """Validate and apply a report. Returns True when the step was newly submitted."""
        index = execution.step_index(step_id)
        if index is None:
            raise StateConflictError(f"Step {step_id} is not part of execution {execution.id}")
        if index != execution.current_step_index:
            raise StateConflictError(
                f"Step {step_id} is not the active step "
                f"(active: {execution.current_step.step_id})"
            )

        step = execution.steps[index]
        if state is StepState.SUBMITTED and not tx_hash:
            raise ValidationError("txHash is required when reporting SUBMITTED")

        if tx_hash and step.tx_hash:
            if tx_hash != step.tx_hash:
                raise StateConflictError(
                    f"Step {step_id} already submitted with a different transaction hash"
                )
            if state is StepState.SUBMITTED and step.state in (StepState.SUBMITTED, StepState.CONFIRMING):
                return False

        check_transition(step.state, state, external=True)

        if state is StepState.SUBMITTED:
            step.tx_hash = tx_hash
            self._transition(execution, index, state, external=True)
        elif state is StepState.FAILED:
            self._transition(execution, index, state, external=True)
            step.error = "Reported as failed by the client"
            step.error_code = ErrorCode.EXECUTION_FAILED.value
        elif state is StepState.CONFIRMED:
            self._transition(execution, index, state, external=True)
            self.store.touch(execution.id)
            await self._advance(execution)
        else:
            self._transition(execution, index, state, external=True)

        self.store.touch(execution.id)
        return state is StepState.SUBMITTED

    async def _refresh(self, execution: Execution) -> None:
        if execution.state in (ExecutionState.COMPLETED, ExecutionState.FAILED):
            return

        index = execution.current_step_index
        step = execution.steps[index]

        if step.state is StepState.PENDING:
            # Building this step failed after the previous one confirmed
            await self._build_step(execution, index)
            self.store.touch(execution.id)
            return

        if step.state not in (StepState.SUBMITTED, StepState.CONFIRMING):
            return

        plan_step = execution.plan.steps[index]
        tracking_id = step.provider_ref or step.tx_hash
        status = await self.poller.poll_provider_status(plan_step.provider, tracking_id, plan_step)
        if self._apply_polled(execution, index, status):
            self.store.touch(execution.id)
        if step.state is StepState.CONFIRMED:
            await self._advance(execution)

    def _apply_polled(self, execution: Execution, index: int, status: NormalizedStatus) -> bool:
        step = execution.steps[index]
        before = step.state

        if status.status is StepState.CONFIRMING:
            if step.state is StepState.SUBMITTED:
                self._transition(execution, index, StepState.CONFIRMING)
        elif status.status is StepState.CONFIRMED:
            if step.state is StepState.SUBMITTED:
                self._transition(execution, index, StepState.CONFIRMING)
            self._transition(execution, index, StepState.CONFIRMED)
        elif status.status is StepState.FAILED:
            self._transition(execution, index, StepState.FAILED)
            step.error = status.message or f"Provider reported '{status.raw_status}'"
            step.error_code = (status.error_code or ErrorCode.EXECUTION_FAILED).value

        return step.state is not before

    async def _advance(self, execution: Execution) -> None:
        """Move past a CONFIRMED step and build the next one, if any."""
        next_index = execution.current_step_index + 1
        if next_index >= len(execution.steps):
            logger.info("Execution %s completed", execution.id)
            return

        execution.current_step_index = next_index
        await self._build_step(execution, next_index)
        self.store.touch(execution.id)

    async def _build_step(self, execution: Execution, index: int) -> None:
        plan_step: PlanStep = execution.plan.steps[index]
        step = execution.steps[index]
        check_transition(step.state, StepState.AWAITING_SIGNATURE)

        try:
            adapter = self.adapters.for_step(plan_step)
            built = await asyncio.wait_for(
                adapter.build_transaction(plan_step, execution.wallet_addresses),
                timeout=self.build_timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailableError(
                f"Building step {plan_step.step_id} via {plan_step.provider} timed out"
            ) from exc
        except ProviderUnavailableError as exc:
            raise UpstreamUnavailableError(
                f"{plan_step.provider} unavailable while building step {plan_step.step_id}: {exc.message}"
            ) from exc
        except ProviderError as exc:
            raise ValidationError(
                f"{plan_step.provider} rejected step {plan_step.step_id}: {exc.message}"
            ) from exc

        step.unsigned_tx = built.unsigned_tx
        step.provider_ref = built.provider_ref
        self._transition(execution, index, StepState.AWAITING_SIGNATURE)

    async def _notify_submitted(self, execution: Execution, step_id: str) -> None:
        index = execution.step_index(step_id)
        if index is None:
            return
        plan_step = execution.plan.steps[index]
        step = execution.steps[index]
        try:
            adapter = self.adapters.for_step(plan_step)
            await asyncio.wait_for(
                adapter.submit(plan_step, step.tx_hash, step.provider_ref),
                timeout=self.build_timeout_s,
            )
        except (asyncio.TimeoutError, ProviderError, ProviderUnavailableError) as exc:
            logger.warning("Could not notify %s about %s: %s", plan_step.provider, step.tx_hash, exc)
        except Exception:
            logger.warning("Submit hook for %s crashed on %s", plan_step.provider, step.tx_hash, exc_info=True)


def _parse_state(value: Union[StepState, str]) -> StepState:
    if isinstance(value, StepState):
        return value
    try:
        return StepState(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Unknown step state '{value}'")


def _not_found(execution_id: str) -> OperationResult:
    return OperationResult.failure(ErrorCode.NOT_FOUND, f"Execution {execution_id} not found")
