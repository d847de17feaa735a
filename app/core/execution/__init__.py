"""
Execution Layer

Drives route plans through the client-signing handshake:
- ExecutionOrchestrator: creates executions, applies step reports, polls providers
- ExecutionStore: per-execution locking and inactivity expiry
- StatusPoller: normalizes provider status vocabularies
- ExecutionSweeper: optional periodic TTL sweep

Usage:
    from app.core.execution import (
        ExecutionOrchestrator,
        ExecutionStore,
        StatusPoller,
    )

    store = ExecutionStore(inactivity_ttl_s=1800, retention_s=3600)
    orchestrator = ExecutionOrchestrator(store, adapters, StatusPoller(adapters))

    result = await orchestrator.create_execution(plan)
    # client signs result.execution.current_step.unsigned_tx ...
    await orchestrator.update_step_state(result.execution.id, step_id, "SUBMITTED", tx_hash)
    await orchestrator.poll_execution_status(result.execution.id)
"""

from .models import (
    Execution,
    ExecutionStep,
    OperationResult,
)

from .state_machine import (
    ExecutionState,
    InvalidTransitionError,
    StepState,
    TRANSITIONS,
    can_transition,
    check_transition,
    fold_execution_state,
)

from .store import (
    ExecutionStore,
    SweepStats,
)

from .status_poller import (
    NormalizedStatus,
    StatusPoller,
    normalize_status,
)

from .orchestrator import (
    ExecutionOrchestrator,
)

from .sweeper import (
    ExecutionSweeper,
)

__all__ = [
    # Models
    "Execution",
    "ExecutionStep",
    "OperationResult",
    # State machine
    "ExecutionState",
    "InvalidTransitionError",
    "StepState",
    "TRANSITIONS",
    "can_transition",
    "check_transition",
    "fold_execution_state",
    # Store
    "ExecutionStore",
    "SweepStats",
    # Status poller
    "NormalizedStatus",
    "StatusPoller",
    "normalize_status",
    # Orchestrator
    "ExecutionOrchestrator",
    # Sweeper
    "ExecutionSweeper",
]
