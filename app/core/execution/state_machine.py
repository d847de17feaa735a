"""
Step State Machine

The transition table for execution steps and the fold that derives an
execution's overall state from its steps. Every step mutation in the
orchestrator goes through ``check_transition``.
"""

from enum import Enum
from typing import Dict, Iterable, Optional, Set

from ..errors import StateConflictError


class StepState(str, Enum):
    """Lifecycle of a single plan step."""
    PENDING = "PENDING"                        # Not built yet
    AWAITING_SIGNATURE = "AWAITING_SIGNATURE"  # Unsigned tx handed to the client
    SUBMITTED = "SUBMITTED"                    # Client broadcast it and reported the hash
    CONFIRMING = "CONFIRMING"                  # Provider has seen it, not final yet
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class ExecutionState(str, Enum):
    """Execution-level state, always derived from the steps."""
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


ACTIVE_STATES: Set[StepState] = {
    StepState.AWAITING_SIGNATURE,
    StepState.SUBMITTED,
    StepState.CONFIRMING,
}

TERMINAL_STATES: Set[StepState] = {StepState.CONFIRMED, StepState.FAILED}

TERMINAL_EXECUTION_STATES: Set[ExecutionState] = {
    ExecutionState.COMPLETED,
    ExecutionState.FAILED,
    ExecutionState.EXPIRED,
}

TRANSITIONS: Dict[StepState, Set[StepState]] = {
    StepState.PENDING: {StepState.AWAITING_SIGNATURE},
    StepState.AWAITING_SIGNATURE: {StepState.SUBMITTED},
    StepState.SUBMITTED: {StepState.CONFIRMING, StepState.FAILED},
    StepState.CONFIRMING: {StepState.CONFIRMED, StepState.FAILED},
    StepState.CONFIRMED: set(),
    StepState.FAILED: set(),
}

# Edges only the orchestrator may take; clients can never report these
INTERNAL_ONLY: Set[StepState] = {StepState.AWAITING_SIGNATURE}


class InvalidTransitionError(StateConflictError):
    """Raised when a step transition is not in the table."""

    def __init__(self, from_state: StepState, to_state: StepState, message: Optional[str] = None):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            message or f"Invalid step transition: {from_state.value} -> {to_state.value}",
            details={"from": from_state.value, "to": to_state.value},
        )


def can_transition(from_state: StepState, to_state: StepState, *, external: bool = False) -> bool:
    if external and to_state in INTERNAL_ONLY:
        return False
    return to_state in TRANSITIONS.get(from_state, set())


def check_transition(from_state: StepState, to_state: StepState, *, external: bool = False) -> None:
    if external and to_state in INTERNAL_ONLY:
        raise InvalidTransitionError(
            from_state, to_state, f"{to_state.value} can only be set by the orchestrator"
        )
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(from_state, to_state)


def fold_execution_state(step_states: Iterable[StepState], expired: bool = False) -> ExecutionState:
    states = list(step_states)
    if states and all(state is StepState.CONFIRMED for state in states):
        return ExecutionState.COMPLETED
    if any(state is StepState.FAILED for state in states):
        return ExecutionState.FAILED
    if expired:
        return ExecutionState.EXPIRED
    if any(state is not StepState.PENDING for state in states):
        return ExecutionState.RUNNING
    return ExecutionState.CREATED
