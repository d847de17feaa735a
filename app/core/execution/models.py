"""
Execution models and types.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..errors import ErrorCode
from ..routing.models import RoutePlan
from .state_machine import ACTIVE_STATES, ExecutionState, StepState, fold_execution_state


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExecutionStep:
    """Live state of one plan step."""
    step_id: str
    state: StepState = StepState.PENDING
    unsigned_tx: Optional[Dict[str, Any]] = None     # Only while AWAITING_SIGNATURE
    tx_hash: Optional[str] = None                    # Write-once
    provider_ref: Optional[str] = None               # Provider tracking id (Relay request id, exchange id)
    error: Optional[str] = None                      # Only in FAILED
    error_code: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    def to_dict(self, include_unsigned: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stepId": self.step_id,
            "state": self.state.value,
            "txHash": self.tx_hash,
            "error": self.error,
        }
        if self.error_code:
            data["errorCode"] = self.error_code
        if include_unsigned:
            data["unsignedTx"] = self.unsigned_tx
        return data


@dataclass
class Execution:
    """Mutable progress of one route plan. Only the orchestrator writes it."""
    id: str
    plan: RoutePlan
    steps: List[ExecutionStep]
    wallet_addresses: Dict[str, str] = field(default_factory=dict)
    current_step_index: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    expired_at: Optional[datetime] = None

    @property
    def plan_id(self) -> str:
        return self.plan.request_id

    @property
    def state(self) -> ExecutionState:
        return fold_execution_state((step.state for step in self.steps), expired=self.expired_at is not None)

    @property
    def current_step(self) -> ExecutionStep:
        return self.steps[self.current_step_index]

    def step_index(self, step_id: str) -> Optional[int]:
        for index, step in enumerate(self.steps):
            if step.step_id == step_id:
                return index
        return None

    def snapshot(self) -> "Execution":
        """Deep copy for callers; the immutable plan is shared, not copied."""
        return copy.deepcopy(self, memo={id(self.plan): self.plan})

    def to_dict(self) -> Dict[str, Any]:
        current = self.current_step
        return {
            "id": self.id,
            "planId": self.plan_id,
            "state": self.state.value,
            "currentStepIndex": self.current_step_index,
            "currentStep": current.to_dict(include_unsigned=True),
            "steps": [step.to_dict() for step in self.steps],
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "expiredAt": self.expired_at.isoformat() if self.expired_at else None,
        }


@dataclass
class OperationResult:
    """Structured outcome of every orchestrator operation."""
    ok: bool
    execution: Optional[Execution] = None
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None
    transient: bool = False

    @classmethod
    def success(cls, execution: Execution) -> "OperationResult":
        return cls(ok=True, execution=execution)

    @classmethod
    def failure(
        cls,
        error_code: ErrorCode,
        message: str,
        *,
        execution: Optional[Execution] = None,
        transient: bool = False,
    ) -> "OperationResult":
        return cls(ok=False, execution=execution, error_code=error_code, message=message, transient=transient)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok}
        if not self.ok:
            data["errorCode"] = self.error_code.value if self.error_code else None
            data["error"] = self.message
            if self.transient:
                data["transient"] = True
        if self.execution is not None:
            data["execution"] = self.execution.to_dict()
        return data
