"""
Error Classification

Error codes shared by the planner, the orchestrator and the HTTP layer.
Errors are flagged recoverable (caller may simply try again later) or not.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Codes surfaced in structured results and API error bodies."""

    VALIDATION = "VALIDATION"                  # Malformed or missing request fields
    NOT_FOUND = "NOT_FOUND"                    # Unknown execution id
    STATE_CONFLICT = "STATE_CONFLICT"          # Illegal or conflicting step transition
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"  # Provider call failed transiently
    NO_ROUTE = "NO_ROUTE"                      # Planner found no viable path
    EXPIRED = "EXPIRED"                        # Execution past its inactivity window
    AMOUNT_OUT_OF_BOUNDS = "AMOUNT_OUT_OF_BOUNDS"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # HTTP surface
    MISSING_EXECUTION_ID = "MISSING_EXECUTION_ID"
    EXECUTION_NOT_FOUND = "EXECUTION_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"

    # Step failure reasons
    EXECUTION_FAILED = "EXECUTION_FAILED"
    REFUNDED = "REFUNDED"


class OrchestrationError(Exception):
    """Base class for errors raised inside the planner and orchestrator."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class ValidationError(OrchestrationError):
    code = ErrorCode.VALIDATION


class NotFoundError(OrchestrationError):
    code = ErrorCode.NOT_FOUND


class StateConflictError(OrchestrationError):
    code = ErrorCode.STATE_CONFLICT


class ExpiredError(OrchestrationError):
    code = ErrorCode.EXPIRED


class NoRouteError(OrchestrationError):
    code = ErrorCode.NO_ROUTE


class AmountOutOfBoundsError(OrchestrationError):
    code = ErrorCode.AMOUNT_OUT_OF_BOUNDS


class UpstreamUnavailableError(OrchestrationError):
    """A provider could not be reached or answered with a transient failure."""

    code = ErrorCode.UPSTREAM_UNAVAILABLE
    recoverable = True
