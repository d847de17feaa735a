"""
Status Poller

Maps each provider's raw status vocabulary onto the step states the
orchestrator understands. One short-timeout call per poll; retrying is the
client's job (it simply polls again).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ...providers.base import ProviderError, ProviderUnavailableError
from ...providers.registry import AdapterRegistry
from ..errors import ErrorCode, UpstreamUnavailableError
from ..routing.models import PlanStep
from .state_machine import StepState

logger = logging.getLogger(__name__)

_Mapping = Tuple[StepState, Optional[ErrorCode]]

_CONFIRMING: _Mapping = (StepState.CONFIRMING, None)
_CONFIRMED: _Mapping = (StepState.CONFIRMED, None)
_FAILED: _Mapping = (StepState.FAILED, ErrorCode.EXECUTION_FAILED)
_REFUNDED: _Mapping = (StepState.FAILED, ErrorCode.REFUNDED)

STATUS_VOCABULARIES: Dict[str, Dict[str, _Mapping]] = {
    "changenow": {
        "new": _CONFIRMING,
        "waiting": _CONFIRMING,
        "confirming": _CONFIRMING,
        "exchanging": _CONFIRMING,
        "sending": _CONFIRMING,
        "verifying": _CONFIRMING,
        "finished": _CONFIRMED,
        "completed": _CONFIRMED,
        "failed": _FAILED,
        "expired": _FAILED,
        "refunded": _REFUNDED,
    },
    "relay": {
        "waiting": _CONFIRMING,
        "pending": _CONFIRMING,
        "submitted": _CONFIRMING,
        "delayed": _CONFIRMING,
        "success": _CONFIRMED,
        "failure": _FAILED,
        "refund": _REFUNDED,
        "refunded": _REFUNDED,
    },
    "bungee": {
        "pending": _CONFIRMING,
        "assigned": _CONFIRMING,
        "extracted": _CONFIRMING,
        "fulfilled": _CONFIRMED,
        "settled": _CONFIRMED,
        "completed": _CONFIRMED,
        "expired": _FAILED,
        "cancelled": _FAILED,
        "failed": _FAILED,
        "refunded": _REFUNDED,
    },
    "jupiter": {
        "pending": _CONFIRMING,
        "processed": _CONFIRMING,
        "confirmed": _CONFIRMED,
        "finalized": _CONFIRMED,
        "failed": _FAILED,
    },
    "native": {
        "pending": _CONFIRMING,
        "success": _CONFIRMED,
        "reverted": _FAILED,
        "failed": _FAILED,
    },
}


@dataclass
class NormalizedStatus:
    status: StepState
    raw_status: str
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None


def normalize_status(provider: str, raw_status: str, detail: Optional[str] = None) -> NormalizedStatus:
    key = (raw_status or "").strip().lower()
    vocabulary = STATUS_VOCABULARIES.get(provider, {})
    mapped = vocabulary.get(key)
    if mapped is None:
        # Never guess a terminal outcome
        logger.warning("Unknown %s status '%s'; treating as still confirming", provider, raw_status)
        return NormalizedStatus(status=StepState.CONFIRMING, raw_status=raw_status)

    state, error_code = mapped
    message = None
    if state is StepState.FAILED:
        if error_code is ErrorCode.REFUNDED:
            message = detail or f"{provider} refunded the transfer"
        else:
            message = detail or f"{provider} reported status '{raw_status}'"
    return NormalizedStatus(status=state, raw_status=raw_status, error_code=error_code, message=message)


class StatusPoller:
    def __init__(self, adapters: AdapterRegistry, timeout_s: float = 8.0):
        self.adapters = adapters
        self.timeout_s = timeout_s

    async def poll_provider_status(self, provider: str, tx_id: str, step: PlanStep) -> NormalizedStatus:
        """Fetch and normalize one status reading.

        Raises UpstreamUnavailableError on any failure to obtain a reading.
        """
        try:
            adapter = self.adapters.get(provider)
            raw = await asyncio.wait_for(adapter.get_status(tx_id, step), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailableError(f"{provider} status check timed out after {self.timeout_s}s") from exc
        except (ProviderUnavailableError, ProviderError) as exc:
            raise UpstreamUnavailableError(f"{provider} status check failed: {exc}") from exc

        status = normalize_status(provider, raw.status, raw.detail)
        logger.debug("%s status for %s: %s -> %s", provider, tx_id, raw.status, status.status.value)
        return status
