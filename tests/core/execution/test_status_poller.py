"""
Tests for provider status normalization and the status poller.
"""

import asyncio

import pytest

from app.core.errors import ErrorCode, UpstreamUnavailableError
from app.core.execution import StatusPoller, StepState, normalize_status
from app.providers.base import ProviderStatus, ProviderUnavailableError
from app.providers.registry import AdapterRegistry

from conftest import FakeAdapter, make_plan


# =============================================================================
# normalize_status
# =============================================================================

class TestNormalizeStatus:
    @pytest.mark.parametrize(
        "provider,raw,expected",
        [
            ("changenow", "waiting", StepState.CONFIRMING),
            ("changenow", "exchanging", StepState.CONFIRMING),
            ("changenow", "finished", StepState.CONFIRMED),
            ("changenow", "failed", StepState.FAILED),
            ("relay", "pending", StepState.CONFIRMING),
            ("relay", "success", StepState.CONFIRMED),
            ("relay", "failure", StepState.FAILED),
            ("bungee", "PENDING", StepState.CONFIRMING),
            ("bungee", "SETTLED", StepState.CONFIRMED),
            ("bungee", "EXPIRED", StepState.FAILED),
            ("jupiter", "processed", StepState.CONFIRMING),
            ("jupiter", "finalized", StepState.CONFIRMED),
            ("native", "reverted", StepState.FAILED),
        ],
    )
    def test_vocabularies(self, provider: str, raw: str, expected: StepState):
        assert normalize_status(provider, raw).status is expected

    def test_failure_carries_message_and_code(self):
        status = normalize_status("relay", "failure", "solver could not fill")
        assert status.error_code is ErrorCode.EXECUTION_FAILED
        assert status.message == "solver could not fill"

    @pytest.mark.parametrize("provider,raw", [("changenow", "refunded"), ("relay", "refund")])
    def test_refund_is_failure_with_refunded_code(self, provider: str, raw: str):
        status = normalize_status(provider, raw)
        assert status.status is StepState.FAILED
        assert status.error_code is ErrorCode.REFUNDED
        assert "refund" in status.message

    def test_unknown_status_stays_non_terminal(self):
        status = normalize_status("relay", "teleporting")
        assert status.status is StepState.CONFIRMING
        assert status.error_code is None
        assert status.raw_status == "teleporting"

    def test_unknown_provider_stays_non_terminal(self):
        assert normalize_status("mystery", "success").status is StepState.CONFIRMING


# =============================================================================
# StatusPoller
# =============================================================================

class _SlowAdapter(FakeAdapter):
    async def get_status(self, tracking_id, step):
        await asyncio.sleep(1)
        return ProviderStatus(status="success")


class TestStatusPoller:
    @pytest.mark.asyncio
    async def test_reading_is_normalized(self):
        adapter = FakeAdapter(name="relay")
        adapter.statuses.append("success")
        poller = StatusPoller(AdapterRegistry([adapter]))

        status = await poller.poll_provider_status("relay", "req-1", make_plan(provider="relay").steps[0])

        assert status.status is StepState.CONFIRMED
        assert status.raw_status == "success"

    @pytest.mark.asyncio
    async def test_provider_outage_is_upstream_unavailable(self):
        adapter = FakeAdapter(name="relay")
        adapter.statuses.append(ProviderUnavailableError("502 from relay", provider="relay"))
        poller = StatusPoller(AdapterRegistry([adapter]))

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await poller.poll_provider_status("relay", "req-1", make_plan(provider="relay").steps[0])
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_timeout_is_upstream_unavailable(self):
        poller = StatusPoller(AdapterRegistry([_SlowAdapter(name="relay")]), timeout_s=0.01)

        with pytest.raises(UpstreamUnavailableError):
            await poller.poll_provider_status("relay", "req-1", make_plan(provider="relay").steps[0])

    @pytest.mark.asyncio
    async def test_unregistered_provider_is_upstream_unavailable(self):
        poller = StatusPoller(AdapterRegistry([]))

        with pytest.raises(UpstreamUnavailableError):
            await poller.poll_provider_status("relay", "req-1", make_plan(provider="relay").steps[0])
