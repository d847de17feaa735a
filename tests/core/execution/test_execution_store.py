"""
Tests for ExecutionStore: per-key locking, inactivity expiry and retention.
"""

import asyncio

import pytest

from app.core.execution import Execution, ExecutionState, ExecutionStep, ExecutionStore, StepState

from conftest import make_plan


def _execution(execution_id: str = "exec-1", *states: StepState) -> Execution:
    plan = make_plan(max(len(states), 1))
    states = states or (StepState.AWAITING_SIGNATURE,)
    return Execution(
        id=execution_id,
        plan=plan,
        steps=[ExecutionStep(step_id=step.step_id, state=state) for step, state in zip(plan.steps, states)],
    )


# =============================================================================
# Insert / lookup
# =============================================================================

class TestLookup:
    @pytest.mark.asyncio
    async def test_locked_yields_live_execution(self, store):
        execution = _execution()
        await store.insert(execution)

        async with store.locked("exec-1") as found:
            assert found is execution

        async with store.locked("exec-unknown") as missing:
            assert missing is None

    @pytest.mark.asyncio
    async def test_duplicate_insert_rejected(self, store):
        await store.insert(_execution())
        with pytest.raises(KeyError):
            await store.insert(_execution())

    @pytest.mark.asyncio
    async def test_keys_do_not_share_locks(self, store):
        await store.insert(_execution("exec-a"))

        async with store.locked("exec-a"):
            await asyncio.wait_for(store.insert(_execution("exec-b")), timeout=1)
            async with store.locked("exec-b") as other:
                assert other is not None

        assert sorted(store.ids()) == ["exec-a", "exec-b"]
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_unknown_ids_do_not_accumulate_locks(self, store):
        for index in range(500):
            async with store.locked(f"unknown-{index}") as missing:
                assert missing is None

        await store.sweep()

        assert store._locks == {}

    @pytest.mark.asyncio
    async def test_lock_kept_while_another_caller_waits(self, store):
        order = []

        async def hold(name: str) -> None:
            async with store.locked("exec-ghost"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(hold("first"), hold("second"))

        assert order == ["first-in", "first-out", "second-in", "second-out"]
        assert "exec-ghost" not in store._locks


# =============================================================================
# Expiry
# =============================================================================

class TestExpiry:
    @pytest.mark.asyncio
    async def test_fresh_execution_is_live(self, store, clock):
        await store.insert(_execution())
        clock.advance(1800)
        assert store.expire_if_stale("exec-1") is False

    @pytest.mark.asyncio
    async def test_stale_execution_expires_once(self, store, clock):
        execution = _execution()
        await store.insert(execution)
        clock.advance(1801)

        assert store.expire_if_stale("exec-1") is True
        assert execution.expired_at is not None
        assert execution.state is ExecutionState.EXPIRED

        stamp = execution.expired_at
        assert store.expire_if_stale("exec-1") is True
        assert execution.expired_at == stamp

    @pytest.mark.asyncio
    async def test_touch_resets_inactivity(self, store, clock):
        await store.insert(_execution())
        clock.advance(1500)
        store.touch("exec-1")
        clock.advance(1500)
        assert store.expire_if_stale("exec-1") is False

    @pytest.mark.asyncio
    async def test_terminal_executions_never_expire(self, store, clock):
        execution = _execution("exec-1", StepState.CONFIRMED)
        await store.insert(execution)
        clock.advance(10_000)

        assert store.expire_if_stale("exec-1") is False
        assert execution.state is ExecutionState.COMPLETED

    def test_unknown_id_is_not_expired(self, store):
        assert store.expire_if_stale("exec-unknown") is False


# =============================================================================
# Sweep
# =============================================================================

class TestSweep:
    @pytest.mark.asyncio
    async def test_sweep_expires_then_purges(self, store, clock):
        await store.insert(_execution())
        clock.advance(1801)

        first = await store.sweep()
        assert (first.expired, first.purged) == (1, 0)
        assert "exec-1" in store

        clock.advance(3601)
        second = await store.sweep()
        assert (second.expired, second.purged) == (0, 1)
        assert "exec-1" not in store
        assert "exec-1" not in store._locks

    @pytest.mark.asyncio
    async def test_completed_execution_purged_after_retention(self, store, clock):
        execution = _execution("exec-1", StepState.CONFIRMING)
        await store.insert(execution)
        async with store.locked("exec-1") as live:
            live.steps[0].state = StepState.CONFIRMED
            store.touch("exec-1")

        clock.advance(3600)
        assert (await store.sweep()).purged == 0

        clock.advance(1)
        assert (await store.sweep()).purged == 1
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_active_execution_survives_sweep(self, store, clock):
        await store.insert(_execution())
        clock.advance(600)
        stats = await store.sweep()
        assert (stats.expired, stats.purged) == (0, 0)
        assert "exec-1" in store
