"""Tests for the plan registry and the TTL cache backing it."""

import pytest

from app.cache import TTLCache
from app.core.routing.registry import PlanRegistry

from conftest import FakeClock, make_plan


class TestPlanRegistry:
    @pytest.mark.asyncio
    async def test_plan_is_taken_once(self):
        registry = PlanRegistry()
        plan = make_plan()
        await registry.register(plan)

        assert await registry.get(plan.request_id) is plan
        assert await registry.take(plan.request_id) is plan
        assert await registry.take(plan.request_id) is None
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_plan_expires(self):
        clock = FakeClock()
        registry = PlanRegistry(cache=TTLCache(default_ttl=600, clock=clock))
        plan = make_plan()
        await registry.register(plan)

        clock.advance(601)

        assert await registry.take(plan.request_id) is None

    @pytest.mark.asyncio
    async def test_oldest_plan_evicted_over_capacity(self):
        registry = PlanRegistry(max_size=2)
        plans = [make_plan() for _ in range(3)]
        for plan in plans:
            await registry.register(plan)

        assert await registry.get(plans[0].request_id) is None
        assert await registry.get(plans[2].request_id) is plans[2]
        assert len(registry) == 2
