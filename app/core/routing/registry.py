from typing import Optional

from ...cache import TTLCache
from .models import RoutePlan


class PlanRegistry:
    """Route plans handed out to clients, waiting to be turned into executions.

    A plan can be taken once; after that (or after its TTL) it is gone.
    """

    def __init__(self, ttl_s: int = 600, max_size: int = 1000, cache: Optional[TTLCache] = None):
        self._cache = cache or TTLCache(default_ttl=ttl_s, max_size=max_size)

    async def register(self, plan: RoutePlan) -> None:
        await self._cache.set(plan.request_id, plan)

    async def get(self, plan_id: str) -> Optional[RoutePlan]:
        return await self._cache.get(plan_id)

    async def take(self, plan_id: str) -> Optional[RoutePlan]:
        return await self._cache.pop(plan_id)

    def __len__(self) -> int:
        return self._cache.size()

    async def purge_expired(self) -> int:
        return await self._cache.purge_expired()
