"""Periodic TTL sweep over the execution store (and unused route plans).

Optional; correctness does not depend on it.
"""

import asyncio
import logging
from typing import Optional

from ..routing.registry import PlanRegistry
from .store import ExecutionStore, SweepStats


class ExecutionSweeper:
    def __init__(
        self,
        store: ExecutionStore,
        interval_s: float = 60.0,
        logger: Optional[logging.Logger] = None,
        plans: Optional[PlanRegistry] = None,
    ):
        self.store = store
        self.plans = plans
        self.interval_s = interval_s
        self.logger = logger or logging.getLogger(__name__)
        self._lock = asyncio.Lock()
        self._running = False
        self._loop_task: Optional[asyncio.Task] = None

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def start(self) -> None:
        async with self._lock:
            if self._running:
                return
            self._running = True
            self.logger.info("Execution sweeper starting (interval %.0fs)", self.interval_s)
            self._loop_task = asyncio.create_task(self._run_loop(), name="execution-sweeper")

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            self._running = False
            self.logger.info("Execution sweeper stopping")

            if self._loop_task:
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
                self._loop_task = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ---------------------------
    # Sweeping
    # ---------------------------
    async def run_once(self) -> SweepStats:
        stats = await self.store.sweep()
        if self.plans is not None:
            dropped = await self.plans.purge_expired()
            if dropped:
                self.logger.debug("Dropped %d expired route plans", dropped)
        if stats.expired or stats.purged:
            self.logger.info(
                "Execution sweep: %d expired, %d purged, %d remaining",
                stats.expired, stats.purged, len(self.store),
            )
        return stats

    async def _run_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self.interval_s)
                try:
                    await self.run_once()
                except Exception as exc:  # noqa: BLE001
                    self.logger.error("Execution sweep failed: %s", exc, exc_info=True)
        except asyncio.CancelledError:
            return
