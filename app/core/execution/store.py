"""
Execution Store

In-memory keyed store of executions with per-key serialization and
inactivity-based expiry. Callers take ``locked(execution_id)`` for any
read-modify-write; different keys never share a lock.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional

from .models import Execution, utcnow
from .state_machine import TERMINAL_EXECUTION_STATES

logger = logging.getLogger(__name__)


@dataclass
class _Record:
    execution: Execution
    last_activity: float
    finished_at: Optional[float] = None


@dataclass
class SweepStats:
    expired: int = 0
    purged: int = 0


class ExecutionStore:
    def __init__(
        self,
        inactivity_ttl_s: float = 1800,
        retention_s: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inactivity_ttl_s = inactivity_ttl_s
        self.retention_s = retention_s
        self._clock = clock
        self._records: Dict[str, _Record] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, execution_id: str) -> bool:
        return execution_id in self._records

    def ids(self) -> List[str]:
        return list(self._records)

    @asynccontextmanager
    async def _hold(self, execution_id: str) -> AsyncIterator[None]:
        # Locks live only while a record exists or someone holds/waits on them
        lock = self._locks.get(execution_id)
        if lock is None:
            lock = self._locks[execution_id] = asyncio.Lock()
        self._holders[execution_id] = self._holders.get(execution_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._holders[execution_id] - 1
            if remaining:
                self._holders[execution_id] = remaining
            else:
                del self._holders[execution_id]
                if execution_id not in self._records:
                    self._locks.pop(execution_id, None)

    @asynccontextmanager
    async def locked(self, execution_id: str) -> AsyncIterator[Optional[Execution]]:
        """Hold the key's lock and yield the live execution (None if unknown)."""
        async with self._hold(execution_id):
            record = self._records.get(execution_id)
            yield record.execution if record else None

    async def insert(self, execution: Execution) -> None:
        async with self._hold(execution.id):
            if execution.id in self._records:
                raise KeyError(f"Execution {execution.id} already exists")
            self._records[execution.id] = _Record(execution=execution, last_activity=self._clock())
        logger.debug("Stored execution %s (%d in store)", execution.id, len(self._records))

    def touch(self, execution_id: str) -> None:
        """Record a successful transition. Caller holds the key's lock."""
        record = self._records.get(execution_id)
        if record is None:
            return
        now = self._clock()
        record.last_activity = now
        record.execution.updated_at = utcnow()
        if record.finished_at is None and record.execution.state in TERMINAL_EXECUTION_STATES:
            record.finished_at = now

    def expire_if_stale(self, execution_id: str) -> bool:
        """Mark a stale non-terminal execution EXPIRED. Caller holds the key's lock.

        Returns True when the execution is (now) expired.
        """
        record = self._records.get(execution_id)
        if record is None:
            return False
        execution = record.execution
        if execution.expired_at is not None:
            return True
        if execution.state in TERMINAL_EXECUTION_STATES:
            return False

        now = self._clock()
        if now - record.last_activity <= self.inactivity_ttl_s:
            return False

        execution.expired_at = utcnow()
        execution.updated_at = execution.expired_at
        record.finished_at = now
        logger.info("Execution %s expired after %.0fs of inactivity", execution_id, now - record.last_activity)
        return True

    async def sweep(self) -> SweepStats:
        """Expire stale executions and purge finished ones past retention.

        Takes one key's lock at a time.
        """
        stats = SweepStats()
        for execution_id in list(self._records):
            async with self._hold(execution_id):
                record = self._records.get(execution_id)
                if record is None:
                    continue
                if record.execution.expired_at is None and self.expire_if_stale(execution_id):
                    stats.expired += 1
                if record.finished_at is not None and self._clock() - record.finished_at > self.retention_s:
                    del self._records[execution_id]
                    stats.purged += 1
        return stats
