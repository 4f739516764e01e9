"""
Auto-save reconciler - debounced persistence for draft edits.

Every schedule() for an entity re-arms that entity's timer; the persist
callback runs only after `quiet_period` seconds without further edits, so
a burst of edits becomes one write of the latest snapshot.

Drafts waiting out the quiet period live only in memory. If the process
dies inside that window the draft is lost; this is accepted, and
flush()/close() exist so a graceful shutdown writes everything pending.
A write already in flight is never cancelled: a newer edit schedules its
own write, which lands later and overwrites it. Callers that write the
entity themselves use settle() first, so a draft still in flight cannot
land on top of their write.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from geolearn.logging_config import get_logger

logger = get_logger(__name__)

PersistCallback = Callable[[Any], Awaitable[None]]


@dataclass
class _PendingSave:
    snapshot: Any
    persist: PersistCallback
    timer: Optional[asyncio.Task] = None


class AutoSaveReconciler:
    """One debouncer shared by every stage and every project."""

    DEFAULT_QUIET_PERIOD = 3.0

    def __init__(self, quiet_period: float = DEFAULT_QUIET_PERIOD):
        if quiet_period < 0:
            raise ValueError("quiet_period must be non-negative")
        self.quiet_period = quiet_period
        self._pending: Dict[str, _PendingSave] = {}
        # Timers whose quiet period is over and whose write is running
        self._in_flight: Dict[str, Set[asyncio.Task]] = {}

    def schedule(self, entity_id: str, snapshot: Any, persist: PersistCallback) -> None:
        """(Re)arm the timer for entity_id with the latest snapshot."""
        previous = self._pending.get(entity_id)
        if previous is not None and previous.timer is not None:
            previous.timer.cancel()
        pending = _PendingSave(snapshot=snapshot, persist=persist)
        self._pending[entity_id] = pending
        pending.timer = asyncio.get_running_loop().create_task(self._fire_after_quiet(entity_id, pending))

    def is_pending(self, entity_id: str) -> bool:
        return entity_id in self._pending

    def is_writing(self, entity_id: str) -> bool:
        return bool(self._in_flight.get(entity_id))

    def cancel(self, entity_id: str) -> None:
        """Drop a pending draft without writing it."""
        pending = self._pending.pop(entity_id, None)
        if pending is not None and pending.timer is not None:
            pending.timer.cancel()

    async def settle(self, entity_id: str) -> None:
        """Drop the waiting draft and wait for writes already in flight."""
        self.cancel(entity_id)
        writes = list(self._in_flight.get(entity_id, ()))
        if writes:
            await asyncio.gather(*writes, return_exceptions=True)

    async def flush(self, entity_id: Optional[str] = None) -> None:
        """Write pending drafts now instead of waiting for their timers."""
        ids = [entity_id] if entity_id is not None else list(self._pending)
        for key in ids:
            pending = self._pending.pop(key, None)
            if pending is None:
                continue
            if pending.timer is not None:
                pending.timer.cancel()
            await self._persist(key, pending)

    async def close(self) -> None:
        await self.flush()
        writes = [task for tasks in self._in_flight.values() for task in tasks]
        if writes:
            await asyncio.gather(*writes, return_exceptions=True)

    async def _fire_after_quiet(self, entity_id: str, pending: _PendingSave) -> None:
        await asyncio.sleep(self.quiet_period)
        # Detach before writing so a new edit re-arms rather than cancels this write
        if self._pending.get(entity_id) is pending:
            del self._pending[entity_id]
        pending.timer = None
        task = asyncio.current_task()
        writes = self._in_flight.setdefault(entity_id, set())
        writes.add(task)
        try:
            await self._persist(entity_id, pending)
        finally:
            writes.discard(task)
            if not writes and self._in_flight.get(entity_id) is writes:
                del self._in_flight[entity_id]

    async def _persist(self, entity_id: str, pending: _PendingSave) -> None:
        try:
            await pending.persist(pending.snapshot)
        except Exception as exc:
            logger.warning(
                "Auto-save failed",
                extra={"entity_id": entity_id, "error": str(exc)},
            )
