"""
Retry queue for remote writes that failed after the local write succeeded.

Writes are keyed; a newer write for the same key replaces the queued one
(last write wins). Retries back off exponentially: base_delay * 2**attempt.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from geolearn.logging_config import get_logger

logger = get_logger(__name__)

RemoteWrite = Callable[[], Awaitable[None]]


@dataclass
class PendingWrite:
    key: str
    operation: RemoteWrite
    attempts: int = 0
    last_error: Optional[str] = None


class SyncQueue:
    """Holds unsynced remote writes and replays them in the background."""

    def __init__(self, max_attempts: int = 5, base_delay: float = 0.5):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._pending: Dict[str, PendingWrite] = {}
        self._task: Optional[asyncio.Task] = None

    @property
    def has_unsynced(self) -> bool:
        return bool(self._pending)

    @property
    def pending_keys(self) -> List[str]:
        return list(self._pending)

    def enqueue(self, key: str, operation: RemoteWrite, error: Optional[BaseException] = None) -> None:
        self._pending[key] = PendingWrite(
            key=key,
            operation=operation,
            last_error=str(error) if error else None,
        )
        self._ensure_worker()

    def discard(self, key: str) -> None:
        """Drop a queued write superseded by a successful newer one."""
        self._pending.pop(key, None)

    async def flush(self) -> bool:
        """Try every pending write once, now. Returns True when nothing is left."""
        for key in list(self._pending):
            await self._attempt(key)
        return not self._pending

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

    def _ensure_worker(self) -> None:
        if self._task is not None and not self._task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: a later flush() will pick the write up
            return
        self._task = loop.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            retryable = [p for p in self._pending.values() if p.attempts < self.max_attempts]
            if not retryable:
                return
            attempts = min(p.attempts for p in retryable)
            await asyncio.sleep(self.base_delay * (2 ** attempts))
            for pending in retryable:
                await self._attempt(pending.key)

    async def _attempt(self, key: str) -> None:
        pending = self._pending.get(key)
        if pending is None:
            return
        operation = pending.operation
        try:
            await operation()
        except Exception as exc:
            pending.attempts += 1
            pending.last_error = str(exc)
            if pending.attempts >= self.max_attempts:
                logger.error(
                    "Remote sync gave up; change stays local only",
                    extra={"sync_key": key, "attempts": pending.attempts, "error": str(exc)},
                )
            else:
                logger.warning(
                    "Remote sync retry failed",
                    extra={"sync_key": key, "attempts": pending.attempts, "error": str(exc)},
                )
            return
        # A newer write may have been queued while this one was in flight
        if self._pending.get(key) is pending:
            del self._pending[key]
        logger.info("Remote sync recovered", extra={"sync_key": key})
