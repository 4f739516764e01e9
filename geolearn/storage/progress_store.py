"""
ProgressStore - two-tier persistence for one learner session.

Every write goes to the local cache first (synchronous, always succeeds)
and then to the remote store. A failed remote write is logged, queued on
the SyncQueue for retry with backoff, and reported back as synced=False;
the learner keeps working on local state.
"""

import uuid
from typing import Any, Optional

from pydantic import BaseModel

from geolearn.kernel.models import EventType
from geolearn.logging_config import get_logger
from geolearn.storage.local_cache import LocalCache
from geolearn.storage.remote import RemoteStore
from geolearn.storage.sync_queue import RemoteWrite, SyncQueue

logger = get_logger(__name__)


class ProgressStore:
    """Read/write primitives over the local cache and the remote store."""

    TAB_PROGRESS_KEY = "geolearn.tab_progress"
    GAMIFICATION_KEY = "geolearn.gamification"
    PROJECT_KEY = "geolearn.lkpd_project"

    def __init__(
        self,
        user_id: str,
        local: LocalCache,
        remote: RemoteStore,
        sync_queue: Optional[SyncQueue] = None,
    ):
        self.user_id = user_id
        self.local = local
        self.remote = remote
        self.sync_queue = sync_queue or SyncQueue()

    @property
    def has_unsynced_changes(self) -> bool:
        return self.sync_queue.has_unsynced

    def read_local(self, key: str) -> Optional[Any]:
        return self.local.read(key)

    def write_local(self, key: str, document: Any) -> None:
        self.local.write(key, document)

    def clear_local(self, key: str) -> None:
        self.local.delete(key)

    async def write_through(
        self,
        key: str,
        document: Any,
        remote_write: RemoteWrite,
        sync_key: Optional[str] = None,
    ) -> bool:
        """
        Overwrite the local document, then push to the remote store.

        Args:
            key: Local cache key (None document skips the local write)
            document: JSON-serializable document for the local cache
            remote_write: Zero-arg coroutine factory performing the remote write
            sync_key: Queue key for retries; defaults to key. Writes sharing a
                sync key supersede each other.

        Returns:
            True when the remote write succeeded.
        """
        if document is not None:
            self.local.write(key, document)
        return await self.push_remote(sync_key or key, remote_write)

    async def push_remote(self, sync_key: str, remote_write: RemoteWrite) -> bool:
        try:
            await remote_write()
        except Exception as exc:
            logger.warning(
                "Remote write failed; continuing on local state",
                extra={"sync_key": sync_key, "user_id": self.user_id, "error": str(exc)},
            )
            self.sync_queue.enqueue(sync_key, remote_write, exc)
            return False
        self.sync_queue.discard(sync_key)
        return True

    async def append_event(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        payload: BaseModel,
    ) -> bool:
        """Append a command to the remote log. Each command gets its own retry slot."""

        async def _write() -> None:
            await self.remote.append_event(self.user_id, event_type, entity_type, entity_id, payload)

        return await self.push_remote(f"event:{uuid.uuid4()}", _write)

    async def flush(self) -> bool:
        """Retry every queued remote write now."""
        return await self.sync_queue.flush()

    async def close(self) -> None:
        await self.sync_queue.close()
