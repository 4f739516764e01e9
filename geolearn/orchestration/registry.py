"""
Session registry - hands out one LearningSession per learner.

The API layer holds a single registry for the process. Sessions share one
AutoSaveReconciler and one upload collaborator; each has its own local
cache and retry queue.
"""

import asyncio
import re
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geolearn.config import Settings
from geolearn.engines.gamification.badges import BadgeEvaluator
from geolearn.engines.lkpd.autosave import AutoSaveReconciler
from geolearn.engines.lkpd.uploads import ArtifactUploader, HttpArtifactUploader, UploadLimits
from geolearn.logging_config import get_logger
from geolearn.orchestration.learning_session import LearningSession
from geolearn.orchestration.state_machine import StageWorkflowController
from geolearn.storage.local_cache import LocalCache
from geolearn.storage.progress_store import ProgressStore
from geolearn.storage.remote import RemoteStore, SqlRemoteStore
from geolearn.storage.sync_queue import SyncQueue

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class SessionRegistry:
    """Creates, loads and shuts down learner sessions."""

    def __init__(
        self,
        remote: RemoteStore,
        reconciler: Optional[AutoSaveReconciler] = None,
        uploader: Optional[ArtifactUploader] = None,
        badges: Optional[BadgeEvaluator] = None,
        local_cache_dir: Optional[str] = None,
        upload_limits: UploadLimits = UploadLimits(),
        sync_max_attempts: int = 5,
        sync_base_delay: float = 0.5,
    ):
        self.remote = remote
        self.reconciler = reconciler or AutoSaveReconciler()
        self.uploader = uploader
        self.badges = badges or BadgeEvaluator()
        self.local_cache_dir = Path(local_cache_dir) if local_cache_dir else None
        self.upload_limits = upload_limits
        self.sync_max_attempts = sync_max_attempts
        self.sync_base_delay = sync_base_delay
        self._sessions: Dict[str, LearningSession] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_maker: async_sessionmaker[AsyncSession],
    ) -> "SessionRegistry":
        return cls(
            remote=SqlRemoteStore(session_maker),
            reconciler=AutoSaveReconciler(settings.autosave_quiet_period_seconds),
            uploader=HttpArtifactUploader(
                base_url=settings.upload_base_url,
                bucket=settings.upload_bucket,
                api_key=settings.upload_api_key,
                timeout=settings.upload_timeout_seconds,
            ),
            local_cache_dir=settings.local_cache_dir,
            upload_limits=UploadLimits(
                max_stl_size_mb=settings.max_stl_size_mb,
                max_image_size_mb=settings.max_image_size_mb,
            ),
            sync_max_attempts=settings.sync_max_attempts,
            sync_base_delay=settings.sync_base_delay_seconds,
        )

    @property
    def user_ids(self) -> List[str]:
        return list(self._sessions)

    def _local_cache(self, user_id: str) -> LocalCache:
        if self.local_cache_dir is None:
            return LocalCache()
        return LocalCache(self.local_cache_dir / _UNSAFE_CHARS.sub("_", user_id))

    async def get(self, user_id: str) -> LearningSession:
        """Return the learner's session, creating and loading it on first use."""
        if not user_id:
            raise ValueError("user_id must not be empty")
        async with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                store = ProgressStore(
                    user_id,
                    self._local_cache(user_id),
                    self.remote,
                    SyncQueue(self.sync_max_attempts, self.sync_base_delay),
                )
                workflow = StageWorkflowController(
                    store,
                    self.reconciler,
                    uploader=self.uploader,
                    limits=self.upload_limits,
                )
                session = LearningSession(store, workflow, badges=self.badges)
                self._sessions[user_id] = session
                logger.info("Learner session created", extra={"user_id": user_id})
            await session.load()
        return session

    async def close(self) -> None:
        """Flush drafts and queued writes for every session."""
        await self.reconciler.close()
        for user_id, session in list(self._sessions.items()):
            try:
                await session.close()
            except Exception as exc:
                logger.error("Failed to close learner session", extra={"user_id": user_id, "error": str(exc)})
        self._sessions.clear()
