"""
Tab Progress Tracker - which tabs of each module a learner has opened.

Local and remote copies are reconciled per module: the copy with more
visited tabs wins outright (ties keep the local copy). Sets are never
unioned, so a stored percentage always matches a set of tabs that one
session actually opened.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from geolearn.kernel.events.event_types import TabVisitedEvent
from geolearn.kernel.models import EventType
from geolearn.logging_config import get_logger
from geolearn.schemas.progress import TOTAL_TABS_PER_MODULE, ModuleTabProgress, TabVisitResult
from geolearn.storage.progress_store import ProgressStore

logger = get_logger(__name__)


def _latest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def merge_module(local: Optional[ModuleTabProgress], remote: Optional[ModuleTabProgress]) -> ModuleTabProgress:
    """Greater cardinality wins, tie prefers local; last_visited_at is the later of both."""
    if local is None and remote is None:
        raise ValueError("nothing to merge")
    if local is None:
        return remote.model_copy(deep=True)
    if remote is None:
        return local.model_copy(deep=True)
    winner = remote if len(remote.visited_tabs) > len(local.visited_tabs) else local
    return ModuleTabProgress(
        module_id=winner.module_id,
        visited_tabs=set(winner.visited_tabs),
        last_visited_at=_latest(local.last_visited_at, remote.last_visited_at),
    )


def merge_progress(
    local: Iterable[ModuleTabProgress],
    remote: Iterable[ModuleTabProgress],
) -> Dict[str, ModuleTabProgress]:
    """Merge two progress snapshots module by module."""
    local_by_id = {p.module_id: p for p in local}
    remote_by_id = {p.module_id: p for p in remote}
    merged = {}
    for module_id in sorted(set(local_by_id) | set(remote_by_id)):
        merged[module_id] = merge_module(local_by_id.get(module_id), remote_by_id.get(module_id))
    return merged


class TabProgressTracker:
    """
    Records tab visits and answers completion questions for one learner.

    Every mutation overwrites the session's local document and then writes
    the touched module row to the remote store.
    """

    TOTAL_TABS = TOTAL_TABS_PER_MODULE

    def __init__(self, store: ProgressStore):
        self.store = store
        self._modules: Dict[str, ModuleTabProgress] = {}

    @property
    def user_id(self) -> str:
        return self.store.user_id

    def _read_local(self) -> List[ModuleTabProgress]:
        document = self.store.read_local(ProgressStore.TAB_PROGRESS_KEY) or []
        entries = []
        for raw in document:
            try:
                entries.append(ModuleTabProgress.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Skipping malformed cached tab progress: %s", exc.errors()[0]["msg"])
        return entries

    def _write_local(self) -> None:
        document = [p.model_dump(mode="json") for p in self._modules.values()]
        self.store.write_local(ProgressStore.TAB_PROGRESS_KEY, document)

    async def load(self) -> Dict[str, ModuleTabProgress]:
        """Reconcile the local cache with the remote store."""
        local = self._read_local()
        remote: List[ModuleTabProgress] = []
        try:
            remote = await self.store.remote.fetch_module_progress(self.user_id)
        except Exception as exc:
            logger.warning("Remote progress unavailable; using local cache only: %s", exc)

        self._modules = merge_progress(local, remote)
        self._write_local()

        # Push modules where the local copy won so the remote catches up
        remote_by_id = {p.module_id: p for p in remote}
        for module_id, merged in self._modules.items():
            stale = remote_by_id.get(module_id)
            if stale is None or stale.visited_tabs != merged.visited_tabs:
                await self._push(merged)
        return dict(self._modules)

    def get(self, module_id: str) -> Optional[ModuleTabProgress]:
        progress = self._modules.get(module_id)
        return progress.model_copy(deep=True) if progress else None

    def all(self) -> List[ModuleTabProgress]:
        return [p.model_copy(deep=True) for p in self._modules.values()]

    def completion_percentage(self, module_id: str) -> int:
        progress = self._modules.get(module_id)
        if progress is None:
            return 0
        return round(len(progress.visited_tabs) / self.TOTAL_TABS * 100)

    def completed_module_count(self) -> int:
        return sum(1 for p in self._modules.values() if p.is_complete)

    async def record_tab_visit(
        self,
        module_id: str,
        tab_index: int,
        now: Optional[datetime] = None,
    ) -> TabVisitResult:
        """
        Add tab_index to the module's visited set and refresh last_visited_at.

        A repeat visit leaves the set unchanged and is reported with
        is_new_visit=False; callers award no XP for it.
        """
        if not module_id:
            raise ValueError("module_id must not be empty")
        if not 0 <= tab_index < self.TOTAL_TABS:
            raise ValueError(f"tab_index must be in 0..{self.TOTAL_TABS - 1}, got {tab_index}")

        now = now or datetime.now(timezone.utc)
        current = self._modules.get(module_id)
        if current is None:
            current = await self._fetch_remote_module(module_id) or ModuleTabProgress(module_id=module_id)
        was_complete = current.is_complete
        is_new_visit = tab_index not in current.visited_tabs

        updated = ModuleTabProgress(
            module_id=module_id,
            visited_tabs=current.visited_tabs | {tab_index},
            last_visited_at=now,
        )
        # Optimistic: memory and local cache first
        self._modules[module_id] = updated
        self._write_local()
        synced = await self._push(updated)

        logged = await self.store.append_event(
            EventType.TAB_VISITED,
            "module",
            module_id,
            TabVisitedEvent(
                occurred_at=now,
                module_id=module_id,
                tab_index=tab_index,
                is_new_visit=is_new_visit,
                visited_tabs=sorted(updated.visited_tabs),
            ),
        )

        return TabVisitResult(
            progress=updated.model_copy(deep=True),
            is_new_visit=is_new_visit,
            completed_module=updated.is_complete and not was_complete,
            synced=synced and logged,
        )

    async def _fetch_remote_module(self, module_id: str) -> Optional[ModuleTabProgress]:
        """Remote copy of a module this session does not hold, e.g. after reset()."""
        try:
            remote = await self.store.remote.fetch_module_progress(self.user_id)
        except Exception as exc:
            logger.warning("Remote progress unavailable for %s; starting from empty: %s", module_id, exc)
            return None
        return next((p for p in remote if p.module_id == module_id), None)

    async def _push(self, progress: ModuleTabProgress) -> bool:
        snapshot = progress.model_copy(deep=True)

        async def _write() -> None:
            await self.store.remote.save_module_progress(self.user_id, snapshot)

        return await self.store.push_remote(f"tab_progress:{progress.module_id}", _write)

    async def reset(self) -> None:
        """
        Full session reset: forget every module locally.

        Remote rows are kept. The next visit to a forgotten module starts
        from its remote copy, so stored progress never shrinks and tabs
        already visited earn nothing again.
        """
        self._modules = {}
        self.store.clear_local(ProgressStore.TAB_PROGRESS_KEY)
        logger.info("Tab progress reset for session")
