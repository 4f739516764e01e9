"""
Remote store tier.

RemoteStore is the narrow async contract the engine persists through.
SqlRemoteStore backs it with the SQLAlchemy tables in geolearn.kernel.models.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from geolearn.kernel.events.event_store import EventStore
from geolearn.kernel.models import (
    EventType,
    GamificationProfile,
    LessonProgress,
    ProgressStatus,
    StageProjectRow,
)
from geolearn.logging_config import get_logger
from geolearn.schemas.common import CommandRecord
from geolearn.schemas.gamification import EarnedBadge, GamificationState
from geolearn.schemas.lkpd import TOTAL_STAGES, StageProject
from geolearn.schemas.progress import ModuleTabProgress

logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything in the engine is UTC-aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _completed_stages(project: StageProject) -> int:
    return sum(1 for n in range(1, TOTAL_STAGES + 1) if project.is_stage_completed(n))


def is_stale_project_write(stored: StageProject, incoming: StageProject) -> bool:
    """
    True when writing `incoming` over `stored` would move the project back:
    un-submit it or drop a completed stage. Late draft writes and retried
    writes can arrive after a newer commit; they must not land.
    """
    if stored.is_submitted and not incoming.is_submitted:
        return True
    return _completed_stages(incoming) < _completed_stages(stored)


class RemoteStore(ABC):
    """Async persistence contract for progress, gamification and projects."""

    @abstractmethod
    async def fetch_module_progress(self, user_id: str) -> List[ModuleTabProgress]:
        ...

    @abstractmethod
    async def save_module_progress(self, user_id: str, progress: ModuleTabProgress) -> None:
        ...

    @abstractmethod
    async def save_lesson_completion(
        self,
        user_id: str,
        module_id: str,
        lesson_id: str,
        score: Optional[int],
        xp_earned: int,
        completed_at: datetime,
    ) -> None:
        ...

    @abstractmethod
    async def fetch_gamification(self, user_id: str) -> Optional[GamificationState]:
        ...

    @abstractmethod
    async def save_gamification(self, state: GamificationState) -> None:
        ...

    @abstractmethod
    async def fetch_latest_project(self, user_id: str, include_completed: bool = False) -> Optional[StageProject]:
        ...

    @abstractmethod
    async def save_project(self, project: StageProject) -> None:
        ...

    @abstractmethod
    async def append_event(
        self,
        user_id: str,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        payload: BaseModel,
    ) -> None:
        ...

    @abstractmethod
    async def fetch_history(
        self,
        user_id: str,
        entity_type: str,
        entity_id: str,
        limit: int = 50,
    ) -> List[CommandRecord]:
        """The learner's commands for one entity, newest first."""
        ...


def _project_from_row(row: StageProjectRow) -> StageProject:
    data = {
        "id": row.id,
        "user_id": row.user_id,
        "title": row.title,
        "project_type": row.project_type,
        "current_stage": row.current_stage,
        "is_completed": row.is_completed,
        "started_at": _as_utc(row.started_at),
        "completed_at": _as_utc(row.completed_at),
        "submitted_at": _as_utc(row.submitted_at),
        "last_auto_save": _as_utc(row.last_auto_save),
    }
    for number in range(1, TOTAL_STAGES + 1):
        data[f"stage{number}"] = getattr(row, f"stage{number}")
    return StageProject.model_validate(data)


class SqlRemoteStore(RemoteStore):
    """RemoteStore over an async SQLAlchemy session factory. One transaction per call."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def _progress_row(
        self, session: AsyncSession, user_id: str, module_id: str, lesson_id: str = ""
    ) -> Optional[LessonProgress]:
        q = select(LessonProgress).where(
            LessonProgress.user_id == user_id,
            LessonProgress.module_id == module_id,
            LessonProgress.lesson_id == lesson_id,
        )
        result = await session.execute(q)
        return result.scalar_one_or_none()

    async def fetch_module_progress(self, user_id: str) -> List[ModuleTabProgress]:
        async with self.session_maker() as session:
            q = select(LessonProgress).where(
                LessonProgress.user_id == user_id,
                LessonProgress.lesson_id == "",
            )
            rows = (await session.execute(q)).scalars().all()
        return [
            ModuleTabProgress(
                module_id=row.module_id,
                visited_tabs=set(row.visited_tabs or []),
                last_visited_at=_as_utc(row.last_accessed_at),
            )
            for row in rows
        ]

    async def save_module_progress(self, user_id: str, progress: ModuleTabProgress) -> None:
        async with self.session_maker() as session:
            row = await self._progress_row(session, user_id, progress.module_id)
            if row is None:
                row = LessonProgress(user_id=user_id, module_id=progress.module_id, lesson_id="")
                session.add(row)
            row.visited_tabs = sorted(progress.visited_tabs)
            row.completion_percentage = progress.completion_percentage
            row.last_accessed_at = progress.last_visited_at
            if progress.is_complete:
                row.status = ProgressStatus.COMPLETED
                if row.completed_at is None:
                    row.completed_at = progress.last_visited_at
            else:
                row.status = ProgressStatus.IN_PROGRESS
            await session.commit()

    async def save_lesson_completion(
        self,
        user_id: str,
        module_id: str,
        lesson_id: str,
        score: Optional[int],
        xp_earned: int,
        completed_at: datetime,
    ) -> None:
        async with self.session_maker() as session:
            row = await self._progress_row(session, user_id, module_id, lesson_id)
            if row is None:
                row = LessonProgress(user_id=user_id, module_id=module_id, lesson_id=lesson_id)
                session.add(row)
            row.status = ProgressStatus.COMPLETED
            row.completion_percentage = 100
            row.score = score
            row.xp_earned = xp_earned
            row.last_accessed_at = completed_at
            row.completed_at = completed_at
            await session.commit()

    async def fetch_gamification(self, user_id: str) -> Optional[GamificationState]:
        async with self.session_maker() as session:
            row = await session.get(GamificationProfile, user_id)
        if row is None:
            return None
        return GamificationState(
            user_id=row.user_id,
            total_xp=row.total_xp,
            level=row.level,
            current_streak_days=row.current_streak_days,
            longest_streak_days=row.longest_streak_days,
            last_activity_date=row.last_activity_date,
            badges_earned=[EarnedBadge.model_validate(b) for b in row.badges_earned or []],
            bonus_modules=list(row.bonus_modules or []),
            completed_lessons=list(row.completed_lessons or []),
        )

    async def save_gamification(self, state: GamificationState) -> None:
        async with self.session_maker() as session:
            row = await session.get(GamificationProfile, state.user_id)
            if row is None:
                row = GamificationProfile(user_id=state.user_id)
                session.add(row)
            # Single row update: XP, level and streak land together
            row.total_xp = state.total_xp
            row.level = state.level
            row.current_streak_days = state.current_streak_days
            row.longest_streak_days = state.longest_streak_days
            row.last_activity_date = state.last_activity_date
            row.badges_earned = [b.model_dump(mode="json") for b in state.badges_earned]
            row.bonus_modules = list(state.bonus_modules)
            row.completed_lessons = list(state.completed_lessons)
            await session.commit()

    async def fetch_latest_project(self, user_id: str, include_completed: bool = False) -> Optional[StageProject]:
        async with self.session_maker() as session:
            q = select(StageProjectRow).where(StageProjectRow.user_id == user_id)
            if not include_completed:
                q = q.where(StageProjectRow.is_completed.is_(False))
            q = q.order_by(StageProjectRow.started_at.desc()).limit(1)
            row = (await session.execute(q)).scalar_one_or_none()
        if row is None:
            return None
        return _project_from_row(row)

    async def save_project(self, project: StageProject) -> None:
        async with self.session_maker() as session:
            row = await session.get(StageProjectRow, project.id)
            if row is not None and is_stale_project_write(_project_from_row(row), project):
                logger.warning(
                    "Ignoring stale project write",
                    extra={"project_id": project.id, "user_id": project.user_id},
                )
                return
            if row is None:
                row = StageProjectRow(id=project.id, user_id=project.user_id, started_at=project.started_at)
                session.add(row)
            row.title = project.title
            row.project_type = project.project_type.value
            row.current_stage = project.current_stage
            row.is_completed = project.is_completed
            row.completed_at = project.completed_at
            row.submitted_at = project.submitted_at
            row.last_auto_save = project.last_auto_save
            for number in range(1, TOTAL_STAGES + 1):
                payload = project.stage(number)
                setattr(row, f"stage{number}", payload.model_dump(mode="json") if payload else None)
            await session.commit()

    async def append_event(
        self,
        user_id: str,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        payload: BaseModel,
    ) -> None:
        async with self.session_maker() as session:
            await EventStore(session).log_from_model(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                payload_model=payload,
            )
            await session.commit()

    async def fetch_history(
        self,
        user_id: str,
        entity_type: str,
        entity_id: str,
        limit: int = 50,
    ) -> List[CommandRecord]:
        async with self.session_maker() as session:
            rows = await EventStore(session).get_entity_history(
                entity_type,
                entity_id,
                user_id=user_id,
                limit=limit,
            )
        return [
            CommandRecord(
                event_type=row.event_type,
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                occurred_at=_as_utc(row.occurred_at),
                payload=row.payload or {},
            )
            for row in rows
        ]

