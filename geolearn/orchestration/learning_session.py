"""
LearningSession - the per-learner state container.

Callers get one of these per learner (see orchestration.registry) and go
through its operations; nothing else mutates tab progress or gamification
state. Each activity runs the fixed pipeline

    tracker -> ledger (XP) -> streak -> badges

with every step reading the state committed by the step before.
"""

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from geolearn.engines.gamification.badges import BadgeEvaluator
from geolearn.engines.gamification.ledger import GamificationLedger
from geolearn.engines.progress.tab_tracker import TabProgressTracker
from geolearn.kernel.events.event_types import BadgeEarnedEvent, BaseEvent, LessonCompletedEvent
from geolearn.kernel.models import EventType
from geolearn.logging_config import get_logger
from geolearn.orchestration.state_machine import StageWorkflowController
from geolearn.schemas.common import CommandRecord
from geolearn.schemas.gamification import EarnedBadge, GamificationState, ProgressMetrics
from geolearn.schemas.progress import ModuleTabProgress
from geolearn.storage.progress_store import ProgressStore

logger = get_logger(__name__)


def lesson_xp(score: Optional[int], xp_reward: Optional[int] = None) -> int:
    """XP for a completed lesson: its own reward if it defines one, else by score."""
    if xp_reward is not None:
        return xp_reward
    if score is not None and score >= 80:
        return 100
    if score is not None and score >= 60:
        return 75
    return 50


class ActivityOutcome(BaseModel):
    """What one learner activity changed."""

    gamification: GamificationState
    xp_awarded: int = 0
    new_badges: List[EarnedBadge] = Field(default_factory=list)
    synced: bool = True

    # Tab visits
    progress: Optional[ModuleTabProgress] = None
    is_new_visit: bool = False
    completed_module: bool = False

    # Lesson completions
    lesson_key: Optional[str] = None
    already_completed: bool = False


class LearningSession:
    """Progress, gamification and LKPD workflow for one learner."""

    def __init__(
        self,
        store: ProgressStore,
        workflow: StageWorkflowController,
        badges: Optional[BadgeEvaluator] = None,
    ):
        self.store = store
        self.tracker = TabProgressTracker(store)
        self.ledger = GamificationLedger(store)
        self.badges = badges or BadgeEvaluator()
        self.workflow = workflow
        self._loaded = False

    @property
    def user_id(self) -> str:
        return self.store.user_id

    @property
    def has_unsynced_changes(self) -> bool:
        return self.store.has_unsynced_changes

    async def load(self) -> None:
        """Reconcile local and remote state once per session."""
        if self._loaded:
            return
        await self.tracker.load()
        await self.ledger.load()
        self._loaded = True
        # Catch up on badges earned by activity recorded elsewhere
        await self.evaluate_badges()

    def metrics(self) -> ProgressMetrics:
        state = self.ledger.state
        return ProgressMetrics(
            total_xp=state.total_xp,
            streak_days=state.current_streak_days,
            completed_lessons=len(state.completed_lessons),
            completed_modules=self.tracker.completed_module_count(),
        )

    async def record_tab_visit(
        self,
        module_id: str,
        tab_index: int,
        now: Optional[datetime] = None,
        today: Optional[date] = None,
    ) -> ActivityOutcome:
        """
        Record a tab visit and run the XP, streak and badge steps.

        A repeat visit awards no XP but still counts toward today's streak.
        """
        await self.load()
        now = now or datetime.now(timezone.utc)
        visit = await self.tracker.record_tab_visit(module_id, tab_index, now=now)

        amount, pays_bonus = self.ledger.tab_visit_reward(module_id, visit.is_new_visit, visit.completed_module)
        update = await self.ledger.award_xp(
            amount,
            reason="module_completed" if pays_bonus else "tab_visit",
            today=today or now.astimezone(timezone.utc).date(),
            bonus_module=module_id if pays_bonus else None,
        )
        new_badges, badges_synced = await self._grant_badges(now)

        return ActivityOutcome(
            gamification=self.ledger.state,
            xp_awarded=amount,
            new_badges=new_badges,
            synced=visit.synced and update.synced and badges_synced,
            progress=visit.progress,
            is_new_visit=visit.is_new_visit,
            completed_module=visit.completed_module,
        )

    async def complete_lesson(
        self,
        module_id: str,
        lesson_id: str,
        score: Optional[int] = None,
        xp_reward: Optional[int] = None,
        now: Optional[datetime] = None,
        today: Optional[date] = None,
    ) -> ActivityOutcome:
        """
        Mark a lesson completed and award its XP.

        XP is paid once per lesson; completing it again only counts as
        activity for the streak.
        """
        if not module_id or not lesson_id:
            raise ValueError("module_id and lesson_id must not be empty")
        if score is not None and not 0 <= score <= 100:
            raise ValueError(f"score must be in 0..100, got {score}")
        if xp_reward is not None and xp_reward < 0:
            raise ValueError("xp_reward must be non-negative")

        await self.load()
        now = now or datetime.now(timezone.utc)
        today = today or now.astimezone(timezone.utc).date()
        key = f"{module_id}/{lesson_id}"

        if key in self.ledger.state.completed_lessons:
            update = await self.ledger.award_xp(0, reason="lesson_repeat", today=today)
            return ActivityOutcome(
                gamification=update.state,
                synced=update.synced,
                lesson_key=key,
                already_completed=True,
            )

        amount = lesson_xp(score, xp_reward)

        async def _save() -> None:
            await self.store.remote.save_lesson_completion(
                self.user_id, module_id, lesson_id, score, amount, now
            )

        saved = await self.store.push_remote(f"lesson:{key}", _save)
        update = await self.ledger.award_xp(amount, reason="lesson_completed", today=today, completed_lesson=key)
        logged = await self.store.append_event(
            EventType.LESSON_COMPLETED,
            "lesson",
            key,
            LessonCompletedEvent(
                occurred_at=now,
                module_id=module_id,
                lesson_id=lesson_id,
                score=score,
                xp_earned=amount,
            ),
        )
        new_badges, badges_synced = await self._grant_badges(now)

        return ActivityOutcome(
            gamification=self.ledger.state,
            xp_awarded=amount,
            new_badges=new_badges,
            synced=saved and update.synced and logged and badges_synced,
            lesson_key=key,
        )

    async def evaluate_badges(self, now: Optional[datetime] = None) -> List[EarnedBadge]:
        new_badges, _ = await self._grant_badges(now or datetime.now(timezone.utc))
        return new_badges

    async def _grant_badges(self, now: datetime):
        _, granted = self.badges.evaluate(self.ledger.state, self.metrics(), now=now)
        if not granted:
            return [], True

        synced = await self.ledger.add_badges(granted)
        for badge in granted:
            definition = self.badges.get(badge.id)
            synced &= await self.store.append_event(
                EventType.BADGE_EARNED,
                "badge",
                badge.id,
                BadgeEarnedEvent(
                    occurred_at=badge.earned_at,
                    badge_id=badge.id,
                    requirement_type=definition.requirement_type.value,
                    requirement_value=definition.requirement_value,
                ),
            )
        return granted, synced

    async def reset(self) -> None:
        """Full session reset: forget tab progress in this session's local cache."""
        await self.tracker.reset()
        await self.store.append_event(
            EventType.PROGRESS_RESET,
            "session",
            self.user_id,
            BaseEvent(metadata={"scope": "tab_progress", "local_only": True}),
        )

    async def history(self, entity_type: str, entity_id: str, limit: int = 50) -> List[CommandRecord]:
        """Commands this learner issued against one entity, newest first."""
        return await self.store.remote.fetch_history(self.user_id, entity_type, entity_id, limit=limit)

    async def flush(self) -> bool:
        await self.workflow.flush_drafts()
        return await self.store.flush()

    async def close(self) -> None:
        await self.flush()
        await self.store.close()
