"""
Gamification Ledger - total XP, derived level and streak for one learner.

XP and streak changes for one event are folded into a single state and
persisted as one record write. The in-memory state is updated before the
remote write resolves; a failed remote write is queued for retry rather
than rolled back.
"""

from datetime import date, datetime, timezone
from typing import List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from geolearn.engines.gamification.streak import StreakCalculator, StreakOutcome
from geolearn.kernel.events.event_types import StreakUpdatedEvent, XpAwardedEvent
from geolearn.kernel.models import EventType
from geolearn.logging_config import get_logger
from geolearn.schemas.gamification import EarnedBadge, GamificationState
from geolearn.storage.progress_store import ProgressStore

logger = get_logger(__name__)


class LedgerUpdate(BaseModel):
    """Result of one ledger commit."""

    state: GamificationState
    xp_awarded: int = 0
    streak_outcome: StreakOutcome = StreakOutcome.NO_OP
    synced: bool = True


def _union(first: List[str], second: List[str]) -> List[str]:
    return list(dict.fromkeys([*first, *second]))


def merge_gamification(
    local: Optional[GamificationState],
    remote: Optional[GamificationState],
) -> Optional[GamificationState]:
    """
    Reconcile two copies of a learner's gamification state.

    XP takes the larger value (it never decreases). Streak fields come from
    the copy with the later last_activity_date. Badges are unioned by id,
    keeping the earliest earned_at.
    """
    if local is None and remote is None:
        return None
    if local is None or remote is None:
        return (local if remote is None else remote).model_copy(deep=True)

    def _activity_key(state: GamificationState) -> Tuple[date, int]:
        return (state.last_activity_date or date.min, state.current_streak_days)

    # Ties keep local
    streak_source = remote if _activity_key(remote) > _activity_key(local) else local

    badges = {}
    for badge in [*local.badges_earned, *remote.badges_earned]:
        known = badges.get(badge.id)
        if known is None or badge.earned_at < known.earned_at:
            badges[badge.id] = badge

    return GamificationState(
        user_id=local.user_id,
        total_xp=max(local.total_xp, remote.total_xp),
        current_streak_days=streak_source.current_streak_days,
        longest_streak_days=max(local.longest_streak_days, remote.longest_streak_days),
        last_activity_date=streak_source.last_activity_date,
        badges_earned=sorted(badges.values(), key=lambda b: b.earned_at),
        bonus_modules=_union(local.bonus_modules, remote.bonus_modules),
        completed_lessons=_union(local.completed_lessons, remote.completed_lessons),
    )


class GamificationLedger:
    """
    Owns the learner's GamificationState.

    XP policy:
    - New tab visit: 10 XP
    - A module's fifth tab: +50 XP bonus, once per module
    - Repeat visits: 0 XP (still counts as activity for the streak)
    """

    XP_PER_TAB_VISIT = 10
    MODULE_COMPLETION_BONUS = 50

    def __init__(self, store: ProgressStore):
        self.store = store
        self._state: Optional[GamificationState] = None

    @property
    def user_id(self) -> str:
        return self.store.user_id

    @property
    def state(self) -> GamificationState:
        """Current state; the zero state until something is loaded or awarded."""
        if self._state is None:
            self._state = GamificationState(user_id=self.user_id)
        return self._state.model_copy(deep=True)

    def _read_local(self) -> Optional[GamificationState]:
        document = self.store.read_local(ProgressStore.GAMIFICATION_KEY)
        if document is None:
            return None
        try:
            return GamificationState.model_validate(document)
        except ValidationError as exc:
            logger.warning("Discarding malformed cached gamification state: %s", exc.errors()[0]["msg"])
            return None

    async def load(self) -> GamificationState:
        local = self._read_local()
        remote = None
        try:
            remote = await self.store.remote.fetch_gamification(self.user_id)
        except Exception as exc:
            logger.warning("Remote gamification state unavailable; using local cache only: %s", exc)

        merged = merge_gamification(local, remote)
        self._state = merged or GamificationState(user_id=self.user_id)
        if merged is not None and merged != remote:
            await self.commit(self._state)
        return self.state

    async def award_xp(
        self,
        amount: int,
        reason: str = "activity",
        today: Optional[date] = None,
        update_streak: bool = True,
        bonus_module: Optional[str] = None,
        completed_lesson: Optional[str] = None,
    ) -> LedgerUpdate:
        """
        Add `amount` XP, recompute level, count today's activity, and persist
        the result as one record.

        Args:
            amount: XP to add, must be >= 0 (0 still updates the streak)
            reason: Short label recorded in the command log
            today: Activity date; defaults to the current UTC date
            update_streak: Whether this event counts toward the streak
            bonus_module: Module whose completion bonus is included in amount
            completed_lesson: Lesson key whose reward is included in amount
        """
        if amount < 0:
            raise ValueError(f"XP amount must be non-negative, got {amount}")

        current = self.state
        update = {"total_xp": current.total_xp + amount}
        if bonus_module and bonus_module not in current.bonus_modules:
            update["bonus_modules"] = [*current.bonus_modules, bonus_module]
        if completed_lesson and completed_lesson not in current.completed_lessons:
            update["completed_lessons"] = [*current.completed_lessons, completed_lesson]
        # Re-validate so level follows total_xp
        updated = GamificationState.model_validate({**current.model_dump(), **update})

        outcome = StreakOutcome.NO_OP
        if update_streak:
            updated, outcome = StreakCalculator.apply(updated, today)

        synced = await self.commit(updated)

        occurred_at = datetime.now(timezone.utc)
        if amount > 0:
            synced &= await self.store.append_event(
                EventType.XP_AWARDED,
                "gamification",
                self.user_id,
                XpAwardedEvent(
                    occurred_at=occurred_at,
                    amount=amount,
                    reason=reason,
                    total_xp=updated.total_xp,
                    level=updated.level,
                ),
            )
        if outcome != StreakOutcome.NO_OP:
            synced &= await self.store.append_event(
                EventType.STREAK_UPDATED,
                "gamification",
                self.user_id,
                StreakUpdatedEvent(
                    occurred_at=occurred_at,
                    current_streak_days=updated.current_streak_days,
                    longest_streak_days=updated.longest_streak_days,
                ),
            )

        if updated.level > current.level:
            logger.info("Level up", extra={"level": updated.level, "total_xp": updated.total_xp})

        return LedgerUpdate(
            state=updated.model_copy(deep=True),
            xp_awarded=amount,
            streak_outcome=outcome,
            synced=synced,
        )

    async def update_streak(self, today: Optional[date] = None) -> LedgerUpdate:
        """Count activity on `today` without awarding XP."""
        return await self.award_xp(0, reason="streak", today=today)

    def tab_visit_reward(self, module_id: str, is_new_visit: bool, completed_module: bool) -> Tuple[int, bool]:
        """
        XP for one tab visit and whether it includes the module bonus.

        The bonus is keyed on the completion transition and on bonus_modules,
        so neither a later visit nor a replayed completion pays it twice.
        """
        if not is_new_visit:
            return 0, False
        amount = self.XP_PER_TAB_VISIT
        pays_bonus = completed_module and module_id not in self.state.bonus_modules
        if pays_bonus:
            amount += self.MODULE_COMPLETION_BONUS
        return amount, pays_bonus

    async def add_badges(self, badges: List[EarnedBadge]) -> bool:
        """Append newly earned badges; ids already held are ignored."""
        current = self.state
        fresh = [b for b in badges if not current.has_badge(b.id)]
        if not fresh:
            return True
        updated = current.model_copy(update={"badges_earned": [*current.badges_earned, *fresh]})
        return await self.commit(updated)

    async def commit(self, state: GamificationState) -> bool:
        """Replace the in-memory state and write it through both tiers."""
        if state.total_xp < self.state.total_xp:
            raise ValueError("total_xp may not decrease")
        self._state = state.model_copy(deep=True)
        snapshot = self._state.model_copy(deep=True)

        async def _write() -> None:
            await self.store.remote.save_gamification(snapshot)

        return await self.store.write_through(
            ProgressStore.GAMIFICATION_KEY,
            snapshot.model_dump(mode="json"),
            _write,
        )
