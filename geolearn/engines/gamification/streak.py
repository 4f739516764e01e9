"""
Streak Calculator - consecutive calendar days with qualifying activity.

Days are UTC calendar dates. A learner active late in the evening in a
timezone behind UTC may see that activity counted on the next UTC day.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from geolearn.schemas.gamification import GamificationState


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class StreakOutcome(str, Enum):
    NO_OP = "no_op"          # already counted today
    CONTINUED = "continued"  # last activity was yesterday
    RESET = "reset"          # gap of 2+ days, or first activity ever


class StreakCalculator:
    """Three-way transition keyed purely on date comparison."""

    @staticmethod
    def classify(last_activity_date: Optional[date], today: date) -> StreakOutcome:
        if last_activity_date is None:
            return StreakOutcome.RESET
        # A date ahead of today (clock moved back) counts as already done
        if last_activity_date >= today:
            return StreakOutcome.NO_OP
        if last_activity_date == today - timedelta(days=1):
            return StreakOutcome.CONTINUED
        return StreakOutcome.RESET

    @classmethod
    def apply(
        cls,
        state: GamificationState,
        today: Optional[date] = None,
    ) -> Tuple[GamificationState, StreakOutcome]:
        """Return the state after counting activity on `today`."""
        today = today or utc_today()
        outcome = cls.classify(state.last_activity_date, today)
        if outcome == StreakOutcome.NO_OP:
            return state, outcome

        if outcome == StreakOutcome.CONTINUED:
            current = state.current_streak_days + 1
        else:
            current = 1

        updated = state.model_copy(update={
            "current_streak_days": current,
            "longest_streak_days": max(state.longest_streak_days, current),
            "last_activity_date": today,
        })
        return updated, outcome
