"""
Gamification profile - one row per learner.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import JSON, Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from geolearn.kernel.models.base import Base, TimestampMixin


class GamificationProfile(Base, TimestampMixin):
    """XP, level, streak and earned badges for a learner."""

    __tablename__ = "gamification_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    # [{"id": ..., "earned_at": iso}]
    badges_earned: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    # module ids whose completion bonus was already granted
    bonus_modules: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    completed_lessons: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
