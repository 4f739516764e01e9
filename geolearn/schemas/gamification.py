"""
Gamification state, badge catalog models and API schemas.
"""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

XP_PER_LEVEL = 500


def level_for_xp(total_xp: int) -> int:
    """Level is one tier per 500 XP, starting at 1."""
    return total_xp // XP_PER_LEVEL + 1


class RequirementType(str, Enum):
    XP = "xp"
    STREAK = "streak"
    LESSONS = "lessons"
    MODULES = "modules"


class BadgeCategory(str, Enum):
    LEARNING = "learning"
    ACHIEVEMENT = "achievement"
    STREAK = "streak"
    SOCIAL = "social"


class BadgeDefinition(BaseModel):
    """Static catalog entry."""

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    category: BadgeCategory = BadgeCategory.ACHIEVEMENT
    requirement_type: RequirementType
    requirement_value: int = Field(ge=1)


class EarnedBadge(BaseModel):
    id: str
    earned_at: datetime


class GamificationState(BaseModel):
    """
    XP, level, streak and badges for one learner.

    level always equals level_for_xp(total_xp) and longest_streak_days is
    never below current_streak_days; both are normalized on construction.
    """

    user_id: str
    total_xp: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=1)
    current_streak_days: int = Field(default=0, ge=0)
    longest_streak_days: int = Field(default=0, ge=0)
    last_activity_date: Optional[date] = None
    badges_earned: List[EarnedBadge] = Field(default_factory=list)
    # Modules whose completion bonus has been paid
    bonus_modules: List[str] = Field(default_factory=list)
    # "module_id/lesson_id" keys
    completed_lessons: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _normalize(self) -> "GamificationState":
        self.level = level_for_xp(self.total_xp)
        self.longest_streak_days = max(self.longest_streak_days, self.current_streak_days)
        return self

    def has_badge(self, badge_id: str) -> bool:
        return any(b.id == badge_id for b in self.badges_earned)

    @property
    def xp_to_next_level(self) -> int:
        return XP_PER_LEVEL - (self.total_xp % XP_PER_LEVEL)


class ProgressMetrics(BaseModel):
    """Aggregates badge requirements are tested against."""

    total_xp: int = 0
    streak_days: int = 0
    completed_lessons: int = 0
    completed_modules: int = 0

    def value_for(self, requirement: RequirementType) -> int:
        return {
            RequirementType.XP: self.total_xp,
            RequirementType.STREAK: self.streak_days,
            RequirementType.LESSONS: self.completed_lessons,
            RequirementType.MODULES: self.completed_modules,
        }[requirement]


# API schemas

class GamificationResponse(BaseModel):
    total_xp: int
    level: int
    xp_to_next_level: int
    current_streak_days: int
    longest_streak_days: int
    last_activity_date: Optional[date] = None
    badges_earned: List[EarnedBadge]
    unsynced: bool = False

    @classmethod
    def from_state(cls, state: GamificationState, unsynced: bool = False) -> "GamificationResponse":
        return cls(
            total_xp=state.total_xp,
            level=state.level,
            xp_to_next_level=state.xp_to_next_level,
            current_streak_days=state.current_streak_days,
            longest_streak_days=state.longest_streak_days,
            last_activity_date=state.last_activity_date,
            badges_earned=state.badges_earned,
            unsynced=unsynced,
        )


class BadgeStatus(BaseModel):
    badge: BadgeDefinition
    earned: bool
    earned_at: Optional[datetime] = None
    current_value: int
