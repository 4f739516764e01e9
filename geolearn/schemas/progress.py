"""
Tab-visit progress models and progress API schemas.
"""

from datetime import datetime
from typing import List, Optional, Set

from pydantic import BaseModel, Field, field_serializer, field_validator

from geolearn.schemas.gamification import EarnedBadge, GamificationResponse

# Concept, net diagram, formula, quiz, practice
TOTAL_TABS_PER_MODULE = 5


class ModuleTabProgress(BaseModel):
    """Which tabs of a module the learner has opened."""

    module_id: str = Field(min_length=1)
    visited_tabs: Set[int] = Field(default_factory=set)
    last_visited_at: Optional[datetime] = None

    @field_validator("visited_tabs")
    @classmethod
    def _tabs_in_range(cls, value: Set[int]) -> Set[int]:
        bad = [t for t in value if not 0 <= t < TOTAL_TABS_PER_MODULE]
        if bad:
            raise ValueError(f"tab indices out of range 0..{TOTAL_TABS_PER_MODULE - 1}: {sorted(bad)}")
        return value

    @field_serializer("visited_tabs")
    def _serialize_tabs(self, value: Set[int]) -> List[int]:
        return sorted(value)

    @property
    def completion_percentage(self) -> int:
        return round(len(self.visited_tabs) / TOTAL_TABS_PER_MODULE * 100)

    @property
    def is_complete(self) -> bool:
        return len(self.visited_tabs) == TOTAL_TABS_PER_MODULE


class TabVisitResult(BaseModel):
    """Outcome of recording a single tab visit."""

    progress: ModuleTabProgress
    is_new_visit: bool
    # True only on the visit that took the module from 4 to 5 tabs
    completed_module: bool = False
    synced: bool = True


# API schemas

class ModuleProgressResponse(BaseModel):
    module_id: str
    visited_tabs: List[int]
    completion_percentage: int
    last_visited_at: Optional[datetime] = None

    @classmethod
    def from_progress(cls, progress: ModuleTabProgress) -> "ModuleProgressResponse":
        return cls(
            module_id=progress.module_id,
            visited_tabs=sorted(progress.visited_tabs),
            completion_percentage=progress.completion_percentage,
            last_visited_at=progress.last_visited_at,
        )


class LessonCompleteRequest(BaseModel):
    module_id: str = Field(min_length=1)
    score: Optional[int] = Field(default=None, ge=0, le=100)
    xp_reward: Optional[int] = Field(default=None, ge=0)


class ModuleOverviewResponse(BaseModel):
    modules: List[ModuleProgressResponse]
    completed_modules: int
    gamification: GamificationResponse
    unsynced: bool = False


class ActivityResponse(BaseModel):
    """Outcome of a tab visit or lesson completion."""

    xp_awarded: int
    new_badges: List[EarnedBadge]
    gamification: GamificationResponse
    synced: bool
    unsynced: bool = False


class TabVisitResponse(ActivityResponse):
    progress: ModuleProgressResponse
    is_new_visit: bool
    completed_module: bool


class LessonCompleteResponse(ActivityResponse):
    lesson_key: str
    already_completed: bool
