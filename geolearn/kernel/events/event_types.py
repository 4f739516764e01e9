"""
Command payload definitions using Pydantic for validation.

These are the payload schemas for commands appended to the event log.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseEvent(BaseModel):
    """Base command payload structure."""

    model_config = ConfigDict(extra="allow")

    occurred_at: datetime = Field(default_factory=_utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# Progress

class TabVisitedEvent(BaseEvent):
    module_id: str
    tab_index: int
    is_new_visit: bool
    visited_tabs: List[int]


class LessonCompletedEvent(BaseEvent):
    module_id: str
    lesson_id: str
    score: Optional[int] = None
    xp_earned: int


# Gamification

class XpAwardedEvent(BaseEvent):
    amount: int
    reason: str
    total_xp: int
    level: int


class StreakUpdatedEvent(BaseEvent):
    current_streak_days: int
    longest_streak_days: int


class BadgeEarnedEvent(BaseEvent):
    badge_id: str
    requirement_type: str
    requirement_value: int


# LKPD

class ProjectStartedEvent(BaseEvent):
    title: str
    project_type: str
    resumed: bool = False


class StageCompletedEvent(BaseEvent):
    stage: int
    next_stage: int


class ArtifactAttachedEvent(BaseEvent):
    stage: int
    kind: str
    path: str
    size: int


class ProjectSubmittedEvent(BaseEvent):
    title: str
    project_type: str
