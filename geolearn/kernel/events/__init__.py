"""Command log: payload schemas and the event store."""

from geolearn.kernel.events.event_store import EventStore
from geolearn.kernel.events.event_types import (
    ArtifactAttachedEvent,
    BadgeEarnedEvent,
    BaseEvent,
    LessonCompletedEvent,
    ProjectStartedEvent,
    ProjectSubmittedEvent,
    StageCompletedEvent,
    StreakUpdatedEvent,
    TabVisitedEvent,
    XpAwardedEvent,
)

__all__ = [
    "EventStore",
    "BaseEvent",
    "TabVisitedEvent",
    "LessonCompletedEvent",
    "XpAwardedEvent",
    "StreakUpdatedEvent",
    "BadgeEarnedEvent",
    "ProjectStartedEvent",
    "StageCompletedEvent",
    "ArtifactAttachedEvent",
    "ProjectSubmittedEvent",
]
