"""
Kernel Data Models

SQLAlchemy models for the remote store.
"""

from geolearn.kernel.models.base import Base, TimestampMixin, generate_id
from geolearn.kernel.models.progress import LessonProgress, ProgressStatus
from geolearn.kernel.models.gamification import GamificationProfile
from geolearn.kernel.models.stage_project import StageProjectRow
from geolearn.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_id",
    # Progress
    "LessonProgress",
    "ProgressStatus",
    # Gamification
    "GamificationProfile",
    # LKPD
    "StageProjectRow",
    # Event Log
    "EventLog",
    "EventType",
]
