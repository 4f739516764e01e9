"""
Append-only command log.

Every learner action applied by the engine is recorded here as a
timestamped command, so the remote store can replay or audit what a
session actually did.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from geolearn.kernel.models.base import Base, generate_id


class EventType(str, enum.Enum):
    """All command types for the log."""

    # Progress
    TAB_VISITED = "progress.tab_visited"
    LESSON_COMPLETED = "progress.lesson_completed"
    PROGRESS_RESET = "progress.reset"

    # Gamification
    XP_AWARDED = "gamification.xp_awarded"
    STREAK_UPDATED = "gamification.streak_updated"
    BADGE_EARNED = "gamification.badge_earned"

    # LKPD workflow
    PROJECT_STARTED = "lkpd.project_started"
    STAGE_COMPLETED = "lkpd.stage_completed"
    ARTIFACT_ATTACHED = "lkpd.artifact_attached"
    PROJECT_SUBMITTED = "lkpd.project_submitted"


class EventLog(Base):
    """
    Immutable command log row.

    This table is append-only - no updates or deletes.
    """

    __tablename__ = "event_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # When the learner performed the action (client clock)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # When the row reached the remote store
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_user_time", "user_id", "occurred_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
