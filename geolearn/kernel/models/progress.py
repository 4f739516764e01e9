"""
Lesson progress rows - the remote copy of tab visits and lesson completions.
"""

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Enum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from geolearn.kernel.models.base import Base, TimestampMixin, generate_id


class ProgressStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class LessonProgress(Base, TimestampMixin):
    """
    Per-learner progress for a module (lesson_id empty) or a single lesson.

    Module rows carry the visited tab indices; completion_percentage is
    derived from them and stored for collaborators that only read the number.
    """

    __tablename__ = "lesson_progress"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    module_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # "" for the module-level tab row
    lesson_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    status: Mapped[ProgressStatus] = mapped_column(
        Enum(ProgressStatus, native_enum=False, length=20),
        nullable=False,
        default=ProgressStatus.IN_PROGRESS,
    )
    completion_percentage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visited_tabs: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    xp_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "module_id", "lesson_id", name="uq_lesson_progress_user_module_lesson"),
    )
