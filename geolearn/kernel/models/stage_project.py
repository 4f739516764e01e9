"""
Staged project (LKPD) row. Stage payloads are stored as JSON blobs.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from geolearn.kernel.models.base import Base, TimestampMixin, generate_id


class StageProjectRow(Base, TimestampMixin):
    """Remote copy of a learner's six-stage project."""

    __tablename__ = "stage_projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    project_type: Mapped[str] = mapped_column(String(20), nullable=False)
    current_stage: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    stage1: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    stage2: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    stage3: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    stage4: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    stage5: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    stage6: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_auto_save: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
