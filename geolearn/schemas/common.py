"""
Common schema types used across the API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: Optional[str] = None
    errors: List[FieldError] = []
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str
    database: str = "connected"


class CommandRecord(BaseModel):
    """One entry of a learner's command log."""

    event_type: str
    entity_type: str
    entity_id: str
    occurred_at: datetime
    payload: Dict[str, Any] = Field(default_factory=dict)
