"""
Event Store service for the append-only command log.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from geolearn.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for managing the command log.

    Usage:
        event_store = EventStore(session)
        await event_store.log_from_model(
            event_type=EventType.TAB_VISITED,
            entity_type="module",
            entity_id="tabung",
            user_id=learner_id,
            payload_model=TabVisitedEvent(...),
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> EventLog:
        """
        Append a command to the log.

        Args:
            event_type: The type of command
            entity_type: The type of entity (module, gamification, stage_project)
            entity_id: The ID of the entity
            user_id: The learner who issued the command
            payload: Additional command data
            occurred_at: Client time of the action; defaults to now

        Returns:
            The created EventLog record
        """
        payload = self._serialize_payload(payload or {})

        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload,
            occurred_at=occurred_at or datetime.now(timezone.utc),
        )
        self.session.add(event)
        # Caller flushes/commits
        return event

    async def log_from_model(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str],
        payload_model: BaseModel,
    ) -> EventLog:
        """Append a command using a Pydantic model as payload."""
        payload = payload_model.model_dump(mode="json")
        return await self.log(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload,
            occurred_at=getattr(payload_model, "occurred_at", None),
        )

    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: str,
        user_id: Optional[str] = None,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """Get the command history for an entity, newest first."""
        query = select(EventLog).where(
            EventLog.entity_type == entity_type,
            EventLog.entity_id == entity_id,
        )
        # Module ids are shared by every learner
        if user_id:
            query = query.where(EventLog.user_id == user_id)
        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))
        query = query.order_by(desc(EventLog.occurred_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
            elif isinstance(value, dict):
                result[key] = self._serialize_payload(value)
            elif isinstance(value, (list, set, tuple)):
                result[key] = [
                    self._serialize_payload(v) if isinstance(v, dict)
                    else str(v) if isinstance(v, uuid.UUID)
                    else v.isoformat() if isinstance(v, (datetime, date))
                    else v
                    for v in value
                ]
            else:
                result[key] = value
        return result
