"""
FastAPI dependencies: learner identity, session registry and database sessions.

Authentication happens upstream; the gateway forwards the learner id in the
X-User-Id header.
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from geolearn.database import get_db
from geolearn.logging_config import learner_id_var
from geolearn.orchestration.learning_session import LearningSession
from geolearn.orchestration.registry import SessionRegistry

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_registry(request: Request) -> SessionRegistry:
    """The process-wide registry created in the app lifespan."""
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return registry


Registry = Annotated[SessionRegistry, Depends(get_registry)]


async def get_learner_id(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> str:
    """Read the learner id and expose it to log records for the request."""
    learner_id = (x_user_id or "").strip()
    if not learner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    # Each request runs in its own context, so no reset is needed
    learner_id_var.set(learner_id)
    return learner_id


LearnerId = Annotated[str, Depends(get_learner_id)]


async def get_learning_session(learner_id: LearnerId, registry: Registry) -> LearningSession:
    return await registry.get(learner_id)


CurrentSession = Annotated[LearningSession, Depends(get_learning_session)]
