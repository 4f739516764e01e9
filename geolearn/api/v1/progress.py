"""
Progress endpoints - tab visits, lesson completion and session reset.
"""

from typing import List

from fastapi import APIRouter, Query, status

from geolearn.api.deps import CurrentSession
from geolearn.orchestration.learning_session import ActivityOutcome, LearningSession
from geolearn.schemas.common import CommandRecord
from geolearn.schemas.gamification import GamificationResponse
from geolearn.schemas.progress import (
    LessonCompleteRequest,
    LessonCompleteResponse,
    ModuleOverviewResponse,
    ModuleProgressResponse,
    TabVisitResponse,
)

router = APIRouter()


def _activity_fields(session: LearningSession, outcome: ActivityOutcome) -> dict:
    unsynced = session.has_unsynced_changes
    return {
        "xp_awarded": outcome.xp_awarded,
        "new_badges": outcome.new_badges,
        "gamification": GamificationResponse.from_state(outcome.gamification, unsynced),
        "synced": outcome.synced,
        "unsynced": unsynced,
    }


@router.get("", response_model=ModuleOverviewResponse)
async def get_progress(session: CurrentSession):
    """All module progress for the learner plus their gamification state."""
    unsynced = session.has_unsynced_changes
    return ModuleOverviewResponse(
        modules=[ModuleProgressResponse.from_progress(p) for p in session.tracker.all()],
        completed_modules=session.tracker.completed_module_count(),
        gamification=GamificationResponse.from_state(session.ledger.state, unsynced),
        unsynced=unsynced,
    )


@router.post("/modules/{module_id}/tabs/{tab_index}", response_model=TabVisitResponse)
async def record_tab_visit(module_id: str, tab_index: int, session: CurrentSession):
    """Record that the learner opened a tab. Repeat visits award no XP."""
    outcome = await session.record_tab_visit(module_id, tab_index)
    return TabVisitResponse(
        progress=ModuleProgressResponse.from_progress(outcome.progress),
        is_new_visit=outcome.is_new_visit,
        completed_module=outcome.completed_module,
        **_activity_fields(session, outcome),
    )


@router.get("/modules/{module_id}/history", response_model=List[CommandRecord])
async def module_history(
    module_id: str,
    session: CurrentSession,
    limit: int = Query(default=50, ge=1, le=200),
):
    """The learner's recorded tab visits for a module, newest first."""
    return await session.history("module", module_id, limit=limit)


@router.post("/lessons/{lesson_id}/complete", response_model=LessonCompleteResponse)
async def complete_lesson(lesson_id: str, data: LessonCompleteRequest, session: CurrentSession):
    outcome = await session.complete_lesson(
        data.module_id,
        lesson_id,
        score=data.score,
        xp_reward=data.xp_reward,
    )
    return LessonCompleteResponse(
        lesson_key=outcome.lesson_key,
        already_completed=outcome.already_completed,
        **_activity_fields(session, outcome),
    )


@router.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
async def reset_progress(session: CurrentSession):
    """Forget tab progress in the learner's local session cache."""
    await session.reset()
