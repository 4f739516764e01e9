"""
Gamification endpoints - XP, level, streak and badges.
"""

from typing import List

from fastapi import APIRouter

from geolearn.api.deps import CurrentSession
from geolearn.schemas.gamification import BadgeStatus, GamificationResponse

router = APIRouter()


@router.get("", response_model=GamificationResponse)
async def get_gamification(session: CurrentSession):
    return GamificationResponse.from_state(session.ledger.state, session.has_unsynced_changes)


@router.get("/badges", response_model=List[BadgeStatus])
async def list_badges(session: CurrentSession):
    """Every catalog badge with the learner's progress toward it."""
    return session.badges.status(session.ledger.state, session.metrics())
