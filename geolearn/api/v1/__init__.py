"""
API v1 routes.
"""

from fastapi import APIRouter

from geolearn.api.v1 import gamification, lkpd, progress
from geolearn.schemas.common import ErrorResponse

# Every route answers errors in the ErrorResponse shape built in main.py
_error_responses = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}

router = APIRouter(responses=_error_responses)

router.include_router(progress.router, prefix="/progress", tags=["Progress"])
router.include_router(gamification.router, prefix="/gamification", tags=["Gamification"])
router.include_router(
    lkpd.router,
    prefix="/lkpd",
    tags=["LKPD"],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
