"""
LKPD endpoints - the six-stage guided project.

Navigation to a locked stage answers 409 with redirect_to="overview";
clients must send the learner back to the overview rather than render
the stage.
"""

import base64
import binascii
from typing import List

import httpx
from fastapi import APIRouter, HTTPException, Query, status

from geolearn.api.deps import CurrentSession
from geolearn.engines.lkpd.uploads import ArtifactFile
from geolearn.logging_config import get_logger
from geolearn.orchestration.learning_session import LearningSession
from geolearn.schemas.common import CommandRecord
from geolearn.schemas.lkpd import (
    STAGE_NAMES,
    ArtifactUploadRequest,
    ProjectProgress,
    ProjectResponse,
    StageEditRequest,
    StageGate,
    StageView,
    StartProjectRequest,
    UploadedFile,
)

logger = get_logger(__name__)

router = APIRouter()


def _project_response(session: LearningSession) -> ProjectResponse:
    return ProjectResponse(
        project=session.workflow.project,
        progress=session.workflow.progress(),
        unsynced=session.has_unsynced_changes,
    )


def _require_project(session: LearningSession) -> None:
    if not session.workflow.has_project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No LKPD project started",
        )


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def start_project(data: StartProjectRequest, session: CurrentSession):
    """Start a project, or resume the learner's unfinished one."""
    await session.workflow.start(data.title, data.project_type)
    return _project_response(session)


@router.get("", response_model=ProjectResponse)
async def get_project(session: CurrentSession):
    _require_project(session)
    return _project_response(session)


@router.get("/progress", response_model=ProjectProgress)
async def get_project_progress(session: CurrentSession):
    return session.workflow.progress()


@router.get("/history", response_model=List[CommandRecord])
async def get_project_history(
    session: CurrentSession,
    limit: int = Query(default=50, ge=1, le=200),
):
    """Start, stage completion, upload and submit commands for the project."""
    _require_project(session)
    return await session.history("stage_project", session.workflow.project.id, limit=limit)


@router.get("/stages/{stage}/gate", response_model=StageGate)
async def get_stage_gate(stage: int, session: CurrentSession):
    """Whether the learner may open a stage. Call before rendering it."""
    return session.workflow.can_enter_stage(stage)


@router.get("/stages/{stage}", response_model=StageView)
async def enter_stage(stage: int, session: CurrentSession):
    _require_project(session)
    payload = session.workflow.enter_stage(stage)
    return StageView(
        stage=stage,
        name=STAGE_NAMES[stage],
        completed=payload.completed_at is not None,
        payload=payload.model_dump(mode="json"),
    )


@router.patch("/stages/{stage}", response_model=ProjectResponse)
async def edit_stage(stage: int, data: StageEditRequest, session: CurrentSession):
    """Apply a draft edit; it is saved after a short quiet period."""
    _require_project(session)
    session.workflow.edit_stage(stage, data.changes)
    return _project_response(session)


@router.post("/advance", response_model=ProjectResponse)
async def advance_stage(session: CurrentSession):
    _require_project(session)
    await session.workflow.advance()
    return _project_response(session)


@router.post("/submit", response_model=ProjectResponse)
async def submit_project(session: CurrentSession):
    _require_project(session)
    await session.workflow.submit()
    return _project_response(session)


@router.post(
    "/stages/{stage}/artifacts",
    response_model=UploadedFile,
    status_code=status.HTTP_201_CREATED,
)
async def attach_artifact(stage: int, data: ArtifactUploadRequest, session: CurrentSession):
    """Upload a sketch, STL model or result photo and attach it to the stage."""
    _require_project(session)
    try:
        content = base64.b64decode(data.data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="data must be base64-encoded",
        )

    file = ArtifactFile(filename=data.filename, content_type=data.content_type, data=content)
    try:
        return await session.workflow.attach_artifact(stage, data.kind, file)
    except httpx.HTTPError as e:
        logger.error("Upload collaborator unavailable: %s", e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="File storage is unavailable, try again later",
        )
