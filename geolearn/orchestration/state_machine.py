"""
State machine for the LKPD six-stage project workflow.

States are Stage 1..6 plus the terminal SUBMITTED. A stage is unlocked
when the stage before it has completed_at set; completed_at is only ever
stamped by advance()/submit(), so stages never re-lock. Once submitted the
project is frozen and every mutation raises ImmutableStateViolation.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from geolearn.engines.errors import ImmutableStateViolation, InvalidArtifact, StageLocked, ValidationFailure
from geolearn.engines.lkpd.autosave import AutoSaveReconciler
from geolearn.engines.lkpd.geometry import geometry_for_project, measure
from geolearn.engines.lkpd.uploads import (
    MAX_IMAGES_PER_STAGE,
    ArtifactFile,
    ArtifactUploader,
    UploadLimits,
    validate_artifact,
)
from geolearn.engines.lkpd.validation import validate_stage
from geolearn.kernel.events.event_types import (
    ArtifactAttachedEvent,
    ProjectStartedEvent,
    ProjectSubmittedEvent,
    StageCompletedEvent,
)
from geolearn.kernel.models import EventType
from geolearn.logging_config import get_logger
from geolearn.schemas.lkpd import (
    STAGE_PAYLOAD_TYPES,
    TOTAL_STAGES,
    ArtifactKind,
    ProjectProgress,
    ProjectType,
    StageGate,
    StagePayload,
    StageProject,
    UploadedFile,
)
from geolearn.storage.progress_store import ProgressStore

logger = get_logger(__name__)


class StageState(str, Enum):
    STAGE_1 = "stage_1"
    STAGE_2 = "stage_2"
    STAGE_3 = "stage_3"
    STAGE_4 = "stage_4"
    STAGE_5 = "stage_5"
    STAGE_6 = "stage_6"
    SUBMITTED = "submitted"


_STAGE_STATES = [
    StageState.STAGE_1,
    StageState.STAGE_2,
    StageState.STAGE_3,
    StageState.STAGE_4,
    StageState.STAGE_5,
    StageState.STAGE_6,
]

# Valid transitions: (from_state, action) -> to_state
_TRANSITIONS: Dict[Tuple[StageState, str], StageState] = {
    **{(_STAGE_STATES[i], "advance"): _STAGE_STATES[i + 1] for i in range(TOTAL_STAGES - 1)},
    (StageState.STAGE_6, "submit"): StageState.SUBMITTED,
}


def state_of(project: StageProject) -> StageState:
    if project.is_submitted:
        return StageState.SUBMITTED
    return _STAGE_STATES[project.current_stage - 1]


def can_transition(from_state: StageState, action: str) -> bool:
    return (from_state, action) in _TRANSITIONS


# Payload fields that only hold references returned by the upload collaborator
_ARTIFACT_FIELDS: Dict[ArtifactKind, str] = {
    ArtifactKind.SKETCH: "sketch_images",
    ArtifactKind.STL: "stl_file",
    ArtifactKind.RESULT_PHOTO: "result_photos",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_stage_number(stage: int) -> None:
    if not 1 <= stage <= TOTAL_STAGES:
        raise ValueError(f"stage must be in 1..{TOTAL_STAGES}, got {stage}")


class StageWorkflowController:
    """
    Sole mutator of one learner's StageProject.

    Draft edits are applied in memory and to the local cache at once; the
    remote write goes through the AutoSaveReconciler. advance(), submit()
    and attach_artifact() persist immediately and supersede any pending
    draft for the project.
    """

    def __init__(
        self,
        store: ProgressStore,
        reconciler: AutoSaveReconciler,
        uploader: Optional[ArtifactUploader] = None,
        limits: UploadLimits = UploadLimits(),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.reconciler = reconciler
        self.uploader = uploader
        self.limits = limits
        self.clock = clock
        self._project: Optional[StageProject] = None

    @property
    def user_id(self) -> str:
        return self.store.user_id

    @property
    def project(self) -> StageProject:
        if self._project is None:
            raise ValueError("No active project; start one first")
        return self._project.model_copy(deep=True)

    @property
    def has_project(self) -> bool:
        return self._project is not None

    # ── Start / resume ──────────────────────────────────────────────────

    def _read_local(self) -> Optional[StageProject]:
        document = self.store.read_local(ProgressStore.PROJECT_KEY)
        if document is None:
            return None
        try:
            project = StageProject.model_validate(document)
        except ValidationError as exc:
            logger.warning("Discarding malformed cached project: %s", exc.errors()[0]["msg"])
            return None
        if project.user_id != self.user_id or project.is_submitted:
            return None
        return project

    @staticmethod
    def _freshness(project: StageProject) -> Tuple[int, datetime]:
        completed = sum(1 for n in range(1, TOTAL_STAGES + 1) if project.is_stage_completed(n))
        return completed, project.last_auto_save or project.started_at

    async def start(
        self,
        title: str = "LKPD Project",
        project_type: ProjectType = ProjectType.CYLINDER,
    ) -> StageProject:
        """
        Resume the learner's unfinished project, or create a new one.

        The local draft and the remote copy are compared by completed
        stages, then by last save time; ties keep the local draft.
        """
        if self._project is not None and not self._project.is_submitted:
            return self.project

        local = self._read_local()
        remote = None
        try:
            remote = await self.store.remote.fetch_latest_project(self.user_id)
        except Exception as exc:
            logger.warning("Remote project unavailable; using local cache only: %s", exc)

        candidates = [p for p in (local, remote) if p is not None]
        if candidates:
            project = max(candidates, key=self._freshness)
            resumed = True
        else:
            project = StageProject(
                id=str(uuid.uuid4()),
                user_id=self.user_id,
                title=title,
                project_type=project_type,
                started_at=self.clock(),
            )
            resumed = False

        project.current_stage = project.first_incomplete_stage()
        self._project = project
        if project is remote:
            self.store.write_local(ProgressStore.PROJECT_KEY, project.model_dump(mode="json"))
        else:
            await self._commit()
        await self.store.append_event(
            EventType.PROJECT_STARTED,
            "stage_project",
            project.id,
            ProjectStartedEvent(
                occurred_at=self.clock(),
                title=project.title,
                project_type=project.project_type.value,
                resumed=resumed,
            ),
        )
        logger.info(
            "LKPD project resumed" if resumed else "LKPD project started",
            extra={"project_id": project.id, "current_stage": project.current_stage},
        )
        return self.project

    # ── Navigation ──────────────────────────────────────────────────────

    def is_stage_unlocked(self, stage: int) -> bool:
        """Stage 1 always; stage N once stage N-1 has completed_at. Never cached."""
        _check_stage_number(stage)
        if stage == 1:
            return True
        return self._project is not None and self._project.is_stage_completed(stage - 1)

    def _blocking_stage(self, stage: int) -> int:
        if self._project is None:
            return 1
        return min(self._project.first_incomplete_stage(), stage - 1)

    def can_enter_stage(self, stage: int) -> StageGate:
        if self.is_stage_unlocked(stage):
            return StageGate(stage=stage, allowed=True)
        blocking = self._blocking_stage(stage)
        return StageGate(
            stage=stage,
            allowed=False,
            reason_if_blocked=f"Complete stage {blocking} first",
            blocking_stage=blocking,
        )

    def _require_unlocked(self, stage: int) -> None:
        if not self.is_stage_unlocked(stage):
            raise StageLocked(stage, self._blocking_stage(stage))

    def _require_mutable(self, action: str) -> StageProject:
        project = self._project
        if project is None:
            raise ValueError("No active project; start one first")
        if project.is_submitted:
            raise ImmutableStateViolation(project.id, action)
        return project

    def enter_stage(self, stage: int) -> StagePayload:
        """
        Open a stage for viewing or editing.

        Entering stage 5 pre-fills volume, surface area and capacity from
        the stage 3 dimensions when they have not been calculated yet.
        """
        self._require_unlocked(stage)
        project = self._project
        if project is None:
            raise ValueError("No active project; start one first")

        payload = project.stage(stage) or STAGE_PAYLOAD_TYPES[stage]()
        if stage == 5 and not project.is_submitted and payload.calculated_volume == 0:
            seeded = self._seed_measurements(project, payload)
            if seeded is not None:
                payload = seeded
                setattr(project, "stage5", payload)
                self.store.write_local(ProgressStore.PROJECT_KEY, project.model_dump(mode="json"))
        return payload.model_copy(deep=True)

    @staticmethod
    def _seed_measurements(project: StageProject, payload: StagePayload) -> Optional[StagePayload]:
        kind = geometry_for_project(project.project_type)
        design = project.stage3
        if kind is None or design is None or design.diameter <= 0:
            return None
        figures = measure(kind, design.radius, design.height)
        return payload.model_copy(update=figures.model_dump())

    # ── Editing ─────────────────────────────────────────────────────────

    def edit_stage(self, stage: int, changes: Dict[str, Any]) -> StageProject:
        """
        Apply a draft edit to a stage payload and schedule an auto-save.

        The edit is type-checked against the stage's payload model; a bad
        field raises ValidationFailure and nothing changes. Completion rules
        are only enforced by advance(). Upload references are set through
        attach_artifact() only.
        """
        _check_stage_number(stage)
        project = self._require_mutable("edit_stage")
        self._require_unlocked(stage)
        if "completed_at" in changes:
            raise ValidationFailure(stage, {"completed_at": "is set when the stage is completed"})
        uploaded = {field: "is set by uploading a file" for field in _ARTIFACT_FIELDS.values() if field in changes}
        if uploaded:
            raise ValidationFailure(stage, uploaded)

        current = project.stage(stage) or STAGE_PAYLOAD_TYPES[stage]()
        try:
            updated = STAGE_PAYLOAD_TYPES[stage].model_validate({**current.model_dump(), **changes})
        except ValidationError as exc:
            errors = {".".join(str(p) for p in e["loc"]) or "payload": e["msg"] for e in exc.errors()}
            raise ValidationFailure(stage, errors) from exc

        if project.is_stage_completed(stage):
            # A completed stage stays complete, so it must keep passing its rules
            result = validate_stage(stage, updated)
            if not result.is_valid:
                raise ValidationFailure(stage, result.errors)

        setattr(project, f"stage{stage}", updated)
        self.store.write_local(ProgressStore.PROJECT_KEY, project.model_dump(mode="json"))
        self.reconciler.schedule(project.id, project.model_copy(deep=True), self._persist_draft)
        return self.project

    async def _persist_draft(self, snapshot: StageProject) -> None:
        current = self._project
        if current is not None and current.id == snapshot.id and current.is_submitted:
            return
        saved_at = self.clock()
        snapshot.last_auto_save = saved_at
        if current is not None and current.id == snapshot.id:
            current.last_auto_save = saved_at
        await self._write(snapshot)

    # ── Commits ─────────────────────────────────────────────────────────

    async def advance(self) -> StageProject:
        """
        Complete the current stage and unlock the next one.

        At stage 6 this is submit().
        """
        project = self._require_mutable("advance")
        stage = project.current_stage
        if stage == TOTAL_STAGES:
            return await self.submit()
        if not can_transition(state_of(project), "advance"):
            raise ValueError(f"Cannot advance from {state_of(project).value}")

        result = validate_stage(stage, project.stage(stage))
        if not result.is_valid:
            raise ValidationFailure(stage, result.errors)

        now = self.clock()
        payload = project.stage(stage).model_copy(update={"completed_at": now})
        setattr(project, f"stage{stage}", payload)
        project.current_stage = project.first_incomplete_stage()
        await self._commit()
        await self.store.append_event(
            EventType.STAGE_COMPLETED,
            "stage_project",
            project.id,
            StageCompletedEvent(occurred_at=now, stage=stage, next_stage=project.current_stage),
        )
        logger.info("Stage completed", extra={"project_id": project.id, "stage": stage})
        return self.project

    async def submit(self) -> StageProject:
        """Complete stage 6 and freeze the project."""
        project = self._require_mutable("submit")
        self._require_unlocked(TOTAL_STAGES)
        if not can_transition(state_of(project), "submit"):
            raise StageLocked(TOTAL_STAGES, project.first_incomplete_stage())

        result = validate_stage(TOTAL_STAGES, project.stage(TOTAL_STAGES))
        if not result.is_valid:
            raise ValidationFailure(TOTAL_STAGES, result.errors)

        now = self.clock()
        payload = project.stage(TOTAL_STAGES).model_copy(update={"completed_at": now})
        setattr(project, f"stage{TOTAL_STAGES}", payload)
        project.current_stage = TOTAL_STAGES
        project.is_completed = True
        project.completed_at = now
        project.submitted_at = now
        await self._commit()
        await self.store.append_event(
            EventType.PROJECT_SUBMITTED,
            "stage_project",
            project.id,
            ProjectSubmittedEvent(
                occurred_at=now,
                title=project.title,
                project_type=project.project_type.value,
            ),
        )
        logger.info("LKPD project submitted", extra={"project_id": project.id})
        return self.project

    async def attach_artifact(self, stage: int, kind: ArtifactKind, file: ArtifactFile) -> UploadedFile:
        """Upload a file through the collaborator and store the returned reference."""
        _check_stage_number(stage)
        project = self._require_mutable("attach_artifact")
        self._require_unlocked(stage)
        validate_artifact(stage, kind, file, self.limits)
        if self.uploader is None:
            raise InvalidArtifact("File uploads are not configured")

        payload = project.stage(stage) or STAGE_PAYLOAD_TYPES[stage]()
        field = _ARTIFACT_FIELDS[kind]
        images_field = field if kind != ArtifactKind.STL else None
        if images_field and len(getattr(payload, images_field)) >= MAX_IMAGES_PER_STAGE:
            raise InvalidArtifact(f"At most {MAX_IMAGES_PER_STAGE} images per stage")

        result = await self.uploader.upload_artifact(self.user_id, project.id, stage, file, kind)
        reference = UploadedFile(
            name=file.filename,
            size=result.size,
            url=result.url,
            path=result.path,
            uploaded_at=self.clock(),
        )

        if images_field:
            update = {images_field: [*getattr(payload, images_field), result.url]}
        else:
            update = {field: reference}
        setattr(project, f"stage{stage}", payload.model_copy(update=update))
        await self._commit()
        await self.store.append_event(
            EventType.ARTIFACT_ATTACHED,
            "stage_project",
            project.id,
            ArtifactAttachedEvent(
                occurred_at=reference.uploaded_at,
                stage=stage,
                kind=kind.value,
                path=result.path,
                size=result.size,
            ),
        )
        return reference

    def progress(self) -> ProjectProgress:
        if self._project is None:
            return ProjectProgress(completed=0, percentage=0)
        completed = sum(1 for n in range(1, TOTAL_STAGES + 1) if self._project.is_stage_completed(n))
        return ProjectProgress(completed=completed, percentage=round(completed / TOTAL_STAGES * 100))

    async def flush_drafts(self) -> None:
        if self._project is not None:
            await self.reconciler.flush(self._project.id)

    async def _commit(self) -> bool:
        """Persist the in-memory project now, superseding any pending draft."""
        project = self._project
        # A draft write already running would otherwise land after this one
        await self.reconciler.settle(project.id)
        project.last_auto_save = self.clock()
        return await self._write(project.model_copy(deep=True))

    async def _write(self, snapshot: StageProject) -> bool:
        async def _save() -> None:
            await self.store.remote.save_project(snapshot)

        return await self.store.write_through(
            ProgressStore.PROJECT_KEY,
            snapshot.model_dump(mode="json"),
            _save,
            sync_key=f"project:{snapshot.id}",
        )
