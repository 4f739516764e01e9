"""
LKPD six-stage project models and API schemas.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, model_validator

TOTAL_STAGES = 6

STAGE_NAMES: Dict[int, str] = {
    1: "Define",
    2: "Imagine",
    3: "Plan & Design",
    4: "Build",
    5: "Test",
    6: "Reflect",
}


class ProjectType(str, Enum):
    CYLINDER = "cylinder"
    HEMISPHERE = "hemisphere"
    CONE = "cone"
    COMPOSITE = "composite"


class ArtifactKind(str, Enum):
    SKETCH = "sketch"
    STL = "stl"
    RESULT_PHOTO = "result_photo"


class UploadedFile(BaseModel):
    """Reference returned by the upload collaborator. Bytes are never stored."""

    name: str
    size: int = Field(ge=0)
    url: str
    path: str
    uploaded_at: datetime


class StagePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    completed_at: Optional[datetime] = None


class Stage1Define(StagePayload):
    project_goal: str = ""
    shape_importance: str = ""


class DesignChecklist(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sketch_clear: bool = False
    size_determined: bool = False
    easy_to_make: bool = False
    matches_goal: bool = False


class Stage2Imagine(StagePayload):
    sketch_images: List[str] = Field(default_factory=list)
    design_description: str = ""
    checklist: DesignChecklist = Field(default_factory=DesignChecklist)


class Stage3Design(StagePayload):
    tinkercad_url: Optional[str] = None
    diameter: float = Field(default=0, ge=0)
    radius: float = Field(default=0, ge=0)
    height: float = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _derive_radius(self) -> "Stage3Design":
        self.radius = self.diameter / 2
        return self


class Stage4Build(StagePayload):
    stl_file: Optional[UploadedFile] = None
    challenges: str = ""


class Stage5Test(StagePayload):
    calculated_volume: float = 0
    surface_area: float = 0
    # millilitres; 1 cm3 = 1 ml
    capacity: float = 0
    strengths: str = ""
    weaknesses: str = ""
    result_photos: List[str] = Field(default_factory=list)


class Stage6Reflect(StagePayload):
    learning_reflection: str = ""
    challenges: str = ""
    application: str = ""


STAGE_PAYLOAD_TYPES: Dict[int, Type[StagePayload]] = {
    1: Stage1Define,
    2: Stage2Imagine,
    3: Stage3Design,
    4: Stage4Build,
    5: Stage5Test,
    6: Stage6Reflect,
}


class StageProject(BaseModel):
    """A learner's guided project. Immutable once submitted_at is set."""

    id: str
    user_id: str
    title: str = "LKPD Project"
    project_type: ProjectType = ProjectType.CYLINDER
    current_stage: int = Field(default=1, ge=1, le=TOTAL_STAGES)
    is_completed: bool = False
    started_at: datetime
    completed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    last_auto_save: Optional[datetime] = None

    stage1: Optional[Stage1Define] = None
    stage2: Optional[Stage2Imagine] = None
    stage3: Optional[Stage3Design] = None
    stage4: Optional[Stage4Build] = None
    stage5: Optional[Stage5Test] = None
    stage6: Optional[Stage6Reflect] = None

    def stage(self, number: int) -> Optional[StagePayload]:
        return getattr(self, f"stage{number}")

    def is_stage_completed(self, number: int) -> bool:
        payload = self.stage(number)
        return payload is not None and payload.completed_at is not None

    def first_incomplete_stage(self) -> int:
        for number in range(1, TOTAL_STAGES + 1):
            if not self.is_stage_completed(number):
                return number
        return TOTAL_STAGES

    @property
    def is_submitted(self) -> bool:
        return self.submitted_at is not None


class StageGate(BaseModel):
    """Navigation guard answer for the presentation layer."""

    stage: int
    allowed: bool
    reason_if_blocked: Optional[str] = None
    blocking_stage: Optional[int] = None


class ProjectProgress(BaseModel):
    completed: int
    total: int = TOTAL_STAGES
    percentage: int


# API schemas

class StartProjectRequest(BaseModel):
    title: str = Field(default="LKPD Project", min_length=1, max_length=255)
    project_type: ProjectType = ProjectType.CYLINDER


class StageEditRequest(BaseModel):
    changes: Dict[str, Any]


class ProjectResponse(BaseModel):
    project: StageProject
    progress: ProjectProgress
    unsynced: bool = False


class StageView(BaseModel):
    stage: int
    name: str
    completed: bool
    payload: Dict[str, Any]


class ArtifactUploadRequest(BaseModel):
    kind: ArtifactKind
    filename: str = Field(min_length=1, max_length=255)
    content_type: str = Field(default="application/octet-stream", min_length=1)
    # base64-encoded file bytes
    data: str = Field(min_length=1)
