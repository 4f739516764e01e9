"""Domain models and API schemas."""

from geolearn.schemas.common import CommandRecord, ErrorResponse, FieldError, HealthResponse
from geolearn.schemas.gamification import (
    BadgeDefinition,
    BadgeStatus,
    EarnedBadge,
    GamificationResponse,
    GamificationState,
    ProgressMetrics,
    RequirementType,
)
from geolearn.schemas.lkpd import (
    ArtifactKind,
    ProjectProgress,
    ProjectResponse,
    ProjectType,
    StageGate,
    StageProject,
)
from geolearn.schemas.progress import ModuleProgressResponse, ModuleTabProgress, TabVisitResult

__all__ = [
    "CommandRecord",
    "ErrorResponse",
    "FieldError",
    "HealthResponse",
    "BadgeDefinition",
    "BadgeStatus",
    "EarnedBadge",
    "GamificationResponse",
    "GamificationState",
    "ProgressMetrics",
    "RequirementType",
    "ArtifactKind",
    "ProjectProgress",
    "ProjectResponse",
    "ProjectType",
    "StageGate",
    "StageProject",
    "ModuleProgressResponse",
    "ModuleTabProgress",
    "TabVisitResult",
]
