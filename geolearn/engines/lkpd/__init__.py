"""
LKPD Engine - six-stage guided project support.

Stages: Define, Imagine, Plan & Design, Build, Test, Reflect. This package
holds the pieces the workflow controller composes: per-stage validation,
geometry formulas, debounced auto-save and artifact uploads.
"""

from geolearn.engines.lkpd.autosave import AutoSaveReconciler
from geolearn.engines.lkpd.geometry import FORMULAS, GeometryKind, Measurements, geometry_for_project, measure
from geolearn.engines.lkpd.uploads import (
    ARTIFACT_STAGES,
    ArtifactFile,
    ArtifactUploader,
    HttpArtifactUploader,
    UploadLimits,
    UploadResult,
    validate_artifact,
)
from geolearn.engines.lkpd.validation import STAGE_RULES, StageValidationResult, count_words, validate_stage

__all__ = [
    "AutoSaveReconciler",
    "FORMULAS",
    "GeometryKind",
    "Measurements",
    "geometry_for_project",
    "measure",
    "ARTIFACT_STAGES",
    "ArtifactFile",
    "ArtifactUploader",
    "HttpArtifactUploader",
    "UploadLimits",
    "UploadResult",
    "validate_artifact",
    "STAGE_RULES",
    "StageValidationResult",
    "count_words",
    "validate_stage",
]
