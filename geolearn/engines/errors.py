"""
Engine error taxonomy.

Validation and lock errors are raised to the immediate caller. Persistence
and reference-data problems are recovered locally and only logged, so they
have no exception type here (see storage.sync_queue and
engines.gamification.badges).
"""

from typing import Dict, Optional


class WorkflowError(ValueError):
    """Base class for caller-correctable engine errors."""

    code = "workflow_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationFailure(WorkflowError):
    """A stage's declared field rules are unmet. No state was changed."""

    code = "validation_failure"

    def __init__(self, stage: int, errors: Dict[str, str]):
        super().__init__(f"Stage {stage} is incomplete: {', '.join(sorted(errors))}")
        self.stage = stage
        self.errors = errors

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["stage"] = self.stage
        data["errors"] = [{"field": f, "message": m} for f, m in self.errors.items()]
        return data


class StageLocked(WorkflowError):
    """Navigation to a stage whose prerequisite stage is not completed."""

    code = "stage_locked"

    def __init__(self, stage: int, blocking_stage: int):
        super().__init__(f"Stage {stage} is locked until stage {blocking_stage} is completed")
        self.stage = stage
        self.blocking_stage = blocking_stage

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["stage"] = self.stage
        data["blocking_stage"] = self.blocking_stage
        data["redirect_to"] = "overview"
        return data


class ImmutableStateViolation(WorkflowError):
    """Mutation attempted on a submitted project."""

    code = "immutable_state"

    def __init__(self, project_id: str, action: Optional[str] = None):
        detail = f"Project {project_id} has been submitted and can no longer change"
        if action:
            detail = f"{detail} (attempted: {action})"
        super().__init__(detail)
        self.project_id = project_id
        self.action = action


class InvalidArtifact(WorkflowError):
    """Uploaded file rejected before it reaches the upload collaborator."""

    code = "invalid_artifact"
