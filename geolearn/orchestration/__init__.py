"""Orchestration layer - learner sessions and the LKPD stage workflow."""

from geolearn.orchestration.learning_session import ActivityOutcome, LearningSession, lesson_xp
from geolearn.orchestration.registry import SessionRegistry
from geolearn.orchestration.state_machine import StageState, StageWorkflowController, can_transition

__all__ = [
    "ActivityOutcome",
    "LearningSession",
    "lesson_xp",
    "SessionRegistry",
    "StageState",
    "StageWorkflowController",
    "can_transition",
]
