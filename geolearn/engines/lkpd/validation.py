"""
Stage validation - per-stage field rules gating advance().

Each stage declares its rules as data; validate_stage() evaluates them
all and reports every failing field rather than stopping at the first.
Text lengths are measured on stripped text so padding with spaces does
not satisfy a minimum.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, Field

from geolearn.schemas.lkpd import StagePayload

_WORD_RE = re.compile(r"\S+")


def count_words(text: Optional[str]) -> int:
    return len(_WORD_RE.findall(text or ""))


@dataclass(frozen=True)
class FieldRule:
    field: str

    def check(self, value) -> Optional[str]:
        raise NotImplementedError


@dataclass(frozen=True)
class MinChars(FieldRule):
    minimum: int

    def check(self, value) -> Optional[str]:
        length = len((value or "").strip())
        if length < self.minimum:
            return f"must be at least {self.minimum} characters (got {length})"
        return None


@dataclass(frozen=True)
class MinWords(FieldRule):
    minimum: int

    def check(self, value) -> Optional[str]:
        words = count_words(value)
        if words < self.minimum:
            return f"must be at least {self.minimum} words (got {words})"
        return None


@dataclass(frozen=True)
class Positive(FieldRule):
    def check(self, value) -> Optional[str]:
        if value is None or value <= 0:
            return "must be greater than 0"
        return None


@dataclass(frozen=True)
class MinItems(FieldRule):
    minimum: int = 1

    def check(self, value) -> Optional[str]:
        count = len(value or [])
        if count < self.minimum:
            noun = "item" if self.minimum == 1 else "items"
            return f"requires at least {self.minimum} {noun}"
        return None


@dataclass(frozen=True)
class Present(FieldRule):
    def check(self, value) -> Optional[str]:
        if value is None:
            return "is required"
        return None


STAGE_RULES: Dict[int, Tuple[FieldRule, ...]] = {
    1: (
        MinChars("project_goal", 10),
        MinChars("shape_importance", 10),
    ),
    2: (
        MinItems("sketch_images", 1),
        MinChars("design_description", 20),
    ),
    3: (
        Positive("diameter"),
        Positive("height"),
    ),
    4: (
        Present("stl_file"),
        MinChars("challenges", 10),
    ),
    5: (
        MinChars("strengths", 20),
        MinChars("weaknesses", 20),
        MinItems("result_photos", 1),
    ),
    6: (
        MinWords("learning_reflection", 50),
        MinWords("challenges", 50),
        MinWords("application", 30),
    ),
}


class StageValidationResult(BaseModel):
    stage: int
    errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_stage(stage: int, payload: Optional[StagePayload]) -> StageValidationResult:
    """
    Evaluate a stage's rules against its payload.

    A missing payload fails every rule of the stage.
    """
    if stage not in STAGE_RULES:
        raise ValueError(f"Unknown stage {stage}")

    errors: Dict[str, str] = {}
    for rule in STAGE_RULES[stage]:
        value = getattr(payload, rule.field, None) if payload is not None else None
        message = rule.check(value)
        if message:
            errors[rule.field] = message
    return StageValidationResult(stage=stage, errors=errors)

