"""
Badge Evaluator - grants catalog badges whose thresholds are met.

Grants are monotonic: once a badge id is in badges_earned it stays there,
even if the metric that earned it later drops (a reset streak, say).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from geolearn.logging_config import get_logger
from geolearn.schemas.gamification import (
    BadgeDefinition,
    BadgeStatus,
    EarnedBadge,
    GamificationState,
    ProgressMetrics,
)

logger = get_logger(__name__)


DEFAULT_BADGE_CATALOG: List[Dict[str, Any]] = [
    {
        "id": "first-steps",
        "name": "Langkah Pertama",
        "description": "Earn your first 10 XP",
        "category": "learning",
        "requirement_type": "xp",
        "requirement_value": 10,
    },
    {
        "id": "xp-500",
        "name": "Penjelajah Bangun Ruang",
        "description": "Reach 500 XP",
        "category": "achievement",
        "requirement_type": "xp",
        "requirement_value": 500,
    },
    {
        "id": "xp-1000",
        "name": "Ahli Geometri",
        "description": "Reach 1000 XP",
        "category": "achievement",
        "requirement_type": "xp",
        "requirement_value": 1000,
    },
    {
        "id": "streak-3",
        "name": "Rajin Belajar",
        "description": "Learn three days in a row",
        "category": "streak",
        "requirement_type": "streak",
        "requirement_value": 3,
    },
    {
        "id": "streak-7",
        "name": "Seminggu Penuh",
        "description": "Learn seven days in a row",
        "category": "streak",
        "requirement_type": "streak",
        "requirement_value": 7,
    },
    {
        "id": "lesson-1",
        "name": "Pelajaran Pertama",
        "description": "Complete a lesson",
        "category": "learning",
        "requirement_type": "lessons",
        "requirement_value": 1,
    },
    {
        "id": "lesson-10",
        "name": "Pembelajar Tekun",
        "description": "Complete ten lessons",
        "category": "learning",
        "requirement_type": "lessons",
        "requirement_value": 10,
    },
    {
        "id": "module-1",
        "name": "Modul Tuntas",
        "description": "Open every tab of one module",
        "category": "achievement",
        "requirement_type": "modules",
        "requirement_value": 1,
    },
    {
        "id": "module-4",
        "name": "Penguasa Bangun Ruang Sisi Lengkung",
        "description": "Finish the cylinder, cone, sphere and hemisphere modules",
        "category": "achievement",
        "requirement_type": "modules",
        "requirement_value": 4,
    },
]


CatalogEntry = Union[BadgeDefinition, Dict[str, Any], None]


class BadgeEvaluator:
    """Evaluates badge definitions against the learner's aggregates."""

    def __init__(self, catalog: Optional[Iterable[CatalogEntry]] = None):
        self.definitions = self._load_catalog(DEFAULT_BADGE_CATALOG if catalog is None else catalog)

    @staticmethod
    def _load_catalog(entries: Iterable[CatalogEntry]) -> List[BadgeDefinition]:
        definitions: List[BadgeDefinition] = []
        seen = set()
        for entry in entries:
            if entry is None:
                logger.warning("Skipping missing badge definition")
                continue
            try:
                definition = (
                    entry if isinstance(entry, BadgeDefinition)
                    else BadgeDefinition.model_validate(entry)
                )
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed badge definition",
                    extra={"entry": repr(entry)[:200], "error": exc.errors()[0]["msg"]},
                )
                continue
            if definition.id in seen:
                logger.warning("Skipping duplicate badge definition", extra={"badge_id": definition.id})
                continue
            seen.add(definition.id)
            definitions.append(definition)
        return definitions

    def evaluate(
        self,
        state: GamificationState,
        metrics: ProgressMetrics,
        now: Optional[datetime] = None,
    ) -> Tuple[GamificationState, List[EarnedBadge]]:
        """
        Grant every not-yet-earned badge whose threshold is met.

        Returns:
            (updated state, badges granted by this call)
        """
        now = now or datetime.now(timezone.utc)
        granted: List[EarnedBadge] = []
        for definition in self.definitions:
            if state.has_badge(definition.id):
                continue
            if metrics.value_for(definition.requirement_type) >= definition.requirement_value:
                granted.append(EarnedBadge(id=definition.id, earned_at=now))

        if not granted:
            return state, []

        logger.info("Badges earned", extra={"badge_ids": [b.id for b in granted]})
        updated = state.model_copy(update={"badges_earned": [*state.badges_earned, *granted]})
        return updated, granted

    def status(self, state: GamificationState, metrics: ProgressMetrics) -> List[BadgeStatus]:
        earned_at = {b.id: b.earned_at for b in state.badges_earned}
        return [
            BadgeStatus(
                badge=definition,
                earned=definition.id in earned_at,
                earned_at=earned_at.get(definition.id),
                current_value=metrics.value_for(definition.requirement_type),
            )
            for definition in self.definitions
        ]

    def get(self, badge_id: str) -> Optional[BadgeDefinition]:
        return next((d for d in self.definitions if d.id == badge_id), None)
