"""
Shared test data and doubles.
"""

import copy
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from geolearn.engines.lkpd.uploads import ArtifactFile, ArtifactUploader, UploadResult
from geolearn.kernel.models import EventType
from geolearn.orchestration.state_machine import StageWorkflowController
from geolearn.schemas.common import CommandRecord
from geolearn.schemas.gamification import GamificationState
from geolearn.schemas.lkpd import ArtifactKind, StageProject
from geolearn.schemas.progress import ModuleTabProgress
from geolearn.storage.remote import RemoteStore, is_stale_project_write

LEARNER_ID = "learner-1"

# Short enough for tests to wait out
QUIET_PERIOD = 0.05


def words(n: int, word: str = "kata") -> str:
    return " ".join([word] * n)


# Text and number fields only; upload references come from STAGE_ARTIFACTS
VALID_STAGE_DATA: Dict[int, dict] = {
    1: {
        "project_goal": "Membuat tempat pensil berbentuk tabung",
        "shape_importance": "Tabung mudah digenggam dan stabil",
    },
    2: {
        "design_description": "Tabung dengan tutup berengsel di bagian atas",
    },
    3: {
        "tinkercad_url": "https://www.tinkercad.com/things/abc",
        "diameter": 8,
        "height": 12,
    },
    4: {
        "challenges": "Ketebalan dinding terlalu tipis",
    },
    5: {
        "strengths": "Ukuran pas untuk dua belas pensil",
        "weaknesses": "Tutup kurang rapat saat dibalik",
    },
    6: {
        "learning_reflection": words(50),
        "challenges": words(50),
        "application": words(30),
    },
}

STAGE_ARTIFACTS: Dict[int, Tuple[ArtifactKind, ArtifactFile]] = {
    2: (ArtifactKind.SKETCH, ArtifactFile("sketsa.png", "image/png", b"\x89PNG sketch")),
    4: (ArtifactKind.STL, ArtifactFile("pencil-case.stl", "model/stl", b"solid pencil_case")),
    5: (ArtifactKind.RESULT_PHOTO, ArtifactFile("hasil.jpg", "image/jpeg", b"\xff\xd8 photo")),
}


class FixedClock:
    """Deterministic, manually advanced clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 5, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


class RecordingUploader(ArtifactUploader):
    """Upload collaborator that keeps calls in memory."""

    def __init__(self):
        self.calls: List[dict] = []

    async def upload_artifact(self, owner_id, project_id, stage, file: ArtifactFile, kind: ArtifactKind):
        path = f"{owner_id}/{project_id}/stage{stage}/{kind.value}_{len(self.calls)}.{file.extension}"
        self.calls.append({"owner_id": owner_id, "stage": stage, "kind": kind, "size": file.size})
        return UploadResult(url=f"https://files.example/{path}", path=path, size=file.size)


class InMemoryRemoteStore(RemoteStore):
    """
    Process-local RemoteStore.

    Stores deep copies so callers cannot mutate what was "persisted", and
    refuses stale project writes the way SqlRemoteStore does.
    """

    def __init__(self):
        self.module_progress: Dict[Tuple[str, str], ModuleTabProgress] = {}
        self.lessons: Dict[Tuple[str, str, str], dict] = {}
        self.gamification: Dict[str, GamificationState] = {}
        self.projects: Dict[str, StageProject] = {}
        self.events: List[dict] = []

    async def fetch_module_progress(self, user_id: str) -> List[ModuleTabProgress]:
        return [copy.deepcopy(p) for (uid, _), p in self.module_progress.items() if uid == user_id]

    async def save_module_progress(self, user_id: str, progress: ModuleTabProgress) -> None:
        self.module_progress[(user_id, progress.module_id)] = copy.deepcopy(progress)

    async def save_lesson_completion(
        self,
        user_id: str,
        module_id: str,
        lesson_id: str,
        score: Optional[int],
        xp_earned: int,
        completed_at: datetime,
    ) -> None:
        self.lessons[(user_id, module_id, lesson_id)] = {
            "score": score,
            "xp_earned": xp_earned,
            "completed_at": completed_at,
        }

    async def fetch_gamification(self, user_id: str) -> Optional[GamificationState]:
        state = self.gamification.get(user_id)
        return copy.deepcopy(state) if state else None

    async def save_gamification(self, state: GamificationState) -> None:
        self.gamification[state.user_id] = copy.deepcopy(state)

    async def fetch_latest_project(self, user_id: str, include_completed: bool = False) -> Optional[StageProject]:
        candidates = [
            p for p in self.projects.values()
            if p.user_id == user_id and (include_completed or not p.is_completed)
        ]
        if not candidates:
            return None
        return copy.deepcopy(max(candidates, key=lambda p: p.started_at))

    async def save_project(self, project: StageProject) -> None:
        stored = self.projects.get(project.id)
        if stored is not None and is_stale_project_write(stored, project):
            return
        self.projects[project.id] = copy.deepcopy(project)

    async def append_event(
        self,
        user_id: str,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        payload: BaseModel,
    ) -> None:
        self.events.append({
            "user_id": user_id,
            "event_type": event_type,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "occurred_at": getattr(payload, "occurred_at", None) or datetime.now(timezone.utc),
            "payload": payload.model_dump(mode="json"),
        })

    async def fetch_history(
        self,
        user_id: str,
        entity_type: str,
        entity_id: str,
        limit: int = 50,
    ) -> List[CommandRecord]:
        matching = [
            e for e in self.events
            if e["user_id"] == user_id and e["entity_type"] == entity_type and e["entity_id"] == entity_id
        ]
        matching.sort(key=lambda e: e["occurred_at"], reverse=True)
        return [
            CommandRecord(
                event_type=e["event_type"].value,
                entity_type=e["entity_type"],
                entity_id=e["entity_id"],
                occurred_at=e["occurred_at"],
                payload=e["payload"],
            )
            for e in matching[:limit]
        ]


async def complete_stages(controller: StageWorkflowController, upto: int) -> None:
    """Fill in, upload files for, and advance stages 1..upto."""
    for stage in range(1, upto + 1):
        controller.edit_stage(stage, VALID_STAGE_DATA[stage])
        if stage in STAGE_ARTIFACTS:
            kind, file = STAGE_ARTIFACTS[stage]
            await controller.attach_artifact(stage, kind, file)
        await controller.advance()
