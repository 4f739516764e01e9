"""
Pytest fixtures for the progress engine tests.
"""

import pytest
import pytest_asyncio
from support import LEARNER_ID, QUIET_PERIOD, FixedClock, InMemoryRemoteStore, RecordingUploader

from geolearn.engines.gamification.badges import BadgeEvaluator
from geolearn.engines.lkpd.autosave import AutoSaveReconciler
from geolearn.orchestration.learning_session import LearningSession
from geolearn.orchestration.state_machine import StageWorkflowController
from geolearn.storage.local_cache import LocalCache
from geolearn.storage.progress_store import ProgressStore
from geolearn.storage.sync_queue import SyncQueue


@pytest.fixture
def remote() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


@pytest.fixture
def local_cache() -> LocalCache:
    return LocalCache()


@pytest_asyncio.fixture
async def store(remote, local_cache):
    store = ProgressStore(LEARNER_ID, local_cache, remote, SyncQueue(max_attempts=3, base_delay=0.01))
    yield store
    await store.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def uploader() -> RecordingUploader:
    return RecordingUploader()


@pytest_asyncio.fixture
async def reconciler():
    reconciler = AutoSaveReconciler(quiet_period=QUIET_PERIOD)
    yield reconciler
    await reconciler.close()


@pytest.fixture
def controller(store, reconciler, uploader, clock) -> StageWorkflowController:
    return StageWorkflowController(store, reconciler, uploader=uploader, clock=clock)


@pytest_asyncio.fixture
async def session(store, controller):
    session = LearningSession(store, controller, badges=BadgeEvaluator())
    await session.load()
    return session
