"""
Fixtures for API integration tests.

The app runs against a file-based SQLite database so every connection sees
the same data. ASGITransport does not run the lifespan, so the session
registry is supplied through a dependency override.
"""

import os
import tempfile
import uuid

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Must be set before the app (and its settings) are imported
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["AUTOSAVE_QUIET_PERIOD_SECONDS"] = "0.05"
from geolearn.config import get_settings  # noqa: E402
get_settings.cache_clear()

from support import RecordingUploader  # noqa: E402

from geolearn.api.deps import get_registry  # noqa: E402
from geolearn.database import build_engine, build_session_maker, get_db, init_db  # noqa: E402
from geolearn.engines.lkpd.autosave import AutoSaveReconciler  # noqa: E402
from geolearn.main import app  # noqa: E402
from geolearn.orchestration.registry import SessionRegistry  # noqa: E402
from geolearn.storage.remote import SqlRemoteStore  # noqa: E402

TEST_ENGINE = build_engine(f"sqlite+aiosqlite:///{TEST_DB_PATH}")
TEST_SESSION_MAKER = build_session_maker(TEST_ENGINE)


async def _test_db():
    async with TEST_SESSION_MAKER() as session:
        yield session


@pytest_asyncio.fixture
async def registry():
    await init_db(TEST_ENGINE)
    registry = SessionRegistry(
        remote=SqlRemoteStore(TEST_SESSION_MAKER),
        reconciler=AutoSaveReconciler(quiet_period=0.05),
        uploader=RecordingUploader(),
        sync_base_delay=0.01,
    )
    yield registry
    await registry.close()


@pytest_asyncio.fixture
async def client(registry):
    """Async client with the test registry."""
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_db] = _test_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_registry, None)
        app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def learner_headers():
    """Fresh learner per test so rows in the shared database never collide."""
    return {"X-User-Id": f"learner-{uuid.uuid4()}"}
