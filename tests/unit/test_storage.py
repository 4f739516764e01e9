"""Unit tests for the local cache, retry queue and SQL remote store."""

import asyncio
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from geolearn.database import build_engine, build_session_maker, init_db
from geolearn.kernel.events.event_store import EventStore
from geolearn.kernel.events.event_types import TabVisitedEvent
from geolearn.kernel.models import EventType
from geolearn.schemas.gamification import EarnedBadge, GamificationState
from geolearn.schemas.lkpd import Stage1Define, StageProject
from geolearn.schemas.progress import ModuleTabProgress
from geolearn.storage.local_cache import LocalCache
from geolearn.storage.remote import SqlRemoteStore
from geolearn.storage.sync_queue import SyncQueue

NOW = datetime(2024, 1, 5, 9, 0, tzinfo=timezone.utc)


class TestLocalCache:

    def test_memory_round_trip(self):
        cache = LocalCache()
        cache.write("geolearn.tab_progress", [{"module_id": "tabung"}])
        assert cache.read("geolearn.tab_progress") == [{"module_id": "tabung"}]
        cache.delete("geolearn.tab_progress")
        assert cache.read("geolearn.tab_progress") is None

    def test_file_documents_survive_new_instance(self, tmp_path):
        LocalCache(tmp_path).write("geolearn.gamification", {"total_xp": 40})
        assert LocalCache(tmp_path).read("geolearn.gamification") == {"total_xp": 40}

    def test_write_overwrites_whole_document(self, tmp_path):
        cache = LocalCache(tmp_path)
        cache.write("k", {"a": 1, "b": 2})
        cache.write("k", {"a": 3})
        assert cache.read("k") == {"a": 3}

    def test_unreadable_file_is_discarded(self, tmp_path):
        cache = LocalCache(tmp_path)
        cache.write("k", {"a": 1})
        next(tmp_path.glob("*.json")).write_text("{not json", encoding="utf-8")
        assert cache.read("k") is None


class TestSyncQueue:

    @pytest.mark.asyncio
    async def test_background_retry_recovers(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise ConnectionError("offline")

        queue = SyncQueue(max_attempts=5, base_delay=0.01)
        queue.enqueue("k", flaky)
        assert queue.has_unsynced
        for _ in range(50):
            if not queue.has_unsynced:
                break
            await asyncio.sleep(0.01)
        assert not queue.has_unsynced
        assert len(calls) == 2
        await queue.close()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, caplog):
        failing = AsyncMock(side_effect=ConnectionError("offline"))
        queue = SyncQueue(max_attempts=2, base_delay=0.01)
        queue.enqueue("k", failing)
        await asyncio.sleep(0.2)
        assert failing.await_count == 2
        assert queue.pending_keys == ["k"]
        assert "gave up" in caplog.text
        await queue.close()

    @pytest.mark.asyncio
    async def test_newer_write_replaces_queued_one(self):
        first = AsyncMock(side_effect=ConnectionError("offline"))
        second = AsyncMock()
        queue = SyncQueue(max_attempts=3, base_delay=10)
        queue.enqueue("k", first)
        queue.enqueue("k", second)
        assert await queue.flush() is True
        first.assert_not_awaited()
        second.assert_awaited_once()
        await queue.close()

    @pytest.mark.asyncio
    async def test_discard(self):
        queue = SyncQueue(base_delay=10)
        queue.enqueue("k", AsyncMock())
        queue.discard("k")
        assert not queue.has_unsynced
        await queue.close()


@pytest_asyncio.fixture
async def sql_remote(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'remote.db'}")
    await init_db(engine)
    session_maker = build_session_maker(engine)
    yield SqlRemoteStore(session_maker), session_maker
    await engine.dispose()


class TestSqlRemoteStore:

    @pytest.mark.asyncio
    async def test_module_progress_upsert(self, sql_remote):
        remote, _ = sql_remote
        await remote.save_module_progress(
            "u1", ModuleTabProgress(module_id="tabung", visited_tabs={0, 1}, last_visited_at=NOW)
        )
        await remote.save_module_progress(
            "u1", ModuleTabProgress(module_id="tabung", visited_tabs={0, 1, 2, 3, 4}, last_visited_at=NOW)
        )
        rows = await remote.fetch_module_progress("u1")
        assert len(rows) == 1
        assert rows[0].visited_tabs == {0, 1, 2, 3, 4}
        assert rows[0].last_visited_at == NOW
        assert await remote.fetch_module_progress("someone-else") == []

    @pytest.mark.asyncio
    async def test_lesson_rows_are_not_module_rows(self, sql_remote):
        remote, _ = sql_remote
        await remote.save_lesson_completion("u1", "tabung", "volume", 90, 100, NOW)
        await remote.save_module_progress("u1", ModuleTabProgress(module_id="tabung", visited_tabs={0}))
        rows = await remote.fetch_module_progress("u1")
        assert [r.visited_tabs for r in rows] == [{0}]

    @pytest.mark.asyncio
    async def test_gamification_round_trip(self, sql_remote):
        remote, _ = sql_remote
        state = GamificationState(
            user_id="u1",
            total_xp=730,
            current_streak_days=3,
            longest_streak_days=5,
            last_activity_date=date(2024, 1, 5),
            badges_earned=[EarnedBadge(id="streak-3", earned_at=NOW)],
            bonus_modules=["tabung"],
            completed_lessons=["tabung/volume"],
        )
        await remote.save_gamification(state)
        loaded = await remote.fetch_gamification("u1")
        assert loaded == state
        assert loaded.level == 2
        assert await remote.fetch_gamification("nobody") is None

    @pytest.mark.asyncio
    async def test_project_round_trip_and_completed_filter(self, sql_remote):
        remote, _ = sql_remote
        project = StageProject(
            id="p-1",
            user_id="u1",
            started_at=NOW,
            stage1=Stage1Define(project_goal="Tempat pensil", shape_importance="Mudah dibuat", completed_at=NOW),
            current_stage=2,
        )
        await remote.save_project(project)
        assert await remote.fetch_latest_project("u1") == project

        project.is_completed = True
        await remote.save_project(project)
        assert await remote.fetch_latest_project("u1") is None
        assert (await remote.fetch_latest_project("u1", include_completed=True)).is_completed is True

    @pytest.mark.asyncio
    async def test_events_land_in_command_log(self, sql_remote):
        remote, session_maker = sql_remote
        event = TabVisitedEvent(occurred_at=NOW, module_id="tabung", tab_index=2, is_new_visit=True, visited_tabs=[2])
        await remote.append_event("u1", EventType.TAB_VISITED, "module", "tabung", event)

        async with session_maker() as session:
            store = EventStore(session)
            history = await store.get_entity_history("module", "tabung", user_id="u1")
        assert len(history) == 1
        assert history[0].payload["tab_index"] == 2
        assert history[0].event_type == EventType.TAB_VISITED.value

    @pytest.mark.asyncio
    async def test_history_is_per_learner_and_newest_first(self, sql_remote):
        remote, _ = sql_remote
        for minute, tab in enumerate([0, 1, 2]):
            event = TabVisitedEvent(
                occurred_at=NOW.replace(minute=minute),
                module_id="tabung",
                tab_index=tab,
                is_new_visit=True,
                visited_tabs=list(range(tab + 1)),
            )
            await remote.append_event("u1", EventType.TAB_VISITED, "module", "tabung", event)
        other = TabVisitedEvent(occurred_at=NOW, module_id="tabung", tab_index=4, is_new_visit=True, visited_tabs=[4])
        await remote.append_event("u2", EventType.TAB_VISITED, "module", "tabung", other)

        history = await remote.fetch_history("u1", "module", "tabung")
        assert [record.payload["tab_index"] for record in history] == [2, 1, 0]
        assert history[0].event_type == EventType.TAB_VISITED.value
        assert history[0].occurred_at == NOW.replace(minute=2)

        latest = await remote.fetch_history("u1", "module", "tabung", limit=1)
        assert len(latest) == 1
        assert await remote.fetch_history("u1", "module", "kerucut") == []

    @pytest.mark.asyncio
    async def test_stale_project_write_is_ignored(self, sql_remote, caplog):
        remote, _ = sql_remote
        draft = StageProject(
            id="p-1",
            user_id="u1",
            started_at=NOW,
            stage1=Stage1Define(project_goal="Tempat pensil", shape_importance="Mudah dibuat"),
        )
        committed = draft.model_copy(deep=True)
        committed.stage1.completed_at = NOW
        committed.current_stage = 2
        await remote.save_project(committed)

        await remote.save_project(draft)
        stored = await remote.fetch_latest_project("u1")
        assert stored.current_stage == 2
        assert stored.stage1.completed_at == NOW
        assert "Ignoring stale project write" in caplog.text

    @pytest.mark.asyncio
    async def test_submitted_project_cannot_be_unsubmitted(self, sql_remote):
        remote, _ = sql_remote
        project = StageProject(id="p-1", user_id="u1", started_at=NOW)
        submitted = project.model_copy(update={"submitted_at": NOW, "completed_at": NOW, "is_completed": True})
        await remote.save_project(submitted)
        await remote.save_project(project)
        stored = await remote.fetch_latest_project("u1", include_completed=True)
        assert stored.submitted_at == NOW
        assert stored.is_completed is True
