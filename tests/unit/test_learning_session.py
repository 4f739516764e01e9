"""Unit tests for the LearningSession activity pipeline."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from geolearn.kernel.models import EventType
from geolearn.orchestration.learning_session import LearningSession, lesson_xp
from geolearn.schemas.gamification import GamificationState

DAY_1 = date(2024, 1, 1)
NOW = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


class TestTabVisitPipeline:
    """tracker -> ledger -> streak -> badges for tab visits."""

    @pytest.mark.asyncio
    async def test_tabung_scenario(self, session):
        """Three tabs give 30 XP; the last two give 20 plus the 50 bonus."""
        for tab in (0, 1, 2):
            await session.record_tab_visit("tabung", tab, now=NOW)
        assert session.tracker.completion_percentage("tabung") == 60
        assert session.ledger.state.total_xp == 30

        outcomes = [await session.record_tab_visit("tabung", tab, now=NOW) for tab in (3, 4)]
        assert session.tracker.completion_percentage("tabung") == 100
        assert sum(o.xp_awarded for o in outcomes) == 70
        assert session.ledger.state.total_xp == 100
        assert outcomes[-1].completed_module is True

    @pytest.mark.asyncio
    async def test_repeat_visits_award_nothing(self, session):
        first = await session.record_tab_visit("kerucut", 0, now=NOW)
        repeat = await session.record_tab_visit("kerucut", 0, now=NOW)
        assert first.xp_awarded == 10
        assert repeat.xp_awarded == 0
        assert repeat.is_new_visit is False
        assert session.ledger.state.total_xp == 10

    @pytest.mark.asyncio
    async def test_bonus_not_repaid_after_completion(self, session):
        for tab in range(5):
            await session.record_tab_visit("bola", tab, now=NOW)
        for tab in range(5):
            await session.record_tab_visit("bola", tab, now=NOW)
        assert session.ledger.state.total_xp == 100
        assert session.ledger.state.bonus_modules == ["bola"]

    @pytest.mark.asyncio
    async def test_visits_update_streak_once_per_day(self, session):
        await session.record_tab_visit("tabung", 0, today=DAY_1)
        await session.record_tab_visit("tabung", 1, today=DAY_1)
        assert session.ledger.state.current_streak_days == 1
        await session.record_tab_visit("tabung", 2, today=date(2024, 1, 2))
        assert session.ledger.state.current_streak_days == 2

    @pytest.mark.asyncio
    async def test_badges_granted_in_same_pipeline(self, session, remote):
        outcome = await session.record_tab_visit("tabung", 0, now=NOW)
        assert [b.id for b in outcome.new_badges] == ["first-steps"]
        assert outcome.gamification.has_badge("first-steps")
        badge_events = [e for e in remote.events if e["event_type"] == EventType.BADGE_EARNED]
        assert [e["entity_id"] for e in badge_events] == ["first-steps"]

    @pytest.mark.asyncio
    async def test_module_badge_on_completion(self, session):
        outcomes = [await session.record_tab_visit("tabung", tab, now=NOW) for tab in range(5)]
        assert "module-1" in [b.id for b in outcomes[-1].new_badges]

    @pytest.mark.asyncio
    async def test_remote_outage_reports_unsynced(self, session, remote):
        remote.save_module_progress = AsyncMock(side_effect=ConnectionError("offline"))
        outcome = await session.record_tab_visit("tabung", 0, now=NOW)
        assert outcome.synced is False
        assert session.has_unsynced_changes is True
        assert session.ledger.state.total_xp == 10


class TestLessonCompletion:
    @pytest.mark.parametrize(
        "score, reward, expected",
        [(95, None, 100), (80, None, 100), (79, None, 75), (60, None, 75), (59, None, 50), (None, None, 50), (10, 30, 30)],
    )
    def test_lesson_xp(self, score, reward, expected):
        assert lesson_xp(score, reward) == expected

    @pytest.mark.asyncio
    async def test_lesson_awards_once(self, session, remote):
        first = await session.complete_lesson("tabung", "luas-permukaan", score=85, now=NOW)
        second = await session.complete_lesson("tabung", "luas-permukaan", score=100, now=NOW)
        assert first.xp_awarded == 100
        assert second.xp_awarded == 0
        assert second.already_completed is True
        assert session.ledger.state.total_xp == 100
        assert session.metrics().completed_lessons == 1
        assert remote.lessons[("learner-1", "tabung", "luas-permukaan")]["xp_earned"] == 100

    @pytest.mark.asyncio
    async def test_lesson_badge(self, session):
        outcome = await session.complete_lesson("kerucut", "volume", now=NOW)
        assert "lesson-1" in [b.id for b in outcome.new_badges]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("module_id, lesson_id, score", [("", "x", None), ("m", "", None), ("m", "x", 101)])
    async def test_rejects_bad_input(self, session, module_id, lesson_id, score):
        with pytest.raises(ValueError):
            await session.complete_lesson(module_id, lesson_id, score=score)


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_reset_forgets_tabs_but_keeps_xp(self, session, remote):
        await session.record_tab_visit("tabung", 0, now=NOW)
        await session.reset()
        assert session.tracker.all() == []
        assert session.ledger.state.total_xp == 10
        assert remote.events[-1]["event_type"] == EventType.PROGRESS_RESET

    @pytest.mark.asyncio
    async def test_revisit_after_reset_earns_nothing(self, session, remote):
        for tab in range(5):
            await session.record_tab_visit("tabung", tab, now=NOW)
        xp = session.ledger.state.total_xp
        await session.reset()

        outcome = await session.record_tab_visit("tabung", 0, now=NOW)
        assert outcome.xp_awarded == 0
        assert session.ledger.state.total_xp == xp
        assert remote.module_progress[("learner-1", "tabung")].visited_tabs == {0, 1, 2, 3, 4}

    @pytest.mark.asyncio
    async def test_history_lists_module_commands(self, session):
        await session.record_tab_visit("tabung", 0, now=NOW)
        await session.record_tab_visit("tabung", 1, now=NOW.replace(minute=5))
        history = await session.history("module", "tabung")
        assert [record.payload["tab_index"] for record in history] == [1, 0]
        assert await session.history("module", "kerucut") == []

    @pytest.mark.asyncio
    async def test_load_catches_up_badges(self, store, controller, remote):
        remote.gamification["learner-1"] = GamificationState(user_id="learner-1", total_xp=600)
        session = LearningSession(store, controller)
        await session.load()
        earned = {b.id for b in session.ledger.state.badges_earned}
        assert {"first-steps", "xp-500"} <= earned
