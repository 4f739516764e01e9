"""Unit tests for StreakCalculator and GamificationLedger."""

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest

from geolearn.engines.gamification.ledger import GamificationLedger, merge_gamification
from geolearn.engines.gamification.streak import StreakCalculator, StreakOutcome
from geolearn.kernel.models import EventType
from geolearn.schemas.gamification import EarnedBadge, GamificationState, level_for_xp
from geolearn.storage.progress_store import ProgressStore

JAN_1 = date(2024, 1, 1)


def _state(**kwargs) -> GamificationState:
    return GamificationState(user_id="learner-1", **kwargs)


class TestStreakCalculator:
    """Continue / reset / no-op transitions keyed on dates."""

    def test_first_activity_starts_streak(self):
        state, outcome = StreakCalculator.apply(_state(), JAN_1)
        assert outcome == StreakOutcome.RESET
        assert state.current_streak_days == 1
        assert state.last_activity_date == JAN_1

    def test_next_day_continues(self):
        start = _state(current_streak_days=4, longest_streak_days=4, last_activity_date=JAN_1)
        state, outcome = StreakCalculator.apply(start, date(2024, 1, 2))
        assert outcome == StreakOutcome.CONTINUED
        assert state.current_streak_days == 5
        assert state.longest_streak_days == 5

    def test_gap_of_two_days_resets(self):
        start = _state(current_streak_days=4, longest_streak_days=9, last_activity_date=JAN_1)
        state, outcome = StreakCalculator.apply(start, date(2024, 1, 4))
        assert outcome == StreakOutcome.RESET
        assert state.current_streak_days == 1
        assert state.longest_streak_days == 9
        assert state.last_activity_date == date(2024, 1, 4)

    def test_same_day_is_noop(self):
        start = _state(current_streak_days=2, last_activity_date=JAN_1)
        once, _ = StreakCalculator.apply(start, JAN_1)
        twice, outcome = StreakCalculator.apply(once, JAN_1)
        assert outcome == StreakOutcome.NO_OP
        assert twice.current_streak_days == 2

    def test_future_last_activity_is_noop(self):
        start = _state(current_streak_days=3, last_activity_date=date(2024, 1, 10))
        state, outcome = StreakCalculator.apply(start, JAN_1)
        assert outcome == StreakOutcome.NO_OP
        assert state.last_activity_date == date(2024, 1, 10)

    def test_crosses_month_boundary(self):
        start = _state(current_streak_days=1, last_activity_date=date(2024, 1, 31))
        state, outcome = StreakCalculator.apply(start, date(2024, 2, 1))
        assert outcome == StreakOutcome.CONTINUED
        assert state.current_streak_days == 2


class TestGamificationState:
    """Derived fields are normalized on construction."""

    @pytest.mark.parametrize("xp, level", [(0, 1), (499, 1), (500, 2), (1499, 3), (1500, 4)])
    def test_level_follows_xp(self, xp, level):
        assert _state(total_xp=xp).level == level
        assert level_for_xp(xp) == level

    def test_longest_never_below_current(self):
        assert _state(current_streak_days=5, longest_streak_days=2).longest_streak_days == 5

    def test_xp_cannot_be_negative(self):
        with pytest.raises(ValueError):
            _state(total_xp=-1)


class TestLedger:
    """XP awards, tab rewards and persistence."""

    @pytest.mark.asyncio
    async def test_award_updates_level_and_streak(self, store, remote):
        ledger = GamificationLedger(store)
        update = await ledger.award_xp(520, reason="test", today=JAN_1)
        assert update.state.total_xp == 520
        assert update.state.level == 2
        assert update.state.current_streak_days == 1
        assert update.streak_outcome == StreakOutcome.RESET
        saved = remote.gamification["learner-1"]
        assert (saved.total_xp, saved.level, saved.current_streak_days) == (520, 2, 1)

    @pytest.mark.asyncio
    async def test_negative_award_rejected(self, store):
        ledger = GamificationLedger(store)
        with pytest.raises(ValueError):
            await ledger.award_xp(-10)
        assert ledger.state.total_xp == 0

    @pytest.mark.asyncio
    async def test_level_invariant_over_sequence(self, store):
        ledger = GamificationLedger(store)
        previous = 0
        for amount in [10, 0, 50, 440, 0, 1, 999, 10]:
            update = await ledger.award_xp(amount, today=JAN_1)
            assert update.state.level == update.state.total_xp // 500 + 1
            assert update.state.total_xp >= previous
            previous = update.state.total_xp

    @pytest.mark.asyncio
    async def test_zero_award_counts_for_streak_without_xp_event(self, store, remote):
        ledger = GamificationLedger(store)
        update = await ledger.award_xp(0, today=JAN_1)
        assert update.state.current_streak_days == 1
        types = [e["event_type"] for e in remote.events]
        assert EventType.XP_AWARDED not in types
        assert EventType.STREAK_UPDATED in types

    @pytest.mark.asyncio
    async def test_tab_reward_pays_bonus_once(self, store):
        ledger = GamificationLedger(store)
        assert ledger.tab_visit_reward("tabung", is_new_visit=True, completed_module=False) == (10, False)
        assert ledger.tab_visit_reward("tabung", is_new_visit=False, completed_module=False) == (0, False)
        assert ledger.tab_visit_reward("tabung", is_new_visit=True, completed_module=True) == (60, True)

        await ledger.award_xp(60, today=JAN_1, bonus_module="tabung")
        # A replayed completion does not pay again
        assert ledger.tab_visit_reward("tabung", is_new_visit=True, completed_module=True) == (10, False)

    @pytest.mark.asyncio
    async def test_remote_failure_is_not_rolled_back(self, store, remote, local_cache):
        remote.save_gamification = AsyncMock(side_effect=ConnectionError("offline"))
        ledger = GamificationLedger(store)
        update = await ledger.award_xp(10, today=JAN_1)
        assert update.synced is False
        assert ledger.state.total_xp == 10
        assert local_cache.read(ProgressStore.GAMIFICATION_KEY)["total_xp"] == 10
        assert ProgressStore.GAMIFICATION_KEY in store.sync_queue.pending_keys

    @pytest.mark.asyncio
    async def test_queued_write_replays_after_recovery(self, store, remote):
        real_save = remote.save_gamification
        remote.save_gamification = AsyncMock(side_effect=ConnectionError("offline"))
        ledger = GamificationLedger(store)
        await ledger.award_xp(10, today=JAN_1)

        remote.save_gamification = real_save
        assert await store.flush() is True
        assert remote.gamification["learner-1"].total_xp == 10
        assert store.has_unsynced_changes is False

    @pytest.mark.asyncio
    async def test_load_merges_local_and_remote(self, store, remote, local_cache):
        local_cache.write(
            ProgressStore.GAMIFICATION_KEY,
            _state(total_xp=300, current_streak_days=2, last_activity_date=date(2024, 1, 3)).model_dump(mode="json"),
        )
        remote.gamification["learner-1"] = _state(
            total_xp=250, current_streak_days=6, longest_streak_days=6, last_activity_date=date(2024, 1, 2)
        )
        state = await GamificationLedger(store).load()
        assert state.total_xp == 300
        assert state.current_streak_days == 2
        assert state.longest_streak_days == 6
        assert remote.gamification["learner-1"].total_xp == 300


class TestMergeGamification:
    def test_badges_union_keeps_earliest(self):
        early = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = datetime(2024, 1, 9, tzinfo=timezone.utc)
        local = _state(badges_earned=[EarnedBadge(id="first-steps", earned_at=late)])
        remote = _state(badges_earned=[
            EarnedBadge(id="first-steps", earned_at=early),
            EarnedBadge(id="streak-3", earned_at=late),
        ])
        merged = merge_gamification(local, remote)
        assert {b.id: b.earned_at for b in merged.badges_earned} == {"first-steps": early, "streak-3": late}

    def test_missing_side_returns_other(self):
        remote = _state(total_xp=40)
        assert merge_gamification(None, remote).total_xp == 40
        assert merge_gamification(None, None) is None
