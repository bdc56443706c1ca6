"""
tests/test_rotation_service.py — Weekly Rotation Tests
=======================================================

Covers the publish-then-reset ordering of a single rotation, the
per-guild timer bookkeeping of RotationScheduler (validate-then-swap,
stop), and the pending-reset retry queue.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from meritboard.errors import InvalidScheduleExpression, StorageFailure
from meritboard.services import rotation_service
from meritboard.services.guild_config_service import get_guild_config, upsert_guild_config
from meritboard.services.ledger_service import credit_points, get_account
from meritboard.services.rank_service import LeaderboardRow
from meritboard.services.rotation_service import (
    RotationOutcome,
    RotationScheduler,
    run_rotation,
    set_rotation_schedule,
)

GUILD = 100
CHANNEL = 555


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


@pytest.fixture
def engine(db_engine):
    return db_engine


def _make_scheduler(runner=None, expression="0 0 * * 0") -> RotationScheduler:
    runner = runner or AsyncMock(return_value=RotationOutcome.PUBLISHED)
    return RotationScheduler(runner, default_expression=expression)


# ===========================================================================
# Test: run_rotation
# ===========================================================================
class TestRunRotation:
    def test_skipped_without_channel(self, engine):
        credit_points(engine, 1, GUILD, 10)
        publisher = AsyncMock()

        outcome = run_async(run_rotation(engine, GUILD, publisher))

        assert outcome is RotationOutcome.SKIPPED
        publisher.assert_not_awaited()
        assert get_account(engine, 1, GUILD).weekly_points == 10

    def test_publishes_then_resets(self, engine):
        upsert_guild_config(engine, GUILD, leaderboard_channel_id=CHANNEL)
        credit_points(engine, 1, GUILD, 10)
        credit_points(engine, 2, GUILD, 30)
        publisher = AsyncMock()

        outcome = run_async(run_rotation(engine, GUILD, publisher, size=10))

        assert outcome is RotationOutcome.PUBLISHED
        publisher.assert_awaited_once_with(
            GUILD, CHANNEL, [LeaderboardRow(2, 30), LeaderboardRow(1, 10)],
        )
        for uid, total in ((1, 10), (2, 30)):
            account = get_account(engine, uid, GUILD)
            assert account.weekly_points == 0
            assert account.total_points == total

    def test_publish_failure_skips_reset(self, engine):
        upsert_guild_config(engine, GUILD, leaderboard_channel_id=CHANNEL)
        credit_points(engine, 1, GUILD, 10)
        publisher = AsyncMock(side_effect=RuntimeError("channel gone"))

        outcome = run_async(run_rotation(engine, GUILD, publisher))

        assert outcome is RotationOutcome.PUBLISH_FAILED
        assert get_account(engine, 1, GUILD).weekly_points == 10

    def test_reset_failure_reported(self, engine):
        upsert_guild_config(engine, GUILD, leaderboard_channel_id=CHANNEL)
        publisher = AsyncMock()

        with patch.object(
            rotation_service, "reset_weekly",
            side_effect=StorageFailure("reset_weekly", {"guild_id": GUILD}),
        ):
            outcome = run_async(run_rotation(engine, GUILD, publisher))

        assert outcome is RotationOutcome.RESET_FAILED
        publisher.assert_awaited_once()

    def test_size_limits_rows(self, engine):
        upsert_guild_config(engine, GUILD, leaderboard_channel_id=CHANNEL)
        for uid in range(1, 6):
            credit_points(engine, uid, GUILD, uid)
        publisher = AsyncMock()

        run_async(run_rotation(engine, GUILD, publisher, size=2))

        rows = publisher.await_args.args[2]
        assert [r.user_id for r in rows] == [5, 4]
        # Everyone is reset, not only the published rows
        assert get_account(engine, 1, GUILD).weekly_points == 0


# ===========================================================================
# Test: RotationScheduler
# ===========================================================================
class TestSchedulerTimers:
    def test_invalid_default_rejected(self):
        with pytest.raises(InvalidScheduleExpression):
            _make_scheduler(expression="not a cron")

    def test_schedule_uses_default(self):
        async def _inner():
            scheduler = _make_scheduler()
            assert scheduler.schedule(GUILD) == "0 0 * * 0"
            assert scheduler.active_expression(GUILD) == "0 0 * * 0"
            assert scheduler.scheduled_guilds() == [GUILD]
            assert scheduler.next_run(GUILD) is not None
            await scheduler.stop()
        run_async(_inner())

    def test_replace_cancels_old_timer(self):
        async def _inner():
            scheduler = _make_scheduler()
            scheduler.schedule(GUILD)
            old = scheduler._tasks[GUILD]

            scheduler.schedule(GUILD, "30 12 * * 1")
            await asyncio.sleep(0.01)

            assert old.cancelled()
            assert scheduler.active_expression(GUILD) == "30 12 * * 1"
            await scheduler.stop()
        run_async(_inner())

    def test_invalid_replacement_keeps_old_timer(self):
        async def _inner():
            scheduler = _make_scheduler()
            scheduler.schedule(GUILD, "0 6 * * *")
            old = scheduler._tasks[GUILD]

            with pytest.raises(InvalidScheduleExpression):
                scheduler.schedule(GUILD, "0 6 * *")
            await asyncio.sleep(0.01)

            assert scheduler._tasks[GUILD] is old
            assert not old.done()
            assert scheduler.active_expression(GUILD) == "0 6 * * *"
            await scheduler.stop()
        run_async(_inner())

    def test_unschedule(self):
        async def _inner():
            scheduler = _make_scheduler()
            scheduler.schedule(GUILD)
            assert scheduler.unschedule(GUILD) is True
            assert scheduler.unschedule(GUILD) is False
            assert scheduler.next_run(GUILD) is None
            assert scheduler.scheduled_guilds() == []
        run_async(_inner())

    def test_stop_cancels_everything(self):
        async def _inner():
            scheduler = _make_scheduler()
            scheduler.schedule(1)
            scheduler.schedule(2)
            tasks = list(scheduler._tasks.values())

            await scheduler.stop()

            assert all(t.done() for t in tasks)
            assert scheduler.scheduled_guilds() == []
        run_async(_inner())

    def test_timer_invokes_runner(self):
        """With next_fire pinned just ahead of now, the timer fires promptly."""
        runner = AsyncMock(return_value=RotationOutcome.PUBLISHED)

        def _soon(expression, after):
            return after + timedelta(milliseconds=10)

        async def _inner():
            scheduler = _make_scheduler(runner)
            with patch.object(rotation_service, "next_fire", side_effect=_soon):
                scheduler.schedule(GUILD)
                await asyncio.sleep(0.1)
                await scheduler.stop()

        run_async(_inner())
        assert runner.await_count >= 1
        runner.assert_awaited_with(GUILD)


class TestSchedulerFire:
    def test_reset_failure_queued_then_cleared(self):
        runner = AsyncMock(side_effect=[
            RotationOutcome.RESET_FAILED, RotationOutcome.PUBLISHED,
        ])
        scheduler = _make_scheduler(runner)

        assert run_async(scheduler.fire(GUILD)) is RotationOutcome.RESET_FAILED
        assert scheduler.pending_resets == {GUILD}

        assert run_async(scheduler.fire(GUILD)) is RotationOutcome.PUBLISHED
        assert scheduler.pending_resets == set()

    def test_runner_exception_is_contained(self):
        runner = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = _make_scheduler(runner)
        assert run_async(scheduler.fire(GUILD)) is None
        assert scheduler.pending_resets == set()

    def test_retry_pending_resets(self):
        scheduler = _make_scheduler()
        scheduler.pending_resets.update({1, 2})
        reset = AsyncMock(side_effect=[
            StorageFailure("reset_weekly", {"guild_id": 1}), 4,
        ])

        assert run_async(scheduler.retry_pending_resets(reset)) == 1
        assert scheduler.pending_resets == {1}


# ===========================================================================
# Test: set_rotation_schedule
# ===========================================================================
class TestSetRotationSchedule:
    def test_persists_and_installs(self, engine):
        async def _inner():
            scheduler = _make_scheduler()
            active = await set_rotation_schedule(engine, scheduler, GUILD, " 0  9 * * 1 ")
            assert active == "0 9 * * 1"
            assert scheduler.active_expression(GUILD) == "0 9 * * 1"
            await scheduler.stop()
        run_async(_inner())
        assert get_guild_config(engine, GUILD).rotation_schedule == "0 9 * * 1"

    def test_clear_falls_back_to_default(self, engine):
        upsert_guild_config(engine, GUILD, rotation_schedule="0 9 * * 1")

        async def _inner():
            scheduler = _make_scheduler()
            active = await set_rotation_schedule(engine, scheduler, GUILD, None)
            await scheduler.stop()
            return active

        assert run_async(_inner()) == "0 0 * * 0"
        assert get_guild_config(engine, GUILD).rotation_schedule is None

    def test_invalid_expression_changes_nothing(self, engine):
        upsert_guild_config(engine, GUILD, rotation_schedule="0 9 * * 1")

        async def _inner():
            scheduler = _make_scheduler()
            scheduler.schedule(GUILD, "0 9 * * 1")
            with pytest.raises(InvalidScheduleExpression):
                await set_rotation_schedule(engine, scheduler, GUILD, "99 * * * *")
            assert scheduler.active_expression(GUILD) == "0 9 * * 1"
            await scheduler.stop()

        run_async(_inner())
        assert get_guild_config(engine, GUILD).rotation_schedule == "0 9 * * 1"

    def test_never_firing_expression_keeps_old_timer(self, engine):
        upsert_guild_config(engine, GUILD, rotation_schedule="0 9 * * 1")

        async def _inner():
            scheduler = _make_scheduler()
            scheduler.schedule(GUILD, "0 9 * * 1")
            old_task = scheduler._tasks[GUILD]
            with pytest.raises(InvalidScheduleExpression):
                await set_rotation_schedule(engine, scheduler, GUILD, "0 0 30 2 *")
            await asyncio.sleep(0.01)
            assert scheduler._tasks[GUILD] is old_task
            assert not old_task.done()
            assert scheduler.next_run(GUILD) is not None
            await scheduler.stop()

        run_async(_inner())
        assert get_guild_config(engine, GUILD).rotation_schedule == "0 9 * * 1"
