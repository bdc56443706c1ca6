"""
meritboard.services.rotation_service — Weekly Rotation Scheduler
=================================================================

Publishes each guild's weekly leaderboard on its own cron schedule and
then zeroes weekly points.

Rotation for one guild (:func:`run_rotation`):

1. No leaderboard channel configured → ``SKIPPED`` (silently).
2. Read the weekly top-N from the rank engine.
3. Publish.  Failure → ``PUBLISH_FAILED``; nothing is reset, the next
   tick publishes again.
4. Reset weekly points.  Failure → ``RESET_FAILED``; the scheduler queues
   the guild in :attr:`RotationScheduler.pending_resets` and a background
   loop retries the reset (safe, reset is idempotent).

:class:`RotationScheduler` keeps one ``asyncio.Task`` per guild so a slow
publication in one guild never delays another.  Replacing a schedule is
validate-then-swap: a bad expression leaves the running timer alone.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy import Engine

from meritboard.database.engine import run_db
from meritboard.engine.schedule import next_fire, resolve_timezone, validate_schedule
from meritboard.errors import StorageFailure
from meritboard.services.guild_config_service import get_guild_config, upsert_guild_config
from meritboard.services.ledger_service import reset_weekly
from meritboard.services.rank_service import LeaderboardRow, RankField, top_n

logger = logging.getLogger(__name__)

# (guild_id, channel_id, rows) → awaitable; raises on failure
Publisher = Callable[[int, int, list[LeaderboardRow]], Awaitable[None]]


class RotationOutcome(enum.StrEnum):
    SKIPPED = "skipped"
    PUBLISHED = "published"
    PUBLISH_FAILED = "publish_failed"
    RESET_FAILED = "reset_failed"


Runner = Callable[[int], Awaitable[RotationOutcome]]


async def run_rotation(
    engine: Engine,
    guild_id: int,
    publisher: Publisher,
    size: int = 10,
) -> RotationOutcome:
    """Publish the weekly top-*size* for the guild, then reset weekly points."""
    config = await run_db(get_guild_config, engine, guild_id)
    if config.leaderboard_channel_id is None:
        logger.debug("Rotation skipped for guild %d: no leaderboard channel", guild_id)
        return RotationOutcome.SKIPPED

    rows = await run_db(top_n, engine, guild_id, RankField.WEEKLY, size)

    try:
        await publisher(guild_id, config.leaderboard_channel_id, rows)
    except Exception:
        logger.exception(
            "Leaderboard publication failed for guild %d", guild_id,
            extra={"task": "rotation", "guild_id": guild_id},
        )
        return RotationOutcome.PUBLISH_FAILED

    try:
        await run_db(reset_weekly, engine, guild_id)
    except StorageFailure:
        logger.warning("Weekly reset failed for guild %d; queued for retry", guild_id)
        return RotationOutcome.RESET_FAILED

    logger.info("Rotation complete for guild %d (%d rows published)", guild_id, len(rows))
    return RotationOutcome.PUBLISHED


class RotationScheduler:
    """One long-lived timer task per guild.

    Parameters
    ----------
    runner:
        Coroutine function ``runner(guild_id) -> RotationOutcome`` invoked
        on every firing (normally a bound :func:`run_rotation`).
    default_expression:
        Cron expression used when a guild has none stored.
    timezone:
        IANA zone the expressions are evaluated in.
    """

    def __init__(
        self,
        runner: Runner,
        *,
        default_expression: str,
        timezone: str = "UTC",
    ) -> None:
        self._runner = runner
        self.default_expression = validate_schedule(default_expression)
        self._tz = resolve_timezone(timezone)
        self._tasks: dict[int, asyncio.Task] = {}
        self._expressions: dict[int, str] = {}
        self.pending_resets: set[int] = set()

    # -------------------------------------------------------------------
    # Timer management
    # -------------------------------------------------------------------
    def schedule(self, guild_id: int, expression: str | None = None) -> str:
        """Install (or replace) the guild's timer.  Returns the active expression.

        Raises :class:`~meritboard.errors.InvalidScheduleExpression` without
        touching the current timer.
        """
        normalised = validate_schedule(expression or self.default_expression)

        old = self._tasks.pop(guild_id, None)
        if old is not None:
            old.cancel()

        self._expressions[guild_id] = normalised
        self._tasks[guild_id] = asyncio.create_task(
            self._timer(guild_id, normalised), name=f"rotation-{guild_id}",
        )
        logger.info("Rotation for guild %d scheduled at %r", guild_id, normalised)
        return normalised

    def unschedule(self, guild_id: int) -> bool:
        """Cancel the guild's timer.  Returns False if none was running."""
        self._expressions.pop(guild_id, None)
        task = self._tasks.pop(guild_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def active_expression(self, guild_id: int) -> str | None:
        return self._expressions.get(guild_id)

    def scheduled_guilds(self) -> list[int]:
        return sorted(self._tasks)

    def next_run(self, guild_id: int) -> datetime | None:
        """When the guild's timer fires next, in the scheduler's timezone."""
        expression = self._expressions.get(guild_id)
        if expression is None:
            return None
        return next_fire(expression, datetime.now(self._tz))

    async def stop(self) -> None:
        """Cancel every timer and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._expressions.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------
    # Firing
    # -------------------------------------------------------------------
    async def _timer(self, guild_id: int, expression: str) -> None:
        last: datetime | None = None
        while True:
            now = datetime.now(self._tz)
            # Never fire the same slot twice if the sleep wakes a little early
            anchor = now if last is None or now > last else last
            fire_at = next_fire(expression, anchor)
            await asyncio.sleep(max((fire_at - now).total_seconds(), 0.0))
            last = fire_at
            await self.fire(guild_id)

    async def fire(self, guild_id: int) -> RotationOutcome | None:
        """Run one rotation for the guild and track reset failures."""
        try:
            outcome = await self._runner(guild_id)
        except Exception:
            logger.exception(
                "Rotation failed for guild %d", guild_id,
                extra={"task": "rotation", "guild_id": guild_id},
            )
            return None

        if outcome is RotationOutcome.RESET_FAILED:
            self.pending_resets.add(guild_id)
        elif outcome is RotationOutcome.PUBLISHED:
            self.pending_resets.discard(guild_id)
        return outcome

    async def retry_pending_resets(
        self, reset: Callable[[int], Awaitable[int]],
    ) -> int:
        """Retry queued weekly resets.  Returns how many succeeded."""
        done = 0
        for guild_id in sorted(self.pending_resets):
            try:
                await reset(guild_id)
            except StorageFailure:
                logger.warning("Reset retry failed for guild %d", guild_id)
                continue
            self.pending_resets.discard(guild_id)
            done += 1
        if done:
            logger.info("Recovered %d pending weekly resets", done)
        return done


async def set_rotation_schedule(
    engine: Engine,
    scheduler: RotationScheduler,
    guild_id: int,
    expression: str | None,
) -> str:
    """Validate, persist and install a guild's rotation schedule.

    ``None`` clears the stored expression and falls back to the default.
    Nothing is persisted or swapped if the expression is invalid.
    """
    normalised = validate_schedule(expression) if expression else None
    await run_db(upsert_guild_config, engine, guild_id, rotation_schedule=normalised)
    return scheduler.schedule(guild_id, normalised)
