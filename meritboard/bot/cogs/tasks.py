"""
meritboard.bot.cogs.tasks — Periodic Background Tasks
======================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Pending sweep** — every minute, drops sanction batches abandoned for
  longer than ``pending_ttl_seconds``.
- **Reset retry** — every five minutes, retries weekly resets that failed
  after a successful publication.

The rotation timers themselves are owned by ``RotationScheduler``, not by
this cog, because each guild has its own cron expression.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from meritboard.database.engine import run_db
from meritboard.services.ledger_service import reset_weekly

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: MeritBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.pending_sweep_loop.start()
        self.reset_retry_loop.start()

    async def cog_unload(self) -> None:
        self.pending_sweep_loop.cancel()
        self.reset_retry_loop.cancel()

    # -------------------------------------------------------------------
    # Pending sweep — every minute
    # -------------------------------------------------------------------
    @tasks.loop(minutes=1)
    async def pending_sweep_loop(self):
        dropped = self.bot.accumulator.sweep()
        if dropped:
            logger.info("Dropped %d abandoned sanction batches", dropped)

    # -------------------------------------------------------------------
    # Reset retry — every 5 minutes
    # -------------------------------------------------------------------
    @tasks.loop(minutes=5)
    async def reset_retry_loop(self):
        """Retry weekly resets queued by a failed rotation."""
        if not self.bot.scheduler.pending_resets:
            return

        async def reset(guild_id: int) -> int:
            return await run_db(reset_weekly, self.bot.engine, guild_id)

        try:
            await self.bot.scheduler.retry_pending_resets(reset)
        except Exception:
            logger.exception("Reset retry task failed", extra={"task": "reset_retry"})

    @reset_retry_loop.before_loop
    async def _wait_reset_retry(self):
        await self.bot.wait_until_ready()


async def setup(bot: MeritBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
