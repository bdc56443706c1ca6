"""
meritboard.bot.cogs.social — Passive Message Merit
====================================================

Moderators earn a few points for simply being active in chat.

Pipeline:
1. on_message fires → gate checks (bot, DM, cooldown, moderator role)
2. Credit ``GlobalRates.passive_points()`` as a ``PASSIVE_MESSAGE`` action
   (runs on a background thread via run_db)

The rates (points, multiplier, cooldown) are read from the catalog on
every message, so ``/rates`` changes apply to the next message.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from meritboard.bot.checks import member_is_moderator
from meritboard.constants import week_number
from meritboard.database.engine import run_db
from meritboard.engine.catalog import ActionKind
from meritboard.services.ledger_service import apply_action

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

logger = logging.getLogger(__name__)


class Social(commands.Cog, name="Social"):
    """Awards passive merit points for moderator chat activity."""

    def __init__(self, bot: MeritBot) -> None:
        self.bot = bot
        # Per-user-per-guild cooldown: (guild_id, user_id) → timestamp
        self._cooldowns: dict[tuple[int, int], float] = {}

    async def cog_load(self) -> None:
        self._cleanup_cooldowns.start()

    async def cog_unload(self) -> None:
        self._cleanup_cooldowns.cancel()

    @tasks.loop(minutes=5)
    async def _cleanup_cooldowns(self) -> None:
        """Prune expired entries from the cooldown dict."""
        cutoff = time.monotonic() - self.bot.catalog.rates.cooldown_seconds
        before = len(self._cooldowns)
        self._cooldowns = {k: v for k, v in self._cooldowns.items() if v > cutoff}
        pruned = before - len(self._cooldowns)
        if pruned:
            logger.debug("Pruned %d expired cooldown entries", pruned)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id,
                message.author.id,
                extra={"event_type": "message", "user_id": message.author.id,
                       "message_id": message.id},
            )

    async def _handle_message(self, message: discord.Message) -> None:
        # Gate 1: Ignore bots
        if message.author.bot:
            return

        # Gate 2: Ignore DMs
        if message.guild is None:
            return

        # Gate 3: Cooldown
        rates = self.bot.catalog.rates
        points = rates.passive_points()
        if points <= 0:
            return
        now = time.monotonic()
        key = (message.guild.id, message.author.id)
        if now - self._cooldowns.get(key, float("-inf")) < rates.cooldown_seconds:
            return
        # Stamped before the role lookup: one lookup per cooldown per member
        self._cooldowns[key] = now

        # Gate 4: Moderators only
        if not await member_is_moderator(self.bot, message.author, message.guild.id):
            return

        account = await run_db(
            apply_action,
            self.bot.engine,
            message.author.id,
            message.guild.id,
            ActionKind.PASSIVE_MESSAGE,
            points,
            week_number(),
        )
        logger.debug(
            "Passive merit: %s +%d (total %d)",
            message.author.display_name, points, account.total_points,
        )


async def setup(bot: MeritBot) -> None:
    await bot.add_cog(Social(bot))
