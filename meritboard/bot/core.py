"""
meritboard.bot.core — Bot Instance & Cog Loader
================================================

Defines :class:`MeritBot`, a ``commands.Bot`` subclass that:

1. Carries the shared state every cog reads through ``self.bot``: config,
   DB engine, action catalog, pending-sanction accumulator, rotation
   scheduler and component router.
2. Loads every cog in ``meritboard/bot/cogs/``.
3. Syncs the slash-command tree on start-up (guild-scoped when
   ``DEV_GUILD_ID`` is set, global otherwise).
4. Installs one rotation timer per guild and keeps them in step with
   guild joins and removals.
5. Routes button interactions through the :class:`ComponentRouter`.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from meritboard.bot.checks import send_ephemeral
from meritboard.bot.router import ComponentRouter
from meritboard.config import MeritConfig
from meritboard.constants import week_number
from meritboard.database.engine import run_db
from meritboard.engine.catalog import ActionCatalog, ActionKind
from meritboard.engine.pending import PendingSanctionAccumulator
from meritboard.errors import InvalidScheduleExpression, MeritError
from meritboard.services.embeds import build_leaderboard_embed, build_report_embed
from meritboard.services.guild_config_service import get_guild_config
from meritboard.services.rank_service import LeaderboardRow
from meritboard.services.report_service import DeliveryReport, deliver_reports, make_dm_sender
from meritboard.services.rotation_service import (
    RotationOutcome,
    RotationScheduler,
    run_rotation,
)

logger = logging.getLogger(__name__)

EXTENSIONS: list[str] = [
    "meritboard.bot.cogs.moderation",
    "meritboard.bot.cogs.social",
    "meritboard.bot.cogs.membership",
    "meritboard.bot.cogs.meta",
    "meritboard.bot.cogs.admin",
    "meritboard.bot.cogs.tasks",
]


class MeritBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`MeritConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine`.
    catalog:
        The :class:`ActionCatalog`, with rates already loaded from the DB.
    """

    def __init__(self, cfg: MeritConfig, engine: Engine, catalog: ActionCatalog) -> None:
        intents = discord.Intents.default()
        intents.members = True            # Privileged: joins and moderator roles
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.community_name} — moderator merit points",
        )

        self.cfg = cfg
        self.engine = engine
        self.catalog = catalog
        self.accumulator = PendingSanctionAccumulator(
            catalog, ttl_seconds=cfg.pending_ttl_seconds,
        )
        self.router = ComponentRouter()
        self.scheduler = RotationScheduler(
            self.rotate_guild,
            default_expression=cfg.default_rotation_schedule,
            timezone=cfg.timezone,
        )
        self.report_sender = make_dm_sender(self)
        self._timers_installed = False

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all cog extensions; one broken cog shouldn't stop the rest."""
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        # on_ready fires again after reconnects; timers survive those
        if not self._timers_installed:
            for guild in self.guilds:
                await self.install_rotation(guild.id)
            self._timers_installed = True

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await self.scheduler.stop()
        await super().close()

    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self.install_rotation(guild.id)

    async def on_guild_remove(self, guild: discord.Guild) -> None:
        self.scheduler.unschedule(guild.id)
        self.accumulator.drop_guild(guild.id)

    async def on_interaction(self, interaction: discord.Interaction) -> None:
        """Send component clicks to the router."""
        if interaction.type is not discord.InteractionType.component:
            return
        try:
            await self.router.dispatch(interaction)
        except MeritError as exc:
            await send_ephemeral(interaction, f"❌ {exc.user_message()}")
        except Exception:
            logger.exception(
                "Error handling component %s",
                (interaction.data or {}).get("custom_id"),
                extra={"event_type": "component", "user_id": interaction.user.id},
            )

    # -----------------------------------------------------------------------
    # Rotation
    # -----------------------------------------------------------------------
    async def install_rotation(self, guild_id: int) -> None:
        """Start the guild's timer from its stored (or the default) schedule."""
        try:
            config = await run_db(get_guild_config, self.engine, guild_id)
            self.scheduler.schedule(guild_id, config.rotation_schedule)
        except InvalidScheduleExpression as exc:
            logger.warning(
                "Stored schedule for guild %d is invalid (%s); using default",
                guild_id, exc.reason,
            )
            self.scheduler.schedule(guild_id)
        except MeritError:
            logger.exception("Could not install rotation for guild %d", guild_id)

    async def publish_leaderboard(
        self,
        guild_id: int,
        channel_id: int,
        rows: list[LeaderboardRow],
    ) -> None:
        """Render and send the weekly leaderboard.  Raises on failure."""
        channel = self.get_channel(channel_id) or await self.fetch_channel(channel_id)
        embed = build_leaderboard_embed(
            rows,
            title=f"\U0001f3c6 Weekly leaderboard — week {week_number()}",
            community_name=self.cfg.community_name,
        )
        await channel.send(embed=embed)  # type: ignore[union-attr]

    async def rotate_guild(self, guild_id: int) -> RotationOutcome:
        return await run_rotation(
            self.engine, guild_id, self.publish_leaderboard, self.cfg.leaderboard_size,
        )

    # -----------------------------------------------------------------------
    # Reports
    # -----------------------------------------------------------------------
    async def report_actions(
        self,
        guild: discord.Guild,
        *,
        actor_id: int,
        target_id: int | None,
        breakdown: list[tuple[ActionKind, int]],
        details: str | None = None,
    ) -> DeliveryReport | None:
        """DM a report of committed actions to the guild's recipients."""
        embed = build_report_embed(
            self.catalog,
            guild_name=guild.name,
            actor_id=actor_id,
            target_id=target_id,
            breakdown=breakdown,
            details=details,
            timestamp=discord.utils.utcnow(),
        )
        try:
            report = await deliver_reports(self.engine, guild.id, self.report_sender, embed)
        except MeritError:
            logger.exception("Report fan-out failed for guild %d", guild.id)
            return None
        if report.failed:
            logger.info(
                "Reports for guild %d: %d delivered, %d failed, %d pruned",
                guild.id, len(report.delivered), len(report.failed), len(report.pruned),
            )
        return report
