"""
meritboard.bot.cogs.meta — Stats, Leaderboard & History
========================================================

Read-only commands:
- /merit — your (or another member's) total and weekly points with ranks
- /leaderboard — top members by total or weekly points
- /history — recent recorded actions (moderators only)
"""

from __future__ import annotations

from datetime import UTC
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from meritboard.bot.checks import handle_command_error, is_moderator
from meritboard.database.engine import run_db
from meritboard.services.embeds import build_leaderboard_embed, build_stats_embed
from meritboard.services.ledger_service import get_account, list_actions
from meritboard.services.rank_service import RankField, rank_of, top_n

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

_HISTORY_LIMIT = 15


class Meta(commands.Cog, name="Meta"):
    """Personal stats, leaderboards and action history."""

    def __init__(self, bot: MeritBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /merit
    # -------------------------------------------------------------------
    @app_commands.command(name="merit", description="View your (or another member's) merit points.")
    @app_commands.describe(member="The member to look up (defaults to you)")
    @app_commands.guild_only()
    async def merit(
        self, interaction: discord.Interaction, member: discord.Member | None = None,
    ) -> None:
        target = member or interaction.user
        guild_id = interaction.guild_id or 0

        account = await run_db(get_account, self.bot.engine, target.id, guild_id)
        if not account.exists:
            await interaction.response.send_message(
                f"\U0001f50d **{target.display_name}** hasn't earned any merit points yet.",
                ephemeral=True,
            )
            return

        total_rank = await run_db(rank_of, self.bot.engine, target.id, guild_id, RankField.TOTAL)
        weekly_rank = await run_db(rank_of, self.bot.engine, target.id, guild_id, RankField.WEEKLY)
        await interaction.response.send_message(embed=build_stats_embed(
            target.display_name,
            target.display_avatar.url,
            account,
            total_rank=total_rank,
            weekly_rank=weekly_rank,
        ))

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @app_commands.command(name="leaderboard", description="View the top moderators by merit points.")
    @app_commands.describe(scope="All-time total or this week")
    @app_commands.choices(scope=[
        app_commands.Choice(name="This week", value=RankField.WEEKLY.value),
        app_commands.Choice(name="All time", value=RankField.TOTAL.value),
    ])
    @app_commands.guild_only()
    async def leaderboard(
        self, interaction: discord.Interaction, scope: str = RankField.WEEKLY.value,
    ) -> None:
        field = RankField(scope)
        rows = await run_db(
            top_n, self.bot.engine, interaction.guild_id or 0, field, self.bot.cfg.leaderboard_size,
        )
        label = "this week" if field is RankField.WEEKLY else "all time"
        await interaction.response.send_message(embed=build_leaderboard_embed(
            rows,
            title=f"\U0001f3c6 Leaderboard — {label}",
            community_name=self.bot.cfg.community_name,
        ))

    # -------------------------------------------------------------------
    # /history
    # -------------------------------------------------------------------
    @app_commands.command(name="history", description="Recent recorded moderation actions.")
    @app_commands.describe(member="Only show actions by this moderator")
    @app_commands.guild_only()
    @is_moderator()
    async def history(
        self, interaction: discord.Interaction, member: discord.Member | None = None,
    ) -> None:
        rows = await run_db(
            list_actions,
            self.bot.engine,
            interaction.guild_id or 0,
            actor_id=member.id if member else None,
            limit=_HISTORY_LIMIT,
        )
        if not rows:
            await interaction.response.send_message("Nothing recorded yet.", ephemeral=True)
            return

        lines = []
        for r in rows:
            target = f" → <@{r.target_id}>" if r.target_id else ""
            when = ""
            if r.timestamp:
                # SQLite hands back naive datetimes; they are stored as UTC
                ts = r.timestamp if r.timestamp.tzinfo else r.timestamp.replace(tzinfo=UTC)
                when = discord.utils.format_dt(ts, style="R")
            lines.append(f"`{r.action_kind}` <@{r.actor_id}>{target} {r.points:+d} {when}")

        embed = discord.Embed(
            title="\U0001f4dc Recent actions",
            description="\n".join(lines),
            color=discord.Color.dark_red(),
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(
            interaction, error, denied="🔒 You need the moderator role to use this command.",
        )


async def setup(bot: MeritBot) -> None:
    await bot.add_cog(Meta(bot))
