"""
meritboard.bot.cogs.admin — Admin Slash Commands
=================================================

Guild configuration, all gated on Administrator permission:

- /set-mod-role, /set-leaderboard-channel, /set-welcome-channel
- /set-welcome-message, /set-welcome-image
- /report-recipients — add, remove or list DM report recipients
- /set-rotation-schedule — cron expression for the weekly rotation
- /rates — view or retune passive-message rates
- /correct-points — set a member's totals explicitly
- /publish-leaderboard — post the weekly leaderboard now (no reset)
- /show-config — current settings

Each setter only changes its own field; everything else stays as stored.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from meritboard.bot.checks import handle_command_error, is_admin
from meritboard.constants import week_number
from meritboard.database.engine import run_db
from meritboard.services.embeds import build_leaderboard_embed, build_rates_embed
from meritboard.services.guild_config_service import (
    add_report_recipient,
    get_guild_config,
    list_report_recipients,
    remove_report_recipient,
    upsert_guild_config,
)
from meritboard.services.ledger_service import correct_points
from meritboard.services.rank_service import RankField, top_n
from meritboard.services.rotation_service import set_rotation_schedule
from meritboard.services.settings_service import reconfigure_rates

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

logger = logging.getLogger(__name__)


def _channel(channel_id: int | None) -> str:
    return f"<#{channel_id}>" if channel_id else "*not set*"


class Admin(commands.Cog, name="Admin"):
    """Guild configuration for MeritBoard."""

    def __init__(self, bot: MeritBot) -> None:
        self.bot = bot

    async def _set(self, interaction: discord.Interaction, label: str, **fields) -> None:
        await run_db(upsert_guild_config, self.bot.engine, interaction.guild_id or 0, **fields)
        await interaction.response.send_message(f"✅ {label}", ephemeral=True)

    # -------------------------------------------------------------------
    # Roles & channels
    # -------------------------------------------------------------------
    @app_commands.command(name="set-mod-role", description="Set the moderator role.")
    @app_commands.describe(role="Members with this role earn merit points")
    @app_commands.guild_only()
    @is_admin()
    async def set_mod_role(self, interaction: discord.Interaction, role: discord.Role) -> None:
        await self._set(interaction, f"Moderator role set to {role.mention}.", mod_role_id=role.id)

    @app_commands.command(
        name="set-leaderboard-channel",
        description="Set where the weekly leaderboard is published.",
    )
    @app_commands.guild_only()
    @is_admin()
    async def set_leaderboard_channel(
        self, interaction: discord.Interaction, channel: discord.TextChannel,
    ) -> None:
        await self._set(
            interaction, f"Leaderboard channel set to {channel.mention}.",
            leaderboard_channel_id=channel.id,
        )

    @app_commands.command(name="set-welcome-channel", description="Set where new members are greeted.")
    @app_commands.guild_only()
    @is_admin()
    async def set_welcome_channel(
        self, interaction: discord.Interaction, channel: discord.TextChannel,
    ) -> None:
        await self._set(
            interaction, f"Welcome channel set to {channel.mention}.",
            welcome_channel_id=channel.id,
        )

    # -------------------------------------------------------------------
    # Welcome template
    # -------------------------------------------------------------------
    @app_commands.command(name="set-welcome-message", description="Set the welcome title and body.")
    @app_commands.describe(
        title="Embed title; placeholders: {user} {server} {memberCount}",
        content="Embed body; same placeholders",
    )
    @app_commands.guild_only()
    @is_admin()
    async def set_welcome_message(
        self,
        interaction: discord.Interaction,
        title: app_commands.Range[str, 1, 256],
        content: app_commands.Range[str, 1, 4000],
    ) -> None:
        await self._set(
            interaction, "Welcome message saved. Try it with `/welcome-test`.",
            welcome_title=title, welcome_content=content,
        )

    @app_commands.command(name="set-welcome-image", description="Set the welcome image URL.")
    @app_commands.describe(url="Image URL (https://…); leave empty to remove")
    @app_commands.guild_only()
    @is_admin()
    async def set_welcome_image(
        self, interaction: discord.Interaction, url: str | None = None,
    ) -> None:
        if url and not url.startswith(("http://", "https://")):
            await interaction.response.send_message(
                "❌ The image must be an http(s) URL.", ephemeral=True,
            )
            return
        label = "Welcome image saved." if url else "Welcome image removed."
        await self._set(interaction, label, welcome_image=url)

    # -------------------------------------------------------------------
    # /report-recipients
    # -------------------------------------------------------------------
    @app_commands.command(name="report-recipients", description="Manage who receives action reports.")
    @app_commands.describe(action="What to do", member="The member to add or remove")
    @app_commands.choices(action=[
        app_commands.Choice(name="Add", value="add"),
        app_commands.Choice(name="Remove", value="remove"),
        app_commands.Choice(name="List", value="list"),
    ])
    @app_commands.guild_only()
    @is_admin()
    async def report_recipients(
        self,
        interaction: discord.Interaction,
        action: str,
        member: discord.Member | None = None,
    ) -> None:
        guild_id = interaction.guild_id or 0
        if action == "list":
            ids = await run_db(list_report_recipients, self.bot.engine, guild_id)
            text = "\n".join(f"• <@{uid}>" for uid in ids) or "*Nobody yet.*"
            await interaction.response.send_message(
                f"\U0001f4ec **Report recipients**\n{text}", ephemeral=True,
            )
            return

        if member is None:
            await interaction.response.send_message("❌ Pick a member.", ephemeral=True)
            return

        if action == "add":
            changed = await run_db(add_report_recipient, self.bot.engine, guild_id, member.id)
            msg = "will now receive reports" if changed else "already receives reports"
        else:
            changed = await run_db(remove_report_recipient, self.bot.engine, guild_id, member.id)
            msg = "will no longer receive reports" if changed else "wasn't receiving reports"
        await interaction.response.send_message(
            f"{'✅' if changed else 'ℹ️'} {member.mention} {msg}.", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /set-rotation-schedule
    # -------------------------------------------------------------------
    @app_commands.command(
        name="set-rotation-schedule",
        description="Set when the weekly leaderboard is published and reset.",
    )
    @app_commands.describe(
        expression="Cron: minute hour day-of-month month day-of-week (empty = default)",
    )
    @app_commands.guild_only()
    @is_admin()
    async def set_rotation(
        self, interaction: discord.Interaction, expression: str | None = None,
    ) -> None:
        guild_id = interaction.guild_id or 0
        active = await set_rotation_schedule(
            self.bot.engine, self.bot.scheduler, guild_id, expression,
        )
        next_run = self.bot.scheduler.next_run(guild_id)
        when = discord.utils.format_dt(next_run, style="F") if next_run else "unknown"
        await interaction.response.send_message(
            f"✅ Rotation schedule: `{active}`\nNext run: {when}", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /rates
    # -------------------------------------------------------------------
    @app_commands.command(name="rates", description="View or change passive-message rates.")
    @app_commands.describe(
        points_per_message="Base points per qualifying message",
        multiplier="Multiplier applied to the base points",
        cooldown_ms="Minimum time between credited messages, in milliseconds",
    )
    @app_commands.guild_only()
    @is_admin()
    async def rates(
        self,
        interaction: discord.Interaction,
        points_per_message: int | None = None,
        multiplier: float | None = None,
        cooldown_ms: int | None = None,
    ) -> None:
        if points_per_message is None and multiplier is None and cooldown_ms is None:
            current = self.bot.catalog.rates
        else:
            current = await run_db(
                reconfigure_rates,
                self.bot.engine,
                self.bot.catalog,
                points_per_message=points_per_message,
                multiplier=multiplier,
                cooldown_ms=cooldown_ms,
            )
            logger.info("Rates changed by %s", interaction.user.id)
        await interaction.response.send_message(embed=build_rates_embed(current), ephemeral=True)

    # -------------------------------------------------------------------
    # /correct-points
    # -------------------------------------------------------------------
    @app_commands.command(name="correct-points", description="Set a member's merit points explicitly.")
    @app_commands.describe(
        member="Whose points to correct",
        total="New all-time total",
        weekly="New weekly total",
        reason="Why the correction is needed",
    )
    @app_commands.guild_only()
    @is_admin()
    async def correct(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        total: int | None = None,
        weekly: int | None = None,
        reason: str = "",
    ) -> None:
        if total is None and weekly is None:
            await interaction.response.send_message(
                "❌ Give a new total, a new weekly value, or both.", ephemeral=True,
            )
            return
        account = await run_db(
            correct_points,
            self.bot.engine,
            member.id,
            interaction.guild_id or 0,
            admin_id=interaction.user.id,
            week=week_number(),
            total=total,
            weekly=weekly,
            reason=reason,
        )
        await interaction.response.send_message(
            f"✅ {member.mention}: total **{account.total_points}**, "
            f"this week **{account.weekly_points}**.",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /publish-leaderboard
    # -------------------------------------------------------------------
    @app_commands.command(
        name="publish-leaderboard",
        description="Post this week's leaderboard now (weekly points are not reset).",
    )
    @app_commands.describe(channel="Where to post (defaults to the leaderboard channel)")
    @app_commands.guild_only()
    @is_admin()
    async def publish_leaderboard(
        self, interaction: discord.Interaction, channel: discord.TextChannel | None = None,
    ) -> None:
        guild_id = interaction.guild_id or 0
        if channel is None:
            config = await run_db(get_guild_config, self.bot.engine, guild_id)
            resolved = (
                interaction.guild.get_channel(config.leaderboard_channel_id)
                if interaction.guild and config.leaderboard_channel_id else None
            )
        else:
            resolved = channel
        if not isinstance(resolved, discord.TextChannel):
            await interaction.response.send_message(
                "❌ No leaderboard channel configured. Pass a channel or use "
                "`/set-leaderboard-channel`.",
                ephemeral=True,
            )
            return

        rows = await run_db(
            top_n, self.bot.engine, guild_id, RankField.WEEKLY, self.bot.cfg.leaderboard_size,
        )
        try:
            await resolved.send(embed=build_leaderboard_embed(
                rows,
                title=f"\U0001f3c6 Weekly leaderboard — week {week_number()}",
                community_name=self.bot.cfg.community_name,
            ))
        except discord.HTTPException as exc:
            logger.warning(
                "Could not publish leaderboard in #%s (guild %d): %s",
                resolved.name, guild_id, exc,
                extra={"guild_id": guild_id, "channel_id": resolved.id},
            )
            await interaction.response.send_message(
                f"❌ I can't post in {resolved.mention}. Check my permissions there.",
                ephemeral=True,
            )
            return
        await interaction.response.send_message(
            f"✅ Leaderboard posted in {resolved.mention}.", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /show-config
    # -------------------------------------------------------------------
    @app_commands.command(name="show-config", description="Show this server's MeritBoard settings.")
    @app_commands.guild_only()
    @is_admin()
    async def show_config(self, interaction: discord.Interaction) -> None:
        guild_id = interaction.guild_id or 0
        config = await run_db(get_guild_config, self.bot.engine, guild_id)
        recipients = await run_db(list_report_recipients, self.bot.engine, guild_id)

        embed = discord.Embed(title="⚙️ MeritBoard configuration", color=discord.Color.dark_red())
        embed.add_field(
            name="Moderator role",
            value=f"<@&{config.mod_role_id}>" if config.mod_role_id else "*not set*",
            inline=True,
        )
        embed.add_field(name="Leaderboard", value=_channel(config.leaderboard_channel_id), inline=True)
        embed.add_field(name="Welcome", value=_channel(config.welcome_channel_id), inline=True)
        embed.add_field(
            name="Rotation",
            value=f"`{self.bot.scheduler.active_expression(guild_id) or self.bot.scheduler.default_expression}`",
            inline=True,
        )
        embed.add_field(name="Report recipients", value=str(len(recipients)), inline=True)
        embed.add_field(
            name="Welcome message",
            value="custom" if config.welcome_title or config.welcome_content else "default",
            inline=True,
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(
            interaction, error, denied="🔒 You need Administrator permission to use this command.",
        )


async def setup(bot: MeritBot) -> None:
    await bot.add_cog(Admin(bot))
