"""
meritboard.bot.cogs.membership — Welcome Messages
==================================================

Posts the guild's welcome embed when a member joins.  Requires the
GUILD_MEMBERS privileged intent.

- on_member_join — render the template, post to the welcome channel
  (or the best fallback channel).
- /welcome-test — admins preview the rendering on themselves.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from meritboard.bot.checks import handle_command_error, is_admin
from meritboard.database.engine import run_db
from meritboard.services.embeds import build_welcome_embed
from meritboard.services.guild_config_service import GuildSettings, get_guild_config
from meritboard.services.welcome_service import render_welcome, resolve_welcome_channel

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Greets new members."""

    def __init__(self, bot: MeritBot) -> None:
        self.bot = bot

    def _welcome_embed(self, member: discord.Member, config: GuildSettings) -> discord.Embed:
        message = render_welcome(
            config,
            user_name=member.display_name,
            user_mention=member.mention,
            server=member.guild.name,
            member_count=member.guild.member_count or 0,
        )
        return build_welcome_embed(
            message,
            avatar_url=member.display_avatar.url,
            icon_url=member.guild.icon.url if member.guild.icon else None,
            community_name=self.bot.cfg.community_name,
        )

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        try:
            if member.bot:
                return

            config = await run_db(get_guild_config, self.bot.engine, member.guild.id)
            channel = resolve_welcome_channel(member.guild, config.welcome_channel_id)
            if channel is None:
                logger.warning("No writable channel to welcome %d in guild %d",
                               member.id, member.guild.id)
                return

            await channel.send(
                content=member.mention,
                embed=self._welcome_embed(member, config),
                allowed_mentions=discord.AllowedMentions(users=[member]),
            )
            logger.info("Welcomed %s (ID: %d) in #%s", member.display_name, member.id, channel.name)

        except Exception:
            logger.exception(
                "Error processing member_join for %s", member.id,
                extra={"event_type": "member_join", "user_id": member.id},
            )

    @app_commands.command(name="welcome-test", description="Preview the welcome message on yourself.")
    @app_commands.guild_only()
    @is_admin()
    async def welcome_test(self, interaction: discord.Interaction) -> None:
        member = interaction.user
        if not isinstance(member, discord.Member):
            return
        config = await run_db(get_guild_config, self.bot.engine, member.guild.id)
        channel = resolve_welcome_channel(member.guild, config.welcome_channel_id)
        where = channel.mention if channel else "*no writable channel*"
        await interaction.response.send_message(
            content=f"Preview (would be posted in {where}):",
            embed=self._welcome_embed(member, config),
            ephemeral=True,
        )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(
            interaction, error, denied="🔒 You need Administrator permission to use this command.",
        )


async def setup(bot: MeritBot) -> None:
    await bot.add_cog(Membership(bot))
