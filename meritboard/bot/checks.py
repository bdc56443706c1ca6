"""
meritboard.bot.checks — Permission gates & error replies
=========================================================

- :func:`is_moderator` — the guild's configured moderator role, or
  Administrator permission.
- :func:`is_admin` — Administrator permission.
- :func:`handle_command_error` — shared ``cog_app_command_error`` body that
  turns check failures and :class:`MeritError` into ephemeral replies.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from meritboard.database.engine import run_db
from meritboard.errors import MeritError
from meritboard.services.guild_config_service import get_guild_config

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

logger = logging.getLogger(__name__)


def _is_administrator(user: discord.abc.User) -> bool:
    perms = getattr(user, "guild_permissions", None)
    return bool(perms and perms.administrator)


async def member_is_moderator(bot: MeritBot, member: discord.abc.User, guild_id: int) -> bool:
    """True if *member* holds the guild's moderator role or is an administrator."""
    if _is_administrator(member):
        return True
    roles = getattr(member, "roles", None)
    if not roles:
        return False
    config = await run_db(get_guild_config, bot.engine, guild_id)
    if config.mod_role_id is None:
        return False
    return any(role.id == config.mod_role_id for role in roles)


def is_moderator():
    """Decorator: moderator role or Administrator permission."""
    async def predicate(interaction: discord.Interaction) -> bool:
        if interaction.guild_id is None:
            return False
        bot: MeritBot = interaction.client  # type: ignore[assignment]
        return await member_is_moderator(bot, interaction.user, interaction.guild_id)
    return app_commands.check(predicate)


def is_admin():
    """Decorator: Administrator permission."""
    async def predicate(interaction: discord.Interaction) -> bool:
        return interaction.guild_id is not None and _is_administrator(interaction.user)
    return app_commands.check(predicate)


async def send_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Reply or follow up, whichever is still possible."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


async def handle_command_error(
    interaction: discord.Interaction,
    error: app_commands.AppCommandError,
    *,
    denied: str,
) -> None:
    """Translate *error* into a user-facing reply, re-raising anything unknown."""
    if isinstance(error, app_commands.CheckFailure):
        await send_ephemeral(interaction, denied)
        return

    original = getattr(error, "original", error)
    if isinstance(original, MeritError):
        logger.info(
            "Command %s rejected: %s",
            interaction.command.name if interaction.command else "?", original.message,
        )
        await send_ephemeral(interaction, f"❌ {original.user_message()}")
        return

    raise error
