"""
meritboard.services.welcome_service — Welcome Message Rendering
================================================================

Renders the guild's welcome template and picks the channel to post it in.
Placeholders ``{user}``, ``{server}`` and ``{memberCount}`` are replaced
everywhere they appear; unknown braces are left alone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import discord

from meritboard.constants import (
    DEFAULT_WELCOME_CONTENT,
    DEFAULT_WELCOME_TITLE,
    WELCOME_CHANNEL_HINTS,
)
from meritboard.services.guild_config_service import GuildSettings


@dataclass(frozen=True, slots=True)
class WelcomeMessage:
    title: str
    content: str
    image_url: str | None = None


_PLACEHOLDER = re.compile(r"\{(user|server|memberCount)\}")


def fill_placeholders(template: str, *, user: str, server: str, member_count: int) -> str:
    values = {"user": user, "server": server, "memberCount": str(member_count)}
    # One pass, so substituted text is never expanded again
    return _PLACEHOLDER.sub(lambda m: values[m.group(1)], template)


def render_welcome(
    config: GuildSettings,
    *,
    user_name: str,
    user_mention: str,
    server: str,
    member_count: int,
) -> WelcomeMessage:
    """Fill the guild's templates (or the defaults).

    The title gets the plain user name since embed titles can't render
    mentions; the body gets the mention.
    """
    title = fill_placeholders(
        config.welcome_title or DEFAULT_WELCOME_TITLE,
        user=user_name, server=server, member_count=member_count,
    )
    content = fill_placeholders(
        config.welcome_content or DEFAULT_WELCOME_CONTENT,
        user=user_mention, server=server, member_count=member_count,
    )
    return WelcomeMessage(title=title, content=content, image_url=config.welcome_image)


def _can_send(channel: discord.abc.GuildChannel, me: discord.Member) -> bool:
    return channel.permissions_for(me).send_messages


def resolve_welcome_channel(
    guild: discord.Guild, configured_id: int | None,
) -> discord.TextChannel | None:
    """Configured channel, else a welcome-ish one, else any writable text channel."""
    me = guild.me
    if configured_id is not None:
        channel = guild.get_channel(configured_id)
        if isinstance(channel, discord.TextChannel) and _can_send(channel, me):
            return channel

    writable = [ch for ch in guild.text_channels if _can_send(ch, me)]
    for hint in WELCOME_CHANNEL_HINTS:
        for ch in writable:
            if hint in ch.name.lower():
                return ch
    return writable[0] if writable else None
