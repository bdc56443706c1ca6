"""
meritboard.services.embeds — Discord embed builders
=====================================================

All embed construction lives here so cogs and services only need to
supply data — no layout concerns.
"""

from __future__ import annotations

from datetime import datetime

import discord

from meritboard.constants import EMBED_COLOR, POINTS_SHORT, rank_badge
from meritboard.engine.catalog import ActionCatalog, ActionKind, GlobalRates
from meritboard.services.ledger_service import AccountSnapshot
from meritboard.services.rank_service import LeaderboardRow
from meritboard.services.welcome_service import WelcomeMessage


def _color() -> discord.Color:
    return discord.Color(EMBED_COLOR)


def build_leaderboard_embed(
    rows: list[LeaderboardRow],
    *,
    title: str,
    community_name: str,
) -> discord.Embed:
    """Ranked list of ``<@user> — N MP`` lines."""
    if rows:
        lines = [
            f"{rank_badge(i)} <@{r.user_id}> — {r.value:,} {POINTS_SHORT}"
            for i, r in enumerate(rows, 1)
        ]
        description = "\n".join(lines)
    else:
        description = "*No merit points earned yet.*"

    embed = discord.Embed(title=title, description=description, color=_color())
    embed.set_footer(text=community_name)
    return embed


def build_stats_embed(
    display_name: str,
    avatar_url: str,
    account: AccountSnapshot,
    *,
    total_rank: int,
    weekly_rank: int,
) -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4ca {display_name}'s Merit",
        color=_color(),
    )
    embed.set_thumbnail(url=avatar_url)
    embed.add_field(
        name="Total", value=f"{account.total_points:,} {POINTS_SHORT} (#{total_rank})",
        inline=True,
    )
    embed.add_field(
        name="This week", value=f"{account.weekly_points:,} {POINTS_SHORT} (#{weekly_rank})",
        inline=True,
    )
    return embed


def build_sanction_panel_embed(
    catalog: ActionCatalog,
    target_id: int,
    selected: list[ActionKind],
) -> discord.Embed:
    """Panel shown while an operator picks sanctions against *target_id*."""
    embed = discord.Embed(
        title="⚖️ Sanction panel",
        description=f"Target: <@{target_id}>",
        color=_color(),
    )
    if selected:
        entries = [catalog.lookup(k) for k in selected]
        lines = [f"{e.emoji} {e.label} (+{e.points})" for e in entries]
        embed.add_field(
            name=f"Selected ({len(entries)})",
            value="\n".join(lines),
            inline=False,
        )
        embed.add_field(
            name="Total",
            value=f"+{sum(e.points for e in entries)} {POINTS_SHORT}",
            inline=False,
        )
    else:
        embed.add_field(name="Selected", value="*Nothing yet.*", inline=False)
    embed.set_footer(text="Confirm to record, cancel to discard.")
    return embed


def build_commit_embed(
    catalog: ActionCatalog,
    target_id: int,
    breakdown: list[tuple[ActionKind, int]],
    total: int,
    new_total: int,
) -> discord.Embed:
    lines = [
        f"{catalog.lookup(kind).emoji} {catalog.lookup(kind).label}: +{points}"
        for kind, points in breakdown
    ]
    embed = discord.Embed(
        title="✅ Sanctions recorded",
        description=f"Target: <@{target_id}>\n\n" + "\n".join(lines),
        color=discord.Color.green(),
    )
    embed.add_field(name="Awarded", value=f"+{total} {POINTS_SHORT}", inline=True)
    embed.add_field(name="Your total", value=f"{new_total:,} {POINTS_SHORT}", inline=True)
    return embed


def build_declaration_embed(
    catalog: ActionCatalog,
    kind: ActionKind,
    points: int,
    new_total: int,
    new_weekly_total: int,
) -> discord.Embed:
    entry = catalog.lookup(kind)
    embed = discord.Embed(
        title=f"{entry.emoji} {entry.label} recorded",
        description=f"+{points} {POINTS_SHORT}",
        color=discord.Color.green(),
    )
    embed.add_field(name="Total", value=f"{new_total:,}", inline=True)
    embed.add_field(name="This week", value=f"{new_weekly_total:,}", inline=True)
    return embed


def build_report_embed(
    catalog: ActionCatalog,
    *,
    guild_name: str,
    actor_id: int,
    target_id: int | None,
    breakdown: list[tuple[ActionKind, int]],
    details: str | None = None,
    timestamp: datetime | None = None,
) -> discord.Embed:
    """DM sent to report recipients for every committed action."""
    lines = [f"{catalog.lookup(kind).label} (+{points})" for kind, points in breakdown]
    embed = discord.Embed(
        title=f"\U0001f4cb Moderation report — {guild_name}",
        color=_color(),
        timestamp=timestamp,
    )
    embed.add_field(name="Moderator", value=f"<@{actor_id}>", inline=True)
    if target_id is not None:
        embed.add_field(name="Target", value=f"<@{target_id}>", inline=True)
    embed.add_field(name="Actions", value="\n".join(lines), inline=False)
    if details:
        embed.add_field(name="Details", value=details[:1024], inline=False)
    return embed


def build_rates_embed(rates: GlobalRates) -> discord.Embed:
    embed = discord.Embed(title="⚙️ Passive message rates", color=_color())
    embed.add_field(name="Points per message", value=str(rates.points_per_message), inline=True)
    embed.add_field(name="Multiplier", value=f"×{rates.multiplier:g}", inline=True)
    embed.add_field(name="Cooldown", value=f"{rates.cooldown_seconds:g}s", inline=True)
    return embed


def build_welcome_embed(
    message: WelcomeMessage,
    *,
    avatar_url: str,
    icon_url: str | None,
    community_name: str,
) -> discord.Embed:
    embed = discord.Embed(
        title=message.title[:256],
        description=message.content,
        color=_color(),
        timestamp=discord.utils.utcnow(),
    )
    embed.set_thumbnail(url=avatar_url)
    embed.set_footer(text=community_name, icon_url=icon_url)
    if message.image_url:
        embed.set_image(url=message.image_url)
    return embed
