"""
meritboard.constants — Shared Constants & Helpers
==================================================

Presentation constants and the week-number helper.  Import from here
instead of duplicating in cogs and services.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Leaderboard presentation
# ---------------------------------------------------------------------------
RANK_BADGES: list[str] = [
    "\u2b50",              # star
    "\U0001f396\ufe0f",    # military medal
    "\U0001f3c5",          # sports medal
    "\U0001f31f",          # glowing star
    "\u2728",              # sparkles
]

POINTS_LABEL = "merit points"
POINTS_SHORT = "MP"

EMBED_COLOR = 0xCC0000

# Discord caps select menus and autocomplete lists at 25 options
MAX_MENU_OPTIONS = 25

# ---------------------------------------------------------------------------
# Welcome defaults (placeholders: {user}, {server}, {memberCount})
# ---------------------------------------------------------------------------
DEFAULT_WELCOME_TITLE = "Welcome to {server}, {user}!"
DEFAULT_WELCOME_CONTENT = (
    "Please give {user} a warm welcome!\n"
    "You are member number {memberCount}."
)
WELCOME_CHANNEL_HINTS: tuple[str, ...] = ("welcome", "arrival", "general")


def week_number(moment: datetime | None = None) -> int:
    """ISO week number of *moment* (defaults to now, UTC)."""
    moment = moment or datetime.now(UTC)
    return moment.isocalendar().week


def rank_badge(position: int) -> str:
    """Badge for a 1-based leaderboard position."""
    if 0 < position <= len(RANK_BADGES):
        return RANK_BADGES[position - 1]
    return f"**{position}.**"
