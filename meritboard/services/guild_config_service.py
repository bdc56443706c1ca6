"""
meritboard.services.guild_config_service — Guild Config & Report Recipients
============================================================================

Per-guild configuration with partial-update semantics: only the fields
passed to :func:`upsert_guild_config` change, everything else keeps its
stored value.  Also manages the ``report_recipients`` set.

All functions are synchronous — call them via ``await run_db(...)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from meritboard.database.engine import get_session
from meritboard.database.models import GuildConfig, ReportRecipient
from meritboard.errors import storage_guard

logger = logging.getLogger(__name__)

# Columns callers may set through upsert_guild_config
ALLOWED_CONFIG_FIELDS: frozenset[str] = frozenset({
    "mod_role_id",
    "leaderboard_channel_id",
    "welcome_channel_id",
    "welcome_title",
    "welcome_content",
    "welcome_image",
    "rotation_schedule",
})


@dataclass(frozen=True, slots=True)
class GuildSettings:
    """Detached copy of a guild_config row (all None when absent)."""

    guild_id: int
    mod_role_id: int | None = None
    leaderboard_channel_id: int | None = None
    welcome_channel_id: int | None = None
    welcome_title: str | None = None
    welcome_content: str | None = None
    welcome_image: str | None = None
    rotation_schedule: str | None = None


def _to_settings(row: GuildConfig) -> GuildSettings:
    return GuildSettings(
        guild_id=row.guild_id,
        **{name: getattr(row, name) for name in ALLOWED_CONFIG_FIELDS},
    )


# ---------------------------------------------------------------------------
# Guild config
# ---------------------------------------------------------------------------
@storage_guard("get_guild_config", "guild_id")
def get_guild_config(engine: Engine, guild_id: int) -> GuildSettings:
    """Current config for the guild; an all-None config when no row exists."""
    with Session(engine) as session:
        row = session.get(GuildConfig, guild_id)
        if row is None:
            return GuildSettings(guild_id=guild_id)
        return _to_settings(row)


@storage_guard("upsert_guild_config", "guild_id")
def upsert_guild_config(engine: Engine, guild_id: int, **fields: Any) -> GuildSettings:
    """Merge *fields* into the guild's row, creating it if needed.

    Unspecified fields keep their stored value; passing ``None`` explicitly
    clears a field.  Unknown field names raise :class:`ValueError`.
    """
    unknown = set(fields) - ALLOWED_CONFIG_FIELDS
    if unknown:
        raise ValueError(f"Unknown guild config fields: {sorted(unknown)}")

    with get_session(engine) as session:
        row = session.get(GuildConfig, guild_id)
        if row is None:
            row = GuildConfig(guild_id=guild_id)
            session.add(row)
        for name, value in fields.items():
            setattr(row, name, value)
        session.flush()
        result = _to_settings(row)

    logger.info("Guild %d config updated: %s", guild_id, ", ".join(sorted(fields)))
    return result


# ---------------------------------------------------------------------------
# Report recipients
# ---------------------------------------------------------------------------
@storage_guard("add_report_recipient", "guild_id", "user_id")
def add_report_recipient(engine: Engine, guild_id: int, user_id: int) -> bool:
    """Subscribe *user_id*.  Returns False if already subscribed."""
    with get_session(engine) as session:
        if session.get(ReportRecipient, (guild_id, user_id)) is not None:
            return False
        session.add(ReportRecipient(guild_id=guild_id, user_id=user_id))
    return True


@storage_guard("remove_report_recipient", "guild_id", "user_id")
def remove_report_recipient(engine: Engine, guild_id: int, user_id: int) -> bool:
    """Unsubscribe *user_id*.  Returns False if it wasn't subscribed."""
    with get_session(engine) as session:
        result = session.execute(
            delete(ReportRecipient).where(
                ReportRecipient.guild_id == guild_id,
                ReportRecipient.user_id == user_id,
            )
        )
        return (result.rowcount or 0) > 0


@storage_guard("list_report_recipients", "guild_id")
def list_report_recipients(engine: Engine, guild_id: int) -> list[int]:
    """User ids subscribed to reports in the guild."""
    with Session(engine) as session:
        return list(session.scalars(
            select(ReportRecipient.user_id)
            .where(ReportRecipient.guild_id == guild_id)
            .order_by(ReportRecipient.user_id)
        ).all())
