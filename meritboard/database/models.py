"""
meritboard.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- merit_accounts     — Per (user, guild) total and weekly merit points
- action_log         — Append-only journal of every credited action
- guild_config       — One row per guild: roles, channels, welcome, schedule
- report_recipients  — Users receiving action reports by DM
- settings           — Key-value store for runtime-tunable rates
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all MeritBoard ORM models."""


# ---------------------------------------------------------------------------
# MeritAccount — one row per (user, guild), created on first credit
# ---------------------------------------------------------------------------
class MeritAccount(Base):
    """Merit totals for a moderator in a guild.

    ``id`` only records creation order; it breaks leaderboard ties so the
    earliest account wins.  The logical key is ``(user_id, guild_id)``.
    """
    __tablename__ = "merit_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weekly_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "guild_id", name="uq_merit_accounts_user_guild"),
        Index("ix_merit_accounts_guild_total", "guild_id", "total_points"),
        Index("ix_merit_accounts_guild_weekly", "guild_id", "weekly_points"),
    )

    def __repr__(self) -> str:
        return (
            f"<MeritAccount user={self.user_id} guild={self.guild_id} "
            f"total={self.total_points} weekly={self.weekly_points}>"
        )


# ---------------------------------------------------------------------------
# ActionLog — append-only, points snapshotted at commit time
# ---------------------------------------------------------------------------
class ActionLog(Base):
    __tablename__ = "action_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_kind: Mapped[str] = mapped_column(String(40), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    target_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    details: Mapped[str | None] = mapped_column(Text, default=None)

    __table_args__ = (
        Index("ix_action_log_guild_time", "guild_id", "timestamp"),
        Index("ix_action_log_actor", "actor_id", "guild_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActionLog id={self.id} actor={self.actor_id} "
            f"kind={self.action_kind} points={self.points}>"
        )


# ---------------------------------------------------------------------------
# GuildConfig — partial-update semantics, see guild_config_service
# ---------------------------------------------------------------------------
class GuildConfig(Base):
    __tablename__ = "guild_config"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    mod_role_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    leaderboard_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    welcome_channel_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    welcome_title: Mapped[str | None] = mapped_column(String(256), default=None)
    welcome_content: Mapped[str | None] = mapped_column(Text, default=None)
    welcome_image: Mapped[str | None] = mapped_column(String(500), default=None)
    # NULL → the configured default schedule
    rotation_schedule: Mapped[str | None] = mapped_column(String(100), default=None)

    def __repr__(self) -> str:
        return f"<GuildConfig guild={self.guild_id}>"


# ---------------------------------------------------------------------------
# ReportRecipient — membership only, pruned on blocked delivery
# ---------------------------------------------------------------------------
class ReportRecipient(Base):
    __tablename__ = "report_recipients"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    def __repr__(self) -> str:
        return f"<ReportRecipient guild={self.guild_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Settings — key-value configuration store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Holds the global passive-message rates so admins can retune them
    without redeploying.  Values are stored as JSON strings.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
