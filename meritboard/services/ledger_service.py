"""
meritboard.services.ledger_service — Merit Ledger Store
========================================================

Durable reads and writes over ``merit_accounts`` and ``action_log``.
All functions are synchronous — call them via ``await run_db(...)``.

Crediting is a single ``INSERT … ON CONFLICT DO UPDATE`` so concurrent
credits for the same ``(user, guild)`` never lose an update.
:func:`apply_action` and :func:`apply_actions` write the credit and the
log row in one transaction, which keeps totals and history consistent.

Every public function raises :class:`~meritboard.errors.StorageFailure`
on database errors; business validation (e.g. negative amounts) is the
caller's job.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, select, text, update
from sqlalchemy.orm import Session

from meritboard.database.engine import get_session
from meritboard.database.models import ActionLog, GuildConfig, MeritAccount
from meritboard.engine.catalog import ActionKind
from meritboard.errors import storage_guard

logger = logging.getLogger(__name__)

_CREDIT_SQL = text("""
    INSERT INTO merit_accounts (user_id, guild_id, total_points, weekly_points)
    VALUES (:user_id, :guild_id, :amount, :amount)
    ON CONFLICT (user_id, guild_id)
    DO UPDATE SET
        total_points = merit_accounts.total_points + :amount,
        weekly_points = merit_accounts.weekly_points + :amount
""")


@dataclass(frozen=True, slots=True)
class AccountSnapshot:
    """Detached view of a MeritAccount; zeros when the account is absent."""

    user_id: int
    guild_id: int
    total_points: int = 0
    weekly_points: int = 0
    exists: bool = False


def _snapshot(session: Session, user_id: int, guild_id: int) -> AccountSnapshot:
    account = session.scalar(
        select(MeritAccount).where(
            MeritAccount.user_id == user_id, MeritAccount.guild_id == guild_id
        )
    )
    if account is None:
        return AccountSnapshot(user_id=user_id, guild_id=guild_id)
    return AccountSnapshot(
        user_id=user_id,
        guild_id=guild_id,
        total_points=account.total_points,
        weekly_points=account.weekly_points,
        exists=True,
    )


def _credit(session: Session, user_id: int, guild_id: int, amount: int) -> None:
    session.execute(
        _CREDIT_SQL, {"user_id": user_id, "guild_id": guild_id, "amount": amount}
    )


def _log(
    session: Session,
    *,
    actor_id: int,
    guild_id: int,
    kind: ActionKind | str,
    points: int,
    week: int,
    target_id: int | None = None,
    details: str | None = None,
) -> None:
    session.add(ActionLog(
        actor_id=actor_id,
        guild_id=guild_id,
        action_kind=str(kind),
        points=points,
        week_number=week,
        target_id=target_id,
        details=details,
        timestamp=datetime.now(UTC),
    ))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
@storage_guard("credit_points", "user_id", "guild_id")
def credit_points(engine: Engine, user_id: int, guild_id: int, amount: int) -> None:
    """Add *amount* to both total and weekly points, creating the account lazily."""
    with get_session(engine) as session:
        _credit(session, user_id, guild_id, amount)


@storage_guard("record_action", "actor_id", "guild_id")
def record_action(
    engine: Engine,
    actor_id: int,
    guild_id: int,
    kind: ActionKind | str,
    points: int,
    week: int,
    *,
    target_id: int | None = None,
    details: str | None = None,
) -> None:
    """Append one immutable ActionLog row.  Does not touch totals."""
    with get_session(engine) as session:
        _log(
            session, actor_id=actor_id, guild_id=guild_id, kind=kind,
            points=points, week=week, target_id=target_id, details=details,
        )


@storage_guard("apply_action", "actor_id", "guild_id")
def apply_action(
    engine: Engine,
    actor_id: int,
    guild_id: int,
    kind: ActionKind | str,
    points: int,
    week: int,
    *,
    target_id: int | None = None,
    details: str | None = None,
) -> AccountSnapshot:
    """Credit *actor_id* and log the action in one transaction.

    Returns the account totals after the write.
    """
    with get_session(engine) as session:
        _credit(session, actor_id, guild_id, points)
        _log(
            session, actor_id=actor_id, guild_id=guild_id, kind=kind,
            points=points, week=week, target_id=target_id, details=details,
        )
        session.flush()
        return _snapshot(session, actor_id, guild_id)


@storage_guard("apply_actions", "actor_id", "guild_id")
def apply_actions(
    engine: Engine,
    actor_id: int,
    guild_id: int,
    actions: Iterable[tuple[ActionKind | str, int]],
    week: int,
    *,
    target_id: int | None = None,
    details: str | None = None,
) -> AccountSnapshot:
    """Apply several ``(kind, points)`` actions atomically.

    Either every credit and log row is written or none is.
    """
    with get_session(engine) as session:
        for kind, points in actions:
            _credit(session, actor_id, guild_id, points)
            _log(
                session, actor_id=actor_id, guild_id=guild_id, kind=kind,
                points=points, week=week, target_id=target_id, details=details,
            )
        session.flush()
        return _snapshot(session, actor_id, guild_id)


@storage_guard("reset_weekly", "guild_id")
def reset_weekly(engine: Engine, guild_id: int) -> int:
    """Zero ``weekly_points`` for every account in the guild.

    Idempotent.  Returns the number of accounts that had non-zero points.
    """
    with get_session(engine) as session:
        result = session.execute(
            update(MeritAccount)
            .where(MeritAccount.guild_id == guild_id, MeritAccount.weekly_points != 0)
            .values(weekly_points=0)
        )
        count = result.rowcount or 0
    logger.info("Weekly points reset for guild %d (%d accounts)", guild_id, count)
    return count


@storage_guard("correct_points", "user_id", "guild_id")
def correct_points(
    engine: Engine,
    user_id: int,
    guild_id: int,
    *,
    admin_id: int,
    week: int,
    total: int | None = None,
    weekly: int | None = None,
    reason: str = "",
) -> AccountSnapshot:
    """Set an account's totals explicitly (admin correction).

    Values are clamped at zero.  A ``CORRECTION`` log row records the
    signed change to the total.
    """
    with get_session(engine) as session:
        account = session.scalar(
            select(MeritAccount).where(
                MeritAccount.user_id == user_id, MeritAccount.guild_id == guild_id
            )
        )
        if account is None:
            account = MeritAccount(
                user_id=user_id, guild_id=guild_id, total_points=0, weekly_points=0
            )
            session.add(account)
            session.flush()

        before = account.total_points
        if total is not None:
            account.total_points = max(total, 0)
        if weekly is not None:
            account.weekly_points = max(weekly, 0)

        _log(
            session,
            actor_id=admin_id,
            guild_id=guild_id,
            kind=ActionKind.CORRECTION,
            points=account.total_points - before,
            week=week,
            target_id=user_id,
            details=reason or None,
        )
        session.flush()
        return _snapshot(session, user_id, guild_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@storage_guard("get_account", "user_id", "guild_id")
def get_account(engine: Engine, user_id: int, guild_id: int) -> AccountSnapshot:
    """Totals for a user; a zeroed snapshot when no account exists."""
    with Session(engine) as session:
        return _snapshot(session, user_id, guild_id)


@storage_guard("list_actions", "guild_id")
def list_actions(
    engine: Engine,
    guild_id: int,
    *,
    actor_id: int | None = None,
    limit: int = 20,
) -> list[ActionLog]:
    """Most recent log rows for a guild (optionally one actor), newest first."""
    with Session(engine) as session:
        stmt = select(ActionLog).where(ActionLog.guild_id == guild_id)
        if actor_id is not None:
            stmt = stmt.where(ActionLog.actor_id == actor_id)
        rows = session.scalars(
            stmt.order_by(ActionLog.id.desc()).limit(limit)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


@storage_guard("list_guild_ids")
def list_guild_ids(engine: Engine) -> list[int]:
    """Guilds that have a configuration row."""
    with Session(engine) as session:
        return list(session.scalars(
            select(GuildConfig.guild_id).order_by(GuildConfig.guild_id)
        ).all())
