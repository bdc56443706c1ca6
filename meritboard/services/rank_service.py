"""
meritboard.services.rank_service — Rank Query Engine
=====================================================

Read-only leaderboard and rank queries over ``merit_accounts``.

Ordering is always *value descending, then account creation order*
(``merit_accounts.id`` ascending), so equal scores come back in a stable,
testable order.  :func:`rank_of` uses dense ranking: equal values share a
rank number and the next distinct value gets the next number.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from meritboard.database.models import MeritAccount
from meritboard.errors import storage_guard


class RankField(enum.StrEnum):
    TOTAL = "total"
    WEEKLY = "weekly"


_COLUMNS = {
    RankField.TOTAL: MeritAccount.total_points,
    RankField.WEEKLY: MeritAccount.weekly_points,
}


@dataclass(frozen=True, slots=True)
class LeaderboardRow:
    user_id: int
    value: int


def _column(field: RankField | str):
    return _COLUMNS[RankField(field)]


@storage_guard("top_n", "guild_id")
def top_n(
    engine: Engine, guild_id: int, field: RankField | str, n: int
) -> list[LeaderboardRow]:
    """The *n* highest accounts in the guild by *field*."""
    if n <= 0:
        return []
    col = _column(field)
    with Session(engine) as session:
        rows = session.execute(
            select(MeritAccount.user_id, col)
            .where(MeritAccount.guild_id == guild_id)
            .order_by(col.desc(), MeritAccount.id.asc())
            .limit(n)
        ).all()
    return [LeaderboardRow(user_id=r[0], value=r[1]) for r in rows]


@storage_guard("rank_of", "user_id", "guild_id")
def rank_of(
    engine: Engine, user_id: int, guild_id: int, field: RankField | str
) -> int:
    """1-based dense rank of *user_id* in the guild by *field*.

    A user without an account is ranked as if their value were 0.
    """
    col = _column(field)
    with Session(engine) as session:
        value = session.scalar(
            select(col).where(
                MeritAccount.user_id == user_id, MeritAccount.guild_id == guild_id
            )
        ) or 0
        higher = session.scalar(
            select(func.count(func.distinct(col))).where(
                MeritAccount.guild_id == guild_id, col > value
            )
        ) or 0
    return higher + 1


@storage_guard("count_accounts", "guild_id")
def count_accounts(engine: Engine, guild_id: int) -> int:
    """Number of merit accounts in the guild."""
    with Session(engine) as session:
        return session.scalar(
            select(func.count(MeritAccount.id)).where(MeritAccount.guild_id == guild_id)
        ) or 0
