"""
tests/test_ledger_service.py — Merit Ledger Store Integration Tests
====================================================================

Covers lazy account creation, point conservation across credits and
weekly resets, atomic batch application, admin corrections, and the
translation of database errors into StorageFailure.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from meritboard.database.models import ActionLog, GuildConfig, MeritAccount
from meritboard.engine.catalog import ActionKind
from meritboard.errors import StorageFailure
from meritboard.services import ledger_service
from meritboard.services.ledger_service import (
    apply_action,
    apply_actions,
    correct_points,
    credit_points,
    get_account,
    list_actions,
    list_guild_ids,
    record_action,
    reset_weekly,
)

GUILD = 100


@pytest.fixture
def engine(db_engine):
    """Re-use the shared conftest db_engine (SQLite, StaticPool)."""
    return db_engine


def _log_rows(engine, guild_id: int = GUILD) -> list[ActionLog]:
    with Session(engine) as session:
        return list(session.scalars(
            select(ActionLog).where(ActionLog.guild_id == guild_id).order_by(ActionLog.id)
        ).all())


class TestCreditPoints:
    def test_first_credit_creates_account(self, engine):
        credit_points(engine, 1, GUILD, 5)
        account = get_account(engine, 1, GUILD)
        assert account.exists
        assert account.total_points == 5
        assert account.weekly_points == 5

    def test_credits_accumulate(self, engine):
        credit_points(engine, 1, GUILD, 5)
        credit_points(engine, 1, GUILD, 7)
        account = get_account(engine, 1, GUILD)
        assert (account.total_points, account.weekly_points) == (12, 12)

    def test_same_user_different_guilds(self, engine):
        credit_points(engine, 1, GUILD, 5)
        credit_points(engine, 1, GUILD + 1, 3)
        assert get_account(engine, 1, GUILD).total_points == 5
        assert get_account(engine, 1, GUILD + 1).total_points == 3

    def test_missing_account_reads_as_zero(self, engine):
        account = get_account(engine, 42, GUILD)
        assert account.exists is False
        assert account.total_points == 0
        assert account.weekly_points == 0

    def test_zero_credit_still_creates_account(self, engine):
        credit_points(engine, 1, GUILD, 0)
        assert get_account(engine, 1, GUILD).exists


class TestRecordAction:
    def test_appends_row_without_touching_totals(self, engine):
        record_action(engine, 1, GUILD, ActionKind.WARN, 5, 3, target_id=9, details="x")
        rows = _log_rows(engine)
        assert len(rows) == 1
        assert rows[0].action_kind == "WARN"
        assert rows[0].points == 5
        assert rows[0].week_number == 3
        assert rows[0].target_id == 9
        assert get_account(engine, 1, GUILD).exists is False


class TestApplyAction:
    def test_credits_and_logs_together(self, engine):
        snap = apply_action(engine, 1, GUILD, ActionKind.KICK, 15, 7, target_id=2)
        assert snap.total_points == 15
        assert snap.weekly_points == 15
        rows = _log_rows(engine)
        assert [(r.actor_id, r.action_kind, r.points) for r in rows] == [(1, "KICK", 15)]

    def test_batch_is_atomic(self, engine):
        snap = apply_actions(
            engine, 1, GUILD, [(ActionKind.WARN, 5), (ActionKind.BAN, 25)], 7, target_id=2,
        )
        assert snap.total_points == 30
        rows = _log_rows(engine)
        assert [r.action_kind for r in rows] == ["WARN", "BAN"]
        assert all(r.target_id == 2 for r in rows)

    def test_batch_failure_writes_nothing(self, engine):
        """A failing log insert rolls back every credit in the batch."""
        original_log = ledger_service._log
        calls = {"n": 0}

        def _flaky_log(session, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))
            original_log(session, **kwargs)

        with patch.object(ledger_service, "_log", _flaky_log):
            with pytest.raises(StorageFailure) as exc_info:
                apply_actions(
                    engine, 1, GUILD, [(ActionKind.WARN, 5), (ActionKind.BAN, 25)], 7,
                )

        assert exc_info.value.operation == "apply_actions"
        assert exc_info.value.keys == {"actor_id": 1, "guild_id": GUILD}
        assert get_account(engine, 1, GUILD).exists is False
        assert _log_rows(engine) == []


class TestPointConservation:
    def test_weekly_sum_between_resets(self, engine):
        """Weekly points equal the sum of points credited since the last reset."""
        apply_action(engine, 1, GUILD, ActionKind.WARN, 5, 1)
        apply_action(engine, 1, GUILD, ActionKind.MUTE, 10, 1)
        reset_weekly(engine, GUILD)
        apply_action(engine, 1, GUILD, ActionKind.KICK, 15, 2)

        account = get_account(engine, 1, GUILD)
        assert account.weekly_points == 15
        assert account.total_points == sum(r.points for r in _log_rows(engine))


class TestResetWeekly:
    def test_zeroes_weekly_only(self, engine):
        credit_points(engine, 1, GUILD, 10)
        credit_points(engine, 2, GUILD, 20)
        assert reset_weekly(engine, GUILD) == 2

        for uid, total in ((1, 10), (2, 20)):
            account = get_account(engine, uid, GUILD)
            assert account.weekly_points == 0
            assert account.total_points == total

    def test_idempotent(self, engine):
        credit_points(engine, 1, GUILD, 10)
        reset_weekly(engine, GUILD)
        assert reset_weekly(engine, GUILD) == 0
        assert get_account(engine, 1, GUILD).weekly_points == 0

    def test_other_guilds_untouched(self, engine):
        credit_points(engine, 1, GUILD, 10)
        credit_points(engine, 1, GUILD + 1, 10)
        reset_weekly(engine, GUILD)
        assert get_account(engine, 1, GUILD + 1).weekly_points == 10


class TestCorrectPoints:
    def test_sets_totals_and_logs_delta(self, engine):
        credit_points(engine, 1, GUILD, 50)
        snap = correct_points(
            engine, 1, GUILD, admin_id=900, week=4, total=30, reason="double-counted",
        )
        assert snap.total_points == 30
        assert snap.weekly_points == 50

        row = _log_rows(engine)[-1]
        assert row.action_kind == "CORRECTION"
        assert row.points == -20
        assert row.actor_id == 900
        assert row.target_id == 1
        assert row.details == "double-counted"

    def test_negative_values_clamped(self, engine):
        credit_points(engine, 1, GUILD, 10)
        snap = correct_points(engine, 1, GUILD, admin_id=900, week=4, total=-5, weekly=-1)
        assert (snap.total_points, snap.weekly_points) == (0, 0)

    def test_creates_missing_account(self, engine):
        snap = correct_points(engine, 7, GUILD, admin_id=900, week=4, weekly=12)
        assert snap.exists
        assert (snap.total_points, snap.weekly_points) == (0, 12)


class TestReads:
    def test_list_actions_newest_first(self, engine):
        apply_action(engine, 1, GUILD, ActionKind.WARN, 5, 1)
        apply_action(engine, 2, GUILD, ActionKind.BAN, 25, 1)
        apply_action(engine, 1, GUILD, ActionKind.KICK, 15, 1)

        rows = list_actions(engine, GUILD)
        assert [r.action_kind for r in rows] == ["KICK", "BAN", "WARN"]

        mine = list_actions(engine, GUILD, actor_id=1, limit=1)
        assert [r.action_kind for r in mine] == ["KICK"]

    def test_list_guild_ids(self, engine):
        with Session(engine) as session:
            session.add_all([GuildConfig(guild_id=3), GuildConfig(guild_id=1)])
            session.commit()
        assert list_guild_ids(engine) == [1, 3]

    def test_unique_account_per_user_and_guild(self, engine):
        for _ in range(3):
            credit_points(engine, 1, GUILD, 1)
        with Session(engine) as session:
            count = len(session.scalars(
                select(MeritAccount).where(MeritAccount.user_id == 1)
            ).all())
        assert count == 1
