"""
tests/test_sanction_service.py — Declaration & Batch Commit Tests
==================================================================

End-to-end over the catalog, the pending accumulator and the ledger:
the operator is credited, the target is recorded, and failures leave
both the ledger and the pending batch in a consistent state.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from meritboard.database.models import ActionLog
from meritboard.engine.catalog import ActionCatalog, ActionKind
from meritboard.engine.pending import BatchKey, PendingSanctionAccumulator
from meritboard.errors import EmptyBatchError, StorageFailure, UnknownActionKind
from meritboard.services import sanction_service
from meritboard.services.ledger_service import get_account
from meritboard.services.sanction_service import (
    cancel_pending,
    commit_pending,
    declare_action,
    format_details,
)

GUILD = 100
OPERATOR = 10
TARGET = 99
KEY = BatchKey(guild_id=GUILD, operator_id=OPERATOR, target_id=TARGET)


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def acc(catalog):
    return PendingSanctionAccumulator(catalog)


def _log_rows(engine) -> list[ActionLog]:
    with Session(engine) as session:
        return list(session.scalars(select(ActionLog).order_by(ActionLog.id)).all())


class TestDeclareAction:
    def test_kick_credits_operator(self, engine, catalog):
        result = declare_action(
            engine, catalog, OPERATOR, GUILD, ActionKind.KICK,
            target_id=TARGET, reason="spam", week=12,
        )
        assert result.points_awarded == 15
        assert result.new_total == 15
        assert result.new_weekly_total == 15

        rows = _log_rows(engine)
        assert len(rows) == 1
        assert rows[0].actor_id == OPERATOR
        assert rows[0].target_id == TARGET
        assert rows[0].points == 15
        assert rows[0].week_number == 12
        assert rows[0].details == "Reason: spam"
        assert get_account(engine, TARGET, GUILD).exists is False

    def test_unknown_kind_mutates_nothing(self, engine, catalog):
        with pytest.raises(UnknownActionKind):
            declare_action(engine, catalog, OPERATOR, GUILD, "NUKE")
        assert _log_rows(engine) == []
        assert get_account(engine, OPERATOR, GUILD).exists is False

    def test_system_kind_cannot_be_declared(self, engine, catalog):
        with pytest.raises(UnknownActionKind):
            declare_action(engine, catalog, OPERATOR, GUILD, ActionKind.CORRECTION)

    def test_points_snapshotted_at_commit(self, engine):
        """Log rows keep the value the catalog had when they were written."""
        declare_action(engine, ActionCatalog(), OPERATOR, GUILD, ActionKind.WARN, week=1)
        declare_action(
            engine, ActionCatalog(overrides={"WARN": 8}), OPERATOR, GUILD, ActionKind.WARN,
            week=1,
        )
        assert [r.points for r in _log_rows(engine)] == [5, 8]
        assert get_account(engine, OPERATOR, GUILD).total_points == 13


class TestCommitPending:
    def test_warn_and_ban_commit_together(self, engine, catalog, acc):
        acc.add(KEY, ActionKind.WARN)
        acc.add(KEY, ActionKind.BAN)

        result = commit_pending(engine, catalog, acc, KEY, week=5)
        assert result.total_awarded == 30
        assert result.breakdown == [(ActionKind.WARN, 5), (ActionKind.BAN, 25)]
        assert result.new_total == 30
        assert result.new_weekly_total == 30

        rows = _log_rows(engine)
        assert [(r.action_kind, r.target_id) for r in rows] == [
            ("WARN", TARGET), ("BAN", TARGET),
        ]
        assert acc.snapshot(KEY) == []

    def test_second_commit_raises_empty(self, engine, catalog, acc):
        acc.add(KEY, ActionKind.WARN)
        commit_pending(engine, catalog, acc, KEY, week=5)
        with pytest.raises(EmptyBatchError):
            commit_pending(engine, catalog, acc, KEY, week=5)
        assert get_account(engine, OPERATOR, GUILD).total_points == 5

    def test_empty_commit_writes_nothing(self, engine, catalog, acc):
        with pytest.raises(EmptyBatchError):
            commit_pending(engine, catalog, acc, KEY)
        assert _log_rows(engine) == []

    def test_reason_recorded(self, engine, catalog, acc):
        acc.add(KEY, ActionKind.MUTE)
        commit_pending(engine, catalog, acc, KEY, week=5, reason="raid")
        assert _log_rows(engine)[0].details == "Reason: raid"

    def test_storage_failure_restores_batch(self, engine, catalog, acc):
        acc.add(KEY, ActionKind.WARN)
        acc.add(KEY, ActionKind.KICK)

        with patch.object(
            sanction_service, "apply_actions",
            side_effect=StorageFailure("apply_actions", {"actor_id": OPERATOR}),
        ):
            with pytest.raises(StorageFailure):
                commit_pending(engine, catalog, acc, KEY, week=5)

        assert acc.snapshot(KEY) == [ActionKind.WARN, ActionKind.KICK]
        assert _log_rows(engine) == []

        # Retry succeeds once storage is back
        result = commit_pending(engine, catalog, acc, KEY, week=5)
        assert result.total_awarded == 20

    def test_other_operators_batch_untouched(self, engine, catalog, acc):
        other = KEY._replace(operator_id=OPERATOR + 1)
        acc.add(KEY, ActionKind.WARN)
        acc.add(other, ActionKind.BAN)
        commit_pending(engine, catalog, acc, KEY, week=5)
        assert acc.snapshot(other) == [ActionKind.BAN]


class TestCancelPending:
    def test_cancel_writes_nothing(self, engine, acc):
        acc.add(KEY, ActionKind.WARN)
        assert cancel_pending(acc, KEY) == 1
        assert acc.snapshot(KEY) == []
        assert _log_rows(engine) == []


class TestFormatDetails:
    def test_both(self):
        assert format_details("spam", "https://x/1") == "Reason: spam | Evidence: https://x/1"

    def test_evidence_only(self):
        assert format_details(None, "https://x/1") == "Evidence: https://x/1"

    def test_none(self):
        assert format_details() is None
