"""
meritboard.services.sanction_service — Action Declaration & Batch Commit
=========================================================================

The two ways an operator earns merit points for an action:

- :func:`declare_action` — one action, committed immediately.
- :func:`commit_pending` — every sanction staged in the
  :class:`~meritboard.engine.pending.PendingSanctionAccumulator` for a
  ``BatchKey``, committed as one transaction.

Point values are looked up (and thereby snapshotted) before anything is
written, so an unknown kind never reaches the ledger.  The operator is
the one credited; the target is only recorded on the log rows.

Synchronous — call via ``await run_db(...)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine

from meritboard.constants import week_number
from meritboard.engine.catalog import ActionCatalog, ActionKind
from meritboard.engine.pending import BatchKey, PendingSanctionAccumulator
from meritboard.errors import StorageFailure
from meritboard.services.ledger_service import apply_action, apply_actions

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeclarationResult:
    points_awarded: int
    new_total: int
    new_weekly_total: int


@dataclass(frozen=True, slots=True)
class CommitResult:
    """Outcome of a batch commit, in selection order."""

    total_awarded: int
    breakdown: list[tuple[ActionKind, int]]
    new_total: int
    new_weekly_total: int


def format_details(reason: str | None = None, evidence: str | None = None) -> str | None:
    """Log ``details`` text from an optional reason and evidence link."""
    parts = []
    if reason:
        parts.append(f"Reason: {reason}")
    if evidence:
        parts.append(f"Evidence: {evidence}")
    return " | ".join(parts) or None


def declare_action(
    engine: Engine,
    catalog: ActionCatalog,
    actor_id: int,
    guild_id: int,
    kind: str | ActionKind,
    *,
    target_id: int | None = None,
    reason: str | None = None,
    evidence: str | None = None,
    week: int | None = None,
) -> DeclarationResult:
    """Credit *actor_id* for one action of *kind* and log it.

    Raises :class:`~meritboard.errors.UnknownActionKind` (before any write)
    or :class:`~meritboard.errors.StorageFailure`.
    """
    entry = catalog.lookup_selectable(kind)
    account = apply_action(
        engine,
        actor_id,
        guild_id,
        entry.kind,
        entry.points,
        week if week is not None else week_number(),
        target_id=target_id,
        details=format_details(reason, evidence),
    )
    logger.info(
        "Action declared: %s by %d in guild %d (+%d)",
        entry.kind, actor_id, guild_id, entry.points,
    )
    return DeclarationResult(
        points_awarded=entry.points,
        new_total=account.total_points,
        new_weekly_total=account.weekly_points,
    )


def commit_pending(
    engine: Engine,
    catalog: ActionCatalog,
    accumulator: PendingSanctionAccumulator,
    key: BatchKey,
    week: int | None = None,
    *,
    reason: str | None = None,
) -> CommitResult:
    """Apply every staged sanction for *key* atomically and clear the batch.

    Raises :class:`~meritboard.errors.EmptyBatchError` when nothing is
    staged.  On :class:`~meritboard.errors.StorageFailure` the selection is
    put back so the operator can retry or cancel.
    """
    kinds = accumulator.take(key)
    breakdown = [(entry.kind, entry.points) for entry in map(catalog.lookup, kinds)]
    try:
        account = apply_actions(
            engine,
            key.operator_id,
            key.guild_id,
            breakdown,
            week if week is not None else week_number(),
            target_id=key.target_id,
            details=format_details(reason),
        )
    except StorageFailure:
        accumulator.restore(key, kinds)
        raise

    total = sum(points for _, points in breakdown)
    logger.info(
        "Batch committed: %d sanctions by %d on %d in guild %d (+%d)",
        len(breakdown), key.operator_id, key.target_id, key.guild_id, total,
    )
    return CommitResult(
        total_awarded=total,
        breakdown=breakdown,
        new_total=account.total_points,
        new_weekly_total=account.weekly_points,
    )


def cancel_pending(accumulator: PendingSanctionAccumulator, key: BatchKey) -> int:
    """Discard the staged batch for *key*; no ledger mutation."""
    dropped = accumulator.cancel(key)
    if dropped:
        logger.debug("Batch cancelled for %s (%d dropped)", key, dropped)
    return dropped
