"""
meritboard.engine.pending — Pending-Sanction Accumulator
=========================================================

In-memory staging area that lets an operator pick several sanctions
against one target and then confirm or cancel them as one batch.

Batches are keyed by :class:`BatchKey` ``(guild_id, operator_id,
target_id)``, so two moderators working on the same member (or the same
member in two guilds) never see each other's selections.  Abandoned
sessions are dropped by :meth:`PendingSanctionAccumulator.sweep`.

State per key::

    Empty ──add──▶ Accumulating ──add──▶ Accumulating
      ▲                │
      └──take/cancel───┘

Thread-safe; the bot only touches it from the event loop, but the
sweeper and tests may not.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import NamedTuple

from meritboard.engine.catalog import ActionCatalog, ActionKind
from meritboard.errors import EmptyBatchError

logger = logging.getLogger(__name__)


class BatchKey(NamedTuple):
    """Identifies one disciplinary session."""

    guild_id: int
    operator_id: int
    target_id: int


@dataclass
class PendingBatch:
    """Ordered selection of action kinds awaiting confirm or cancel."""

    kinds: list[ActionKind] = field(default_factory=list)
    created_at: float = 0.0
    touched_at: float = 0.0


class PendingSanctionAccumulator:
    """Arena of pending batches indexed by :class:`BatchKey`.

    Parameters
    ----------
    catalog:
        Used to validate kinds on :meth:`add`.
    ttl_seconds:
        Idle time after which :meth:`sweep` discards a batch.
    clock:
        Injectable time source (defaults to :func:`time.monotonic`).
    """

    def __init__(
        self,
        catalog: ActionCatalog,
        *,
        ttl_seconds: float = 900,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = catalog
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._batches: dict[BatchKey, PendingBatch] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._batches)

    def open(self, key: BatchKey) -> None:
        """Start (or restart) a session with an empty selection."""
        now = self._clock()
        with self._lock:
            self._batches[key] = PendingBatch(created_at=now, touched_at=now)

    def add(self, key: BatchKey, kind: str | ActionKind) -> list[ActionKind]:
        """Append *kind* to the batch and return the current selection.

        The kind is validated first, so an unknown kind raises
        :class:`~meritboard.errors.UnknownActionKind` and leaves the batch
        untouched.  Duplicates are allowed and count separately.
        """
        entry = self._catalog.lookup_selectable(kind)
        now = self._clock()
        with self._lock:
            batch = self._batches.get(key)
            if batch is None:
                batch = PendingBatch(created_at=now)
                self._batches[key] = batch
            batch.kinds.append(entry.kind)
            batch.touched_at = now
            return list(batch.kinds)

    def snapshot(self, key: BatchKey) -> list[ActionKind]:
        """Current selection for *key* (empty list when none)."""
        with self._lock:
            batch = self._batches.get(key)
            return list(batch.kinds) if batch else []

    def take(self, key: BatchKey) -> list[ActionKind]:
        """Remove the batch and return its kinds.

        Raises :class:`~meritboard.errors.EmptyBatchError` (and removes
        nothing) if there is no selection.
        """
        with self._lock:
            batch = self._batches.get(key)
            if batch is None or not batch.kinds:
                raise EmptyBatchError(key.target_id)
            del self._batches[key]
            return list(batch.kinds)

    def restore(self, key: BatchKey, kinds: list[ActionKind]) -> None:
        """Put *kinds* back in front of the batch after a failed commit."""
        now = self._clock()
        with self._lock:
            batch = self._batches.get(key)
            if batch is None:
                batch = PendingBatch(created_at=now)
                self._batches[key] = batch
            batch.kinds[:0] = kinds
            batch.touched_at = now

    def cancel(self, key: BatchKey) -> int:
        """Discard the batch.  Returns how many selections were dropped."""
        with self._lock:
            batch = self._batches.pop(key, None)
        return len(batch.kinds) if batch else 0

    def drop_guild(self, guild_id: int) -> int:
        """Discard every batch in *guild_id* (e.g. the bot left it)."""
        with self._lock:
            keys = [k for k in self._batches if k.guild_id == guild_id]
            for k in keys:
                del self._batches[k]
        return len(keys)

    def sweep(self, now: float | None = None) -> int:
        """Drop batches idle for longer than the TTL.  Returns count dropped."""
        now = self._clock() if now is None else now
        cutoff = now - self._ttl
        with self._lock:
            stale = [k for k, b in self._batches.items() if b.touched_at <= cutoff]
            for k in stale:
                del self._batches[k]
        if stale:
            logger.debug("Swept %d abandoned sanction batches", len(stale))
        return len(stale)
