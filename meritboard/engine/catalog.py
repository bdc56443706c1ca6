"""
meritboard.engine.catalog — Action Catalog & Global Rates
==========================================================

Single source of truth for *action kind → (points, label, category)*.
Pure module: no Discord I/O, no DB I/O.

New action kinds only need an entry in :data:`DEFAULT_ENTRIES`; accrual
logic never switches on a specific kind.  Categories keep selection menus
within Discord's 25-option limit (see :meth:`ActionCatalog.page`).

The passive-message rates are process-wide state owned by the catalog.
They change only through :meth:`ActionCatalog.update_global_rates`, which
validates first and then swaps an immutable :class:`GlobalRates` snapshot.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from threading import Lock

from meritboard.constants import MAX_MENU_OPTIONS
from meritboard.errors import InvalidRates, UnknownActionKind

logger = logging.getLogger(__name__)

__all__ = [
    "ActionCatalog",
    "ActionCategory",
    "ActionKind",
    "CatalogEntry",
    "DEFAULT_ENTRIES",
    "GlobalRates",
]


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionKind(enum.StrEnum):
    """Every kind of moderator activity that can earn merit points."""
    # Discipline
    WARN = "WARN"
    MUTE = "MUTE"
    KICK = "KICK"
    BAN = "BAN"
    # Community
    WELCOME = "WELCOME"
    REPORT_HANDLED = "REPORT_HANDLED"
    TICKET_RESOLVED = "TICKET_RESOLVED"
    EVENT_HOSTED = "EVENT_HOSTED"
    # System (never offered to operators)
    PASSIVE_MESSAGE = "PASSIVE_MESSAGE"
    CORRECTION = "CORRECTION"


class ActionCategory(enum.StrEnum):
    DISCIPLINE = "discipline"
    COMMUNITY = "community"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One registered action kind."""

    kind: ActionKind
    points: int
    label: str
    category: ActionCategory
    emoji: str = ""

    @property
    def selectable(self) -> bool:
        """Whether operators may declare this kind themselves."""
        return self.category is not ActionCategory.SYSTEM


DEFAULT_ENTRIES: tuple[CatalogEntry, ...] = (
    CatalogEntry(ActionKind.WARN, 5, "Warning", ActionCategory.DISCIPLINE, "⚠️"),
    CatalogEntry(ActionKind.MUTE, 10, "Mute", ActionCategory.DISCIPLINE, "\U0001f507"),
    CatalogEntry(ActionKind.KICK, 15, "Kick", ActionCategory.DISCIPLINE, "\U0001f462"),
    CatalogEntry(ActionKind.BAN, 25, "Ban", ActionCategory.DISCIPLINE, "⛔"),
    CatalogEntry(ActionKind.WELCOME, 2, "Welcomed a newcomer", ActionCategory.COMMUNITY, "\U0001f44b"),
    CatalogEntry(ActionKind.REPORT_HANDLED, 3, "Handled a report", ActionCategory.COMMUNITY, "\U0001f4e8"),
    CatalogEntry(ActionKind.TICKET_RESOLVED, 5, "Resolved a ticket", ActionCategory.COMMUNITY, "\U0001f3ab"),
    CatalogEntry(ActionKind.EVENT_HOSTED, 20, "Hosted an event", ActionCategory.COMMUNITY, "\U0001f389"),
    CatalogEntry(ActionKind.PASSIVE_MESSAGE, 0, "Active in chat", ActionCategory.SYSTEM, "\U0001f4ac"),
    CatalogEntry(ActionKind.CORRECTION, 0, "Admin correction", ActionCategory.SYSTEM, "\U0001f527"),
)


# ---------------------------------------------------------------------------
# Global rates
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GlobalRates:
    """Passive-message tuning.  Replaced wholesale, never mutated."""

    points_per_message: int = 1
    multiplier: float = 1.0
    cooldown_ms: int = 60_000

    def passive_points(self) -> int:
        """Points credited for one qualifying message."""
        return int(self.points_per_message * self.multiplier)

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class ActionCatalog:
    """Registry of action kinds plus the current :class:`GlobalRates`.

    Parameters
    ----------
    entries:
        Catalog entries; defaults to :data:`DEFAULT_ENTRIES`.
    overrides:
        Optional ``{kind: points}`` mapping (from ``config.yaml``).
        Unknown kinds raise :class:`UnknownActionKind`.
    rates:
        Initial rates; defaults to :class:`GlobalRates()`.
    """

    def __init__(
        self,
        entries: tuple[CatalogEntry, ...] = DEFAULT_ENTRIES,
        *,
        overrides: Mapping[str, int] | None = None,
        rates: GlobalRates | None = None,
    ) -> None:
        self._entries: dict[ActionKind, CatalogEntry] = {e.kind: e for e in entries}
        for raw_kind, points in (overrides or {}).items():
            kind = self._coerce(raw_kind)
            self._entries[kind] = replace(self._entries[kind], points=int(points))
            logger.info("Catalog override: %s = %d points", kind, points)

        self._rates_lock = Lock()
        self._rates = rates or GlobalRates()

    # -------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------
    def _coerce(self, kind: str | ActionKind) -> ActionKind:
        try:
            coerced = ActionKind(str(kind).upper())
        except ValueError:
            raise UnknownActionKind(kind) from None
        if coerced not in self._entries:
            raise UnknownActionKind(kind)
        return coerced

    def lookup(self, kind: str | ActionKind) -> CatalogEntry:
        """Return the entry for *kind*; raises :class:`UnknownActionKind`."""
        return self._entries[self._coerce(kind)]

    def lookup_selectable(self, kind: str | ActionKind) -> CatalogEntry:
        """Like :meth:`lookup` but rejects system kinds operators can't declare."""
        entry = self.lookup(kind)
        if not entry.selectable:
            raise UnknownActionKind(kind)
        return entry

    def __contains__(self, kind: object) -> bool:
        try:
            self._coerce(kind)  # type: ignore[arg-type]
        except UnknownActionKind:
            return False
        return True

    def list_by_category(self, category: ActionCategory | str) -> list[CatalogEntry]:
        """Entries in *category*, in registration order."""
        category = ActionCategory(category)
        return [e for e in self._entries.values() if e.category is category]

    def selectable_entries(self) -> list[CatalogEntry]:
        return [e for e in self._entries.values() if e.selectable]

    def page(
        self,
        category: ActionCategory | str,
        page: int = 0,
        size: int = MAX_MENU_OPTIONS,
    ) -> list[CatalogEntry]:
        """One page of a category, never larger than the menu limit."""
        size = max(1, min(size, MAX_MENU_OPTIONS))
        entries = self.list_by_category(category)
        start = page * size
        return entries[start:start + size]

    # -------------------------------------------------------------------
    # Global rates
    # -------------------------------------------------------------------
    @property
    def rates(self) -> GlobalRates:
        """Current rates snapshot."""
        with self._rates_lock:
            return self._rates

    def merged_rates(
        self,
        *,
        points_per_message: int | None = None,
        multiplier: float | None = None,
        cooldown_ms: int | None = None,
    ) -> GlobalRates:
        """Current rates with the given fields replaced; nothing is swapped.

        Raises :class:`InvalidRates` if any value is negative.
        """
        for name, value in (
            ("points_per_message", points_per_message),
            ("multiplier", multiplier),
            ("cooldown_ms", cooldown_ms),
        ):
            if value is not None and value < 0:
                raise InvalidRates(name, value)

        current = self.rates
        return GlobalRates(
            points_per_message=(
                current.points_per_message
                if points_per_message is None else int(points_per_message)
            ),
            multiplier=current.multiplier if multiplier is None else float(multiplier),
            cooldown_ms=current.cooldown_ms if cooldown_ms is None else int(cooldown_ms),
        )

    def update_global_rates(
        self,
        *,
        points_per_message: int | None = None,
        multiplier: float | None = None,
        cooldown_ms: int | None = None,
    ) -> GlobalRates:
        """Validate and swap in new rates.  Omitted fields keep their value.

        Applies to subsequent passive credits only.  Raises
        :class:`InvalidRates` before touching state if any value is negative.
        """
        new = self.merged_rates(
            points_per_message=points_per_message,
            multiplier=multiplier,
            cooldown_ms=cooldown_ms,
        )
        with self._rates_lock:
            self._rates = new

        logger.info(
            "Global rates updated: %d pts/msg ×%.2f, cooldown %d ms",
            new.points_per_message, new.multiplier, new.cooldown_ms,
        )
        return new
