"""
meritboard.services.settings_service — Settings CRUD & Global Rates
====================================================================

Typed read/write access to the ``settings`` table, plus the helpers
that keep the catalog's in-memory :class:`GlobalRates` and the stored
values in step.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from meritboard.database.engine import get_session
from meritboard.database.models import Setting
from meritboard.engine.catalog import ActionCatalog, GlobalRates
from meritboard.errors import storage_guard

logger = logging.getLogger(__name__)

RATE_KEYS: dict[str, str] = {
    "points_per_message": "rates.points_per_message",
    "multiplier": "rates.multiplier",
    "cooldown_ms": "rates.cooldown_ms",
}


def get_setting_value(session: Session, key: str, default=None):
    """Read a single setting's parsed value from an existing session."""
    row = session.get(Setting, key)
    if row is None:
        return default
    try:
        return json.loads(row.value_json)
    except (json.JSONDecodeError, TypeError):
        return row.value_json


def _put_setting(
    session: Session,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
) -> None:
    value_json = json.dumps(value)
    existing = session.get(Setting, key)
    if existing:
        existing.value_json = value_json
        if description is not None:
            existing.description = description
    else:
        session.add(Setting(
            key=key,
            value_json=value_json,
            category=category,
            description=description,
        ))
    session.flush()


@storage_guard("upsert_setting")
def upsert_setting(
    engine: Engine,
    *,
    key: str,
    value: Any,
    category: str = "general",
    description: str | None = None,
) -> None:
    """Insert or update a single setting."""
    with get_session(engine) as session:
        _put_setting(session, key, value, category, description)


# ---------------------------------------------------------------------------
# Global rates
# ---------------------------------------------------------------------------
@storage_guard("load_rates")
def load_rates(engine: Engine) -> GlobalRates:
    """Stored rates, falling back to defaults for missing keys."""
    defaults = GlobalRates()
    with Session(engine) as session:
        return GlobalRates(
            points_per_message=int(get_setting_value(
                session, RATE_KEYS["points_per_message"], defaults.points_per_message
            )),
            multiplier=float(get_setting_value(
                session, RATE_KEYS["multiplier"], defaults.multiplier
            )),
            cooldown_ms=int(get_setting_value(
                session, RATE_KEYS["cooldown_ms"], defaults.cooldown_ms
            )),
        )


@storage_guard("save_rates")
def save_rates(engine: Engine, rates: GlobalRates) -> None:
    """Persist all three rate keys in one transaction."""
    with get_session(engine) as session:
        for attr, key in RATE_KEYS.items():
            _put_setting(session, key, getattr(rates, attr), category="rates")


def reconfigure_rates(
    engine: Engine,
    catalog: ActionCatalog,
    *,
    points_per_message: int | None = None,
    multiplier: float | None = None,
    cooldown_ms: int | None = None,
) -> GlobalRates:
    """Validate, persist, then swap the new rates in memory.

    Raises :class:`~meritboard.errors.InvalidRates` before any change and
    :class:`~meritboard.errors.StorageFailure` with memory left untouched.
    """
    new = catalog.merged_rates(
        points_per_message=points_per_message,
        multiplier=multiplier,
        cooldown_ms=cooldown_ms,
    )
    save_rates(engine, new)
    return catalog.update_global_rates(
        points_per_message=new.points_per_message,
        multiplier=new.multiplier,
        cooldown_ms=new.cooldown_ms,
    )
