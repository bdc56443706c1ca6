"""
meritboard.database.seed — Default Settings Seeder
===================================================

Baseline rate settings seeded on first startup.  Idempotent — only inserts
keys that don't already exist, so values changed with ``/rates`` survive
restarts.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from meritboard.database.models import Setting

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Default settings catalogue: key → (value, category, description)
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "rates.points_per_message": (
        1, "rates", "Merit points per moderator message (before multiplier)",
    ),
    "rates.multiplier": (1.0, "rates", "Multiplier applied to passive message points"),
    "rates.cooldown_ms": (
        60_000, "rates", "Minimum milliseconds between point-earning messages",
    ),
}


def seed_default_settings(engine: Engine) -> int:
    """Insert any missing default settings.  Returns the number inserted."""
    inserted = 0
    with Session(engine) as session:
        for key, (value, category, description) in DEFAULT_SETTINGS.items():
            if session.get(Setting, key) is not None:
                continue
            session.add(Setting(
                key=key,
                value_json=json.dumps(value),
                category=category,
                description=description,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default settings", inserted)
    return inserted
