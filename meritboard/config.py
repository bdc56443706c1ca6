"""
meritboard.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for soft settings (community identity, default
rotation schedule, per-kind point overrides).  Secrets such as the Discord
token and ``DATABASE_URL`` come from the environment (``.env``).

The passive-message rates are *not* here: they live in the ``settings``
table so admins can retune them at runtime with ``/rates``.

Usage::

    from meritboard.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.default_rotation_schedule)   # "0 0 * * 0"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

DEFAULT_ROTATION_SCHEDULE = "0 0 * * 0"  # Sunday, midnight


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MeritConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    community_name: str = "MeritBoard"
    bot_prefix: str = "!"

    # Rotation
    default_rotation_schedule: str = DEFAULT_ROTATION_SCHEDULE
    timezone: str = "UTC"
    leaderboard_size: int = 10

    # Pending sanction sessions idle longer than this are dropped
    pending_ttl_seconds: int = 900

    # Per-kind point overrides, e.g. {"WARN": 5, "BAN": 25}
    action_points: dict[str, int] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml", *, required: bool = True) -> MeritConfig:
    """Read *path* and return a :class:`MeritConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
    required:
        When False, a missing file yields the defaults instead of an error.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist and *required* is True.
    ValueError
        If ``action_points`` is not a mapping of kind → integer.
    """
    config_path = Path(path)
    if not config_path.exists():
        if not required:
            return MeritConfig()
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    points_raw = raw.get("action_points") or {}
    if not isinstance(points_raw, dict):
        raise ValueError("action_points must be a mapping of action kind to points")
    action_points = {str(k).upper(): int(v) for k, v in points_raw.items()}

    defaults = MeritConfig()
    return MeritConfig(
        community_name=raw.get("community_name", defaults.community_name),
        bot_prefix=raw.get("bot_prefix", defaults.bot_prefix),
        default_rotation_schedule=raw.get(
            "default_rotation_schedule", defaults.default_rotation_schedule
        ),
        timezone=raw.get("timezone", defaults.timezone),
        leaderboard_size=int(raw.get("leaderboard_size", defaults.leaderboard_size)),
        pending_ttl_seconds=int(
            raw.get("pending_ttl_seconds", defaults.pending_ttl_seconds)
        ),
        action_points=action_points,
    )
