"""
meritboard.engine.schedule — Rotation Schedule Expressions
===========================================================

Rotation schedules are 5-field cron expressions
(``minute hour day-of-month month day-of-week``).  Parsing and iteration
are delegated to :mod:`croniter`; this module only narrows it to the
5-field form and converts its errors into
:class:`~meritboard.errors.InvalidScheduleExpression`.
"""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadCronError, CroniterBadDateError, croniter

from meritboard.errors import InvalidScheduleExpression

CRON_FIELD_COUNT = 5


def validate_schedule(expression: str) -> str:
    """Return the normalised *expression* or raise InvalidScheduleExpression."""
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidScheduleExpression(str(expression), "empty expression")

    normalised = " ".join(expression.split())
    fields = normalised.split(" ")
    if len(fields) != CRON_FIELD_COUNT:
        raise InvalidScheduleExpression(
            expression, f"expected {CRON_FIELD_COUNT} fields, got {len(fields)}"
        )
    if not croniter.is_valid(normalised):
        raise InvalidScheduleExpression(expression, "field out of range or malformed")
    # Ranges can be valid yet never line up, e.g. 30 February
    try:
        croniter(normalised, datetime.now(UTC)).get_next(datetime)
    except (CroniterBadCronError, CroniterBadDateError) as exc:
        raise InvalidScheduleExpression(expression, "never fires") from exc
    return normalised


def resolve_timezone(name: str) -> ZoneInfo:
    """ZoneInfo for *name*, falling back to UTC for unknown zones."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def next_fire(expression: str, after: datetime | None = None) -> datetime:
    """Next time *expression* fires strictly after *after* (aware datetime)."""
    expression = validate_schedule(expression)
    after = after or datetime.now(UTC)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    return croniter(expression, after).get_next(datetime)


def seconds_until_next(expression: str, now: datetime | None = None) -> float:
    """Seconds from *now* until the next firing (never negative)."""
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return max((next_fire(expression, now) - now).total_seconds(), 0.0)
