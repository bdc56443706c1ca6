"""
meritboard.errors — Domain Error Hierarchy
===========================================

Services raise these; cogs translate them into short, non-technical
replies via :meth:`MeritError.user_message`.

Business-rule errors (:class:`UnknownActionKind`, :class:`EmptyBatchError`,
:class:`InvalidScheduleExpression`, :class:`InvalidRates`) are raised before
any mutation.  :class:`StorageFailure` wraps SQLAlchemy errors and carries
the operation name and keys for logging.  :class:`DeliveryFailure` is the
only tolerated error: report fan-out collects it and keeps going.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class MeritError(Exception):
    """Base class for all MeritBoard domain errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details: dict[str, Any] = details or {}
        super().__init__(message)

    def user_message(self) -> str:
        """Text safe to show to a Discord user."""
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class StorageFailure(MeritError):
    """The relational store failed; the operation was aborted."""

    def __init__(self, operation: str, keys: dict[str, Any] | None = None) -> None:
        self.operation = operation
        self.keys = keys or {}
        super().__init__(
            f"Storage operation {operation!r} failed",
            details={"operation": operation, **self.keys},
        )

    def user_message(self) -> str:
        return "Something went wrong while saving. Please try again in a moment."


class UnknownActionKind(MeritError):
    """An action kind is not registered in the catalog."""

    def __init__(self, kind: object) -> None:
        self.kind = kind
        super().__init__(f"Unknown action kind: {kind}", details={"kind": str(kind)})

    def user_message(self) -> str:
        return f"`{self.kind}` is not a recognised action."


class EmptyBatchError(MeritError):
    """Commit was attempted with no pending sanctions."""

    def __init__(self, target_id: int) -> None:
        self.target_id = target_id
        super().__init__(
            "No sanctions selected", details={"target_id": target_id}
        )

    def user_message(self) -> str:
        return "No sanction has been selected yet."


class InvalidScheduleExpression(MeritError):
    """A rotation schedule is not a valid 5-field cron expression."""

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(
            f"Invalid schedule {expression!r}: {reason}",
            details={"expression": expression, "reason": reason},
        )

    def user_message(self) -> str:
        return (
            f"`{self.expression}` is not a valid schedule ({self.reason}).\n"
            "Use five fields: minute hour day-of-month month day-of-week, "
            "e.g. `0 0 * * 0`."
        )


class InvalidRates(MeritError):
    """A global rate update was rejected."""

    def __init__(self, field: str, value: object) -> None:
        self.field = field
        self.value = value
        super().__init__(
            f"Invalid value for {field}: {value!r}",
            details={"field": field, "value": value},
        )

    def user_message(self) -> str:
        return f"`{self.field}` must not be negative (got {self.value})."


class DeliveryFailure(MeritError):
    """A direct message could not be delivered to one recipient.

    ``blocked`` is True when the platform reports the user cannot be
    messaged at all; such recipients are pruned from the report list.
    """

    def __init__(self, user_id: int, *, blocked: bool = False, reason: str = "") -> None:
        self.user_id = user_id
        self.blocked = blocked
        super().__init__(
            f"Could not deliver to {user_id}" + (f": {reason}" if reason else ""),
            details={"user_id": user_id, "blocked": blocked},
        )


# ---------------------------------------------------------------------------
# Storage guard
# ---------------------------------------------------------------------------
def storage_guard(operation: str, *key_names: str) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Wrap a sync DB function so SQLAlchemy errors surface as StorageFailure.

    *key_names* are keyword arguments (or positional names) copied into the
    failure's context for logging, e.g. ``@storage_guard("credit_points",
    "user_id", "guild_id")``.
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except SQLAlchemyError as exc:
                try:
                    bound = signature.bind_partial(*args, **kwargs).arguments
                except TypeError:
                    bound = dict(kwargs)
                keys = {name: bound.get(name) for name in key_names}
                logger.error(
                    "Storage failure in %s %s: %s", operation, keys, exc,
                    extra={"operation": operation, **keys},
                )
                raise StorageFailure(operation, keys) from exc

        return wrapper

    return decorator
