"""
meritboard.bot.router — Component Interaction Dispatch
=======================================================

Buttons and select menus carry a structured ``custom_id``::

    mb:<kind>:<target_id>[:<action_kind>]

:class:`ComponentRouter` maps each :class:`ComponentKind` to exactly one
handler coroutine, registered once at start-up.  Ids that don't parse, or
whose kind has no handler, are logged and ignored.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import discord

logger = logging.getLogger(__name__)

CUSTOM_ID_PREFIX = "mb"


class ComponentKind(enum.StrEnum):
    ADD_SANCTION = "add"
    COMMIT = "commit"
    CANCEL = "cancel"


@dataclass(frozen=True, slots=True)
class ComponentId:
    kind: ComponentKind
    target_id: int
    action_kind: str | None = None

    def encode(self) -> str:
        parts = [CUSTOM_ID_PREFIX, str(self.kind), str(self.target_id)]
        if self.action_kind:
            parts.append(self.action_kind)
        return ":".join(parts)

    @classmethod
    def decode(cls, custom_id: str | None) -> ComponentId | None:
        """Parse *custom_id*; None if it isn't one of ours or is malformed."""
        if not custom_id:
            return None
        parts = custom_id.split(":")
        if len(parts) not in (3, 4) or parts[0] != CUSTOM_ID_PREFIX:
            return None
        try:
            kind = ComponentKind(parts[1])
            target_id = int(parts[2])
        except ValueError:
            return None
        return cls(kind, target_id, parts[3] if len(parts) == 4 else None)


Handler = Callable[[discord.Interaction, ComponentId], Awaitable[None]]


class ComponentRouter:
    """Dispatch table from :class:`ComponentKind` to handler."""

    def __init__(self) -> None:
        self._handlers: dict[ComponentKind, Handler] = {}

    def register(self, kind: ComponentKind, handler: Handler) -> None:
        if kind in self._handlers:
            raise ValueError(f"Handler already registered for {kind!r}")
        self._handlers[kind] = handler
        logger.info("Registered component handler for '%s'", kind)

    def unregister(self, kind: ComponentKind) -> None:
        self._handlers.pop(kind, None)

    async def dispatch(self, interaction: discord.Interaction) -> bool:
        """Route a component interaction.  Returns True if a handler ran."""
        data = interaction.data or {}
        custom_id = data.get("custom_id")
        component = ComponentId.decode(custom_id)
        if component is None:
            if custom_id and custom_id.startswith(f"{CUSTOM_ID_PREFIX}:"):
                logger.warning("Malformed component id: %s", custom_id)
            return False

        handler = self._handlers.get(component.kind)
        if handler is None:
            logger.warning("No handler for component kind '%s' — ignoring", component.kind)
            return False

        await handler(interaction, component)
        return True
