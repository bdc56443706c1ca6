"""
tests/test_router.py — Component Router Tests
==============================================
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from meritboard.bot.router import ComponentId, ComponentKind, ComponentRouter


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


def _interaction(custom_id: str | None) -> SimpleNamespace:
    return SimpleNamespace(data={"custom_id": custom_id} if custom_id else None)


class TestComponentId:
    def test_encode(self):
        assert ComponentId(ComponentKind.ADD_SANCTION, 99, "WARN").encode() == "mb:add:99:WARN"
        assert ComponentId(ComponentKind.COMMIT, 99).encode() == "mb:commit:99"

    def test_decode(self):
        assert ComponentId.decode("mb:add:99:BAN") == ComponentId(
            ComponentKind.ADD_SANCTION, 99, "BAN",
        )
        assert ComponentId.decode("mb:cancel:7") == ComponentId(ComponentKind.CANCEL, 7)

    @pytest.mark.parametrize("custom_id", [
        None,
        "",
        "other:add:1",
        "mb:explode:1",
        "mb:add:notanumber",
        "mb:add",
        "mb:add:1:WARN:extra",
    ])
    def test_decode_rejects(self, custom_id):
        assert ComponentId.decode(custom_id) is None


class TestComponentRouter:
    def test_dispatch_to_registered_handler(self):
        router = ComponentRouter()
        handler = AsyncMock()
        router.register(ComponentKind.COMMIT, handler)
        interaction = _interaction("mb:commit:99")

        assert run_async(router.dispatch(interaction)) is True
        handler.assert_awaited_once_with(interaction, ComponentId(ComponentKind.COMMIT, 99))

    def test_duplicate_registration_rejected(self):
        router = ComponentRouter()
        router.register(ComponentKind.COMMIT, AsyncMock())
        with pytest.raises(ValueError):
            router.register(ComponentKind.COMMIT, AsyncMock())

    def test_unregistered_kind_ignored(self):
        router = ComponentRouter()
        assert run_async(router.dispatch(_interaction("mb:cancel:99"))) is False

    def test_foreign_and_malformed_ids_ignored(self):
        router = ComponentRouter()
        handler = AsyncMock()
        router.register(ComponentKind.ADD_SANCTION, handler)

        assert run_async(router.dispatch(_interaction("someone-else"))) is False
        assert run_async(router.dispatch(_interaction("mb:add:x"))) is False
        assert run_async(router.dispatch(_interaction(None))) is False
        handler.assert_not_awaited()

    def test_unregister_allows_reregister(self):
        router = ComponentRouter()
        router.register(ComponentKind.CANCEL, AsyncMock())
        router.unregister(ComponentKind.CANCEL)
        router.register(ComponentKind.CANCEL, AsyncMock())
