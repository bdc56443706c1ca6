"""
tests/test_report_service.py — Report Fan-out Tests
====================================================

Deliveries are independent: one recipient failing never blocks another,
and recipients the platform refuses to message are pruned.
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import discord
import pytest

from meritboard.errors import DeliveryFailure, StorageFailure
from meritboard.services import report_service
from meritboard.services.guild_config_service import (
    add_report_recipient,
    list_report_recipients,
    remove_report_recipient,
)
from meritboard.services.report_service import (
    CANNOT_MESSAGE_USER,
    deliver_reports,
    make_dm_sender,
)

GUILD = 100
U1, U2, U3 = 11, 22, 33


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


@pytest.fixture
def engine(db_engine):
    return db_engine


def _http_error(cls, status: int, code: int, text: str = "error"):
    response = SimpleNamespace(status=status, reason=text)
    return cls(response, {"code": code, "message": text})


# ===========================================================================
# Test: deliver_reports
# ===========================================================================
class TestDeliverReports:
    def test_no_recipients(self, engine):
        sender = AsyncMock()
        report = run_async(deliver_reports(engine, GUILD, sender, discord.Embed()))
        sender.assert_not_awaited()
        assert report.delivered == []

    def test_all_delivered(self, engine):
        add_report_recipient(engine, GUILD, U1)
        add_report_recipient(engine, GUILD, U2)
        embed = discord.Embed(title="Report")
        sender = AsyncMock()

        report = run_async(deliver_reports(engine, GUILD, sender, embed))

        assert sorted(report.delivered) == [U1, U2]
        assert report.failed == []
        sender.assert_any_await(U1, embed)
        sender.assert_any_await(U2, embed)

    def test_blocked_recipient_pruned_others_delivered(self, engine):
        add_report_recipient(engine, GUILD, U1)
        add_report_recipient(engine, GUILD, U2)

        async def sender(user_id, embed):
            if user_id == U1:
                raise DeliveryFailure(user_id, blocked=True, reason="DMs closed")

        report = run_async(deliver_reports(engine, GUILD, sender, discord.Embed()))

        assert report.delivered == [U2]
        assert report.failed == [U1]
        assert report.pruned == [U1]
        assert list_report_recipients(engine, GUILD) == [U2]

    def test_prune_failure_does_not_stop_the_rest(self, engine):
        for uid in (U1, U2, U3):
            add_report_recipient(engine, GUILD, uid)

        async def sender(user_id, embed):
            raise DeliveryFailure(user_id, blocked=True, reason="DMs closed")

        def _flaky_remove(engine, guild_id, user_id):
            if user_id == U1:
                raise StorageFailure("remove_report_recipient", {"user_id": user_id})
            return remove_report_recipient(engine, guild_id, user_id)

        with patch.object(report_service, "remove_report_recipient", _flaky_remove):
            report = run_async(deliver_reports(engine, GUILD, sender, discord.Embed()))

        assert report.failed == [U1, U2, U3]
        assert report.pruned == [U2, U3]
        assert list_report_recipients(engine, GUILD) == [U1]

    def test_transient_failure_keeps_recipient(self, engine):
        add_report_recipient(engine, GUILD, U1)
        add_report_recipient(engine, GUILD, U3)

        async def sender(user_id, embed):
            if user_id == U3:
                raise DeliveryFailure(user_id, reason="503")

        report = run_async(deliver_reports(engine, GUILD, sender, discord.Embed()))

        assert report.failed == [U3]
        assert report.pruned == []
        assert list_report_recipients(engine, GUILD) == [U1, U3]

    def test_deliveries_run_concurrently(self, engine):
        """A slow recipient doesn't serialize the others."""
        for uid in (U1, U2, U3):
            add_report_recipient(engine, GUILD, uid)
        started: list[int] = []

        async def sender(user_id, embed):
            started.append(user_id)
            await asyncio.sleep(0.05)
            # Every delivery has begun before the first one finishes
            assert len(started) == 3

        report = run_async(deliver_reports(engine, GUILD, sender, discord.Embed()))
        assert sorted(report.delivered) == [U1, U2, U3]


# ===========================================================================
# Test: make_dm_sender
# ===========================================================================
class TestDmSender:
    def _client(self, user):
        client = MagicMock()
        client.get_user.return_value = user
        client.fetch_user = AsyncMock(return_value=user)
        return client

    def test_sends_embed(self):
        user = MagicMock()
        user.send = AsyncMock()
        embed = discord.Embed(title="Report")

        run_async(make_dm_sender(self._client(user))(U1, embed))

        user.send.assert_awaited_once_with(embed=embed)

    def test_fetches_uncached_user(self):
        user = MagicMock()
        user.send = AsyncMock()
        client = self._client(None)
        client.fetch_user.return_value = user

        run_async(make_dm_sender(client)(U1, discord.Embed()))

        client.fetch_user.assert_awaited_once_with(U1)
        user.send.assert_awaited_once()

    def test_cannot_message_user_is_blocked(self):
        user = MagicMock()
        user.send = AsyncMock(side_effect=_http_error(
            discord.Forbidden, 403, CANNOT_MESSAGE_USER, "Cannot send messages to this user",
        ))

        with pytest.raises(DeliveryFailure) as exc_info:
            run_async(make_dm_sender(self._client(user))(U1, discord.Embed()))
        assert exc_info.value.blocked is True
        assert exc_info.value.user_id == U1

    def test_other_forbidden_not_blocked(self):
        user = MagicMock()
        user.send = AsyncMock(side_effect=_http_error(discord.Forbidden, 403, 50001))

        with pytest.raises(DeliveryFailure) as exc_info:
            run_async(make_dm_sender(self._client(user))(U1, discord.Embed()))
        assert exc_info.value.blocked is False

    def test_unknown_user_is_blocked(self):
        client = self._client(None)
        client.fetch_user.side_effect = _http_error(discord.NotFound, 404, 10013)

        with pytest.raises(DeliveryFailure) as exc_info:
            run_async(make_dm_sender(client)(U1, discord.Embed()))
        assert exc_info.value.blocked is True

    def test_server_error_not_blocked(self):
        user = MagicMock()
        user.send = AsyncMock(side_effect=_http_error(discord.HTTPException, 500, 0))

        with pytest.raises(DeliveryFailure) as exc_info:
            run_async(make_dm_sender(self._client(user))(U1, discord.Embed()))
        assert exc_info.value.blocked is False
