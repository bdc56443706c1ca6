"""
meritboard.services.report_service — Action Report Fan-out
===========================================================

Sends a report of every committed action to the guild's subscribed
recipients by direct message.

Deliveries run concurrently; one failure never stops the others.  A
recipient whose failure is flagged ``blocked`` (the platform refuses to
message them at all) is removed from ``report_recipients`` so the list
heals itself.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import discord
from sqlalchemy import Engine

from meritboard.database.engine import run_db
from meritboard.errors import DeliveryFailure, StorageFailure
from meritboard.services.guild_config_service import (
    list_report_recipients,
    remove_report_recipient,
)

logger = logging.getLogger(__name__)

# Discord JSON error code: "Cannot send messages to this user"
CANNOT_MESSAGE_USER = 50007

# (user_id, embed) → awaitable; raises DeliveryFailure
Sender = Callable[[int, discord.Embed], Awaitable[None]]


@dataclass(slots=True)
class DeliveryReport:
    delivered: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    pruned: list[int] = field(default_factory=list)


async def _deliver_one(
    sender: Sender, user_id: int, payload: discord.Embed,
) -> DeliveryFailure | None:
    try:
        await sender(user_id, payload)
    except DeliveryFailure as exc:
        return exc
    return None


async def deliver_reports(
    engine: Engine,
    guild_id: int,
    sender: Sender,
    payload: discord.Embed,
) -> DeliveryReport:
    """DM *payload* to every report recipient of the guild."""
    report = DeliveryReport()
    recipients = await run_db(list_report_recipients, engine, guild_id)
    if not recipients:
        return report

    outcomes = await asyncio.gather(
        *(_deliver_one(sender, uid, payload) for uid in recipients)
    )

    for uid, failure in zip(recipients, outcomes):
        if failure is None:
            report.delivered.append(uid)
            continue
        report.failed.append(uid)
        logger.warning(
            "Report delivery to %d failed in guild %d: %s", uid, guild_id, failure.message,
            extra={"guild_id": guild_id, "user_id": uid, "blocked": failure.blocked},
        )
        if not failure.blocked:
            continue
        try:
            await run_db(remove_report_recipient, engine, guild_id, uid)
        except StorageFailure:
            logger.warning(
                "Could not prune report recipient %d from guild %d", uid, guild_id,
                extra={"guild_id": guild_id, "user_id": uid},
            )
            continue
        report.pruned.append(uid)
        logger.info("Pruned unreachable report recipient %d from guild %d", uid, guild_id)

    return report


def make_dm_sender(client: discord.Client) -> Sender:
    """Build a :data:`Sender` that DMs users through *client*."""

    async def send(user_id: int, embed: discord.Embed) -> None:
        try:
            user = client.get_user(user_id) or await client.fetch_user(user_id)
            await user.send(embed=embed)
        except discord.NotFound as exc:
            raise DeliveryFailure(user_id, blocked=True, reason="unknown user") from exc
        except discord.Forbidden as exc:
            raise DeliveryFailure(
                user_id, blocked=exc.code == CANNOT_MESSAGE_USER, reason=exc.text,
            ) from exc
        except discord.HTTPException as exc:
            raise DeliveryFailure(user_id, reason=str(exc)) from exc

    return send
