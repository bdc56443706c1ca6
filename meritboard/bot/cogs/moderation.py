"""
meritboard.bot.cogs.moderation — Sanctions & Action Declarations
=================================================================

Moderator-only commands that earn merit points:

- /sanction — open an ephemeral panel, pick one or more sanctions with
  buttons, then confirm (one atomic commit) or cancel.
- /declare — record a single action immediately.

Panel buttons are routed through the bot's ``ComponentRouter``; handlers
are registered when this cog loads.  Every committed action is reported
to the guild's report recipients by DM.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from meritboard.bot.checks import handle_command_error, is_moderator, member_is_moderator
from meritboard.bot.router import ComponentId, ComponentKind
from meritboard.constants import MAX_MENU_OPTIONS
from meritboard.database.engine import run_db
from meritboard.engine.catalog import ActionCategory
from meritboard.engine.pending import BatchKey
from meritboard.services.embeds import (
    build_commit_embed,
    build_declaration_embed,
    build_sanction_panel_embed,
)
from meritboard.services.sanction_service import (
    cancel_pending,
    commit_pending,
    declare_action,
    format_details,
)

if TYPE_CHECKING:
    from meritboard.bot.core import MeritBot

logger = logging.getLogger(__name__)

# Four rows of sanction buttons, the fifth holds confirm/cancel
_SANCTION_BUTTONS = 20
_BUTTONS_PER_ROW = 5


class Moderation(commands.Cog, name="Moderation"):
    """Sanction panel and single-action declarations."""

    def __init__(self, bot: MeritBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.bot.router.register(ComponentKind.ADD_SANCTION, self._on_add)
        self.bot.router.register(ComponentKind.COMMIT, self._on_commit)
        self.bot.router.register(ComponentKind.CANCEL, self._on_cancel)

    async def cog_unload(self) -> None:
        for kind in ComponentKind:
            self.bot.router.unregister(kind)

    # -------------------------------------------------------------------
    # Panel
    # -------------------------------------------------------------------
    def _panel_view(self, target_id: int) -> discord.ui.View:
        view = discord.ui.View(timeout=self.bot.cfg.pending_ttl_seconds)
        entries = self.bot.catalog.page(ActionCategory.DISCIPLINE, size=_SANCTION_BUTTONS)
        for i, entry in enumerate(entries):
            view.add_item(discord.ui.Button(
                label=f"{entry.label} (+{entry.points})",
                emoji=entry.emoji or None,
                style=discord.ButtonStyle.secondary,
                custom_id=ComponentId(
                    ComponentKind.ADD_SANCTION, target_id, str(entry.kind),
                ).encode(),
                row=i // _BUTTONS_PER_ROW,
            ))
        view.add_item(discord.ui.Button(
            label="Confirm",
            style=discord.ButtonStyle.success,
            custom_id=ComponentId(ComponentKind.COMMIT, target_id).encode(),
            row=4,
        ))
        view.add_item(discord.ui.Button(
            label="Cancel",
            style=discord.ButtonStyle.danger,
            custom_id=ComponentId(ComponentKind.CANCEL, target_id).encode(),
            row=4,
        ))
        return view

    async def _gate(self, interaction: discord.Interaction) -> int | None:
        """Moderator check for panel clicks; returns the guild id when allowed."""
        guild_id = interaction.guild_id
        if guild_id is None or not await member_is_moderator(
            self.bot, interaction.user, guild_id,
        ):
            await interaction.response.send_message(
                "🔒 Only moderators can use this panel.", ephemeral=True,
            )
            return None
        return guild_id

    # -------------------------------------------------------------------
    # /sanction
    # -------------------------------------------------------------------
    @app_commands.command(name="sanction", description="Open the sanction panel for a member.")
    @app_commands.describe(member="The member being sanctioned")
    @app_commands.guild_only()
    @is_moderator()
    async def sanction(self, interaction: discord.Interaction, member: discord.Member) -> None:
        if member.id == interaction.user.id:
            await interaction.response.send_message(
                "❌ You can't sanction yourself.", ephemeral=True,
            )
            return
        key = BatchKey(interaction.guild_id or 0, interaction.user.id, member.id)
        self.bot.accumulator.open(key)
        await interaction.response.send_message(
            embed=build_sanction_panel_embed(self.bot.catalog, member.id, []),
            view=self._panel_view(member.id),
            ephemeral=True,
        )

    async def _on_add(self, interaction: discord.Interaction, component: ComponentId) -> None:
        guild_id = await self._gate(interaction)
        if guild_id is None:
            return
        key = BatchKey(guild_id, interaction.user.id, component.target_id)
        selected = self.bot.accumulator.add(key, component.action_kind or "")
        await interaction.response.edit_message(
            embed=build_sanction_panel_embed(self.bot.catalog, component.target_id, selected),
        )

    async def _on_commit(self, interaction: discord.Interaction, component: ComponentId) -> None:
        guild_id = await self._gate(interaction)
        if guild_id is None:
            return
        key = BatchKey(guild_id, interaction.user.id, component.target_id)
        result = await run_db(
            commit_pending, self.bot.engine, self.bot.catalog, self.bot.accumulator, key,
        )
        await interaction.response.edit_message(
            embed=build_commit_embed(
                self.bot.catalog, component.target_id, result.breakdown,
                result.total_awarded, result.new_total,
            ),
            view=None,
        )
        if interaction.guild is not None:
            await self.bot.report_actions(
                interaction.guild,
                actor_id=interaction.user.id,
                target_id=component.target_id,
                breakdown=result.breakdown,
            )

    async def _on_cancel(self, interaction: discord.Interaction, component: ComponentId) -> None:
        guild_id = await self._gate(interaction)
        if guild_id is None:
            return
        key = BatchKey(guild_id, interaction.user.id, component.target_id)
        dropped = cancel_pending(self.bot.accumulator, key)
        await interaction.response.edit_message(
            content=f"\U0001f6ab Sanction cancelled ({dropped} selection(s) discarded).",
            embed=None,
            view=None,
        )

    # -------------------------------------------------------------------
    # /declare
    # -------------------------------------------------------------------
    @app_commands.command(name="declare", description="Record a moderation action you performed.")
    @app_commands.describe(
        kind="What you did",
        member="Who the action concerned (optional)",
        reason="Short reason",
        evidence="Link to evidence (message, screenshot…)",
    )
    @app_commands.guild_only()
    @is_moderator()
    async def declare(
        self,
        interaction: discord.Interaction,
        kind: str,
        member: discord.Member | None = None,
        reason: str | None = None,
        evidence: str | None = None,
    ) -> None:
        result = await run_db(
            declare_action,
            self.bot.engine,
            self.bot.catalog,
            interaction.user.id,
            interaction.guild_id or 0,
            kind,
            target_id=member.id if member else None,
            reason=reason,
            evidence=evidence,
        )
        entry = self.bot.catalog.lookup(kind)
        await interaction.response.send_message(
            embed=build_declaration_embed(
                self.bot.catalog, entry.kind, result.points_awarded,
                result.new_total, result.new_weekly_total,
            ),
            ephemeral=True,
        )
        if interaction.guild is not None:
            await self.bot.report_actions(
                interaction.guild,
                actor_id=interaction.user.id,
                target_id=member.id if member else None,
                breakdown=[(entry.kind, result.points_awarded)],
                details=format_details(reason, evidence),
            )

    @declare.autocomplete("kind")
    async def _kind_autocomplete(
        self, interaction: discord.Interaction, current: str,
    ) -> list[app_commands.Choice[str]]:
        current = current.lower()
        choices = [
            app_commands.Choice(name=f"{e.label} (+{e.points})", value=str(e.kind))
            for e in self.bot.catalog.selectable_entries()
            if current in e.label.lower() or current in str(e.kind).lower()
        ]
        return choices[:MAX_MENU_OPTIONS]

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(
            interaction, error, denied="🔒 You need the moderator role to use this command.",
        )


async def setup(bot: MeritBot) -> None:
    await bot.add_cog(Moderation(bot))
