"""
bastion.bot.cogs.raid — /raid commands
========================================

Raid detection itself runs on member join (see ``membership.py``); this cog
lets operators configure it, inspect the current state and end raid mode.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from bastion.bot.errors import handle_command_error
from bastion.database.engine import run_db
from bastion.services.embeds import build_raid_status_embed
from bastion.services.policy_service import get_raid_policy, update_raid_policy
from bastion.services.raid_service import get_raid_state

if TYPE_CHECKING:
    from bastion.bot.core import BastionBot

logger = logging.getLogger(__name__)


class Raid(commands.Cog, name="Raid"):
    """Raid protection configuration and control."""

    def __init__(self, bot: BastionBot) -> None:
        self.bot = bot

    raid = app_commands.Group(
        name="raid",
        description="Configure raid protection",
        default_permissions=discord.Permissions(manage_guild=True),
        guild_only=True,
    )

    @raid.command(name="enable", description="Enable raid protection")
    async def enable(self, interaction: discord.Interaction) -> None:
        policy = await run_db(
            update_raid_policy, self.bot.engine, interaction.guild_id, {"enabled": True}
        )
        await interaction.response.send_message(
            f"✅ Raid protection enabled! Threshold: {policy.join_threshold} joins "
            f"in {policy.time_window_ms / 1000:g}s",
            ephemeral=True,
        )

    @raid.command(name="disable", description="Disable raid protection")
    async def disable(self, interaction: discord.Interaction) -> None:
        await run_db(update_raid_policy, self.bot.engine, interaction.guild_id, {"enabled": False})
        await interaction.response.send_message("❌ Raid protection disabled.", ephemeral=True)

    @raid.command(name="status", description="View raid protection status")
    async def status(self, interaction: discord.Interaction) -> None:
        policy = await run_db(get_raid_policy, self.bot.engine, interaction.guild_id)
        state = await run_db(get_raid_state, self.bot.engine, interaction.guild_id)
        await interaction.response.send_message(
            embed=build_raid_status_embed(policy, state), ephemeral=True
        )

    @raid.command(name="end", description="End active raid mode")
    async def end(self, interaction: discord.Interaction) -> None:
        summary = await self.bot.moderation.end_raid(interaction.guild_id)
        if summary is None:
            await interaction.response.send_message(
                "❌ No raid is currently active.", ephemeral=True
            )
            return

        minutes = summary.duration_minutes
        logger.info(
            "Raid ended by %s in guild %d", interaction.user.id, interaction.guild_id
        )
        await interaction.response.send_message(
            "✅ Raid mode deactivated!\n\n"
            f"Duration: {minutes} minute{'s' if minutes != 1 else ''}\n"
            f"Members handled: {summary.handled_count}",
            ephemeral=True,
        )

    @raid.command(name="config", description="Configure raid protection settings")
    @app_commands.describe(
        threshold="Joins within the window that trigger raid mode",
        window="Time window in seconds",
        action="Action for new accounts during a raid",
        min_account_age="Accounts younger than this (days) are handled during a raid; 0 disables",
        quarantine_role="Role for quarantine action",
    )
    @app_commands.choices(action=[
        app_commands.Choice(name="Kick", value="kick"),
        app_commands.Choice(name="Ban", value="ban"),
        app_commands.Choice(name="Quarantine", value="quarantine"),
    ])
    async def config(
        self,
        interaction: discord.Interaction,
        threshold: Optional[app_commands.Range[int, 3, 50]] = None,
        window: Optional[app_commands.Range[int, 5, 60]] = None,
        action: str | None = None,
        min_account_age: Optional[app_commands.Range[int, 0, 365]] = None,
        quarantine_role: discord.Role | None = None,
    ) -> None:
        updates: dict = {}
        if threshold is not None:
            updates["join_threshold"] = threshold
        if window is not None:
            updates["time_window_ms"] = window * 1000
        if action is not None:
            updates["action"] = action
        if min_account_age is not None:
            updates["min_account_age_days"] = min_account_age
        if quarantine_role is not None:
            updates["quarantine_role_id"] = quarantine_role.id

        if not updates:
            await interaction.response.send_message(
                "No settings specified. Use the options to configure raid protection.",
                ephemeral=True,
            )
            return

        await run_db(update_raid_policy, self.bot.engine, interaction.guild_id, updates)
        await interaction.response.send_message(
            "✅ Raid protection settings updated.", ephemeral=True
        )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(interaction, error)


async def setup(bot: BastionBot) -> None:
    await bot.add_cog(Raid(bot))
