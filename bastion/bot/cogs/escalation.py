"""
bastion.bot.cogs.escalation — /escalation commands
====================================================

Edits the guild's strike-escalation rules.  The rules themselves are applied
by :meth:`ModerationService.issue_warning` after every ``/warn``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from bastion.bot.errors import handle_command_error
from bastion.constants import (
    DEFAULT_ESCALATION_TIMEOUT_MS,
    format_escalation_duration,
    parse_escalation_duration,
)
from bastion.database.engine import run_db
from bastion.services.embeds import build_escalation_status_embed
from bastion.services.policy_service import (
    get_escalation_policy,
    remove_escalation_rule,
    reset_escalation_rules,
    set_escalation_rule,
    update_escalation_policy,
)

if TYPE_CHECKING:
    from bastion.bot.core import BastionBot

logger = logging.getLogger(__name__)


class Escalation(commands.Cog, name="Escalation"):
    """Strike escalation configuration."""

    def __init__(self, bot: BastionBot) -> None:
        self.bot = bot

    escalation = app_commands.Group(
        name="escalation",
        description="Configure automatic strike escalation",
        default_permissions=discord.Permissions(manage_guild=True),
        guild_only=True,
    )

    @escalation.command(name="enable", description="Enable strike escalation")
    async def enable(self, interaction: discord.Interaction) -> None:
        await run_db(
            update_escalation_policy, self.bot.engine, interaction.guild_id, {"enabled": True}
        )
        await interaction.response.send_message("✅ Strike escalation enabled!", ephemeral=True)

    @escalation.command(name="disable", description="Disable strike escalation")
    async def disable(self, interaction: discord.Interaction) -> None:
        await run_db(
            update_escalation_policy, self.bot.engine, interaction.guild_id, {"enabled": False}
        )
        await interaction.response.send_message("❌ Strike escalation disabled.", ephemeral=True)

    @escalation.command(name="status", description="View current escalation rules")
    async def status(self, interaction: discord.Interaction) -> None:
        policy = await run_db(get_escalation_policy, self.bot.engine, interaction.guild_id)
        embed = build_escalation_status_embed(policy)
        embed.set_footer(text="Use /escalation set to add rules, /escalation remove to delete")
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @escalation.command(name="set", description="Set an escalation rule")
    @app_commands.describe(
        warns="Number of warnings to trigger escalation",
        action="Action to take",
        duration="Timeout duration (e.g., 1h, 24h, 7d) - only for timeout action",
    )
    @app_commands.choices(action=[
        app_commands.Choice(name="Timeout", value="timeout"),
        app_commands.Choice(name="Kick", value="kick"),
        app_commands.Choice(name="Ban", value="ban"),
    ])
    async def set_rule(
        self,
        interaction: discord.Interaction,
        warns: app_commands.Range[int, 1, 50],
        action: str,
        duration: str | None = None,
    ) -> None:
        duration_ms = None
        if action == "timeout":
            duration_ms = (
                parse_escalation_duration(duration) if duration else DEFAULT_ESCALATION_TIMEOUT_MS
            )

        await run_db(
            set_escalation_rule, self.bot.engine, interaction.guild_id, warns, action, duration_ms
        )
        label = action
        if duration_ms:
            label += f" ({format_escalation_duration(duration_ms)})"
        await interaction.response.send_message(
            f"✅ Set escalation rule: **{warns} warnings** → {label}", ephemeral=True
        )

    @escalation.command(name="remove", description="Remove an escalation rule")
    @app_commands.describe(warns="Warning count to remove rule for")
    async def remove_rule(self, interaction: discord.Interaction, warns: int) -> None:
        removed = await run_db(
            remove_escalation_rule, self.bot.engine, interaction.guild_id, warns
        )
        if not removed:
            await interaction.response.send_message(
                f"❌ No rule found for {warns} warnings.", ephemeral=True
            )
            return
        await interaction.response.send_message(
            f"✅ Removed escalation rule for {warns} warnings.", ephemeral=True
        )

    @escalation.command(name="reset", description="Reset to default escalation rules")
    async def reset(self, interaction: discord.Interaction) -> None:
        await run_db(reset_escalation_rules, self.bot.engine, interaction.guild_id)
        await interaction.response.send_message(
            "✅ Escalation rules reset to defaults.", ephemeral=True
        )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(interaction, error)


async def setup(bot: BastionBot) -> None:
    await bot.add_cog(Escalation(bot))
