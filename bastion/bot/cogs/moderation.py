"""
bastion.bot.cogs.moderation — Moderator Slash Commands
========================================================

- /warn — record a warning (and apply strike escalation)
- /timeout, /untimeout — mute a member for a parsed duration / lift it
- /kick, /ban, /unban
- /history — a member's case summary and latest cases
- /case — look up one case by number
- /cases — the guild's newest cases

Guard rails: guild-only, no self-action, no acting on members whose top role
is at or above the moderator's, no warning bots, timeouts at most 28 days.
Every action is written to the case ledger and posted to the mod log.
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
    MAX_TIMEOUT_SECONDS,
    format_duration,
    format_escalation_duration,
    parse_duration,
)
from bastion.database.engine import run_db
from bastion.database.models import ActionKind
from bastion.engine.actions import Enforcement, EnforcementKind
from bastion.services.case_service import (
    count_by_action_kind,
    create_case,
    get_case,
    get_recent_cases,
    get_user_cases,
)
from bastion.services.embeds import (
    build_case_embed,
    build_history_embed,
    build_recent_cases_embed,
)
from bastion.services.enforcement import EnforcementContext, apply, post_mod_log

if TYPE_CHECKING:
    from bastion.bot.core import BastionBot

logger = logging.getLogger(__name__)

_ESCALATION_SUMMARY = {
    "timeout": "Timed out for {duration}",
    "kick": "User kicked",
    "ban": "User banned",
}


def _hierarchy_error(
    interaction: discord.Interaction, target: discord.Member, verb: str
) -> str | None:
    """Common target checks; returns the refusal message, if any."""
    moderator = interaction.user
    if target.id == moderator.id:
        return f"You cannot {verb} yourself."
    guild = interaction.guild
    if guild is not None and guild.owner_id == moderator.id:
        return None
    if isinstance(moderator, discord.Member) and target.top_role >= moderator.top_role:
        return f"You cannot {verb} a member with equal or higher role than you."
    return None


class Moderation(commands.Cog, name="Moderation"):
    """Manual moderation commands backed by the case ledger."""

    def __init__(self, bot: BastionBot) -> None:
        self.bot = bot

    def _context(
        self, interaction: discord.Interaction, member: discord.Member
    ) -> EnforcementContext:
        assert interaction.guild is not None
        return EnforcementContext(
            engine=self.bot.engine,
            guild_id=interaction.guild.id,
            guild_name=interaction.guild.name,
            member=member,
            moderator_id=interaction.user.id,
            moderator_tag=str(interaction.user),
            log_channel=self.bot.mod_log_channel(),
        )

    # -------------------------------------------------------------------
    # /warn
    # -------------------------------------------------------------------
    @app_commands.command(name="warn", description="Issue a warning to a member")
    @app_commands.describe(member="The member to warn", reason="Reason for the warning")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.guild_only()
    async def warn(
        self, interaction: discord.Interaction, member: discord.Member, reason: str
    ) -> None:
        if member.bot:
            await interaction.response.send_message("You cannot warn a bot.", ephemeral=True)
            return
        refusal = _hierarchy_error(interaction, member, "warn")
        if refusal:
            await interaction.response.send_message(refusal, ephemeral=True)
            return

        await interaction.response.defer()
        result = await self.bot.moderation.issue_warning(
            interaction.guild, member, interaction.user, reason, self.bot.mod_log_channel()
        )

        escalation_msg = ""
        if result.escalation is not None:
            if result.escalation_failed:
                escalation_msg = (
                    f"\n⚠️ Escalation failed - could not {result.escalation.action} user"
                )
            else:
                summary = _ESCALATION_SUMMARY[result.escalation.action].format(
                    duration=format_escalation_duration(
                        result.escalation.timeout_duration_ms or DEFAULT_ESCALATION_TIMEOUT_MS
                    )
                )
                escalation_msg = f"\n⚠️ **Escalation triggered:** {summary}"

        await interaction.followup.send(
            f"**{member}** has been warned. (Case #{result.case.case_id})\n"
            f"Reason: {reason}\n"
            f"Total warnings for this user: {result.warn_count}{escalation_msg}"
        )

    # -------------------------------------------------------------------
    # /timeout, /untimeout
    # -------------------------------------------------------------------
    @app_commands.command(name="timeout", description="Timeout a member")
    @app_commands.describe(
        member="The member to timeout",
        duration="Duration (e.g., 10m, 1h, 1d). Max 28 days.",
        reason="Reason for the timeout",
    )
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.guild_only()
    async def timeout(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        duration: str,
        reason: str = "No reason provided",
    ) -> None:
        seconds = parse_duration(duration)
        if seconds > MAX_TIMEOUT_SECONDS:
            await interaction.response.send_message(
                "Maximum timeout duration is 28 days.", ephemeral=True
            )
            return
        refusal = _hierarchy_error(interaction, member, "timeout")
        if refusal:
            await interaction.response.send_message(refusal, ephemeral=True)
            return

        await interaction.response.defer()
        outcome = await apply(
            Enforcement(
                kind=EnforcementKind.TIMEOUT,
                reason=reason,
                duration_ms=seconds * 1000,
                notice=(
                    f"You have been timed out in **{interaction.guild.name}** for "
                    f"{format_duration(seconds)}.\nReason: {reason}"
                ),
            ),
            self._context(interaction, member),
        )
        if not outcome.succeeded:
            await interaction.followup.send(
                "Failed to timeout the user. Please check my permissions."
            )
            return
        await interaction.followup.send(
            f"**{member}** has been timed out for {format_duration(seconds)}. "
            f"(Case #{outcome.case.case_id})\nReason: {reason}"
        )

    @app_commands.command(name="untimeout", description="Remove a member's timeout")
    @app_commands.describe(member="The member to release", reason="Reason")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.guild_only()
    async def untimeout(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        reason: str = "No reason provided",
    ) -> None:
        if not member.is_timed_out():
            await interaction.response.send_message(
                "This member is not timed out.", ephemeral=True
            )
            return

        await interaction.response.defer()
        try:
            await member.timeout(None, reason=reason)
        except discord.HTTPException as exc:
            logger.warning("Failed to remove timeout for %s: %s", member.id, exc)
            await interaction.followup.send(
                "Failed to remove the timeout. Please check my permissions."
            )
            return

        case = await run_db(
            create_case, self.bot.engine, interaction.guild_id, member.id, str(member),
            interaction.user.id, str(interaction.user), ActionKind.UNTIMEOUT, reason,
        )
        await post_mod_log(self.bot.mod_log_channel(), build_case_embed(case))
        await interaction.followup.send(
            f"**{member}**'s timeout has been removed. (Case #{case.case_id})"
        )

    # -------------------------------------------------------------------
    # /kick
    # -------------------------------------------------------------------
    @app_commands.command(name="kick", description="Kick a member from the server")
    @app_commands.describe(member="The member to kick", reason="Reason for the kick")
    @app_commands.default_permissions(kick_members=True)
    @app_commands.guild_only()
    async def kick(
        self,
        interaction: discord.Interaction,
        member: discord.Member,
        reason: str = "No reason provided",
    ) -> None:
        refusal = _hierarchy_error(interaction, member, "kick")
        if refusal:
            await interaction.response.send_message(refusal, ephemeral=True)
            return

        await interaction.response.defer()
        outcome = await apply(
            Enforcement(
                kind=EnforcementKind.KICK,
                reason=reason,
                notice=(
                    f"You have been kicked from **{interaction.guild.name}**.\n"
                    f"Reason: {reason}"
                ),
            ),
            self._context(interaction, member),
        )
        if not outcome.succeeded:
            await interaction.followup.send("Failed to kick the user. Please check my permissions.")
            return
        await interaction.followup.send(
            f"**{member}** has been kicked. (Case #{outcome.case.case_id})\nReason: {reason}"
        )

    # -------------------------------------------------------------------
    # /ban, /unban
    # -------------------------------------------------------------------
    @app_commands.command(name="ban", description="Ban a user from the server")
    @app_commands.describe(user="The user to ban", reason="Reason for the ban")
    @app_commands.default_permissions(ban_members=True)
    @app_commands.guild_only()
    async def ban(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        reason: str = "No reason provided",
    ) -> None:
        guild = interaction.guild
        assert guild is not None
        if user.id == interaction.user.id:
            await interaction.response.send_message("You cannot ban yourself.", ephemeral=True)
            return

        member = guild.get_member(user.id)
        if member is not None:
            refusal = _hierarchy_error(interaction, member, "ban")
            if refusal:
                await interaction.response.send_message(refusal, ephemeral=True)
                return

        await interaction.response.defer()

        if member is not None:
            outcome = await apply(
                Enforcement(
                    kind=EnforcementKind.BAN,
                    reason=reason,
                    notice=f"You have been banned from **{guild.name}**.\nReason: {reason}",
                ),
                self._context(interaction, member),
            )
            if not outcome.succeeded:
                await interaction.followup.send(
                    "Failed to ban the user. Please check my permissions."
                )
                return
            case = outcome.case
        else:
            # Not in the server: ban by ID, nobody to DM.
            try:
                await guild.ban(user, reason=reason)
            except discord.HTTPException as exc:
                logger.warning("Failed to ban %s: %s", user.id, exc)
                await interaction.followup.send(
                    "Failed to ban the user. Please check my permissions."
                )
                return
            case = await run_db(
                create_case, self.bot.engine, guild.id, user.id, str(user),
                interaction.user.id, str(interaction.user), ActionKind.BAN, reason,
            )
            await post_mod_log(self.bot.mod_log_channel(), build_case_embed(case))

        await interaction.followup.send(
            f"**{user}** has been banned. (Case #{case.case_id})\nReason: {reason}"
        )

    @app_commands.command(name="unban", description="Unban a user")
    @app_commands.describe(user="The user to unban", reason="Reason for the unban")
    @app_commands.default_permissions(ban_members=True)
    @app_commands.guild_only()
    async def unban(
        self,
        interaction: discord.Interaction,
        user: discord.User,
        reason: str = "No reason provided",
    ) -> None:
        guild = interaction.guild
        assert guild is not None
        await interaction.response.defer()
        try:
            await guild.unban(user, reason=reason)
        except discord.NotFound:
            await interaction.followup.send("This user is not banned.")
            return
        except discord.HTTPException as exc:
            logger.warning("Failed to unban %s: %s", user.id, exc)
            await interaction.followup.send(
                "Failed to unban the user. Please check my permissions."
            )
            return

        case = await run_db(
            create_case, self.bot.engine, guild.id, user.id, str(user),
            interaction.user.id, str(interaction.user), ActionKind.UNBAN, reason,
        )
        await post_mod_log(self.bot.mod_log_channel(), build_case_embed(case))
        await interaction.followup.send(f"**{user}** has been unbanned. (Case #{case.case_id})")

    # -------------------------------------------------------------------
    # /history, /case
    # -------------------------------------------------------------------
    @app_commands.command(name="history", description="View a user's moderation history")
    @app_commands.describe(user="The user to look up")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.guild_only()
    async def history(self, interaction: discord.Interaction, user: discord.User) -> None:
        await interaction.response.defer()
        cases = await run_db(get_user_cases, self.bot.engine, interaction.guild_id, user.id)
        counts = await run_db(count_by_action_kind, self.bot.engine, interaction.guild_id, user.id)
        embed = build_history_embed(
            str(user), user.id, user.display_avatar.url, cases, counts
        )
        await interaction.followup.send(embed=embed)

    @app_commands.command(name="case", description="Look up a moderation case")
    @app_commands.describe(case_id="Case number")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.guild_only()
    async def case(
        self, interaction: discord.Interaction, case_id: app_commands.Range[int, 1]
    ) -> None:
        found = await run_db(get_case, self.bot.engine, interaction.guild_id, case_id)
        if found is None:
            await interaction.response.send_message(
                f"Case #{case_id} not found.", ephemeral=True
            )
            return
        await interaction.response.send_message(embed=build_case_embed(found), ephemeral=True)

    @app_commands.command(name="cases", description="List the server's most recent cases")
    @app_commands.describe(count="How many cases to show (default 10)")
    @app_commands.default_permissions(moderate_members=True)
    @app_commands.guild_only()
    async def cases(
        self,
        interaction: discord.Interaction,
        count: app_commands.Range[int, 1, 25] = 10,
    ) -> None:
        recent = await run_db(
            get_recent_cases, self.bot.engine, interaction.guild_id, count
        )
        await interaction.response.send_message(
            embed=build_recent_cases_embed(interaction.guild.name, recent), ephemeral=True
        )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(interaction, error)


async def setup(bot: BastionBot) -> None:
    await bot.add_cog(Moderation(bot))
