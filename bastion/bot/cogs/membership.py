"""
bastion.bot.cogs.membership — Member join protection
======================================================

Runs every GUILD_MEMBER_ADD through the account-age gate and raid
protection (see :meth:`ModerationService.handle_member_join`).  Requires
the GUILD_MEMBERS privileged intent.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

if TYPE_CHECKING:
    from bastion.bot.core import BastionBot

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Account-age gate and raid detection on member join."""

    def __init__(self, bot: BastionBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        try:
            if member.bot:
                return

            outcome = await self.bot.moderation.handle_member_join(
                member, self.bot.mod_log_channel()
            )
            logger.info(
                "Member joined: %s (ID: %d) in guild %d%s",
                member.display_name, member.id, member.guild.id,
                " [raid activated]" if outcome.raid_activated else "",
            )

        except Exception:
            logger.exception(
                "Error processing member_join for %s", member.id,
                extra={"event_type": "member_join", "user_id": member.id},
            )


async def setup(bot: BastionBot) -> None:
    await bot.add_cog(Membership(bot))
