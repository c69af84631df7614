"""
bastion.bot.errors — Shared slash-command error replies
=========================================================

Every cog forwards ``cog_app_command_error`` here:

- ``ValueError`` (bad duration, invalid domain, empty word…) → the message
  is shown to the invoking moderator.
- ``SQLAlchemyError`` → logged, generic failure reply.
- Missing permissions / guild-only checks → short explanation.
- Anything else is re-raised to discord.py's default handler.
"""

from __future__ import annotations

import logging

import discord
from discord import app_commands
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


async def send_ephemeral(interaction: discord.Interaction, content: str) -> None:
    """Reply or follow up, whichever the interaction state allows."""
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


async def handle_command_error(
    interaction: discord.Interaction, error: app_commands.AppCommandError
) -> None:
    original = getattr(error, "original", error)

    if isinstance(original, ValueError):
        await send_ephemeral(interaction, f"❌ {original}")
    elif isinstance(original, SQLAlchemyError):
        logger.exception(
            "Storage error in /%s",
            interaction.command.qualified_name if interaction.command else "?",
            exc_info=original,
            extra={"guild_id": interaction.guild_id, "user_id": interaction.user.id},
        )
        await send_ephemeral(interaction, "❌ Something went wrong. Please try again later.")
    elif isinstance(error, app_commands.MissingPermissions):
        await send_ephemeral(interaction, "\U0001f512 You don't have permission to use this command.")
    elif isinstance(error, app_commands.NoPrivateMessage):
        await send_ephemeral(interaction, "This command can only be used in a server.")
    else:
        raise error
