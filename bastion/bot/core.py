"""
bastion.bot.core — Bot Instance & Cog Loader
=============================================

Defines :class:`BastionBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``), DB engine (``bot.engine``) and
   the :class:`~bastion.services.moderation_service.ModerationService`
   (``bot.moderation``) so every Cog reaches them via ``self.bot``.
2. Owns the in-memory rate and join-burst trackers (through the service).
3. Loads every Cog listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from bastion.config import BastionConfig
from bastion.services.moderation_service import ModerationService

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "bastion.bot.cogs.automod",
    "bastion.bot.cogs.membership",
    "bastion.bot.cogs.moderation",
    "bastion.bot.cogs.escalation",
    "bastion.bot.cogs.raid",
    "bastion.bot.cogs.tasks",
]


class BastionBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`BastionConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    """

    def __init__(self, cfg: BastionConfig, engine: Engine) -> None:
        # Privileged intents (must enable in Developer Portal):
        #   MESSAGE_CONTENT — automod rules read message bodies
        #   GUILD_MEMBERS   — join events for the age gate and raid detection
        intents = discord.Intents.default()
        intents.message_content = True
        intents.members = True
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            description=f"{cfg.bot_name} — automated moderation",
        )

        self.cfg = cfg
        self.engine = engine
        self.moderation = ModerationService(engine)

    # -----------------------------------------------------------------------
    # Shared helpers
    # -----------------------------------------------------------------------
    def mod_log_channel(self) -> discord.abc.Messageable | None:
        """The configured mod-log channel, or None if unset / not cached."""
        if not self.cfg.mod_log_channel_id:
            return None
        channel = self.get_channel(self.cfg.mod_log_channel_id)
        if channel is None:
            logger.debug("Mod log channel %s not in cache", self.cfg.mod_log_channel_id)
        return channel  # type: ignore[return-value]

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions before connecting.

        A Cog that fails to load is logged and skipped.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

    async def close(self) -> None:
        logger.info("Bot shutting down…")
        await super().close()
