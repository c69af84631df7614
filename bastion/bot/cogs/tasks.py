"""
bastion.bot.cogs.tasks — Periodic Background Tasks
=====================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Rate tracker sweep** — every ``rate_sweep_seconds`` (default 30), drops
  per-member entries with no message inside twice their window.
- **Join tracker sweep** — every ``join_sweep_seconds`` (default 60), prunes
  per-guild join bursts the same way.

The sweeps are independent of event traffic, so a guild that goes quiet
doesn't keep its tracker state forever.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

if TYPE_CHECKING:
    from bastion.bot.core import BastionBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled tracker maintenance."""

    def __init__(self, bot: BastionBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Apply configured intervals and start the loops."""
        self.rate_sweep_loop.change_interval(seconds=self.bot.cfg.rate_sweep_seconds)
        self.join_sweep_loop.change_interval(seconds=self.bot.cfg.join_sweep_seconds)
        self.rate_sweep_loop.start()
        self.join_sweep_loop.start()

    async def cog_unload(self) -> None:
        self.rate_sweep_loop.cancel()
        self.join_sweep_loop.cancel()

    # -------------------------------------------------------------------
    # Rate tracker
    # -------------------------------------------------------------------
    @tasks.loop(seconds=30)
    async def rate_sweep_loop(self):
        try:
            evicted = self.bot.moderation.rate_tracker.sweep()
            if evicted:
                logger.debug(
                    "Rate sweep evicted %d entries (%d remain)",
                    evicted, len(self.bot.moderation.rate_tracker),
                )
        except Exception:
            logger.exception("Rate tracker sweep failed", extra={"task": "rate_sweep"})

    # -------------------------------------------------------------------
    # Join tracker
    # -------------------------------------------------------------------
    @tasks.loop(seconds=60)
    async def join_sweep_loop(self):
        try:
            evicted = self.bot.moderation.join_tracker.sweep()
            if evicted:
                logger.debug("Join sweep evicted %d guilds", evicted)
        except Exception:
            logger.exception("Join tracker sweep failed", extra={"task": "join_sweep"})


async def setup(bot: BastionBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
