"""
bastion.bot.cogs.automod — Message AutoMod & /automod commands
================================================================

Listens for on_message events and runs them through
:meth:`ModerationService.handle_message`.

Pipeline:
1. on_message fires → gate checks (bot, DM, system message)
2. ModerationService loads policy, checks exemption, updates the rate tracker
3. First violated rule → Enforcement → executor

The ``/automod`` group edits the guild's automod policy document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from bastion.bot.errors import handle_command_error
from bastion.database.engine import run_db
from bastion.services.embeds import build_automod_status_embed
from bastion.services.policy_service import (
    add_allowed_domain,
    add_exempt_role,
    add_filtered_word,
    get_automod_policy,
    remove_allowed_domain,
    remove_exempt_role,
    remove_filtered_word,
    update_automod_policy,
)

if TYPE_CHECKING:
    from bastion.bot.core import BastionBot

logger = logging.getLogger(__name__)

_LIST_ACTIONS = [
    app_commands.Choice(name="Add", value="add"),
    app_commands.Choice(name="Remove", value="remove"),
    app_commands.Choice(name="List", value="list"),
]
_FILTER_ACTIONS = [
    app_commands.Choice(name="Delete", value="delete"),
    app_commands.Choice(name="Warn", value="warn"),
    app_commands.Choice(name="Timeout", value="timeout"),
]


class AutoMod(commands.Cog, name="AutoMod"):
    """Spam, link and word filtering for guild messages."""

    def __init__(self, bot: BastionBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Listener
    # -------------------------------------------------------------------
    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        try:
            await self._handle_message(message)
        except Exception:
            logger.exception(
                "Error running automod on message %s from user %s",
                message.id,
                message.author.id,
                extra={"event_type": "message", "user_id": message.author.id,
                       "message_id": message.id},
            )

    async def _handle_message(self, message: discord.Message) -> None:
        """Inner message handler (separated for error isolation)."""
        if message.author.bot or message.guild is None:
            return
        if message.type not in (discord.MessageType.default, discord.MessageType.reply):
            return

        await self.bot.moderation.handle_message(message, self.bot.mod_log_channel())

    # -------------------------------------------------------------------
    # /automod
    # -------------------------------------------------------------------
    automod = app_commands.Group(
        name="automod",
        description="Configure auto-moderation",
        default_permissions=discord.Permissions(manage_guild=True),
        guild_only=True,
    )

    @automod.command(name="enable", description="Enable auto-moderation")
    async def enable(self, interaction: discord.Interaction) -> None:
        await run_db(update_automod_policy, self.bot.engine, interaction.guild_id, {"enabled": True})
        await interaction.response.send_message("✅ Auto-moderation enabled!", ephemeral=True)

    @automod.command(name="disable", description="Disable auto-moderation")
    async def disable(self, interaction: discord.Interaction) -> None:
        await run_db(update_automod_policy, self.bot.engine, interaction.guild_id, {"enabled": False})
        await interaction.response.send_message("❌ Auto-moderation disabled.", ephemeral=True)

    @automod.command(name="status", description="View current automod settings")
    async def status(self, interaction: discord.Interaction) -> None:
        policy = await run_db(get_automod_policy, self.bot.engine, interaction.guild_id)
        await interaction.response.send_message(
            embed=build_automod_status_embed(policy), ephemeral=True
        )

    @automod.command(name="antispam", description="Configure anti-spam")
    @app_commands.describe(
        enabled="Enable/disable anti-spam",
        max_messages="Max messages in time window (default: 5)",
        time_window="Time window in seconds (default: 5)",
        duplicate_threshold="Identical messages before acting (default: 3)",
        action="Action to take",
    )
    @app_commands.choices(action=[
        app_commands.Choice(name="Warn", value="warn"),
        app_commands.Choice(name="Timeout", value="timeout"),
        app_commands.Choice(name="Kick", value="kick"),
    ])
    async def antispam(
        self,
        interaction: discord.Interaction,
        enabled: bool,
        max_messages: Optional[app_commands.Range[int, 2, 20]] = None,
        time_window: Optional[app_commands.Range[int, 1, 60]] = None,
        duplicate_threshold: Optional[app_commands.Range[int, 2, 20]] = None,
        action: str | None = None,
    ) -> None:
        section: dict = {"enabled": enabled}
        if max_messages is not None:
            section["max_messages"] = max_messages
        if time_window is not None:
            section["time_window_ms"] = time_window * 1000
        if duplicate_threshold is not None:
            section["duplicate_threshold"] = duplicate_threshold
        if action is not None:
            section["action"] = action

        policy = await run_db(
            update_automod_policy, self.bot.engine, interaction.guild_id, {"anti_spam": section}
        )
        spam = policy.anti_spam
        await interaction.response.send_message(
            f"✅ Anti-spam {'enabled' if enabled else 'disabled'}. "
            f"Max {spam.max_messages} messages per {spam.time_window_ms / 1000:g}s, "
            f"action: {spam.action}",
            ephemeral=True,
        )

    @automod.command(name="linkfilter", description="Configure the link filter")
    @app_commands.describe(
        enabled="Enable/disable link filter",
        block_invites="Block Discord invites",
        block_all_links="Block all links (except allowed domains)",
        action="Action to take",
    )
    @app_commands.choices(action=_FILTER_ACTIONS)
    async def linkfilter(
        self,
        interaction: discord.Interaction,
        enabled: bool,
        block_invites: bool | None = None,
        block_all_links: bool | None = None,
        action: str | None = None,
    ) -> None:
        section: dict = {"enabled": enabled}
        if block_invites is not None:
            section["block_invites"] = block_invites
        if block_all_links is not None:
            section["block_all_links"] = block_all_links
        if action is not None:
            section["action"] = action

        policy = await run_db(
            update_automod_policy, self.bot.engine, interaction.guild_id, {"link_filter": section}
        )
        links = policy.link_filter
        await interaction.response.send_message(
            f"✅ Link filter {'enabled' if enabled else 'disabled'}. "
            f"Invites: {'blocked' if links.block_invites else 'allowed'}, "
            f"All links: {'blocked' if links.block_all_links else 'allowed'}",
            ephemeral=True,
        )

    @automod.command(name="wordfilter", description="Configure the word filter")
    @app_commands.describe(enabled="Enable/disable word filter", action="Action to take")
    @app_commands.choices(action=_FILTER_ACTIONS)
    async def wordfilter(
        self, interaction: discord.Interaction, enabled: bool, action: str | None = None
    ) -> None:
        section: dict = {"enabled": enabled}
        if action is not None:
            section["action"] = action
        policy = await run_db(
            update_automod_policy, self.bot.engine, interaction.guild_id, {"word_filter": section}
        )
        await interaction.response.send_message(
            f"✅ Word filter {'enabled' if enabled else 'disabled'}. "
            f"{len(policy.word_filter.words)} words configured.",
            ephemeral=True,
        )

    @automod.command(name="addword", description="Add a word to the filter")
    @app_commands.describe(word="Word to filter")
    async def addword(self, interaction: discord.Interaction, word: str) -> None:
        await run_db(add_filtered_word, self.bot.engine, interaction.guild_id, word)
        await interaction.response.send_message(
            f'✅ Added "{word}" to the word filter.', ephemeral=True
        )

    @automod.command(name="removeword", description="Remove a word from the filter")
    @app_commands.describe(word="Word to remove")
    async def removeword(self, interaction: discord.Interaction, word: str) -> None:
        await run_db(remove_filtered_word, self.bot.engine, interaction.guild_id, word)
        await interaction.response.send_message(
            f'✅ Removed "{word}" from the word filter.', ephemeral=True
        )

    @automod.command(name="listwords", description="List all filtered words")
    async def listwords(self, interaction: discord.Interaction) -> None:
        policy = await run_db(get_automod_policy, self.bot.engine, interaction.guild_id)
        words = policy.word_filter.words
        if not words:
            await interaction.response.send_message("No words in the filter.", ephemeral=True)
            return
        await interaction.response.send_message(
            f"**Filtered words ({len(words)}):**\n||{', '.join(words)}||", ephemeral=True
        )

    @automod.command(name="accountage", description="Configure the minimum account age")
    @app_commands.describe(
        enabled="Enable/disable the account age check",
        min_days="Minimum account age in days",
        action="Action for accounts that are too new",
        quarantine_role="Role to assign for quarantine action",
    )
    @app_commands.choices(action=[
        app_commands.Choice(name="Kick", value="kick"),
        app_commands.Choice(name="Quarantine", value="quarantine"),
    ])
    async def accountage(
        self,
        interaction: discord.Interaction,
        enabled: bool,
        min_days: Optional[app_commands.Range[int, 1, 365]] = None,
        action: str | None = None,
        quarantine_role: discord.Role | None = None,
    ) -> None:
        section: dict = {"enabled": enabled}
        if min_days is not None:
            section["min_age_days"] = min_days
        if action is not None:
            section["action"] = action
        if quarantine_role is not None:
            section["quarantine_role_id"] = quarantine_role.id

        policy = await run_db(
            update_automod_policy, self.bot.engine, interaction.guild_id, {"account_age": section}
        )
        age = policy.account_age
        note = ""
        if age.action == "quarantine" and age.quarantine_role_id is None:
            note = "\n⚠️ No quarantine role set, so new accounts will not be handled."
        await interaction.response.send_message(
            f"✅ Account age check {'enabled' if enabled else 'disabled'}. "
            f"Minimum: {age.min_age_days} days, action: {age.action}{note}",
            ephemeral=True,
        )

    @automod.command(name="exempt", description="Add or remove exempt roles")
    @app_commands.describe(action="Add, remove or list", role="Role to exempt")
    @app_commands.choices(action=_LIST_ACTIONS)
    async def exempt(
        self, interaction: discord.Interaction, action: str, role: discord.Role | None = None
    ) -> None:
        if action == "list":
            policy = await run_db(get_automod_policy, self.bot.engine, interaction.guild_id)
            if not policy.exempt_role_ids:
                await interaction.response.send_message(
                    "No exempt roles configured. Only admins are exempt.", ephemeral=True
                )
                return
            roles = "\n".join(f"<@&{r}>" for r in sorted(policy.exempt_role_ids))
            await interaction.response.send_message(f"**Exempt roles:**\n{roles}", ephemeral=True)
            return
        if role is None:
            await interaction.response.send_message("Please specify a role.", ephemeral=True)
            return

        if action == "add":
            await run_db(add_exempt_role, self.bot.engine, interaction.guild_id, role.id)
            await interaction.response.send_message(
                f"✅ Added {role.mention} to exempt roles.", ephemeral=True
            )
        else:
            await run_db(remove_exempt_role, self.bot.engine, interaction.guild_id, role.id)
            await interaction.response.send_message(
                f"✅ Removed {role.mention} from exempt roles.", ephemeral=True
            )

    @automod.command(name="allowdomain", description="Add or remove allowed domains for link filter")
    @app_commands.describe(action="Add, remove or list", domain="Domain (e.g., youtube.com)")
    @app_commands.choices(action=_LIST_ACTIONS)
    async def allowdomain(
        self, interaction: discord.Interaction, action: str, domain: str | None = None
    ) -> None:
        if action == "list":
            policy = await run_db(get_automod_policy, self.bot.engine, interaction.guild_id)
            domains = policy.link_filter.allowed_domains
            if not domains:
                await interaction.response.send_message(
                    "No allowed domains configured.", ephemeral=True
                )
                return
            await interaction.response.send_message(
                "**Allowed domains:**\n" + "\n".join(domains), ephemeral=True
            )
            return
        if not domain:
            await interaction.response.send_message("Please specify a domain.", ephemeral=True)
            return

        if action == "add":
            await run_db(add_allowed_domain, self.bot.engine, interaction.guild_id, domain)
            await interaction.response.send_message(
                f"✅ Added {domain} to allowed domains.", ephemeral=True
            )
        else:
            await run_db(remove_allowed_domain, self.bot.engine, interaction.guild_id, domain)
            await interaction.response.send_message(
                f"✅ Removed {domain} from allowed domains.", ephemeral=True
            )

    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        await handle_command_error(interaction, error)


async def setup(bot: BastionBot) -> None:
    await bot.add_cog(AutoMod(bot))
