"""
bastion.services.embeds — Discord embed builders for moderation output
========================================================================

All embed construction lives here so the executor and cogs only need to
supply data — no layout concerns.
"""

from __future__ import annotations

from collections.abc import Sequence

import discord

from bastion.constants import (
    ACTION_COLORS,
    ACTION_EMOJI,
    format_duration,
    format_escalation_duration,
)
from bastion.database.models import ActionKind, ModerationCase
from bastion.engine.policy import AutomodPolicy, EscalationPolicy, RaidPolicy
from bastion.services.raid_service import RaidState

_FALLBACK_EMOJI = "\U0001f4cb"  # 📋
_FALLBACK_COLOR = 0x5865F2


def _on_off(flag: bool) -> str:
    return "\u2705 Enabled" if flag else "\u274c Disabled"


# ---------------------------------------------------------------------------
# Cases
# ---------------------------------------------------------------------------
def build_case_embed(case: ModerationCase) -> discord.Embed:
    """Mod-log entry for a single case (also used by ``/case``)."""
    emoji = ACTION_EMOJI.get(case.action, _FALLBACK_EMOJI)
    embed = discord.Embed(
        title=f"{emoji} {case.action.upper()} | Case #{case.case_id}",
        color=ACTION_COLORS.get(case.action, _FALLBACK_COLOR),
        timestamp=case.created_at,
    )
    embed.add_field(
        name="User", value=f"<@{case.target_user_id}> ({case.target_tag})", inline=True
    )
    embed.add_field(
        name="Moderator",
        value=f"<@{case.moderator_user_id}> ({case.moderator_tag})",
        inline=True,
    )
    embed.add_field(name="Reason", value=case.reason or "No reason provided", inline=False)
    if case.duration_seconds:
        embed.add_field(
            name="Duration", value=format_duration(case.duration_seconds), inline=True
        )
    embed.set_footer(text=f"User ID: {case.target_user_id}")
    return embed


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def _case_line(case: ModerationCase, with_target: bool = False) -> str:
    emoji = ACTION_EMOJI.get(case.action, _FALLBACK_EMOJI)
    duration = (
        f" ({format_duration(case.duration_seconds)})" if case.duration_seconds else ""
    )
    target = f" <@{case.target_user_id}>" if with_target else ""
    reason = case.reason if len(case.reason) <= 50 else case.reason[:47] + "..."
    return (
        f"{emoji} **#{case.case_id}** {case.action.upper()}{duration}{target} - "
        f"{case.created_at:%Y-%m-%d}\n└ {reason}"
    )


def build_history_embed(
    target_tag: str,
    target_id: int,
    avatar_url: str | None,
    cases: Sequence[ModerationCase],
    counts: dict[ActionKind, int],
    limit: int = 10,
) -> discord.Embed:
    """``/history``: per-kind summary plus the most recent cases."""
    embed = discord.Embed(
        title=f"Moderation History: {target_tag}",
        color=0xFFC107 if cases else 0x28A745,
    )
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.set_footer(text=f"User ID: {target_id}")

    summary = [
        _plural(counts[kind], noun)
        for kind, noun in (
            (ActionKind.WARN, "warning"),
            (ActionKind.TIMEOUT, "timeout"),
            (ActionKind.KICK, "kick"),
            (ActionKind.BAN, "ban"),
        )
        if counts.get(kind)
    ]
    embed.description = (
        f"**Summary:** {', '.join(summary)}"
        if summary
        else "**No moderation history found.** This user has a clean record."
    )

    if cases:
        newest = sorted(cases, key=lambda c: c.case_id, reverse=True)[:limit]
        embed.add_field(
            name=f"Recent Cases ({len(cases)} total)",
            value="\n\n".join(_case_line(case) for case in newest),
            inline=False,
        )
    return embed


def build_recent_cases_embed(guild_name: str, cases: Sequence[ModerationCase]) -> discord.Embed:
    """``/cases``: the guild's newest cases, target included."""
    embed = discord.Embed(title=f"Recent Cases: {guild_name}", color=_FALLBACK_COLOR)
    if not cases:
        embed.description = "No cases recorded yet."
        return embed
    embed.description = "\n\n".join(
        _case_line(case, with_target=True) for case in cases
    )
    return embed


# ---------------------------------------------------------------------------
# Raid protection
# ---------------------------------------------------------------------------
def build_raid_alert_embed(join_count: int) -> discord.Embed:
    """Posted once, when a guild enters raid mode."""
    return discord.Embed(
        title="\U0001f6a8 RAID DETECTED",
        description=(
            f"**{join_count} members** joined in rapid succession.\n\n"
            "Raid protection mode has been activated. New members will be "
            "handled automatically.\n\n"
            "Use `/raid end` to deactivate raid mode when the raid is over."
        ),
        color=0xED4245,
    )


def build_raid_status_embed(policy: RaidPolicy, state: RaidState | None) -> discord.Embed:
    if not policy.enabled:
        description, color = "\u274c **Protection is DISABLED**", 0x95A5A6
    elif state is not None:
        description = "\U0001f6a8 **RAID MODE ACTIVE** - Use `/raid end` to deactivate"
        color = 0xED4245
    else:
        description, color = "\u2705 **Protection is ENABLED**", 0x57F287

    embed = discord.Embed(title="Raid Protection Status", description=description, color=color)
    embed.add_field(
        name="Threshold",
        value=f"{policy.join_threshold} joins in {policy.time_window_ms / 1000:g}s",
        inline=True,
    )
    embed.add_field(name="Action", value=policy.action.capitalize(), inline=True)
    embed.add_field(
        name="Min Account Age",
        value=(
            f"{policy.min_account_age_days} days"
            if policy.min_account_age_days > 0
            else "Disabled"
        ),
        inline=True,
    )
    if policy.action == "quarantine":
        embed.add_field(
            name="Quarantine Role",
            value=f"<@&{policy.quarantine_role_id}>" if policy.quarantine_role_id else "Not set",
            inline=True,
        )
    if state is not None:
        embed.add_field(name="Members Handled", value=str(state.handled_count), inline=True)
    return embed


# ---------------------------------------------------------------------------
# Policy overviews
# ---------------------------------------------------------------------------
def build_automod_status_embed(policy: AutomodPolicy) -> discord.Embed:
    spam = policy.anti_spam
    links = policy.link_filter
    words = policy.word_filter
    age = policy.account_age

    embed = discord.Embed(
        title="AutoMod Configuration",
        description=f"**Status:** {_on_off(policy.enabled)}",
        color=0x57F287 if policy.enabled else 0x95A5A6,
    )
    embed.add_field(
        name="Anti-Spam",
        value=(
            f"{_on_off(spam.enabled)}\n"
            f"Max: {spam.max_messages} msgs / {spam.time_window_ms / 1000:g}s\n"
            f"Duplicates: {spam.duplicate_threshold}\n"
            f"Action: {spam.action}"
        ),
        inline=True,
    )
    embed.add_field(
        name="Link Filter",
        value=(
            f"{_on_off(links.enabled)}\n"
            f"Block invites: {'Yes' if links.block_invites else 'No'}\n"
            f"Block all links: {'Yes' if links.block_all_links else 'No'}\n"
            f"Allowed domains: {len(links.allowed_domains)}\n"
            f"Action: {links.action}"
        ),
        inline=True,
    )
    embed.add_field(
        name="Word Filter",
        value=(
            f"{_on_off(words.enabled)}\n"
            f"Words: {len(words.words)}\n"
            f"Action: {words.action}"
        ),
        inline=True,
    )
    embed.add_field(
        name="Account Age",
        value=(
            f"{_on_off(age.enabled)}\n"
            f"Minimum: {age.min_age_days} days\n"
            f"Action: {age.action}"
        ),
        inline=True,
    )
    embed.add_field(
        name="Exempt Roles",
        value=" ".join(f"<@&{r}>" for r in sorted(policy.exempt_role_ids)) or "None",
        inline=False,
    )
    return embed


def build_escalation_status_embed(policy: EscalationPolicy) -> discord.Embed:
    embed = discord.Embed(
        title="Strike Escalation",
        description=f"**Status:** {_on_off(policy.enabled)}",
        color=0x57F287 if policy.enabled else 0x95A5A6,
    )
    if policy.rules:
        lines = []
        for rule in policy.rules:
            line = f"**{rule.warn_threshold} warnings** → {rule.action}"
            if rule.action == "timeout" and rule.timeout_duration_ms:
                line += f" ({format_escalation_duration(rule.timeout_duration_ms)})"
            lines.append(line)
        embed.add_field(name="Rules", value="\n".join(lines), inline=False)
    else:
        embed.add_field(name="Rules", value="No rules configured.", inline=False)
    return embed
