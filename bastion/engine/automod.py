"""
bastion.engine.automod — Message and account-age evaluators
=============================================================

Pure decision functions: given an event, the guild's
:class:`~bastion.engine.policy.AutomodPolicy` and (for spam) a tracker
snapshot, decide whether a rule is violated.  Nothing here performs I/O or
raises; enforcement happens in :mod:`bastion.services.enforcement`.

Evaluation order per message: exemption → spam → duplicate → link → word.
The first violation wins, so a message is enforced at most once.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from bastion.constants import AUTOMOD_MODERATOR, DAY_SECONDS, DEFAULT_AUTOMOD_TIMEOUT_MS
from bastion.engine.actions import Enforcement, EnforcementKind
from bastion.engine.events import JoinEvent, MessageEvent
from bastion.engine.policy import (
    AccountAgePolicy,
    AntiSpamPolicy,
    AutomodPolicy,
    LinkFilterPolicy,
    WordFilterPolicy,
)
from bastion.engine.trackers import RateSnapshot

__all__ = [
    "RuleKind",
    "Violation",
    "is_exempt",
    "check_spam",
    "check_links",
    "check_words",
    "evaluate_message",
    "message_enforcement",
    "check_account_age",
    "account_age_enforcement",
]

_INVITE_RE = re.compile(
    r"(discord\.gg|discord\.com/invite|discordapp\.com/invite)/\w+", re.IGNORECASE
)
_URL_RE = re.compile(r"https?://[^\s]+", re.IGNORECASE)


class RuleKind(enum.StrEnum):
    SPAM = "spam"
    DUPLICATE = "duplicate"
    LINK = "link"
    WORD = "word"
    ACCOUNT_AGE = "account_age"


@dataclass(frozen=True, slots=True)
class Violation:
    """A rule that fired, with the configured response."""

    rule: RuleKind
    reason: str
    action: str
    timeout_ms: int | None = None
    word: str | None = None
    age_days: int | None = None


# ---------------------------------------------------------------------------
# Exemption
# ---------------------------------------------------------------------------
def is_exempt(event: MessageEvent, policy: AutomodPolicy) -> bool:
    """Administrators are always exempt; otherwise any exempt role suffices."""
    if event.is_admin:
        return True
    return not policy.exempt_role_ids.isdisjoint(event.role_ids)


# ---------------------------------------------------------------------------
# Individual rules
# ---------------------------------------------------------------------------
def check_spam(snapshot: RateSnapshot, policy: AntiSpamPolicy) -> Violation | None:
    """Rate rule first, then duplicate rule."""
    if not policy.enabled:
        return None

    if snapshot.recent_count > policy.max_messages:
        return Violation(
            rule=RuleKind.SPAM,
            reason=(
                f"Sending messages too quickly ({snapshot.recent_count} messages "
                f"in {snapshot.window_ms / 1000:g}s)"
            ),
            action=policy.action,
            timeout_ms=policy.timeout_duration_ms,
        )

    if snapshot.duplicate_count >= policy.duplicate_threshold:
        return Violation(
            rule=RuleKind.DUPLICATE,
            reason=(
                f"Sending duplicate messages ({snapshot.duplicate_count} "
                "identical messages)"
            ),
            action=policy.action,
            timeout_ms=policy.timeout_duration_ms,
        )
    return None


def _host_allowed(hostname: str, allowed_domains: tuple[str, ...]) -> bool:
    return any(
        hostname == allowed or hostname.endswith(f".{allowed}")
        for allowed in allowed_domains
    )


def check_links(content: str, policy: LinkFilterPolicy) -> Violation | None:
    """Invite links and (optionally) every link outside the allow-list.

    A URL whose hostname can't be parsed counts as a violation.
    """
    if not policy.enabled:
        return None

    text = content.lower()

    if policy.block_invites and _INVITE_RE.search(text):
        return Violation(
            rule=RuleKind.LINK,
            reason="Discord invite links are not allowed",
            action=policy.action,
        )

    if policy.block_all_links:
        for url in _URL_RE.findall(text):
            try:
                hostname = urlsplit(url).hostname
            except ValueError:
                hostname = None
            if not hostname or not _host_allowed(hostname, policy.allowed_domains):
                return Violation(
                    rule=RuleKind.LINK,
                    reason="Links are not allowed in this server",
                    action=policy.action,
                )
    return None


def check_words(content: str, policy: WordFilterPolicy) -> Violation | None:
    """Case-insensitive whole-word match; reports the first listed word found."""
    if not policy.enabled or not policy.words:
        return None

    for word in policy.words:
        if re.search(rf"\b{re.escape(word)}\b", content, re.IGNORECASE):
            return Violation(
                rule=RuleKind.WORD,
                reason="Message contains a filtered word",
                action=policy.action,
                word=word,
            )
    return None


# ---------------------------------------------------------------------------
# Message pipeline
# ---------------------------------------------------------------------------
def evaluate_message(
    event: MessageEvent,
    policy: AutomodPolicy,
    snapshot: RateSnapshot | None,
) -> Violation | None:
    """Return the first violated rule for *event*, or None.

    *snapshot* is the rate tracker state after recording this message; pass
    None when anti-spam is disabled (nothing was recorded).
    """
    if not policy.enabled or is_exempt(event, policy):
        return None

    if snapshot is not None:
        violation = check_spam(snapshot, policy.anti_spam)
        if violation:
            return violation

    return check_links(event.content, policy.link_filter) or check_words(
        event.content, policy.word_filter
    )


def message_enforcement(violation: Violation, guild_name: str) -> Enforcement:
    """Translate a message violation into the executor's variant."""
    reason = f"[{AUTOMOD_MODERATOR}] {violation.reason}"
    kind = EnforcementKind(violation.action)

    if kind is EnforcementKind.WARN:
        return Enforcement(
            kind=kind,
            reason=reason,
            notice=(
                f"\u26a0\ufe0f You received an automated warning in **{guild_name}**\n"
                f"Reason: {violation.reason}"
            ),
        )
    if kind is EnforcementKind.TIMEOUT:
        duration_ms = violation.timeout_ms or DEFAULT_AUTOMOD_TIMEOUT_MS
        return Enforcement(
            kind=kind,
            reason=reason,
            duration_ms=duration_ms,
            notice=(
                f"\u23f0 You were timed out in **{guild_name}** for "
                f"{round(duration_ms / 60000)} minutes\nReason: {violation.reason}"
            ),
        )
    if kind is EnforcementKind.KICK:
        return Enforcement(
            kind=kind,
            reason=reason,
            notice=(
                f"\U0001f462 You were kicked from **{guild_name}**\n"
                f"Reason: {violation.reason}"
            ),
        )
    return Enforcement(kind=EnforcementKind.DELETE, reason=reason)


# ---------------------------------------------------------------------------
# Account-age gate
# ---------------------------------------------------------------------------
def check_account_age(
    event: JoinEvent, automod: AutomodPolicy
) -> Violation | None:
    """Flag accounts younger than ``account_age.min_age_days`` at join time."""
    policy: AccountAgePolicy = automod.account_age
    if not automod.enabled or not policy.enabled:
        return None

    age_seconds = max(event.joined_at - event.account_created_at, 0.0)
    if age_seconds >= policy.min_age_days * DAY_SECONDS:
        return None

    age_days = int(age_seconds // DAY_SECONDS)
    return Violation(
        rule=RuleKind.ACCOUNT_AGE,
        reason=(
            f"Account too new ({age_days} days old, minimum "
            f"{policy.min_age_days} days required)"
        ),
        action=policy.action,
        age_days=age_days,
    )


def account_age_enforcement(
    violation: Violation, automod: AutomodPolicy, guild_name: str
) -> Enforcement | None:
    """Kick or quarantine a too-young account; None if quarantine has no role."""
    policy = automod.account_age
    if violation.action == "quarantine":
        if policy.quarantine_role_id is None:
            return None
        return Enforcement(
            kind=EnforcementKind.QUARANTINE,
            reason=f"[{AUTOMOD_MODERATOR}] {violation.reason}",
            role_id=policy.quarantine_role_id,
            notice=(
                f"Welcome to **{guild_name}**!\n\n"
                f"Your account is new ({violation.age_days} days old), so you've "
                "been placed in quarantine.\nA moderator will verify you shortly."
            ),
        )
    return Enforcement(
        kind=EnforcementKind.KICK,
        reason=f"[{AUTOMOD_MODERATOR}] {violation.reason}",
        notice=(
            f"Your account is too new to join **{guild_name}**.\n"
            f"Required account age: {policy.min_age_days} days\n"
            f"Your account age: {violation.age_days} days\n\n"
            "Please try again later."
        ),
    )
