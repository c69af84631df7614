"""
bastion.engine.policy — Guild policy types, defaults and merging
==================================================================

Policies are stored as JSON documents (see
:class:`~bastion.database.models.GuildPolicy`) and read back through
:func:`deep_merge` over the compiled-in defaults below, so a guild that has
never been configured (or was configured before a field existed) always gets
a complete policy.

The typed, frozen dataclasses are what the evaluators consume.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Compiled-in defaults
# ---------------------------------------------------------------------------
DEFAULT_AUTOMOD: dict[str, Any] = {
    "enabled": False,
    "anti_spam": {
        "enabled": True,
        "max_messages": 5,
        "time_window_ms": 5000,
        "duplicate_threshold": 3,
        "action": "timeout",
        "timeout_duration_ms": 300_000,
    },
    "link_filter": {
        "enabled": False,
        "block_invites": True,
        "block_all_links": False,
        "allowed_domains": [],
        "action": "delete",
    },
    "word_filter": {
        "enabled": False,
        "words": [],
        "action": "delete",
    },
    "account_age": {
        "enabled": False,
        "min_age_days": 7,
        "action": "kick",
        "quarantine_role_id": None,
    },
    "exempt_role_ids": [],
}

DEFAULT_ESCALATION_RULES: list[dict[str, Any]] = [
    {"warn_threshold": 3, "action": "timeout", "timeout_duration_ms": 3_600_000},
    {"warn_threshold": 5, "action": "timeout", "timeout_duration_ms": 86_400_000},
    {"warn_threshold": 7, "action": "kick", "timeout_duration_ms": None},
    {"warn_threshold": 10, "action": "ban", "timeout_duration_ms": None},
]

DEFAULT_ESCALATION: dict[str, Any] = {
    "enabled": False,
    "rules": DEFAULT_ESCALATION_RULES,
}

DEFAULT_RAID: dict[str, Any] = {
    "enabled": False,
    "join_threshold": 10,
    "time_window_ms": 10_000,
    "action": "kick",
    "quarantine_role_id": None,
    "min_account_age_days": 7,
}

SPAM_ACTIONS = frozenset({"warn", "timeout", "kick"})
FILTER_ACTIONS = frozenset({"delete", "warn", "timeout"})
ACCOUNT_AGE_ACTIONS = frozenset({"kick", "quarantine"})
ESCALATION_ACTIONS = frozenset({"timeout", "kick", "ban"})
RAID_ACTIONS = frozenset({"kick", "ban", "quarantine"})


# ---------------------------------------------------------------------------
# Merge semantics
# ---------------------------------------------------------------------------
def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with *overlay* merged into *base*.

    Nested dicts are merged key by key; every other value (including lists)
    in *overlay* replaces the one in *base*.  Neither argument is mutated.
    """
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------
_DOMAIN_RE = re.compile(
    r"^(?=.{1,253}$)(?!-)[a-z0-9-]{1,63}(?<!-)(\.(?!-)[a-z0-9-]{1,63}(?<!-))+$"
)


def normalize_domain(domain: str) -> str:
    """Lower-case and validate a bare hostname such as ``youtube.com``.

    A scheme, path or leading ``www.``-style wildcard is rejected rather than
    guessed at.

    Raises
    ------
    ValueError
        If *domain* is not a plausible hostname.
    """
    value = domain.strip().lower()
    if not _DOMAIN_RE.match(value):
        raise ValueError(
            f"Invalid domain: {domain!r}. Use a bare hostname such as youtube.com"
        )
    return value


def normalize_word(word: str) -> str:
    """Lower-case and trim a filtered word; empty input is rejected."""
    value = word.strip().lower()
    if not value:
        raise ValueError("Filtered word cannot be empty.")
    return value


# ---------------------------------------------------------------------------
# Typed views
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AntiSpamPolicy:
    enabled: bool
    max_messages: int
    time_window_ms: int
    duplicate_threshold: int
    action: str
    timeout_duration_ms: int


@dataclass(frozen=True, slots=True)
class LinkFilterPolicy:
    enabled: bool
    block_invites: bool
    block_all_links: bool
    allowed_domains: tuple[str, ...]
    action: str


@dataclass(frozen=True, slots=True)
class WordFilterPolicy:
    enabled: bool
    words: tuple[str, ...]
    action: str


@dataclass(frozen=True, slots=True)
class AccountAgePolicy:
    enabled: bool
    min_age_days: int
    action: str
    quarantine_role_id: int | None = None


@dataclass(frozen=True, slots=True)
class AutomodPolicy:
    """Complete automod configuration for one guild."""

    enabled: bool
    anti_spam: AntiSpamPolicy
    link_filter: LinkFilterPolicy
    word_filter: WordFilterPolicy
    account_age: AccountAgePolicy
    exempt_role_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AutomodPolicy:
        """Build from a stored document (already merged over defaults)."""
        doc = deep_merge(DEFAULT_AUTOMOD, data)
        spam = doc["anti_spam"]
        links = doc["link_filter"]
        words = doc["word_filter"]
        age = doc["account_age"]
        return cls(
            enabled=bool(doc["enabled"]),
            anti_spam=AntiSpamPolicy(
                enabled=bool(spam["enabled"]),
                max_messages=int(spam["max_messages"]),
                time_window_ms=int(spam["time_window_ms"]),
                duplicate_threshold=int(spam["duplicate_threshold"]),
                action=str(spam["action"]),
                timeout_duration_ms=int(spam["timeout_duration_ms"]),
            ),
            link_filter=LinkFilterPolicy(
                enabled=bool(links["enabled"]),
                block_invites=bool(links["block_invites"]),
                block_all_links=bool(links["block_all_links"]),
                allowed_domains=tuple(links["allowed_domains"]),
                action=str(links["action"]),
            ),
            word_filter=WordFilterPolicy(
                enabled=bool(words["enabled"]),
                words=tuple(words["words"]),
                action=str(words["action"]),
            ),
            account_age=AccountAgePolicy(
                enabled=bool(age["enabled"]),
                min_age_days=int(age["min_age_days"]),
                action=str(age["action"]),
                quarantine_role_id=(
                    int(age["quarantine_role_id"]) if age.get("quarantine_role_id") else None
                ),
            ),
            exempt_role_ids=frozenset(int(r) for r in doc["exempt_role_ids"]),
        )


@dataclass(frozen=True, slots=True)
class EscalationRule:
    warn_threshold: int
    action: str
    timeout_duration_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "warn_threshold": self.warn_threshold,
            "action": self.action,
            "timeout_duration_ms": self.timeout_duration_ms,
        }


@dataclass(frozen=True, slots=True)
class EscalationPolicy:
    """Strike escalation rules for one guild, sorted by threshold."""

    enabled: bool
    rules: tuple[EscalationRule, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EscalationPolicy:
        doc = deep_merge(DEFAULT_ESCALATION, data)
        # One rule per threshold; a later entry for the same threshold wins.
        by_threshold: dict[int, EscalationRule] = {}
        for raw in doc["rules"]:
            rule = EscalationRule(
                warn_threshold=int(raw["warn_threshold"]),
                action=str(raw["action"]),
                timeout_duration_ms=(
                    int(raw["timeout_duration_ms"])
                    if raw.get("timeout_duration_ms") is not None
                    else None
                ),
            )
            by_threshold[rule.warn_threshold] = rule
        return cls(
            enabled=bool(doc["enabled"]),
            rules=tuple(by_threshold[k] for k in sorted(by_threshold)),
        )


@dataclass(frozen=True, slots=True)
class RaidPolicy:
    enabled: bool
    join_threshold: int
    time_window_ms: int
    action: str
    min_account_age_days: int
    quarantine_role_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RaidPolicy:
        doc = deep_merge(DEFAULT_RAID, data)
        return cls(
            enabled=bool(doc["enabled"]),
            join_threshold=int(doc["join_threshold"]),
            time_window_ms=int(doc["time_window_ms"]),
            action=str(doc["action"]),
            min_account_age_days=int(doc["min_account_age_days"]),
            quarantine_role_id=(
                int(doc["quarantine_role_id"]) if doc.get("quarantine_role_id") else None
            ),
        )
