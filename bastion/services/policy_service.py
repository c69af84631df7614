"""
bastion.services.policy_service — Guild Policy Store
======================================================

Typed read/write access to the ``guild_policies`` table.

Reads never fail and never return None: whatever is stored for the guild is
deep-merged over the compiled-in defaults from :mod:`bastion.engine.policy`.

Writes follow one pattern:
  1. Take the guild's lock (and a row lock on PostgreSQL)
  2. Load the stored document merged over defaults
  3. Merge the partial update / apply the list mutation
  4. Overwrite the whole document
  5. Commit

Configuration commands change one field at a time, so the deep merge in
step 3 is what keeps e.g. ``anti_spam.max_messages`` intact when only
``anti_spam.enabled`` is updated.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from bastion.constants import MAX_TIMEOUT_SECONDS
from bastion.database.models import GuildPolicy, PolicySection
from bastion.engine.policy import (
    ACCOUNT_AGE_ACTIONS,
    DEFAULT_AUTOMOD,
    DEFAULT_ESCALATION,
    DEFAULT_ESCALATION_RULES,
    DEFAULT_RAID,
    ESCALATION_ACTIONS,
    FILTER_ACTIONS,
    RAID_ACTIONS,
    SPAM_ACTIONS,
    AutomodPolicy,
    EscalationPolicy,
    EscalationRule,
    RaidPolicy,
    deep_merge,
    normalize_domain,
    normalize_word,
)
from bastion.services.locks import guild_locks

logger = logging.getLogger(__name__)

_LOCK_SCOPE = "policy"

_DEFAULTS: dict[PolicySection, dict[str, Any]] = {
    PolicySection.AUTOMOD: DEFAULT_AUTOMOD,
    PolicySection.ESCALATION: DEFAULT_ESCALATION,
    PolicySection.RAID: DEFAULT_RAID,
}


# ---------------------------------------------------------------------------
# Document primitives
# ---------------------------------------------------------------------------
def get_policy_document(engine, guild_id: int, section: PolicySection) -> dict[str, Any]:
    """Stored document for *section* merged over its defaults."""
    with Session(engine) as session:
        row = session.get(GuildPolicy, (guild_id, section.value))
        stored = dict(row.data) if row is not None and row.data else {}
    return deep_merge(_DEFAULTS[section], stored)


def _mutate_document(
    engine,
    guild_id: int,
    section: PolicySection,
    mutate: Callable[[dict[str, Any]], dict[str, Any]],
) -> dict[str, Any]:
    """Load → mutate → overwrite one document under the guild's lock.

    *mutate* receives the current merged document and returns the new one.
    """
    with guild_locks.hold(_LOCK_SCOPE, guild_id):
        with Session(engine) as session:
            row = session.scalars(
                select(GuildPolicy)
                .where(
                    GuildPolicy.guild_id == guild_id,
                    GuildPolicy.section == section.value,
                )
                .with_for_update()
            ).first()
            current = deep_merge(
                _DEFAULTS[section], dict(row.data) if row is not None and row.data else {}
            )
            updated = mutate(current)
            if row is None:
                session.add(GuildPolicy(guild_id=guild_id, section=section.value, data=updated))
            else:
                # Assign a fresh dict: JSON columns don't track in-place changes.
                row.data = dict(updated)
            session.commit()

    logger.debug("Policy %s updated for guild %d", section.value, guild_id)
    return updated


def update_policy_document(
    engine, guild_id: int, section: PolicySection, partial: dict[str, Any]
) -> dict[str, Any]:
    """Deep-merge *partial* into the stored document and return the result."""
    return _mutate_document(
        engine, guild_id, section, lambda current: deep_merge(current, partial)
    )


def _check_choice(value: Any, allowed: frozenset[str], label: str) -> None:
    if value is not None and value not in allowed:
        raise ValueError(
            f"Invalid {label}: {value!r}. Choose one of: {', '.join(sorted(allowed))}"
        )


# ---------------------------------------------------------------------------
# Automod
# ---------------------------------------------------------------------------
def get_automod_policy(engine, guild_id: int) -> AutomodPolicy:
    return AutomodPolicy.from_dict(get_policy_document(engine, guild_id, PolicySection.AUTOMOD))


def update_automod_policy(engine, guild_id: int, partial: dict[str, Any]) -> AutomodPolicy:
    """Merge a partial automod update, e.g. ``{"anti_spam": {"enabled": False}}``.

    Raises
    ------
    ValueError
        If an ``action`` isn't valid for its sub-policy.
    """
    _check_choice(partial.get("anti_spam", {}).get("action"), SPAM_ACTIONS, "anti-spam action")
    _check_choice(partial.get("link_filter", {}).get("action"), FILTER_ACTIONS, "link filter action")
    _check_choice(partial.get("word_filter", {}).get("action"), FILTER_ACTIONS, "word filter action")
    _check_choice(
        partial.get("account_age", {}).get("action"), ACCOUNT_AGE_ACTIONS, "account age action"
    )
    doc = update_policy_document(engine, guild_id, PolicySection.AUTOMOD, partial)
    return AutomodPolicy.from_dict(doc)


def _add_to_list(section_key: str | None, list_key: str, value: Any):
    """Build a mutator appending *value* to a list if absent."""
    def mutate(doc: dict[str, Any]) -> dict[str, Any]:
        target = doc[section_key] if section_key else doc
        if value not in target[list_key]:
            target[list_key] = [*target[list_key], value]
        return doc
    return mutate


def _remove_from_list(section_key: str | None, list_key: str, value: Any):
    def mutate(doc: dict[str, Any]) -> dict[str, Any]:
        target = doc[section_key] if section_key else doc
        target[list_key] = [v for v in target[list_key] if v != value]
        return doc
    return mutate


def add_filtered_word(engine, guild_id: int, word: str) -> AutomodPolicy:
    value = normalize_word(word)
    doc = _mutate_document(
        engine, guild_id, PolicySection.AUTOMOD, _add_to_list("word_filter", "words", value)
    )
    return AutomodPolicy.from_dict(doc)


def remove_filtered_word(engine, guild_id: int, word: str) -> AutomodPolicy:
    value = normalize_word(word)
    doc = _mutate_document(
        engine, guild_id, PolicySection.AUTOMOD, _remove_from_list("word_filter", "words", value)
    )
    return AutomodPolicy.from_dict(doc)


def add_allowed_domain(engine, guild_id: int, domain: str) -> AutomodPolicy:
    value = normalize_domain(domain)
    doc = _mutate_document(
        engine, guild_id, PolicySection.AUTOMOD,
        _add_to_list("link_filter", "allowed_domains", value),
    )
    return AutomodPolicy.from_dict(doc)


def remove_allowed_domain(engine, guild_id: int, domain: str) -> AutomodPolicy:
    value = normalize_domain(domain)
    doc = _mutate_document(
        engine, guild_id, PolicySection.AUTOMOD,
        _remove_from_list("link_filter", "allowed_domains", value),
    )
    return AutomodPolicy.from_dict(doc)


def add_exempt_role(engine, guild_id: int, role_id: int) -> AutomodPolicy:
    doc = _mutate_document(
        engine, guild_id, PolicySection.AUTOMOD,
        _add_to_list(None, "exempt_role_ids", int(role_id)),
    )
    return AutomodPolicy.from_dict(doc)


def remove_exempt_role(engine, guild_id: int, role_id: int) -> AutomodPolicy:
    doc = _mutate_document(
        engine, guild_id, PolicySection.AUTOMOD,
        _remove_from_list(None, "exempt_role_ids", int(role_id)),
    )
    return AutomodPolicy.from_dict(doc)


# ---------------------------------------------------------------------------
# Strike escalation
# ---------------------------------------------------------------------------
def get_escalation_policy(engine, guild_id: int) -> EscalationPolicy:
    return EscalationPolicy.from_dict(
        get_policy_document(engine, guild_id, PolicySection.ESCALATION)
    )


def update_escalation_policy(
    engine, guild_id: int, partial: dict[str, Any]
) -> EscalationPolicy:
    """Merge top-level escalation fields (``enabled``; ``rules`` replaces)."""
    doc = update_policy_document(engine, guild_id, PolicySection.ESCALATION, partial)
    return EscalationPolicy.from_dict(doc)


def set_escalation_rule(
    engine,
    guild_id: int,
    warn_threshold: int,
    action: str,
    timeout_duration_ms: int | None = None,
) -> EscalationPolicy:
    """Add a rule, replacing any existing rule at the same threshold."""
    if warn_threshold < 1:
        raise ValueError("Warning threshold must be at least 1.")
    _check_choice(action, ESCALATION_ACTIONS, "escalation action")
    if (
        action == "timeout"
        and timeout_duration_ms is not None
        and not 0 < timeout_duration_ms <= MAX_TIMEOUT_SECONDS * 1000
    ):
        raise ValueError("Timeout duration must be between 1ms and 28 days.")
    rule = EscalationRule(
        warn_threshold=warn_threshold,
        action=action,
        timeout_duration_ms=timeout_duration_ms if action == "timeout" else None,
    )

    def mutate(doc: dict[str, Any]) -> dict[str, Any]:
        rules = [r for r in doc["rules"] if int(r["warn_threshold"]) != warn_threshold]
        rules.append(rule.to_dict())
        doc["rules"] = sorted(rules, key=lambda r: int(r["warn_threshold"]))
        return doc

    doc = _mutate_document(engine, guild_id, PolicySection.ESCALATION, mutate)
    return EscalationPolicy.from_dict(doc)


def remove_escalation_rule(engine, guild_id: int, warn_threshold: int) -> bool:
    """Drop the rule at *warn_threshold*; False if there was none."""
    removed = False

    def mutate(doc: dict[str, Any]) -> dict[str, Any]:
        nonlocal removed
        kept = [r for r in doc["rules"] if int(r["warn_threshold"]) != warn_threshold]
        removed = len(kept) != len(doc["rules"])
        doc["rules"] = kept
        return doc

    _mutate_document(engine, guild_id, PolicySection.ESCALATION, mutate)
    return removed


def reset_escalation_rules(engine, guild_id: int) -> EscalationPolicy:
    """Restore the default rule ladder (keeps the enabled flag)."""
    doc = update_policy_document(
        engine, guild_id, PolicySection.ESCALATION, {"rules": DEFAULT_ESCALATION_RULES}
    )
    return EscalationPolicy.from_dict(doc)


# ---------------------------------------------------------------------------
# Raid protection
# ---------------------------------------------------------------------------
def get_raid_policy(engine, guild_id: int) -> RaidPolicy:
    return RaidPolicy.from_dict(get_policy_document(engine, guild_id, PolicySection.RAID))


def update_raid_policy(engine, guild_id: int, partial: dict[str, Any]) -> RaidPolicy:
    _check_choice(partial.get("action"), RAID_ACTIONS, "raid action")
    doc = update_policy_document(engine, guild_id, PolicySection.RAID, partial)
    return RaidPolicy.from_dict(doc)
