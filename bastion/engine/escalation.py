"""
bastion.engine.escalation — Strike escalation evaluator
=========================================================

Runs right after a warning is recorded.  A rule fires only when the user's
warn count equals its threshold exactly, so a user sitting past a threshold
isn't punished again on every later warning.  Thresholds skipped over (e.g.
by a bulk import) therefore never fire.
"""

from __future__ import annotations

from bastion.constants import DEFAULT_ESCALATION_TIMEOUT_MS
from bastion.engine.actions import Enforcement, EnforcementKind
from bastion.engine.policy import EscalationPolicy, EscalationRule


def evaluate_escalation(
    policy: EscalationPolicy, warn_count: int
) -> EscalationRule | None:
    """Return the rule whose threshold equals *warn_count*, if enabled."""
    if not policy.enabled:
        return None
    for rule in policy.rules:
        if rule.warn_threshold == warn_count:
            return rule
    return None


def escalation_enforcement(
    rule: EscalationRule, warn_count: int, guild_name: str
) -> Enforcement:
    """Translate a fired rule into the executor's variant."""
    reason = f"Automatic escalation: {warn_count} warnings reached"

    if rule.action == "timeout":
        return Enforcement(
            kind=EnforcementKind.TIMEOUT,
            reason=reason,
            duration_ms=rule.timeout_duration_ms or DEFAULT_ESCALATION_TIMEOUT_MS,
            notice=(
                f"You have been timed out in **{guild_name}** due to reaching "
                f"{warn_count} warnings."
            ),
        )
    if rule.action == "kick":
        return Enforcement(
            kind=EnforcementKind.KICK,
            reason=reason,
            notice=(
                f"You have been kicked from **{guild_name}** due to reaching "
                f"{warn_count} warnings."
            ),
        )
    return Enforcement(
        kind=EnforcementKind.BAN,
        reason=reason,
        notice=(
            f"You have been banned from **{guild_name}** due to reaching "
            f"{warn_count} warnings."
        ),
    )
