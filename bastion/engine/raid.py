"""
bastion.engine.raid — Raid detection decisions
================================================

Pure helpers for the raid pipeline.  The durable Idle/Active state lives in
:mod:`bastion.services.raid_service`; the burst counts come from
:class:`~bastion.engine.trackers.JoinBurstTracker`.
"""

from __future__ import annotations

from bastion.constants import DAY_SECONDS, RAID_MODERATOR
from bastion.engine.actions import Enforcement, EnforcementKind
from bastion.engine.events import JoinEvent
from bastion.engine.policy import RaidPolicy


def burst_detected(join_count: int, policy: RaidPolicy) -> bool:
    """True once the in-window join count reaches the threshold."""
    return join_count >= policy.join_threshold


def is_raid_suspect(event: JoinEvent, policy: RaidPolicy) -> bool:
    """During a raid, accounts younger than ``min_account_age_days`` are handled.

    A minimum of 0 disables per-member handling entirely.
    """
    if policy.min_account_age_days <= 0:
        return False
    age_seconds = event.joined_at - event.account_created_at
    return age_seconds < policy.min_account_age_days * DAY_SECONDS


def raid_enforcement(policy: RaidPolicy) -> Enforcement | None:
    """Enforcement for a raid suspect; None if quarantine has no role set."""
    reason = f"[{RAID_MODERATOR}] New account during raid"

    if policy.action == "ban":
        return Enforcement(
            kind=EnforcementKind.BAN,
            reason=reason,
            notice=(
                "You have been automatically banned during a raid protection event. "
                "If this was a mistake, please contact the server staff."
            ),
        )
    if policy.action == "quarantine":
        if policy.quarantine_role_id is None:
            return None
        return Enforcement(
            kind=EnforcementKind.QUARANTINE,
            reason=reason,
            role_id=policy.quarantine_role_id,
            notice=(
                "You have been placed in quarantine due to a raid protection event. "
                "A moderator will verify you shortly."
            ),
        )
    return Enforcement(
        kind=EnforcementKind.KICK,
        reason=reason,
        notice=(
            "You have been automatically removed during a raid protection event. "
            "Please try joining again later."
        ),
    )
