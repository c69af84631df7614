"""
bastion.engine.actions — Enforcement variant and notification result
======================================================================

Evaluators emit an :class:`Enforcement`; the executor in
:mod:`bastion.services.enforcement` is the only code that interprets it.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from bastion.database.models import ActionKind


class EnforcementKind(enum.StrEnum):
    """Every side effect the executor knows how to apply."""
    DELETE = "delete"
    WARN = "warn"
    TIMEOUT = "timeout"
    KICK = "kick"
    BAN = "ban"
    QUARANTINE = "quarantine"

    @property
    def case_action(self) -> ActionKind | None:
        """Ledger action recorded for this kind (None → nothing recorded)."""
        return _CASE_ACTIONS.get(self)


_CASE_ACTIONS: dict[EnforcementKind, ActionKind] = {
    EnforcementKind.WARN: ActionKind.WARN,
    EnforcementKind.TIMEOUT: ActionKind.TIMEOUT,
    EnforcementKind.KICK: ActionKind.KICK,
    EnforcementKind.BAN: ActionKind.BAN,
}


class NotifyResult(enum.StrEnum):
    """Outcome of a best-effort direct message."""
    DELIVERED = "delivered"
    UNDELIVERABLE = "undeliverable"  # DMs closed / blocked
    UNKNOWN = "unknown"              # transport error, outcome unclear
    SKIPPED = "skipped"              # no DM for this action


@dataclass(frozen=True, slots=True)
class Enforcement:
    """A single enforcement decision.

    ``duration_ms`` is only meaningful for ``TIMEOUT`` and ``role_id`` only
    for ``QUARANTINE``.  ``notice`` is the DM body sent to the member; when
    None no DM is attempted.
    """

    kind: EnforcementKind
    reason: str
    duration_ms: int | None = None
    role_id: int | None = None
    notice: str | None = None
