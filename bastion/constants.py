"""
bastion.constants — Shared Constants & Helpers
================================================

Single source of truth for moderator identities, presentation constants and
the duration grammar used by moderator commands.  Import from here instead of
duplicating in cogs, services, and embeds.
"""

from __future__ import annotations

import re

from bastion.database.models import ActionKind

# ---------------------------------------------------------------------------
# Synthetic moderator identities recorded on automated cases
# ---------------------------------------------------------------------------
AUTOMOD_MODERATOR = "AutoMod"
ESCALATION_MODERATOR = "StrikeEscalation"
RAID_MODERATOR = "RaidProtection"

# ---------------------------------------------------------------------------
# Platform limits
# ---------------------------------------------------------------------------
MAX_TIMEOUT_SECONDS = 28 * 24 * 60 * 60   # Discord caps timeouts at 28 days
DEFAULT_ESCALATION_TIMEOUT_MS = 3_600_000  # 1 hour
DEFAULT_AUTOMOD_TIMEOUT_MS = 300_000       # 5 minutes
DAY_SECONDS = 86_400

# ---------------------------------------------------------------------------
# Case presentation (mod-log embeds, /history)
# ---------------------------------------------------------------------------
ACTION_EMOJI: dict[str, str] = {
    ActionKind.BAN: "\U0001f528",        # 🔨
    ActionKind.KICK: "\U0001f462",       # 👢
    ActionKind.TIMEOUT: "\U0001f507",    # 🔇
    ActionKind.WARN: "\u26a0\ufe0f",    # ⚠️
    ActionKind.UNBAN: "\U0001f513",      # 🔓
    ActionKind.UNTIMEOUT: "\U0001f50a",  # 🔊
}

ACTION_COLORS: dict[str, int] = {
    ActionKind.BAN: 0xDC3545,
    ActionKind.KICK: 0xFD7E14,
    ActionKind.TIMEOUT: 0xFFC107,
    ActionKind.WARN: 0xFFC107,
    ActionKind.UNBAN: 0x28A745,
    ActionKind.UNTIMEOUT: 0x28A745,
}


# ---------------------------------------------------------------------------
# Duration grammar
# ---------------------------------------------------------------------------
_DURATION_UNITS: dict[str, int] = {"s": 1, "m": 60, "h": 3600, "d": DAY_SECONDS}
_DURATION_RE = re.compile(r"^(\d+)(s|m|h|d)$", re.IGNORECASE)
_ESCALATION_DURATION_RE = re.compile(r"^(\d+)(h|d)$", re.IGNORECASE)


def parse_duration(text: str) -> int:
    """Parse ``"30s"``, ``"10m"``, ``"1h"`` or ``"7d"`` into seconds.

    Raises
    ------
    ValueError
        If *text* doesn't match the grammar or evaluates to zero.
    """
    match = _DURATION_RE.match(text.strip())
    if not match:
        raise ValueError(
            "Invalid duration format. Use: 10s, 5m, 1h, 1d (e.g. \"30m\" for 30 minutes)"
        )
    seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]
    if seconds <= 0:
        raise ValueError("Duration must be greater than zero.")
    return seconds


def parse_escalation_duration(text: str) -> int:
    """Parse an escalation timeout (``"1h"``, ``"24h"``, ``"7d"``) into milliseconds.

    Raises
    ------
    ValueError
        On a malformed value, or one longer than the 28-day timeout cap.
    """
    match = _ESCALATION_DURATION_RE.match(text.strip())
    if not match or int(match.group(1)) <= 0:
        raise ValueError("Invalid duration format. Use format like 1h, 24h, 7d")
    seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2).lower()]
    if seconds > MAX_TIMEOUT_SECONDS:
        raise ValueError("Timeout duration cannot exceed 28 days.")
    return seconds * 1000


def format_duration(seconds: int) -> str:
    """Compact form used in case listings: ``45s``, ``10m``, ``3h``, ``2d``."""
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < DAY_SECONDS:
        return f"{seconds // 3600}h"
    return f"{seconds // DAY_SECONDS}d"


def format_escalation_duration(ms: int) -> str:
    """Readable form for escalation rules: ``1 hour``, ``24 hours``, ``7 days``."""
    hours = ms // 3_600_000
    days = hours // 24
    if days > 0:
        return f"{days} day{'s' if days > 1 else ''}"
    return f"{hours} hour{'s' if hours != 1 else ''}"
