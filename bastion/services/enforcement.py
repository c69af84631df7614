"""
bastion.services.enforcement — Enforcement Executor
=====================================================

The only place that turns an :class:`~bastion.engine.actions.Enforcement`
into Discord side effects and ledger writes.  Every automated path (automod,
account-age gate, raid protection, strike escalation) and every moderator
command that acts on a member ends up in :func:`apply`.

Step order per kind (each platform step is attempted independently):

    DELETE      delete message
    WARN        delete message → record case → DM
    TIMEOUT     delete message → timeout → record case → DM
    KICK        delete message → DM → kick → record case
    BAN         DM → ban → record case
    QUARANTINE  add role → DM                      (no case)

The DM goes out *before* a kick or ban because the member can no longer be
messaged afterwards.  A case is only recorded once the primary action
succeeded.  Message deletion and mod-log posting are best-effort; a failed
primary action yields a failed :class:`EnforcementOutcome`; a failed ledger
write (``SQLAlchemyError``) propagates to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import discord
from sqlalchemy import Engine

from bastion.database.engine import run_db
from bastion.database.models import ModerationCase
from bastion.engine.actions import Enforcement, EnforcementKind, NotifyResult
from bastion.services.case_service import create_case
from bastion.services.embeds import build_case_embed

logger = logging.getLogger(__name__)

# Human verbs used in failure messages
_VERBS: dict[EnforcementKind, str] = {
    EnforcementKind.WARN: "warn",
    EnforcementKind.TIMEOUT: "timeout",
    EnforcementKind.KICK: "kick",
    EnforcementKind.BAN: "ban",
    EnforcementKind.QUARANTINE: "quarantine",
}


@dataclass(slots=True)
class EnforcementContext:
    """Everything the executor needs besides the decision itself.

    ``member`` and ``message`` are discord.py objects (or test doubles with
    the same coroutine methods).  ``log_channel`` is the mod-log channel, or
    None when mod logging isn't configured.
    """

    engine: Engine
    guild_id: int
    guild_name: str
    member: Any
    moderator_id: int
    moderator_tag: str
    message: Any | None = None
    log_channel: Any | None = None


@dataclass(frozen=True, slots=True)
class EnforcementOutcome:
    succeeded: bool
    case: ModerationCase | None = None
    notified: NotifyResult = NotifyResult.SKIPPED
    error: str | None = None


# ---------------------------------------------------------------------------
# Best-effort side effects
# ---------------------------------------------------------------------------
async def notify_member(member: Any, text: str | None) -> NotifyResult:
    """DM *member*; never raises."""
    if not text:
        return NotifyResult.SKIPPED
    try:
        await member.send(text)
    except discord.Forbidden:
        logger.debug("Could not DM user %s: DMs closed", member.id)
        return NotifyResult.UNDELIVERABLE
    except discord.HTTPException as exc:
        logger.debug("Could not DM user %s: %s", member.id, exc)
        return NotifyResult.UNKNOWN
    return NotifyResult.DELIVERED


async def _delete_message(message: Any | None) -> bool:
    if message is None:
        return False
    try:
        await message.delete()
    except discord.HTTPException as exc:
        # Already deleted, or missing Manage Messages.
        logger.debug("Could not delete message %s: %s", message.id, exc)
        return False
    return True


async def post_mod_log(log_channel: Any | None, embed: discord.Embed) -> bool:
    """Send *embed* to the mod-log channel; silently skipped when unset."""
    if log_channel is None:
        return False
    try:
        await log_channel.send(embed=embed)
    except discord.HTTPException as exc:
        logger.warning("Failed to post to mod log: %s", exc)
        return False
    return True


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------
async def _record_case(enforcement: Enforcement, ctx: EnforcementContext) -> ModerationCase:
    action = enforcement.kind.case_action
    if action is None:
        raise ValueError(f"{enforcement.kind.value} enforcement records no case")
    duration_seconds = (
        enforcement.duration_ms // 1000 if enforcement.duration_ms is not None else None
    )
    case = await run_db(
        create_case,
        ctx.engine,
        ctx.guild_id,
        ctx.member.id,
        str(ctx.member),
        ctx.moderator_id,
        ctx.moderator_tag,
        action,
        enforcement.reason,
        duration_seconds,
    )
    await post_mod_log(ctx.log_channel, build_case_embed(case))
    return case


async def _primary_action(enforcement: Enforcement, ctx: EnforcementContext) -> None:
    member = ctx.member
    kind = enforcement.kind
    if kind is EnforcementKind.TIMEOUT:
        await member.timeout(
            timedelta(milliseconds=enforcement.duration_ms or 0), reason=enforcement.reason
        )
    elif kind is EnforcementKind.KICK:
        await member.kick(reason=enforcement.reason)
    elif kind is EnforcementKind.BAN:
        await member.ban(reason=enforcement.reason)
    elif kind is EnforcementKind.QUARANTINE:
        await member.add_roles(discord.Object(id=enforcement.role_id), reason=enforcement.reason)


async def apply(enforcement: Enforcement, ctx: EnforcementContext) -> EnforcementOutcome:
    """Carry out *enforcement* against ``ctx.member``.

    Returns
    -------
    EnforcementOutcome
        ``succeeded`` is False only when the primary platform action was
        refused; ``error`` then holds a message fit for a moderator.

    Raises
    ------
    sqlalchemy.exc.SQLAlchemyError
        If the case could not be written.
    """
    kind = enforcement.kind
    member = ctx.member

    if kind is EnforcementKind.QUARANTINE and enforcement.role_id is None:
        raise ValueError("Quarantine enforcement requires a role_id")
    if kind is EnforcementKind.TIMEOUT and not enforcement.duration_ms:
        raise ValueError("Timeout enforcement requires a duration_ms")

    if kind is not EnforcementKind.BAN and kind is not EnforcementKind.QUARANTINE:
        await _delete_message(ctx.message)
    if kind is EnforcementKind.DELETE:
        return EnforcementOutcome(succeeded=True)

    notified = NotifyResult.SKIPPED
    if kind in (EnforcementKind.KICK, EnforcementKind.BAN):
        notified = await notify_member(member, enforcement.notice)

    try:
        await _primary_action(enforcement, ctx)
    except discord.HTTPException as exc:
        logger.warning(
            "Failed to %s user %s in guild %d: %s",
            _VERBS[kind], member.id, ctx.guild_id, exc,
        )
        return EnforcementOutcome(
            succeeded=False,
            notified=notified,
            error=f"Failed to {_VERBS[kind]} {member}. Check my permissions and role position.",
        )

    if kind is EnforcementKind.QUARANTINE:
        notified = await notify_member(member, enforcement.notice)
        logger.info("Quarantined user %s in guild %d", member.id, ctx.guild_id)
        return EnforcementOutcome(succeeded=True, notified=notified)

    case = await _record_case(enforcement, ctx)

    if kind in (EnforcementKind.WARN, EnforcementKind.TIMEOUT):
        notified = await notify_member(member, enforcement.notice)

    logger.info(
        "Applied %s to user %s in guild %d (case #%d, dm=%s)",
        kind.value, member.id, ctx.guild_id, case.case_id, notified.value,
    )
    return EnforcementOutcome(succeeded=True, case=case, notified=notified)
