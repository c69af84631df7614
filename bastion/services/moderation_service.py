"""
bastion.services.moderation_service — Event → decision → executor pipeline
============================================================================

Glue between discord.py events and the pure evaluators.  The cogs hand over
raw ``discord.Message`` / ``discord.Member`` objects; this module:

1. Normalises them into :class:`~bastion.engine.events.MessageEvent` /
   :class:`~bastion.engine.events.JoinEvent`
2. Loads the guild's policy (``run_db`` → worker thread)
3. Updates the injected in-memory trackers
4. Runs the evaluator and hands the resulting
   :class:`~bastion.engine.actions.Enforcement` to
   :func:`bastion.services.enforcement.apply`

One inbound event produces at most one enforcement decision per pipeline
(the account-age gate and raid protection are separate pipelines).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import discord
from sqlalchemy import Engine

from bastion.constants import (
    AUTOMOD_MODERATOR,
    ESCALATION_MODERATOR,
    RAID_MODERATOR,
)
from bastion.database.engine import run_db
from bastion.database.models import ModerationCase
from bastion.engine.actions import NotifyResult
from bastion.engine.automod import (
    account_age_enforcement,
    check_account_age,
    evaluate_message,
    is_exempt,
    message_enforcement,
)
from bastion.engine.escalation import escalation_enforcement, evaluate_escalation
from bastion.engine.events import JoinEvent, MessageEvent
from bastion.engine.policy import EscalationRule
from bastion.engine.raid import burst_detected, is_raid_suspect, raid_enforcement
from bastion.engine.trackers import Clock, JoinBurstTracker, RateTracker
from bastion.services.case_service import record_warning
from bastion.services.embeds import build_case_embed, build_raid_alert_embed
from bastion.services.enforcement import (
    EnforcementContext,
    EnforcementOutcome,
    apply,
    notify_member,
    post_mod_log,
)
from bastion.services.policy_service import (
    get_automod_policy,
    get_escalation_policy,
    get_raid_policy,
)
from bastion.services.raid_service import (
    RaidSummary,
    activate_raid,
    deactivate_raid,
    increment_handled,
    is_raid_active,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event normalisation
# ---------------------------------------------------------------------------
def message_event_from(message: Any) -> MessageEvent:
    author = message.author
    permissions = getattr(author, "guild_permissions", None)
    return MessageEvent(
        guild_id=message.guild.id,
        user_id=author.id,
        channel_id=message.channel.id,
        message_id=message.id,
        content=message.content or "",
        role_ids=frozenset(r.id for r in getattr(author, "roles", ())),
        is_admin=bool(permissions and permissions.administrator),
    )


def join_event_from(member: Any, joined_at: float) -> JoinEvent:
    return JoinEvent(
        guild_id=member.guild.id,
        user_id=member.id,
        account_created_at=member.created_at.timestamp(),
        joined_at=joined_at,
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class JoinOutcome:
    """What happened to one joining member."""
    account_age: EnforcementOutcome | None = None
    raid_activated: bool = False
    raid: EnforcementOutcome | None = None


@dataclass(frozen=True, slots=True)
class WarningOutcome:
    case: ModerationCase
    warn_count: int
    notified: NotifyResult
    escalation: EscalationRule | None = None
    escalation_outcome: EnforcementOutcome | None = None

    @property
    def escalation_failed(self) -> bool:
        return self.escalation_outcome is not None and not self.escalation_outcome.succeeded


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class ModerationService:
    """Owns the trackers and runs the automated moderation pipelines.

    Parameters
    ----------
    engine:
        SQLAlchemy engine for the stores.
    rate_tracker, join_tracker:
        In-memory trackers; created with *clock* when omitted.
    clock:
        Returns the current time in epoch seconds.
    """

    def __init__(
        self,
        engine: Engine,
        rate_tracker: RateTracker | None = None,
        join_tracker: JoinBurstTracker | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.engine = engine
        self.clock = clock
        self.rate_tracker = rate_tracker or RateTracker(clock)
        self.join_tracker = join_tracker or JoinBurstTracker(clock)

    def _context(
        self, guild: Any, member: Any, moderator_tag: str, *,
        message: Any | None = None, log_channel: Any | None = None,
    ) -> EnforcementContext:
        return EnforcementContext(
            engine=self.engine,
            guild_id=guild.id,
            guild_name=guild.name,
            member=member,
            moderator_id=guild.me.id,
            moderator_tag=moderator_tag,
            message=message,
            log_channel=log_channel,
        )

    # -----------------------------------------------------------------------
    # Automod
    # -----------------------------------------------------------------------
    async def handle_message(
        self, message: Any, log_channel: Any | None = None
    ) -> EnforcementOutcome | None:
        """Run automod over one guild message; None if nothing fired."""
        if message.guild is None or message.author.bot:
            return None

        event = message_event_from(message)
        policy = await run_db(get_automod_policy, self.engine, event.guild_id)
        # Exempt members never touch the tracker.
        if not policy.enabled or is_exempt(event, policy):
            return None

        snapshot = None
        if policy.anti_spam.enabled:
            snapshot = self.rate_tracker.record(
                event.guild_id, event.user_id, event.content, policy.anti_spam.time_window_ms
            )

        violation = evaluate_message(event, policy, snapshot)
        if violation is None:
            return None

        logger.info(
            "AutoMod %s violation by user %s in guild %d: %s",
            violation.rule.value, event.user_id, event.guild_id, violation.reason,
        )
        enforcement = message_enforcement(violation, message.guild.name)
        ctx = self._context(
            message.guild, message.author, AUTOMOD_MODERATOR,
            message=message, log_channel=log_channel,
        )
        return await apply(enforcement, ctx)

    # -----------------------------------------------------------------------
    # Member joins
    # -----------------------------------------------------------------------
    async def handle_member_join(
        self, member: Any, log_channel: Any | None = None
    ) -> JoinOutcome:
        """Account-age gate and raid protection, evaluated independently."""
        if member.bot:
            return JoinOutcome()

        event = join_event_from(member, self.clock())
        age_outcome = await self._check_account_age(member, event, log_channel)
        activated, raid_outcome = await self._check_raid(member, event, log_channel)
        return JoinOutcome(
            account_age=age_outcome, raid_activated=activated, raid=raid_outcome
        )

    async def _check_account_age(
        self, member: Any, event: JoinEvent, log_channel: Any | None
    ) -> EnforcementOutcome | None:
        automod = await run_db(get_automod_policy, self.engine, event.guild_id)
        violation = check_account_age(event, automod)
        if violation is None:
            return None

        enforcement = account_age_enforcement(violation, automod, member.guild.name)
        if enforcement is None:
            logger.warning(
                "Account-age quarantine enabled in guild %d but no quarantine role is set",
                event.guild_id,
            )
            return None

        logger.info(
            "Account-age gate: user %s in guild %d (%d days old)",
            event.user_id, event.guild_id, violation.age_days,
        )
        ctx = self._context(member.guild, member, AUTOMOD_MODERATOR, log_channel=log_channel)
        return await apply(enforcement, ctx)

    async def _check_raid(
        self, member: Any, event: JoinEvent, log_channel: Any | None
    ) -> tuple[bool, EnforcementOutcome | None]:
        policy = await run_db(get_raid_policy, self.engine, event.guild_id)
        if not policy.enabled:
            return False, None

        join_count = self.join_tracker.record(event.guild_id, policy.time_window_ms)

        activated = False
        if burst_detected(join_count, policy):
            activated = await run_db(activate_raid, self.engine, event.guild_id, self.clock())
            if activated:
                logger.warning(
                    "Raid detected in guild %d: %d joins within %d ms",
                    event.guild_id, join_count, policy.time_window_ms,
                )
                await self._send_raid_alert(log_channel, join_count)

        if not await run_db(is_raid_active, self.engine, event.guild_id):
            return activated, None
        if not is_raid_suspect(event, policy):
            return activated, None

        enforcement = raid_enforcement(policy)
        if enforcement is None:
            logger.warning(
                "Raid action is quarantine in guild %d but no quarantine role is set",
                event.guild_id,
            )
            return activated, None

        ctx = self._context(member.guild, member, RAID_MODERATOR, log_channel=log_channel)
        outcome = await apply(enforcement, ctx)
        if outcome.succeeded:
            await run_db(increment_handled, self.engine, event.guild_id)
        return activated, outcome

    async def _send_raid_alert(self, log_channel: Any | None, join_count: int) -> None:
        if log_channel is None:
            return
        try:
            await log_channel.send(
                content="@here Raid detected!", embed=build_raid_alert_embed(join_count)
            )
        except discord.HTTPException as exc:
            logger.error("Failed to send raid alert: %s", exc)

    async def end_raid(self, guild_id: int) -> RaidSummary | None:
        """Operator action: leave raid mode.  None if no raid was active."""
        return await run_db(deactivate_raid, self.engine, guild_id, self.clock())

    # -----------------------------------------------------------------------
    # Moderator warnings + strike escalation
    # -----------------------------------------------------------------------
    async def issue_warning(
        self,
        guild: Any,
        member: Any,
        moderator: Any,
        reason: str,
        log_channel: Any | None = None,
    ) -> WarningOutcome:
        """Record a warning, notify the member and apply any escalation.

        Order: case + count → DM → mod log → escalation.  A failed
        escalation is reported on the outcome; the warning stands.
        """
        case, warn_count = await run_db(
            record_warning,
            self.engine,
            guild.id,
            member.id,
            str(member),
            moderator.id,
            str(moderator),
            reason,
        )

        notified = await notify_member(
            member,
            f"You have received a warning in **{guild.name}**.\n"
            f"Reason: {reason}\n"
            f"Total warnings: {warn_count}",
        )
        await post_mod_log(log_channel, build_case_embed(case))

        policy = await run_db(get_escalation_policy, self.engine, guild.id)
        rule = evaluate_escalation(policy, warn_count)
        if rule is None:
            return WarningOutcome(case=case, warn_count=warn_count, notified=notified)

        logger.info(
            "Strike escalation in guild %d: user %s reached %d warnings → %s",
            guild.id, member.id, warn_count, rule.action,
        )
        enforcement = escalation_enforcement(rule, warn_count, guild.name)
        ctx = self._context(guild, member, ESCALATION_MODERATOR, log_channel=log_channel)
        escalation_outcome = await apply(enforcement, ctx)
        return WarningOutcome(
            case=case,
            warn_count=warn_count,
            notified=notified,
            escalation=rule,
            escalation_outcome=escalation_outcome,
        )
