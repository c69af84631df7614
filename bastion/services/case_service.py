"""
bastion.services.case_service — Moderation Case Ledger
========================================================

Append-only record of every enforcement action.  Case numbers are allocated
per guild from the ``case_counters`` row, starting at 1, and are never
reused.  There is deliberately no update or delete function.

A storage error here propagates: the caller must treat a failed ledger write
as a failed action, even though the platform-side effect (kick, ban…) may
already have happened.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from bastion.database.models import ActionKind, CaseCounter, ModerationCase
from bastion.services.locks import guild_locks

logger = logging.getLogger(__name__)

_LOCK_SCOPE = "cases"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def _append_case(
    session: Session,
    guild_id: int,
    target_user_id: int,
    target_tag: str,
    moderator_user_id: int,
    moderator_tag: str,
    kind: ActionKind,
    reason: str,
    duration_seconds: int | None,
) -> ModerationCase:
    # Caller holds the guild's "cases" lock.
    counter = session.scalars(
        select(CaseCounter)
        .where(CaseCounter.guild_id == guild_id)
        .with_for_update()
    ).first()
    if counter is None:
        counter = CaseCounter(guild_id=guild_id, last_case_id=0)
        session.add(counter)
    counter.last_case_id += 1

    row = ModerationCase(
        guild_id=guild_id,
        case_id=counter.last_case_id,
        target_user_id=target_user_id,
        target_tag=target_tag,
        moderator_user_id=moderator_user_id,
        moderator_tag=moderator_tag,
        action=kind.value,
        reason=reason,
        duration_seconds=(
            duration_seconds if kind is ActionKind.TIMEOUT else None
        ),
    )
    session.add(row)
    return row


def create_case(
    engine,
    guild_id: int,
    target_user_id: int,
    target_tag: str,
    moderator_user_id: int,
    moderator_tag: str,
    action: ActionKind | str,
    reason: str,
    duration_seconds: int | None = None,
) -> ModerationCase:
    """Allocate the guild's next case number and append a case.

    Parameters
    ----------
    duration_seconds:
        Only stored for timeouts; ignored for every other action.

    Returns
    -------
    ModerationCase
        The persisted, detached row.
    """
    kind = ActionKind(action)
    with guild_locks.hold(_LOCK_SCOPE, guild_id):
        with Session(engine, expire_on_commit=False) as session:
            row = _append_case(
                session, guild_id, target_user_id, target_tag,
                moderator_user_id, moderator_tag, kind, reason, duration_seconds,
            )
            session.commit()
            session.expunge(row)

    logger.info(
        "Case #%d recorded in guild %d: %s %s by %s",
        row.case_id, guild_id, kind.value, target_user_id, moderator_tag,
    )
    return row


def record_warning(
    engine,
    guild_id: int,
    target_user_id: int,
    target_tag: str,
    moderator_user_id: int,
    moderator_tag: str,
    reason: str,
) -> tuple[ModerationCase, int]:
    """Append a warn case and return it with the user's new warn count.

    The append and the count share one lock scope and one transaction, so
    concurrent warnings for the same user each see a distinct count and
    every escalation threshold is crossed exactly once.
    """
    with guild_locks.hold(_LOCK_SCOPE, guild_id):
        with Session(engine, expire_on_commit=False) as session:
            row = _append_case(
                session, guild_id, target_user_id, target_tag,
                moderator_user_id, moderator_tag, ActionKind.WARN, reason, None,
            )
            session.flush()
            warn_count = session.scalar(
                select(func.count())
                .select_from(ModerationCase)
                .where(
                    ModerationCase.guild_id == guild_id,
                    ModerationCase.target_user_id == target_user_id,
                    ModerationCase.action == ActionKind.WARN.value,
                )
            )
            session.commit()
            session.expunge(row)

    logger.info(
        "Case #%d recorded in guild %d: warn %s by %s (warning %d)",
        row.case_id, guild_id, target_user_id, moderator_tag, warn_count,
    )
    return row, warn_count


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_user_cases(engine, guild_id: int, user_id: int) -> list[ModerationCase]:
    """All cases against *user_id* in *guild_id*, in insertion order."""
    with Session(engine) as session:
        rows = session.scalars(
            select(ModerationCase)
            .where(
                ModerationCase.guild_id == guild_id,
                ModerationCase.target_user_id == user_id,
            )
            .order_by(ModerationCase.case_id)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def count_by_action_kind(engine, guild_id: int, user_id: int) -> dict[ActionKind, int]:
    """Number of cases per action kind; every kind is present (zero-filled)."""
    counts: dict[ActionKind, int] = {kind: 0 for kind in ActionKind}
    with Session(engine) as session:
        rows = session.execute(
            select(ModerationCase.action, func.count())
            .where(
                ModerationCase.guild_id == guild_id,
                ModerationCase.target_user_id == user_id,
            )
            .group_by(ModerationCase.action)
        ).all()
    for action, count in rows:
        counts[ActionKind(action)] = count
    return counts


def get_case(engine, guild_id: int, case_id: int) -> ModerationCase | None:
    """Look up one case by its per-guild number."""
    with Session(engine) as session:
        row = session.scalars(
            select(ModerationCase).where(
                ModerationCase.guild_id == guild_id,
                ModerationCase.case_id == case_id,
            )
        ).first()
        if row is not None:
            session.expunge(row)
        return row


def get_recent_cases(engine, guild_id: int, limit: int = 10) -> list[ModerationCase]:
    """The guild's newest cases first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(ModerationCase)
            .where(ModerationCase.guild_id == guild_id)
            .order_by(ModerationCase.case_id.desc())
            .limit(limit)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)
