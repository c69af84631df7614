"""
bastion.services.raid_service — Raid state machine persistence
================================================================

A guild is either Idle (no ``active_raids`` row) or Active (row present).

    Idle ──activate_raid──▶ Active ──deactivate_raid──▶ Idle

``activate_raid`` returns True only for the call that actually performs the
Idle → Active transition, so exactly one raid alert is posted per raid even
when a burst of joins is processed concurrently.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from bastion.database.models import ActiveRaid
from bastion.services.locks import guild_locks

logger = logging.getLogger(__name__)

_LOCK_SCOPE = "raid"


@dataclass(frozen=True, slots=True)
class RaidState:
    started_at: float
    handled_count: int


@dataclass(frozen=True, slots=True)
class RaidSummary:
    """Returned when a raid is ended."""
    duration_ms: int
    handled_count: int

    @property
    def duration_minutes(self) -> int:
        return round(self.duration_ms / 60_000)


def get_raid_state(engine, guild_id: int) -> RaidState | None:
    with Session(engine) as session:
        row = session.get(ActiveRaid, guild_id)
        if row is None:
            return None
        return RaidState(started_at=row.started_at, handled_count=row.handled_count)


def is_raid_active(engine, guild_id: int) -> bool:
    return get_raid_state(engine, guild_id) is not None


def activate_raid(engine, guild_id: int, now: float) -> bool:
    """Enter raid mode; True only if the guild was Idle."""
    with guild_locks.hold(_LOCK_SCOPE, guild_id):
        with Session(engine) as session:
            existing = session.scalars(
                select(ActiveRaid).where(ActiveRaid.guild_id == guild_id).with_for_update()
            ).first()
            if existing is not None:
                return False
            session.add(ActiveRaid(guild_id=guild_id, started_at=now, handled_count=0))
            session.commit()

    logger.warning("Raid mode activated in guild %d", guild_id)
    return True


def increment_handled(engine, guild_id: int) -> int | None:
    """Bump the handled-member counter; None if no raid is active."""
    with guild_locks.hold(_LOCK_SCOPE, guild_id):
        with Session(engine) as session:
            row = session.scalars(
                select(ActiveRaid).where(ActiveRaid.guild_id == guild_id).with_for_update()
            ).first()
            if row is None:
                return None
            row.handled_count += 1
            count = row.handled_count
            session.commit()
    return count


def deactivate_raid(engine, guild_id: int, now: float) -> RaidSummary | None:
    """Leave raid mode and report how long it lasted; None if Idle."""
    with guild_locks.hold(_LOCK_SCOPE, guild_id):
        with Session(engine) as session:
            row = session.scalars(
                select(ActiveRaid).where(ActiveRaid.guild_id == guild_id).with_for_update()
            ).first()
            if row is None:
                return None
            summary = RaidSummary(
                duration_ms=max(0, int((now - row.started_at) * 1000)),
                handled_count=row.handled_count,
            )
            session.delete(row)
            session.commit()

    logger.info(
        "Raid mode ended in guild %d after %d ms (%d members handled)",
        guild_id, summary.duration_ms, summary.handled_count,
    )
    return summary
