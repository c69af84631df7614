"""
bastion.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- moderation_cases — Append-only case ledger (warn/timeout/kick/ban/…)
- case_counters    — Per-guild case-number allocator
- guild_policies   — One JSON policy document per (guild, section)
- active_raids     — Durable "raid in progress" marker per guild

Nothing in this schema is ever updated in place except the counter row, the
policy documents (whole-document overwrite) and the raid handled-count.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    Index,
    JSON,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Bastion ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionKind(enum.StrEnum):
    """Every kind of enforcement that can appear in the case ledger."""
    BAN = "ban"
    KICK = "kick"
    TIMEOUT = "timeout"
    WARN = "warn"
    UNBAN = "unban"
    UNTIMEOUT = "untimeout"


class PolicySection(enum.StrEnum):
    """The independently stored policy documents for a guild."""
    AUTOMOD = "automod"
    ESCALATION = "escalation"
    RAID = "raid"


# ---------------------------------------------------------------------------
# ModerationCase — one immutable enforcement record
# ---------------------------------------------------------------------------
class ModerationCase(Base):
    __tablename__ = "moderation_cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    case_id: Mapped[int] = mapped_column(Integer, nullable=False)  # per-guild number
    target_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_tag: Mapped[str] = mapped_column(String(100), nullable=False)
    moderator_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    moderator_tag: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration_seconds: Mapped[int | None] = mapped_column(Integer, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("guild_id", "case_id", name="uq_moderation_cases_guild_case"),
        Index("ix_moderation_cases_guild_target", "guild_id", "target_user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ModerationCase guild={self.guild_id} #{self.case_id} "
            f"{self.action} target={self.target_user_id}>"
        )


# ---------------------------------------------------------------------------
# CaseCounter — last case number handed out per guild
# ---------------------------------------------------------------------------
class CaseCounter(Base):
    __tablename__ = "case_counters"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    last_case_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<CaseCounter guild={self.guild_id} last={self.last_case_id}>"


# ---------------------------------------------------------------------------
# GuildPolicy — whole-document policy storage
# ---------------------------------------------------------------------------
class GuildPolicy(Base):
    """Stored policy document for one guild and section.

    Only the fields an operator has changed need to be present; readers
    deep-merge the document over the compiled-in defaults from
    :mod:`bastion.engine.policy`.
    """
    __tablename__ = "guild_policies"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    section: Mapped[str] = mapped_column(String(20), primary_key=True)
    data: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<GuildPolicy guild={self.guild_id} section={self.section!r}>"


# ---------------------------------------------------------------------------
# ActiveRaid — present only while a guild is in raid mode
# ---------------------------------------------------------------------------
class ActiveRaid(Base):
    __tablename__ = "active_raids"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    started_at: Mapped[float] = mapped_column(Float, nullable=False)  # epoch seconds
    handled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ActiveRaid guild={self.guild_id} handled={self.handled_count}>"
