"""
bastion.engine.events — Normalised gateway events
===================================================

Every Discord message or member join is reduced to one of these envelopes
before it reaches the evaluators, so the evaluators never touch discord.py
objects and can be tested with plain values.
"""

from __future__ import annotations

from dataclasses import dataclass, field

__all__ = ["MessageEvent", "JoinEvent"]


@dataclass(frozen=True, slots=True)
class MessageEvent:
    """A guild message as seen by the automod pipeline."""

    guild_id: int
    user_id: int
    channel_id: int
    message_id: int
    content: str
    role_ids: frozenset[int] = field(default_factory=frozenset)
    is_admin: bool = False


@dataclass(frozen=True, slots=True)
class JoinEvent:
    """A member join as seen by the account-age gate and raid detection.

    ``account_created_at`` and ``joined_at`` are epoch seconds.
    """

    guild_id: int
    user_id: int
    account_created_at: float
    joined_at: float
