"""
tests/conftest.py — Shared Test Fixtures
=========================================

In-memory SQLite engine, a fake clock and Discord doubles.  Policy
documents use a JSON column that becomes JSONB only on PostgreSQL, so the
schema creates on SQLite as-is.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from bastion.database.models import Base


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Bastion tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``run_db`` → ``asyncio.to_thread``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Async + time helpers
# ---------------------------------------------------------------------------
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Discord doubles
# ---------------------------------------------------------------------------
def make_guild(guild_id: int = 1, name: str = "Test Guild", bot_id: int = 999) -> MagicMock:
    guild = MagicMock()
    guild.id = guild_id
    guild.name = name
    guild.me.id = bot_id
    return guild


def make_member(
    user_id: int = 42,
    *,
    guild: MagicMock | None = None,
    tag: str = "target#0001",
    created_at: datetime | None = None,
    role_ids: tuple[int, ...] = (),
    is_admin: bool = False,
    bot: bool = False,
) -> MagicMock:
    """A guild member whose platform calls are AsyncMocks."""
    member = MagicMock()
    member.id = user_id
    member.bot = bot
    member.guild = guild or make_guild()
    member.created_at = created_at or datetime(2020, 1, 1, tzinfo=UTC)
    member.roles = [MagicMock(id=r) for r in role_ids]
    member.guild_permissions.administrator = is_admin
    member.__str__.return_value = tag
    member.send = AsyncMock()
    member.timeout = AsyncMock()
    member.kick = AsyncMock()
    member.ban = AsyncMock()
    member.add_roles = AsyncMock()
    return member


def make_message(
    content: str,
    *,
    author: MagicMock | None = None,
    guild: MagicMock | None = None,
    message_id: int = 500,
    channel_id: int = 10,
) -> MagicMock:
    guild = guild or (author.guild if author is not None else make_guild())
    message = MagicMock()
    message.id = message_id
    message.content = content
    message.guild = guild
    message.author = author or make_member(guild=guild)
    message.channel.id = channel_id
    message.delete = AsyncMock()
    return message


def make_channel() -> MagicMock:
    channel = MagicMock()
    channel.send = AsyncMock()
    return channel


def http_error(cls=None, status: int = 403, text: str = "Missing Permissions"):
    """Build a discord.py HTTP error without a real aiohttp response."""
    import discord

    cls = cls or discord.Forbidden
    response = MagicMock(status=status, reason=text)
    return cls(response, text)
