"""
bastion.database.engine — Engine factory & thread bridge
=========================================================

discord.py runs everything on one ``asyncio`` loop, while the stores in
:mod:`bastion.services` are plain synchronous SQLAlchemy functions.  Cogs
and the moderation pipeline never call a store directly; they go through
:func:`run_db`, which executes the store on a worker thread:

    on_message ──▶ ModerationService.handle_message
                       │
                       └─ await run_db(get_automod_policy, engine, guild_id)
                                  │
                                  └─ asyncio.to_thread → Session(engine) …

Two joins for the same guild can therefore hit the case counter or the raid
row from two threads at once, which is why every store mutation holds a
per-guild lock (:mod:`bastion.services.locks`).

Usage::

    from bastion.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL from .env
    init_db(engine)
    state = await run_db(get_raid_state, engine, guild_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url

from bastion.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def create_db_engine(url: str | None = None) -> Engine:
    """Build the process-wide :class:`Engine`.

    *url* defaults to the ``DATABASE_URL`` environment variable.  PostgreSQL
    (psycopg2) is the production target; a ``sqlite:///bastion.db`` URL is
    accepted for local development and gets a thread-shareable connection
    instead of a sized pool.

    Raises
    ------
    RuntimeError
        If no URL was given and ``DATABASE_URL`` is unset.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at your PostgreSQL database."
        )

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        # Stores run on worker threads (run_db).
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        # Join bursts fan out into several concurrent store calls per guild.
        engine = create_engine(
            url,
            pool_size=5,
            max_overflow=10,
            pool_timeout=10,
            pool_pre_ping=True,
            pool_recycle=1800,
        )

    logger.info(
        "Database engine ready (%s @ %s)",
        parsed.get_backend_name(), parsed.host or parsed.database,
    )
    return engine


def init_db(engine: Engine) -> None:
    """``create_all`` for the moderation tables.

    Production databases are migrated with ``alembic upgrade head``; this
    only fills in missing tables so a fresh dev database works immediately.
    Policies need no seeding, since absent documents read as defaults.
    """
    Base.metadata.create_all(engine)
    logger.info("Moderation tables verified (%d)", len(Base.metadata.tables))


async def run_db(func: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
    """Await a synchronous store function without blocking the event loop."""
    return await asyncio.to_thread(func, *args, **kwargs)
