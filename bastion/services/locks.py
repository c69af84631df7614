"""
bastion.services.locks — Per-guild mutual exclusion
=====================================================

Store functions run on worker threads (``run_db`` → ``asyncio.to_thread``),
so two events for the same guild can execute a load → mutate → save cycle at
the same time.  Every mutating store operation holds the guild's lock for the
whole cycle; that is what keeps case numbers unique and raid transitions
single-shot.

On PostgreSQL the stores additionally take a row lock
(``SELECT … FOR UPDATE``) so a second process would also serialise.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock


class GuildLocks:
    """Lazily created ``threading.Lock`` per (scope, guild_id)."""

    def __init__(self) -> None:
        self._registry_lock = Lock()
        self._locks: dict[tuple[str, int], Lock] = {}

    def get(self, scope: str, guild_id: int) -> Lock:
        key = (scope, guild_id)
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            return lock

    @contextmanager
    def hold(self, scope: str, guild_id: int) -> Iterator[None]:
        with self.get(scope, guild_id):
            yield


# Process-wide registry shared by all stores
guild_locks = GuildLocks()
