"""
bastion.engine.trackers — Sliding-window rate & join-burst trackers
=====================================================================

Ephemeral, in-process state for the automod and raid pipelines:

- :class:`RateTracker` — per (guild, user) message timestamps plus a count of
  each normalised message body, for spam and duplicate detection.
- :class:`JoinBurstTracker` — per-guild join timestamps for raid detection.

Both are owned by the bot and injected into the moderation service; tests
build their own instances with a fake ``clock``.  A restart silently resets
everything here, which is fine for seconds-scale windows.

Duplicate counts are never pruned by time: they live as long as the tracker
entry, which :meth:`RateTracker.sweep` evicts once no timestamp remains
within twice the window.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_content(content: str) -> str:
    """Lower-case, trim and collapse whitespace runs to a single space."""
    return _WHITESPACE_RE.sub(" ", content.lower().strip())


def content_hash(content: str) -> str:
    """Stable digest of the normalised message body."""
    return hashlib.sha1(normalize_content(content).encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Message rate / duplicate tracking
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class RateTrackState:
    """Tracking entry for one member of one guild."""

    timestamps: list[float] = field(default_factory=list)
    content_counts: dict[str, int] = field(default_factory=dict)
    window: float = 0.0  # seconds, as last configured


@dataclass(frozen=True, slots=True)
class RateSnapshot:
    """What the evaluator needs to know after a message was recorded."""

    recent_count: int
    duplicate_count: int
    window_ms: int


class RateTracker:
    """Per-(guild, user) sliding window of send times and content counts.

    Thread-safe.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._entries: dict[tuple[int, int], RateTrackState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(
        self, guild_id: int, user_id: int, content: str, window_ms: int
    ) -> RateSnapshot:
        """Record one message and return the post-update counts.

        Timestamps at least *window_ms* old are dropped; the content count
        for this body is incremented and never time-pruned.
        """
        now = self._clock()
        window = window_ms / 1000
        digest = content_hash(content)

        with self._lock:
            key = (guild_id, user_id)
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = RateTrackState()
            entry.window = window
            entry.timestamps.append(now)
            entry.content_counts[digest] = entry.content_counts.get(digest, 0) + 1
            entry.timestamps = [t for t in entry.timestamps if now - t < window]
            return RateSnapshot(
                recent_count=len(entry.timestamps),
                duplicate_count=entry.content_counts[digest],
                window_ms=window_ms,
            )

    def sweep(self) -> int:
        """Drop entries with no timestamp inside twice their window.

        Returns the number of entries evicted.
        """
        now = self._clock()
        with self._lock:
            evicted = 0
            for key in list(self._entries):
                entry = self._entries[key]
                horizon = 2 * entry.window
                entry.timestamps = [t for t in entry.timestamps if now - t < horizon]
                if not entry.timestamps:
                    del self._entries[key]
                    evicted += 1
            return evicted


# ---------------------------------------------------------------------------
# Join burst tracking
# ---------------------------------------------------------------------------
class JoinBurstTracker:
    """Per-guild sliding window of member-join timestamps.

    Thread-safe.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._lock = Lock()
        self._joins: dict[int, list[float]] = {}
        self._windows: dict[int, float] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._joins)

    def record(self, guild_id: int, window_ms: int) -> int:
        """Record a join and return how many joins fall inside the window."""
        now = self._clock()
        window = window_ms / 1000
        with self._lock:
            stamps = self._joins.get(guild_id, [])
            stamps.append(now)
            stamps = [t for t in stamps if now - t < window]
            self._joins[guild_id] = stamps
            self._windows[guild_id] = window
            return len(stamps)

    def sweep(self) -> int:
        """Prune each guild to twice its window; drop guilds left empty."""
        now = self._clock()
        with self._lock:
            evicted = 0
            for guild_id in list(self._joins):
                horizon = 2 * self._windows.get(guild_id, 0.0)
                stamps = [t for t in self._joins[guild_id] if now - t < horizon]
                if stamps:
                    self._joins[guild_id] = stamps
                else:
                    del self._joins[guild_id]
                    self._windows.pop(guild_id, None)
                    evicted += 1
            return evicted
