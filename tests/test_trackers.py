"""
tests/test_trackers.py — Rate & Join-Burst Tracker Tests
==========================================================

Sliding-window behaviour driven by a fake clock, duplicate counting and
periodic eviction.
"""

from __future__ import annotations

from conftest import FakeClock

from bastion.engine.trackers import (
    JoinBurstTracker,
    RateTracker,
    content_hash,
    normalize_content,
)


class TestNormalisation:
    def test_case_and_whitespace_are_collapsed(self):
        """Bodies differing only in case and whitespace normalise equal."""
        assert normalize_content("  Hello    WORLD \n") == "hello world"
        assert content_hash("Hello World") == content_hash("hello   world ")

    def test_different_bodies_hash_differently(self):
        assert content_hash("buy now") != content_hash("buy later")


class TestRateTracker:
    def test_six_messages_inside_window(self):
        """Six messages in ~5 seconds are all counted."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        for i in range(6):
            snap = tracker.record(1, 42, f"message {i}", 5000)
            clock.advance(0.9)
        assert snap.recent_count == 6
        assert snap.window_ms == 5000

    def test_spaced_messages_fall_out_of_window(self):
        """Messages further apart than the window never accumulate."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        for i in range(10):
            snap = tracker.record(1, 42, f"message {i}", 5000)
            clock.advance(6)
        assert snap.recent_count == 1

    def test_boundary_timestamp_is_dropped(self):
        """A timestamp exactly one window old is no longer recent."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        tracker.record(1, 42, "a", 5000)
        clock.advance(5)
        assert tracker.record(1, 42, "b", 5000).recent_count == 1

    def test_duplicates_counted_on_normalised_body(self):
        """The third identical message reports a duplicate count of 3."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        assert tracker.record(1, 42, "Free nitro", 5000).duplicate_count == 1
        assert tracker.record(1, 42, "free   NITRO", 5000).duplicate_count == 2
        assert tracker.record(1, 42, "free nitro", 5000).duplicate_count == 3

    def test_duplicate_counts_survive_the_window(self):
        """Content counts are not time-pruned while the entry lives."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        tracker.record(1, 42, "same", 5000)
        clock.advance(8)
        snap = tracker.record(1, 42, "same", 5000)
        assert snap.recent_count == 1
        assert snap.duplicate_count == 2

    def test_users_and_guilds_are_isolated(self):
        clock = FakeClock()
        tracker = RateTracker(clock)
        tracker.record(1, 42, "x", 5000)
        tracker.record(1, 42, "x", 5000)
        assert tracker.record(1, 43, "x", 5000).duplicate_count == 1
        assert tracker.record(2, 42, "x", 5000).duplicate_count == 1
        assert len(tracker) == 3

    def test_sweep_evicts_idle_entries(self):
        """Entries with nothing inside twice the window are dropped."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        tracker.record(1, 42, "x", 5000)
        clock.advance(9)
        tracker.record(1, 43, "y", 5000)

        clock.advance(2)  # user 42 is now 11s old, user 43 is 2s old
        assert tracker.sweep() == 1
        assert len(tracker) == 1

    def test_sweep_resets_duplicate_counts(self):
        """A swept entry starts from zero on the next message."""
        clock = FakeClock()
        tracker = RateTracker(clock)
        tracker.record(1, 42, "x", 5000)
        tracker.record(1, 42, "x", 5000)
        clock.advance(30)
        tracker.sweep()
        assert tracker.record(1, 42, "x", 5000).duplicate_count == 1


class TestJoinBurstTracker:
    def test_counts_joins_inside_window(self):
        clock = FakeClock()
        tracker = JoinBurstTracker(clock)
        counts = []
        for _ in range(10):
            counts.append(tracker.record(1, 10_000))
            clock.advance(0.5)
        assert counts == list(range(1, 11))

    def test_old_joins_are_pruned(self):
        clock = FakeClock()
        tracker = JoinBurstTracker(clock)
        for _ in range(5):
            tracker.record(1, 10_000)
        clock.advance(11)
        assert tracker.record(1, 10_000) == 1

    def test_guilds_are_isolated(self):
        clock = FakeClock()
        tracker = JoinBurstTracker(clock)
        tracker.record(1, 10_000)
        tracker.record(1, 10_000)
        assert tracker.record(2, 10_000) == 1

    def test_sweep_drops_quiet_guilds(self):
        clock = FakeClock()
        tracker = JoinBurstTracker(clock)
        tracker.record(1, 10_000)
        clock.advance(15)
        tracker.record(2, 10_000)
        clock.advance(6)  # guild 1 at 21s (> 2x window), guild 2 at 6s
        assert tracker.sweep() == 1
        assert len(tracker) == 1
