"""
tests/test_case_service.py — Case Ledger Tests
================================================

Per-guild case numbering, counts by action kind and lookup order.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from bastion.database.models import ActionKind
from bastion.services.case_service import (
    count_by_action_kind,
    create_case,
    get_case,
    get_recent_cases,
    get_user_cases,
    record_warning,
)


def _case(engine, guild_id=1, user_id=42, action=ActionKind.WARN, reason="spam", **kw):
    return create_case(
        engine, guild_id, user_id, "target#0001", 7, "mod#0001", action, reason, **kw
    )


class TestCaseNumbering:
    def test_first_case_is_one(self, db_engine):
        assert _case(db_engine).case_id == 1

    def test_numbers_are_per_guild(self, db_engine):
        assert [_case(db_engine, guild_id=1).case_id for _ in range(3)] == [1, 2, 3]
        assert _case(db_engine, guild_id=2).case_id == 1
        assert _case(db_engine, guild_id=1).case_id == 4

    def test_concurrent_creation_never_reuses_numbers(self, db_engine):
        """Parallel writers for one guild still get distinct, gapless numbers."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            cases = list(pool.map(lambda i: _case(db_engine, user_id=i), range(20)))
        assert sorted(c.case_id for c in cases) == list(range(1, 21))

    def test_unknown_action_rejected(self, db_engine):
        with pytest.raises(ValueError):
            _case(db_engine, action="mute")


class TestCaseFields:
    def test_fields_persisted(self, db_engine):
        case = _case(db_engine, action=ActionKind.KICK, reason="rude")
        stored = get_case(db_engine, 1, case.case_id)
        assert stored.action == "kick"
        assert stored.reason == "rude"
        assert stored.target_tag == "target#0001"
        assert stored.moderator_user_id == 7
        assert stored.created_at is not None

    def test_duration_only_kept_for_timeouts(self, db_engine):
        timeout = _case(db_engine, action=ActionKind.TIMEOUT, duration_seconds=600)
        warn = _case(db_engine, action=ActionKind.WARN, duration_seconds=600)
        assert timeout.duration_seconds == 600
        assert warn.duration_seconds is None

    def test_get_case_scoped_to_guild(self, db_engine):
        _case(db_engine, guild_id=1)
        assert get_case(db_engine, 2, 1) is None
        assert get_case(db_engine, 1, 99) is None


class TestCaseQueries:
    def test_user_cases_in_order(self, db_engine):
        _case(db_engine, reason="first")
        _case(db_engine, user_id=99)
        _case(db_engine, reason="second", action=ActionKind.TIMEOUT, duration_seconds=60)
        cases = get_user_cases(db_engine, 1, 42)
        assert [c.reason for c in cases] == ["first", "second"]

    def test_counts_are_zero_filled(self, db_engine):
        counts = count_by_action_kind(db_engine, 1, 42)
        assert set(counts) == set(ActionKind)
        assert all(v == 0 for v in counts.values())

    def test_counts_by_kind(self, db_engine):
        _case(db_engine, action=ActionKind.WARN)
        _case(db_engine, action=ActionKind.WARN)
        _case(db_engine, action=ActionKind.BAN)
        _case(db_engine, action=ActionKind.WARN, guild_id=2)
        counts = count_by_action_kind(db_engine, 1, 42)
        assert counts[ActionKind.WARN] == 2
        assert counts[ActionKind.BAN] == 1

    def test_recent_cases_newest_first(self, db_engine):
        for i in range(5):
            _case(db_engine, reason=f"r{i}")
        recent = get_recent_cases(db_engine, 1, limit=3)
        assert [c.case_id for c in recent] == [5, 4, 3]


class TestRecordWarning:
    def test_returns_case_and_running_count(self, db_engine):
        _case(db_engine, action=ActionKind.KICK)
        first, first_count = record_warning(db_engine, 1, 42, "target#0001", 7, "mod#0001", "a")
        second, second_count = record_warning(db_engine, 1, 42, "target#0001", 7, "mod#0001", "b")
        assert first.action == "warn"
        assert (first.case_id, first_count) == (2, 1)
        assert (second.case_id, second_count) == (3, 2)

    def test_count_scoped_to_user_and_guild(self, db_engine):
        record_warning(db_engine, 1, 99, "other#0001", 7, "mod#0001", "a")
        record_warning(db_engine, 2, 42, "target#0001", 7, "mod#0001", "a")
        _, count = record_warning(db_engine, 1, 42, "target#0001", 7, "mod#0001", "a")
        assert count == 1

    def test_concurrent_warnings_see_distinct_counts(self, db_engine):
        """Each parallel warning observes its own position in the sequence."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(
                    lambda i: record_warning(
                        db_engine, 1, 42, "target#0001", 7, "mod#0001", f"w{i}"
                    ),
                    range(10),
                )
            )
        assert sorted(count for _, count in results) == list(range(1, 11))
