"""
tests/test_raid.py — Raid Detection & State Tests
===================================================

Burst / suspect decisions, the durable Idle ↔ Active state machine and the
enforcement chosen for raid suspects.
"""

from __future__ import annotations

from bastion.constants import DAY_SECONDS
from bastion.engine.actions import EnforcementKind
from bastion.engine.events import JoinEvent
from bastion.engine.policy import RaidPolicy
from bastion.engine.raid import burst_detected, is_raid_suspect, raid_enforcement
from bastion.services.raid_service import (
    activate_raid,
    deactivate_raid,
    get_raid_state,
    increment_handled,
    is_raid_active,
)

NOW = 1_700_000_000.0


def _policy(**overrides) -> RaidPolicy:
    return RaidPolicy.from_dict({"enabled": True, **overrides})


def _join(age_days: float) -> JoinEvent:
    return JoinEvent(
        guild_id=1, user_id=42,
        account_created_at=NOW - age_days * DAY_SECONDS, joined_at=NOW,
    )


class TestDecisions:
    def test_burst_at_threshold(self):
        assert not burst_detected(9, _policy())
        assert burst_detected(10, _policy())

    def test_young_account_is_suspect(self):
        assert is_raid_suspect(_join(2), _policy())
        assert not is_raid_suspect(_join(30), _policy())

    def test_zero_minimum_disables_member_handling(self):
        assert not is_raid_suspect(_join(0), _policy(min_account_age_days=0))

    def test_enforcement_per_action(self):
        assert raid_enforcement(_policy()).kind is EnforcementKind.KICK
        assert raid_enforcement(_policy(action="ban")).kind is EnforcementKind.BAN
        quarantine = raid_enforcement(_policy(action="quarantine", quarantine_role_id=9))
        assert quarantine.kind is EnforcementKind.QUARANTINE
        assert quarantine.role_id == 9

    def test_quarantine_without_role(self):
        assert raid_enforcement(_policy(action="quarantine")) is None

    def test_reason_names_raid_protection(self):
        assert raid_enforcement(_policy()).reason == "[RaidProtection] New account during raid"


class TestRaidStateMachine:
    def test_idle_by_default(self, db_engine):
        assert get_raid_state(db_engine, 1) is None
        assert not is_raid_active(db_engine, 1)

    def test_only_first_activation_transitions(self, db_engine):
        assert activate_raid(db_engine, 1, NOW) is True
        assert activate_raid(db_engine, 1, NOW + 1) is False
        assert get_raid_state(db_engine, 1).started_at == NOW

    def test_handled_count(self, db_engine):
        assert increment_handled(db_engine, 1) is None
        activate_raid(db_engine, 1, NOW)
        assert increment_handled(db_engine, 1) == 1
        assert increment_handled(db_engine, 1) == 2
        assert get_raid_state(db_engine, 1).handled_count == 2

    def test_deactivate_reports_summary(self, db_engine):
        activate_raid(db_engine, 1, NOW)
        increment_handled(db_engine, 1)
        summary = deactivate_raid(db_engine, 1, NOW + 150)
        assert summary.duration_ms == 150_000
        assert summary.duration_minutes == 2
        assert summary.handled_count == 1
        assert not is_raid_active(db_engine, 1)

    def test_deactivate_when_idle(self, db_engine):
        assert deactivate_raid(db_engine, 1, NOW) is None

    def test_reactivation_after_end(self, db_engine):
        activate_raid(db_engine, 1, NOW)
        deactivate_raid(db_engine, 1, NOW + 10)
        assert activate_raid(db_engine, 1, NOW + 20) is True
        assert get_raid_state(db_engine, 1).handled_count == 0

    def test_guilds_are_independent(self, db_engine):
        activate_raid(db_engine, 1, NOW)
        assert not is_raid_active(db_engine, 2)
