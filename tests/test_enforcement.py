"""
tests/test_enforcement.py — Enforcement Executor Tests
========================================================

Step ordering per enforcement kind, DM outcomes, failure handling and the
ledger writes that follow a successful action.  Discord objects are
MagicMock / AsyncMock doubles.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

import discord
import pytest
from conftest import http_error, make_channel, make_member, make_message, run_async

from bastion.engine.actions import Enforcement, EnforcementKind, NotifyResult
from bastion.services.case_service import get_user_cases
from bastion.services.enforcement import (
    EnforcementContext,
    _record_case,
    apply,
    notify_member,
    post_mod_log,
)


def _ctx(db_engine, member, *, message=None, log_channel=None) -> EnforcementContext:
    return EnforcementContext(
        engine=db_engine,
        guild_id=1,
        guild_name="Test Guild",
        member=member,
        moderator_id=999,
        moderator_tag="AutoMod",
        message=message,
        log_channel=log_channel,
    )


def _track(member, message=None) -> list[str]:
    """Record the order in which platform calls happen."""
    steps: list[str] = []
    member.send.side_effect = lambda *a, **k: steps.append("dm")
    member.timeout.side_effect = lambda *a, **k: steps.append("timeout")
    member.kick.side_effect = lambda *a, **k: steps.append("kick")
    member.ban.side_effect = lambda *a, **k: steps.append("ban")
    member.add_roles.side_effect = lambda *a, **k: steps.append("role")
    if message is not None:
        message.delete.side_effect = lambda *a, **k: steps.append("delete")
    return steps


class TestNotifyMember:
    def test_delivered(self):
        member = make_member()
        assert run_async(notify_member(member, "hi")) is NotifyResult.DELIVERED
        member.send.assert_awaited_once_with("hi")

    def test_dms_closed(self):
        member = make_member()
        member.send.side_effect = http_error()
        assert run_async(notify_member(member, "hi")) is NotifyResult.UNDELIVERABLE

    def test_transport_error(self):
        member = make_member()
        member.send.side_effect = http_error(discord.HTTPException, 500, "Server Error")
        assert run_async(notify_member(member, "hi")) is NotifyResult.UNKNOWN

    def test_no_text_skips(self):
        member = make_member()
        assert run_async(notify_member(member, None)) is NotifyResult.SKIPPED
        member.send.assert_not_awaited()


class TestModLog:
    def test_unset_channel(self):
        assert run_async(post_mod_log(None, discord.Embed())) is False

    def test_send_failure_is_swallowed(self):
        channel = make_channel()
        channel.send.side_effect = http_error()
        assert run_async(post_mod_log(channel, discord.Embed())) is False


class TestStepOrder:
    def test_delete_only(self, db_engine):
        member = make_member()
        message = make_message("bad", author=member)
        steps = _track(member, message)
        outcome = run_async(apply(
            Enforcement(EnforcementKind.DELETE, "[AutoMod] word"),
            _ctx(db_engine, member, message=message),
        ))
        assert outcome.succeeded and outcome.case is None
        assert steps == ["delete"]
        assert get_user_cases(db_engine, 1, member.id) == []

    def test_warn(self, db_engine):
        member = make_member()
        message = make_message("bad", author=member)
        steps = _track(member, message)
        outcome = run_async(apply(
            Enforcement(EnforcementKind.WARN, "[AutoMod] word", notice="warned"),
            _ctx(db_engine, member, message=message),
        ))
        assert steps == ["delete", "dm"]
        assert outcome.case.action == "warn"
        assert outcome.notified is NotifyResult.DELIVERED

    def test_timeout(self, db_engine):
        member = make_member()
        message = make_message("spam", author=member)
        steps = _track(member, message)
        outcome = run_async(apply(
            Enforcement(EnforcementKind.TIMEOUT, "spam", duration_ms=300_000, notice="t/o"),
            _ctx(db_engine, member, message=message),
        ))
        assert steps == ["delete", "timeout", "dm"]
        assert member.timeout.await_args.args[0] == timedelta(minutes=5)
        assert outcome.case.duration_seconds == 300

    def test_kick_sends_dm_first(self, db_engine):
        member = make_member()
        message = make_message("spam", author=member)
        steps = _track(member, message)
        outcome = run_async(apply(
            Enforcement(EnforcementKind.KICK, "spam", notice="bye"),
            _ctx(db_engine, member, message=message),
        ))
        assert steps == ["delete", "dm", "kick"]
        assert outcome.case.action == "kick"
        member.kick.assert_awaited_once_with(reason="spam")

    def test_ban_keeps_message(self, db_engine):
        member = make_member()
        message = make_message("spam", author=member)
        steps = _track(member, message)
        run_async(apply(
            Enforcement(EnforcementKind.BAN, "raid", notice="bye"),
            _ctx(db_engine, member, message=message),
        ))
        assert steps == ["dm", "ban"]

    def test_quarantine_records_no_case(self, db_engine):
        member = make_member()
        steps = _track(member)
        outcome = run_async(apply(
            Enforcement(EnforcementKind.QUARANTINE, "new", role_id=555, notice="wait"),
            _ctx(db_engine, member),
        ))
        assert steps == ["role", "dm"]
        assert outcome.succeeded and outcome.case is None
        role = member.add_roles.await_args.args[0]
        assert role.id == 555
        assert get_user_cases(db_engine, 1, member.id) == []


class TestFailures:
    def test_forbidden_primary_action_fails_without_case(self, db_engine):
        member = make_member()
        member.kick.side_effect = http_error()
        outcome = run_async(apply(
            Enforcement(EnforcementKind.KICK, "spam", notice="bye"),
            _ctx(db_engine, member),
        ))
        assert outcome.succeeded is False
        assert outcome.error == (
            "Failed to kick target#0001. Check my permissions and role position."
        )
        assert get_user_cases(db_engine, 1, member.id) == []

    def test_dm_failure_does_not_block_action(self, db_engine):
        member = make_member()
        member.send.side_effect = http_error()
        outcome = run_async(apply(
            Enforcement(EnforcementKind.BAN, "raid", notice="bye"),
            _ctx(db_engine, member),
        ))
        assert outcome.succeeded
        assert outcome.notified is NotifyResult.UNDELIVERABLE
        member.ban.assert_awaited_once()

    def test_already_deleted_message_is_ignored(self, db_engine):
        member = make_member()
        message = make_message("spam", author=member)
        message.delete.side_effect = http_error(discord.NotFound, 404, "Unknown Message")
        outcome = run_async(apply(
            Enforcement(EnforcementKind.WARN, "spam"),
            _ctx(db_engine, member, message=message),
        ))
        assert outcome.succeeded
        assert outcome.case is not None

    def test_mod_log_receives_case_embed(self, db_engine):
        member = make_member()
        channel = make_channel()
        outcome = run_async(apply(
            Enforcement(EnforcementKind.WARN, "spam"),
            _ctx(db_engine, member, log_channel=channel),
        ))
        embed = channel.send.await_args.kwargs["embed"]
        assert f"Case #{outcome.case.case_id}" in embed.title

    @pytest.mark.parametrize(
        "enforcement",
        [
            Enforcement(EnforcementKind.QUARANTINE, "x"),
            Enforcement(EnforcementKind.TIMEOUT, "x"),
        ],
    )
    def test_incomplete_enforcement_rejected(self, db_engine, enforcement):
        with pytest.raises(ValueError):
            run_async(apply(enforcement, _ctx(db_engine, make_member())))

    @pytest.mark.parametrize("kind", [EnforcementKind.DELETE, EnforcementKind.QUARANTINE])
    def test_kinds_without_ledger_entry_cannot_record_case(self, db_engine, kind):
        with pytest.raises(ValueError, match="records no case"):
            run_async(
                _record_case(Enforcement(kind, "x", role_id=5), _ctx(db_engine, make_member()))
            )
        assert get_user_cases(db_engine, 1, 42) == []


class TestLedgerFailure:
    def test_storage_error_propagates(self, db_engine, monkeypatch):
        """A failed case write surfaces even though the kick already happened."""
        from sqlalchemy.exc import OperationalError

        broken = MagicMock(side_effect=OperationalError("INSERT", {}, Exception("db down")))
        monkeypatch.setattr("bastion.services.enforcement.create_case", broken)

        member = make_member()
        with pytest.raises(OperationalError):
            run_async(apply(Enforcement(EnforcementKind.KICK, "spam"), _ctx(db_engine, member)))
        member.kick.assert_awaited_once()
