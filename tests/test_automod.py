"""
tests/test_automod.py — AutoMod Evaluator Tests
=================================================

Pure decision functions: exemption, spam / duplicate, link and word rules,
rule order and the account-age gate.
"""

from __future__ import annotations

import pytest

from bastion.constants import DAY_SECONDS
from bastion.engine.actions import EnforcementKind
from bastion.engine.automod import (
    RuleKind,
    account_age_enforcement,
    check_account_age,
    check_links,
    check_spam,
    check_words,
    evaluate_message,
    is_exempt,
    message_enforcement,
)
from bastion.engine.events import JoinEvent, MessageEvent
from bastion.engine.policy import AutomodPolicy, LinkFilterPolicy, WordFilterPolicy
from bastion.engine.trackers import RateSnapshot


def _policy(**overrides) -> AutomodPolicy:
    doc = {"enabled": True}
    doc.update(overrides)
    return AutomodPolicy.from_dict(doc)


def _event(content: str = "hello", **kwargs) -> MessageEvent:
    defaults = dict(guild_id=1, user_id=42, channel_id=10, message_id=500)
    defaults.update(kwargs)
    return MessageEvent(content=content, **defaults)


def _links(**kwargs) -> LinkFilterPolicy:
    defaults = dict(
        enabled=True, block_invites=True, block_all_links=False,
        allowed_domains=(), action="delete",
    )
    defaults.update(kwargs)
    return LinkFilterPolicy(**defaults)


class TestExemption:
    def test_admin_is_exempt(self):
        assert is_exempt(_event(is_admin=True), _policy())

    def test_exempt_role_is_exempt(self):
        policy = _policy(exempt_role_ids=[7, 8])
        assert is_exempt(_event(role_ids=frozenset({8, 99})), policy)

    def test_plain_member_is_not_exempt(self):
        policy = _policy(exempt_role_ids=[7])
        assert not is_exempt(_event(role_ids=frozenset({99})), policy)

    def test_exempt_member_never_violates(self):
        """Even an invite link from an exempt role passes."""
        policy = _policy(exempt_role_ids=[7], link_filter={"enabled": True})
        event = _event("join discord.gg/abc", role_ids=frozenset({7}))
        assert evaluate_message(event, policy, None) is None


class TestSpamRule:
    def test_rate_violation_when_over_max(self):
        """Six messages against a limit of five is spam."""
        policy = _policy().anti_spam
        violation = check_spam(RateSnapshot(6, 1, 5000), policy)
        assert violation.rule is RuleKind.SPAM
        assert violation.reason == "Sending messages too quickly (6 messages in 5s)"
        assert violation.action == "timeout"
        assert violation.timeout_ms == 300_000

    def test_at_max_is_not_spam(self):
        assert check_spam(RateSnapshot(5, 1, 5000), _policy().anti_spam) is None

    def test_duplicate_violation_at_threshold(self):
        violation = check_spam(RateSnapshot(3, 3, 5000), _policy().anti_spam)
        assert violation.rule is RuleKind.DUPLICATE
        assert "3 identical messages" in violation.reason

    def test_rate_checked_before_duplicates(self):
        violation = check_spam(RateSnapshot(6, 3, 5000), _policy().anti_spam)
        assert violation.rule is RuleKind.SPAM

    def test_disabled_anti_spam(self):
        policy = _policy(anti_spam={"enabled": False}).anti_spam
        assert check_spam(RateSnapshot(50, 50, 5000), policy) is None


class TestLinkRule:
    @pytest.mark.parametrize(
        "content",
        [
            "come to discord.gg/abc123",
            "https://discord.com/invite/xyz",
            "DISCORDAPP.COM/INVITE/Xyz",
        ],
    )
    def test_invites_blocked(self, content):
        violation = check_links(content, _links())
        assert violation is not None
        assert violation.reason == "Discord invite links are not allowed"

    def test_invites_allowed_when_not_blocked(self):
        assert check_links("discord.gg/abc", _links(block_invites=False)) is None

    def test_plain_links_pass_unless_blocking_all(self):
        assert check_links("see https://example.com", _links()) is None

    def test_block_all_links(self):
        violation = check_links("see https://example.com/page", _links(block_all_links=True))
        assert violation.reason == "Links are not allowed in this server"

    def test_allowed_domain_and_subdomain(self):
        policy = _links(block_all_links=True, allowed_domains=("youtube.com",))
        assert check_links("https://youtube.com/watch?v=1", policy) is None
        assert check_links("https://m.youtube.com/watch?v=1", policy) is None

    def test_lookalike_domain_is_not_allowed(self):
        """``notyoutube.com`` must not ride on the ``youtube.com`` allowance."""
        policy = _links(block_all_links=True, allowed_domains=("youtube.com",))
        assert check_links("https://notyoutube.com/x", policy) is not None

    def test_unparsable_url_is_a_violation(self):
        policy = _links(block_all_links=True, allowed_domains=("youtube.com",))
        assert check_links("https://[broken/path", policy) is not None

    def test_disabled_filter(self):
        assert check_links("discord.gg/abc", _links(enabled=False)) is None


class TestWordRule:
    def _words(self, *words, enabled=True):
        return WordFilterPolicy(enabled=enabled, words=tuple(words), action="delete")

    def test_whole_word_match_case_insensitive(self):
        violation = check_words("You are a DUMMY.", self._words("dummy"))
        assert violation.rule is RuleKind.WORD
        assert violation.word == "dummy"

    def test_substring_does_not_match(self):
        assert check_words("classic", self._words("ass")) is None

    def test_first_listed_word_reported(self):
        violation = check_words("beta alpha", self._words("alpha", "beta"))
        assert violation.word == "alpha"

    def test_regex_characters_are_literal(self):
        assert check_words("a.b", self._words("a+b")) is None

    def test_empty_list(self):
        assert check_words("anything", self._words()) is None


class TestEvaluateMessage:
    def test_disabled_automod(self):
        policy = AutomodPolicy.from_dict({"enabled": False})
        assert evaluate_message(_event(), policy, RateSnapshot(99, 99, 5000)) is None

    def test_spam_wins_over_link(self):
        policy = _policy(link_filter={"enabled": True})
        violation = evaluate_message(
            _event("discord.gg/abc"), policy, RateSnapshot(6, 1, 5000)
        )
        assert violation.rule is RuleKind.SPAM

    def test_link_wins_over_word(self):
        policy = _policy(
            link_filter={"enabled": True},
            word_filter={"enabled": True, "words": ["join"]},
        )
        violation = evaluate_message(_event("join discord.gg/abc"), policy, None)
        assert violation.rule is RuleKind.LINK

    def test_no_snapshot_skips_spam(self):
        policy = _policy(word_filter={"enabled": True, "words": ["bad"]})
        violation = evaluate_message(_event("bad"), policy, None)
        assert violation.rule is RuleKind.WORD


class TestMessageEnforcement:
    def test_delete_action(self):
        violation = check_words("bad", WordFilterPolicy(True, ("bad",), "delete"))
        enforcement = message_enforcement(violation, "Guild")
        assert enforcement.kind is EnforcementKind.DELETE
        assert enforcement.reason == "[AutoMod] Message contains a filtered word"
        assert enforcement.notice is None

    def test_timeout_action_carries_duration(self):
        violation = check_spam(RateSnapshot(6, 1, 5000), _policy().anti_spam)
        enforcement = message_enforcement(violation, "Guild")
        assert enforcement.kind is EnforcementKind.TIMEOUT
        assert enforcement.duration_ms == 300_000
        assert "for 5 minutes" in enforcement.notice

    def test_warn_action(self):
        violation = check_words("bad", WordFilterPolicy(True, ("bad",), "warn"))
        enforcement = message_enforcement(violation, "Guild")
        assert enforcement.kind is EnforcementKind.WARN
        assert "**Guild**" in enforcement.notice


class TestAccountAge:
    NOW = 1_700_000_000.0

    def _join(self, age_days: float) -> JoinEvent:
        return JoinEvent(
            guild_id=1,
            user_id=42,
            account_created_at=self.NOW - age_days * DAY_SECONDS,
            joined_at=self.NOW,
        )

    def _policy(self, **age):
        return _policy(account_age={"enabled": True, **age})

    def test_young_account_flagged(self):
        violation = check_account_age(self._join(2.5), self._policy())
        assert violation.rule is RuleKind.ACCOUNT_AGE
        assert violation.age_days == 2
        assert violation.reason == "Account too new (2 days old, minimum 7 days required)"

    def test_old_enough_account_passes(self):
        assert check_account_age(self._join(7), self._policy()) is None

    def test_requires_automod_enabled(self):
        policy = AutomodPolicy.from_dict(
            {"enabled": False, "account_age": {"enabled": True}}
        )
        assert check_account_age(self._join(1), policy) is None

    def test_requires_gate_enabled(self):
        assert check_account_age(self._join(1), _policy()) is None

    def test_kick_enforcement_mentions_ages(self):
        policy = self._policy()
        violation = check_account_age(self._join(2), policy)
        enforcement = account_age_enforcement(violation, policy, "Guild")
        assert enforcement.kind is EnforcementKind.KICK
        assert "Required account age: 7 days" in enforcement.notice
        assert "Your account age: 2 days" in enforcement.notice
        assert "2 days old" in enforcement.reason

    def test_quarantine_enforcement(self):
        policy = self._policy(action="quarantine", quarantine_role_id=555)
        violation = check_account_age(self._join(1), policy)
        enforcement = account_age_enforcement(violation, policy, "Guild")
        assert enforcement.kind is EnforcementKind.QUARANTINE
        assert enforcement.role_id == 555

    def test_quarantine_without_role_is_skipped(self):
        policy = self._policy(action="quarantine")
        violation = check_account_age(self._join(1), policy)
        assert account_age_enforcement(violation, policy, "Guild") is None
