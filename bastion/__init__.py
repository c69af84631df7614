"""
Bastion — Automated Moderation for Discord
============================================
Watches guild traffic (messages, member joins) and applies each guild's
moderation policy: spam, link and word filtering, account-age gating,
raid detection and strike escalation, backed by an append-only case ledger.

Package layout::

    bastion/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Moderator identities, durations, emoji/colours
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # Cases, counters, policy documents, raid state
    ├── engine/
    │   ├── events.py      # MessageEvent / JoinEvent envelopes
    │   ├── policy.py      # Policy dataclasses, defaults, deep merge
    │   ├── trackers.py    # Sliding-window rate + join-burst trackers
    │   ├── automod.py     # Pure message / account-age evaluators
    │   ├── escalation.py  # Pure strike escalation evaluator
    │   ├── raid.py        # Pure raid burst / suspect decisions
    │   └── actions.py     # Enforcement variant + NotifyResult
    ├── services/
    │   ├── locks.py       # Per-guild mutual exclusion
    │   ├── case_service.py    # Case ledger
    │   ├── policy_service.py  # Guild policy store
    │   ├── raid_service.py    # Durable raid state machine
    │   ├── enforcement.py     # Enforcement executor
    │   ├── embeds.py          # Mod-log embed builders
    │   └── moderation_service.py  # Event → decision → executor
    └── bot/
        ├── __main__.py    # Entry point (python -m bastion.bot)
        ├── core.py        # Bot subclass, cog loader
        ├── errors.py      # Shared slash-command error replies
        └── cogs/
            ├── automod.py     # on_message pipeline + /automod
            ├── membership.py  # on_member_join → age gate + raid
            ├── moderation.py  # /warn /timeout /kick /ban /history …
            ├── escalation.py  # /escalation
            ├── raid.py        # /raid
            └── tasks.py       # Tracker sweeps
"""

__version__ = "0.1.0"
