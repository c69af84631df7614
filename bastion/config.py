"""
bastion.config — YAML Configuration Loader
===========================================

**Why this file exists:**
This module reads ``config.yaml`` for **process-level** settings (bot
identity, the mod-log channel, tracker sweep cadence).  Per-guild moderation
policy (automod thresholds, escalation rules, raid thresholds) lives in the
``guild_policies`` database table and is edited through slash commands.

Usage::

    from bastion.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.bot_name)          # "Bastion"
    print(cfg.mod_log_channel_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object (process-level only).
# Guild policy lives in the DB ``guild_policies`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BastionConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    bot_name: str
    bot_prefix: str

    # Where case notices and raid alerts are posted (None disables posting)
    mod_log_channel_id: int | None = None

    # Tracker garbage collection cadence
    rate_sweep_seconds: int = 30
    join_sweep_seconds: int = 60


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> BastionConfig:
    """Read *path* and return a :class:`BastionConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return BastionConfig(
        bot_name=raw["bot_name"],
        bot_prefix=raw["bot_prefix"],
        mod_log_channel_id=(
            int(raw["mod_log_channel_id"]) if raw.get("mod_log_channel_id") else None
        ),
        rate_sweep_seconds=int(raw.get("rate_sweep_seconds", 30)),
        join_sweep_seconds=int(raw.get("join_sweep_seconds", 60)),
    )
