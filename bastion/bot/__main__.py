"""
bastion.bot.__main__ — Entry point for ``python -m bastion.bot``
================================================================

Startup order matters: secrets and configuration are validated before the
database is touched, and the database before the gateway connection, so a
misconfigured deployment fails fast with one clear log line.

Environment (``.env``):

- ``DISCORD_TOKEN``  — bot token (required)
- ``DATABASE_URL``   — SQLAlchemy URL (required)
- ``BASTION_CONFIG`` — path to the YAML file (default ``config.yaml``)
- ``LOG_LEVEL``      — root log level (default ``INFO``)
- ``DEV_GUILD_ID``   — sync slash commands to one guild only

Run with::

    python -m bastion.bot        # or the ``bastion`` console script
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from bastion.bot.core import BastionBot
from bastion.config import load_config
from bastion.database.engine import create_db_engine, init_db

LOG_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"

logger = logging.getLogger("bastion")


def _configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    # Gateway heartbeats are noise at INFO.
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)


def main() -> None:
    """Validate the environment, prepare the database and run the bot."""
    load_dotenv()
    _configure_logging()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    config_path = os.getenv("BASTION_CONFIG", "config.yaml")
    try:
        cfg = load_config(config_path)
    except (FileNotFoundError, KeyError) as exc:
        logger.critical("Invalid configuration (%s): %s", config_path, exc)
        sys.exit(1)

    logger.info(
        "Config loaded — %s, mod log %s",
        cfg.bot_name,
        cfg.mod_log_channel_id or "disabled",
    )

    engine = create_db_engine()
    init_db(engine)

    bot = BastionBot(cfg=cfg, engine=engine)
    logger.info("Connecting to Discord…")
    try:
        # log_handler=None keeps discord.py on our basicConfig format.
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down.")


if __name__ == "__main__":
    main()
