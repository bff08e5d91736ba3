"""
guildkeeper.bot.__main__ — Entry point for ``python -m guildkeeper.bot``
=========================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Wrap it in a :class:`MemberDB` with its event bus.
5. Create the KeeperBot and run it (blocking).
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from guildkeeper.bot.core import KeeperBot
from guildkeeper.config import load_config
from guildkeeper.database.engine import MemberDB, create_db_engine, init_db
from guildkeeper.engine.events import DBSignal

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("guildkeeper")


def main() -> None:
    """Bootstrap and run the bot."""
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config()
    logger.info("Config loaded — main guild %d, prefix %r", cfg.main_guild_id, cfg.bot_prefix)

    engine = create_db_engine()
    init_db(engine)
    db = MemberDB(engine, DBSignal(capacity=cfg.event_capacity))

    bot = KeeperBot(cfg=cfg, db=db)

    logger.info("Starting guildkeeper bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
