"""
ascent.bot.__main__ — Entry point for ``python -m ascent.bot``
===============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (infrastructure settings).
3. Create the SQLAlchemy engine, ensure tables exist, seed tuning defaults.
4. Build and warm the ConfigCache.
5. Create the AscentBot and hand it config + engine + cache.
6. Start the bot (blocking; runs the asyncio event loop).

Run with::

    python -m ascent.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from ascent.bot.core import AscentBot
from ascent.config import load_config
from ascent.database.engine import create_db_engine, init_db
from ascent.engine.cache import ConfigCache

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("ascent")


def main() -> None:
    """Bootstrap and run the Ascent bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Infrastructure configuration.
    cfg = load_config(os.getenv("ASCENT_CONFIG", "config.yaml"))
    logger.info("Config loaded — %s", cfg.app_name)

    # 3. Database (tables + default settings).
    engine = create_db_engine()
    init_db(engine)

    # 4. Settings cache.
    cache = ConfigCache(engine)
    cache.load_all()

    # 5. Bot.
    bot = AscentBot(cfg=cfg, engine=engine, cache=cache)

    # 6. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Ascent bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
