"""
meritboard.bot.__main__ — Entry point for ``python -m meritboard.bot``
======================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings; defaults if the file is absent).
3. Create the SQLAlchemy engine, ensure tables exist, seed default rates.
4. Build the action catalog with the stored passive-message rates.
5. Create the MeritBot and run it (blocking).

Run with::

    python -m meritboard.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from meritboard.bot.core import MeritBot
from meritboard.config import load_config
from meritboard.database.engine import create_db_engine, init_db
from meritboard.engine.catalog import ActionCatalog
from meritboard.services.settings_service import load_rates

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("meritboard")


def main() -> None:
    """Bootstrap and run the MeritBoard bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    # 2. Soft configuration.
    cfg = load_config(os.getenv("MERITBOARD_CONFIG", "config.yaml"), required=False)
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)

    # 4. Catalog with persisted rates.
    catalog = ActionCatalog(overrides=cfg.action_points, rates=load_rates(engine))

    # 5. Bot.
    bot = MeritBot(cfg=cfg, engine=engine, catalog=catalog)

    logger.info("Starting MeritBoard bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
