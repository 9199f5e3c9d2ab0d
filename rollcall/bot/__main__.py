"""
rollcall.bot.__main__ — Entry point for ``python -m rollcall.bot``
==================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml + environment into one RollcallConfig.
3. Create the SQLAlchemy engine and ensure tables exist.
4. Create the RollcallBot and hand it config + engine.
5. Start the bot (blocking).  The roster bootstrap runs inside the bot's
   setup hook; if it fails the process exits with status 1.

Run with::

    python -m rollcall.bot
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from rollcall.bot.core import RollcallBot
from rollcall.config import load_config
from rollcall.database.engine import create_db_engine, init_db
from rollcall.errors import BootstrapFailed

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("rollcall")


def main() -> None:
    """Bootstrap and run the Rollcall bot."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Configuration.
    try:
        cfg = load_config()
    except (FileNotFoundError, KeyError, RuntimeError) as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(1)
    logger.info("Config loaded — roster: %s", cfg.roster_url)

    # 3. Database.
    engine = create_db_engine(cfg.database_url)
    init_db(engine)

    # 4. Bot.
    bot = RollcallBot(cfg=cfg, engine=engine)

    # 5. Run (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting Rollcall bot…")
    try:
        bot.run(cfg.discord_token, log_handler=None)
    except BootstrapFailed as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
