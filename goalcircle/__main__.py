"""
goalcircle.__main__ — Entry point for ``python -m goalcircle``
===============================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Hand the ASGI app to uvicorn (blocking — runs the asyncio event loop).

Schema creation happens in the app's lifespan, so ``uvicorn
goalcircle.api.main:app`` behaves the same as this entry point.

Run with::

    uv run python -m goalcircle
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from goalcircle.config import config_path_from_env, load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("goalcircle")


def main() -> None:
    """Bootstrap and run the GoalCircle API server."""

    # 1. Environment variables (secrets).
    load_dotenv()

    if not os.getenv("DATABASE_URL"):
        logger.critical(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )
        sys.exit(1)

    # 2. Soft configuration.
    try:
        cfg = load_config(config_path_from_env())
    except (FileNotFoundError, ValueError) as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — %s on port %d", cfg.app_name, cfg.api_port)

    # 3. Serve.
    uvicorn.run(
        "goalcircle.api.main:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=cfg.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
