"""
goalcircle.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for the **soft** settings of the service (vote
threshold, chat backlog size, pagination bounds).  Secrets and
infrastructure (``DATABASE_URL``, ``JWT_SECRET``) come from the environment
and never live in this file.

Usage::

    from goalcircle.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.vote_threshold)    # 2
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GoalCircleConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str = "GoalCircle"

    # HTTP
    api_port: int = 8000

    # Goal lifecycle
    vote_threshold: int = 2  # Vote sum that promotes PENDING → ACTIVE

    # Chat
    chat_backlog_size: int = 50    # Messages replayed on join_group
    chat_history_limit: int = 100  # Messages returned by the history endpoint

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def config_path_from_env() -> Path:
    """Resolve the config file location (``GOALCIRCLE_CONFIG`` or default)."""
    return Path(os.getenv("GOALCIRCLE_CONFIG", DEFAULT_CONFIG_PATH))


def load_config(path: str | Path | None = None) -> GoalCircleConfig:
    """Read *path* and return a :class:`GoalCircleConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$GOALCIRCLE_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a numeric setting is out of range.
    """
    config_path = Path(path) if path is not None else config_path_from_env()
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = GoalCircleConfig()
    cfg = GoalCircleConfig(
        app_name=str(raw.get("app_name", defaults.app_name)),
        api_port=int(raw.get("api_port", defaults.api_port)),
        vote_threshold=int(raw.get("vote_threshold", defaults.vote_threshold)),
        chat_backlog_size=int(raw.get("chat_backlog_size", defaults.chat_backlog_size)),
        chat_history_limit=int(raw.get("chat_history_limit", defaults.chat_history_limit)),
        default_page_size=int(raw.get("default_page_size", defaults.default_page_size)),
        max_page_size=int(raw.get("max_page_size", defaults.max_page_size)),
    )

    if cfg.vote_threshold < 1:
        raise ValueError("vote_threshold must be at least 1")
    if cfg.default_page_size < 1 or cfg.max_page_size < cfg.default_page_size:
        raise ValueError("page sizes must satisfy 1 <= default_page_size <= max_page_size")
    return cfg
