"""Configuration management for the finance tracker.

This module centralizes paths, environment variable overrides and the
logging setup shared by the dashboard, the scripts and the tests.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

# Base project root - assumes this file is in finance_tracker/
_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

# Data directories
DATA_DIR = Path(os.getenv("FINTRACK_DATA_DIR", _PROJECT_ROOT / "data"))
EXPORTS_DIR = DATA_DIR / "exports"

# Database
DB_PATH = Path(
    os.getenv("FINTRACK_DB_PATH", DATA_DIR / "finance.db")
).resolve()

# User preferences and keyword rules
PREFERENCES_PATH = DATA_DIR / "preferences.json"
RULES_PATH = DATA_DIR / "category_rules.json"

LOG_LEVEL = os.getenv("FINTRACK_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

PACKAGE_LOGGER = "finance_tracker"


def ensure_data_directories() -> None:
    """Create all required data directories if they don't exist."""
    for directory in [DATA_DIR, EXPORTS_DIR]:
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(level: Optional[Union[int, str]] = None) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Calling this more than once only adjusts the level.
    """
    resolved = level if level is not None else LOG_LEVEL
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(resolved)
    if not any(getattr(h, "_fintrack", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._fintrack = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


def get_db_path() -> str:
    """Get the database path as a string."""
    return str(DB_PATH)
