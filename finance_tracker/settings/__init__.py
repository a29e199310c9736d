"""Loader for the tunable constants shipped with the package."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

# Settings directory
SETTINGS_DIR = Path(__file__).parent


@lru_cache(maxsize=None)
def load_settings(name: str) -> Dict[str, Any]:
    """Load a settings file by name.

    Args:
        name: Name of the settings file (without .json extension)

    Returns:
        Dictionary containing the settings

    Raises:
        FileNotFoundError: If the settings file doesn't exist
        json.JSONDecodeError: If the settings file is invalid JSON

    Example:
        >>> load_settings('forecast')['growth_rates']['stocks']
        12.0
    """
    settings_path = SETTINGS_DIR / f"{name}.json"

    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with open(settings_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def get_setting(name: str, *keys: str, default: Any = None) -> Any:
    """Get a nested settings value by key path.

    Example:
        >>> get_setting('duplicates', 'thresholds', 'high')
        95
    """
    try:
        value = load_settings(name)
        for key in keys:
            value = value[key]
        return value
    except (KeyError, FileNotFoundError):
        return default
