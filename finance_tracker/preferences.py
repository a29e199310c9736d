"""Lightweight persistent store for user-facing preferences."""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from . import config

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES: Dict[str, Any] = {
    'excluded_assets': [],
    'inflation_rate': 6.0,
    'forecast_years': 10,
    'current_age': 30,
    'retirement_age': 60,
    'import_history': [],
    'last_import': None,
    'rules_hash': '',
}


def _defaults() -> Dict[str, Any]:
    return copy.deepcopy(DEFAULT_PREFERENCES)


def load_preferences(path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or config.PREFERENCES_PATH
    if not target.exists():
        return _defaults()
    try:
        with target.open('r', encoding='utf-8') as handle:
            data = json.load(handle)
    except (json.JSONDecodeError, OSError):
        logger.warning("Ignoring unreadable preferences file %s", target)
        return _defaults()
    if not isinstance(data, dict):
        return _defaults()
    merged = _defaults()
    merged.update({k: v for k, v in data.items() if k in DEFAULT_PREFERENCES})
    return merged


def save_preferences(preferences: Dict[str, Any], path: Optional[Path] = None) -> None:
    target = path or config.PREFERENCES_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    payload = {k: v for k, v in preferences.items() if k in DEFAULT_PREFERENCES}
    with target.open('w', encoding='utf-8') as handle:
        json.dump(payload, handle, indent=2, sort_keys=True)


def update_preferences(path: Optional[Path] = None, **changes: Any) -> Dict[str, Any]:
    """Load, apply ``changes`` and save in one step."""
    preferences = load_preferences(path)
    for key, value in changes.items():
        if key not in DEFAULT_PREFERENCES:
            raise KeyError(f"Unknown preference: {key}")
        preferences[key] = value
    save_preferences(preferences, path)
    return preferences
