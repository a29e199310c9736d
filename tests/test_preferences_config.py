import json
import logging

import pytest

from finance_tracker import config, preferences
from finance_tracker.settings import get_setting, load_settings


def test_defaults_when_file_missing():
    prefs = preferences.load_preferences()
    assert prefs == preferences.DEFAULT_PREFERENCES
    prefs['excluded_assets'].append('x')
    assert preferences.DEFAULT_PREFERENCES['excluded_assets'] == [], "defaults must be copied"


def test_corrupt_file_falls_back_to_defaults():
    config.PREFERENCES_PATH.parent.mkdir(parents=True, exist_ok=True)
    config.PREFERENCES_PATH.write_text('{not json', encoding='utf-8')
    assert preferences.load_preferences() == preferences.DEFAULT_PREFERENCES


def test_unknown_keys_are_dropped(tmp_path):
    path = tmp_path / 'prefs.json'
    path.write_text(json.dumps({'inflation_rate': 7.5, 'theme': 'dark'}), encoding='utf-8')
    prefs = preferences.load_preferences(path)
    assert prefs['inflation_rate'] == 7.5
    assert 'theme' not in prefs


def test_update_preferences_persists():
    preferences.update_preferences(retirement_age=55, excluded_assets=['home'])
    prefs = preferences.load_preferences()
    assert prefs['retirement_age'] == 55
    assert prefs['excluded_assets'] == ['home']


def test_update_preferences_rejects_unknown_key():
    with pytest.raises(KeyError):
        preferences.update_preferences(theme='dark')


def test_configure_logging_adds_one_handler():
    logger = config.configure_logging('DEBUG')
    config.configure_logging('WARNING')
    ours = [h for h in logger.handlers if getattr(h, '_fintrack', False)]
    assert len(ours) == 1
    assert logger.level == logging.WARNING


def test_configure_logging_unknown_level_defaults_to_info():
    assert config.configure_logging('chatty').level == logging.INFO


def test_get_setting_walks_nested_keys():
    assert get_setting('duplicates', 'thresholds', 'high') == 95
    assert get_setting('forecast', 'growth_rates', 'stocks') == 12.0
    assert get_setting('forecast', 'missing', default='x') == 'x'
    assert get_setting('no_such_file', default=1) == 1


def test_load_settings_missing_file():
    with pytest.raises(FileNotFoundError):
        load_settings('no_such_file')


def test_ensure_data_directories_creates_exports():
    config.ensure_data_directories()
    assert config.EXPORTS_DIR.is_dir()
