import pytest

from finance_tracker import config, db, summaries


@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    """Point every store at a throwaway directory."""
    monkeypatch.setattr(config, 'DATA_DIR', tmp_path / 'data')
    monkeypatch.setattr(config, 'EXPORTS_DIR', tmp_path / 'data' / 'exports')
    monkeypatch.setattr(config, 'PREFERENCES_PATH', tmp_path / 'data' / 'preferences.json')
    monkeypatch.setattr(config, 'RULES_PATH', tmp_path / 'data' / 'category_rules.json')
    monkeypatch.setattr(db, 'DB_PATH', tmp_path / 'test.db')
    db.init_db()
    summaries.clear_summary_cache()
    yield tmp_path
    summaries.clear_summary_cache()
