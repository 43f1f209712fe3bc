from __future__ import annotations

import pytest

from casetalink.config import get_settings
from casetalink.storage import Database


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CASETALINK_CONFIG", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def database(tmp_path) -> Database:
    db = Database(tmp_path / "data")
    db.init()
    return db
