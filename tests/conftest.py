"""Root conftest - shared test configuration.

Invariants:
    - Every test gets a fresh in-memory SQLite database with the test schema
    - StaticPool: every connection sees the same in-memory database
    - Settings come from a clean environment (no developer .env leaks in)
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from cascade_prune.config import get_settings
from schema_models import Base


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for var in (
        "PRUNE_DATABASE_URL", "PRUNE_LOG_LEVEL", "PRUNE_LOG_FORMAT",
        "PRUNE_PERFORM_SANITY_CHECK", "PRUNE_MAX_ITERATIONS",
    ):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
