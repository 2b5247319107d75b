"""Test fixtures and utilities."""

from pathlib import Path

import pytest

from ledger_migrate.state_store import SQLiteDatastore


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def db_url(temp_db) -> str:
    """sqlite URL for the temporary database (absolute path)."""
    return f"sqlite:///{temp_db}"


@pytest.fixture
def migrations_dir(tmp_path) -> Path:
    """Empty migrations directory."""
    directory = tmp_path / "migrations"
    directory.mkdir()
    return directory


@pytest.fixture
def datastore(db_url):
    """SQLite datastore on the temporary database, closed after the test."""
    store = SQLiteDatastore(db_url)
    yield store
    store.close()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment variables out of config loading."""
    for name in (
        "DATABASE_URL",
        "MIGRATIONS_DIR",
        "MIGRATIONS_TABLE",
        "MIGRATIONS_LOCK",
        "MIGRATIONS_CHECKSUM_MODE",
    ):
        monkeypatch.delenv(name, raising=False)
