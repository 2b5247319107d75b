"""
Datastore backends.

Owned, closable connection sources for the migration runner:
- SQLite (standard library sqlite3)
- PostgreSQL (psycopg2 connection pool)
"""

from .datastore import Datastore, advisory_lock_key, open_datastore, redact_url
from .postgres_store import PostgresDatastore
from .sqlite_store import SQLiteDatastore, sqlite_path_from_url

__all__ = [
    "Datastore",
    "PostgresDatastore",
    "SQLiteDatastore",
    "advisory_lock_key",
    "open_datastore",
    "redact_url",
    "sqlite_path_from_url",
]
