"""
SQLite datastore backend.

Connections run in autocommit mode (isolation_level=None) and transactions
are driven explicitly with BEGIN/COMMIT/ROLLBACK, so a migration script and
its ledger insert share a single transaction. SQLite DDL is transactional,
so a rolled-back unit leaves no schema changes behind.

Scripts must not contain their own BEGIN/COMMIT statements.
"""

import logging
import sqlite3

from ..errors import ConfigurationError
from .datastore import Datastore

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def sqlite_path_from_url(url: str) -> str:
    """
    Extract the database path from a sqlite URL.

    sqlite:///data/app.db   -> data/app.db
    sqlite:////var/app.db   -> /var/app.db
    sqlite:///:memory:      -> :memory:
    """
    if "://" not in url:
        raise ConfigurationError(f"Not a sqlite URL: {url}")
    rest = url.split("://", 1)[1]
    path = rest[1:] if rest.startswith("/") else rest
    if not path:
        raise ConfigurationError(f"sqlite URL has no database path: {url}")
    return path


class SQLiteDatastore(Datastore):
    """
    SQLite-backed datastore.

    A file database opens a fresh connection per scope. An in-memory database
    shares one connection for its lifetime, since each new connection would
    see an empty database.
    """

    placeholder = "?"
    errors = (sqlite3.Error,)

    def __init__(self, url: str):
        super().__init__(url)
        self.db_path = sqlite_path_from_url(url)
        self._shared: sqlite3.Connection | None = None

    def _open(self) -> sqlite3.Connection:
        logger.debug(f"Opening SQLite database {self.db_path}")
        conn = sqlite3.connect(self.db_path, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _connect(self) -> sqlite3.Connection:
        if self.db_path != MEMORY:
            return self._open()
        if self._shared is None:
            self._shared = self._open()
        return self._shared

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn is self._shared:
            return
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        conn.close()

    def execute_script(self, conn: sqlite3.Connection, body: str) -> None:
        # executescript() commits any pending transaction before running,
        # so BEGIN has to be part of the script itself.
        conn.executescript(f"BEGIN;\n{body}")

    def commit(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("COMMIT")

    def rollback(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK")

    def ledger_ddl(self, table: str) -> str:
        return f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                checksum TEXT,
                executed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            );
        """

    def column_names(self, conn: sqlite3.Connection, table: str) -> set[str]:
        cursor = conn.execute(f"PRAGMA table_info({table})")
        return {row[1] for row in cursor.fetchall()}

    def close(self) -> None:
        if self._shared is not None:
            self._shared.close()
            self._shared = None
