"""
PostgreSQL datastore backend (psycopg2).

Connections come from a SimpleConnectionPool created on first use, so an
unreachable server is reported at the first query attempt. psycopg2 opens a
transaction implicitly on the first statement; commit/rollback end it.

The run lock is a session-level advisory lock on the control connection,
which keeps concurrent runners from racing on the same ledger.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import pool

from .datastore import Datastore, advisory_lock_key

logger = logging.getLogger(__name__)


class PostgresDatastore(Datastore):
    """PostgreSQL-backed datastore with an owned connection pool."""

    placeholder = "%s"
    errors = (psycopg2.Error,)

    def __init__(self, url: str, pool_size: int = 2):
        super().__init__(url)
        self.pool_size = pool_size
        self._pool: pool.SimpleConnectionPool | None = None

    def _connect(self) -> Any:
        if self._pool is None:
            logger.debug(f"Creating connection pool (max {self.pool_size}) for {self.describe()}")
            self._pool = pool.SimpleConnectionPool(0, self.pool_size, dsn=self.url)
        return self._pool.getconn()

    def _release(self, conn: Any) -> None:
        if self._pool is None:
            return
        # putconn() rolls back an unfinished transaction before pooling
        self._pool.putconn(conn, close=bool(conn.closed))

    def execute(self, conn: Any, sql: str, params: tuple = ()) -> Any:
        cursor = conn.cursor()
        # Without parameters psycopg2 leaves '%' in the SQL untouched
        cursor.execute(sql, params or None)
        return cursor

    def execute_script(self, conn: Any, body: str) -> None:
        if not body.strip():
            return
        with conn.cursor() as cursor:
            cursor.execute(body)

    def commit(self, conn: Any) -> None:
        conn.commit()

    def rollback(self, conn: Any) -> None:
        if not conn.closed:
            conn.rollback()

    def ledger_ddl(self, table: str) -> str:
        return f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id SERIAL PRIMARY KEY,
                name VARCHAR(255) NOT NULL UNIQUE,
                checksum VARCHAR(64),
                executed_at TIMESTAMP NOT NULL DEFAULT NOW()
            );
        """

    def column_names(self, conn: Any, table: str) -> set[str]:
        cursor = self.execute(
            conn,
            """
            SELECT column_name FROM information_schema.columns
            WHERE table_schema = current_schema() AND table_name = %s
            """,
            (table.lower(),),
        )
        return {row[0] for row in cursor.fetchall()}

    @contextmanager
    def lock(self, conn: Any, name: str) -> Iterator[None]:
        key = advisory_lock_key(name)
        logger.debug(f"Acquiring advisory lock {key}")
        self.execute(conn, "SELECT pg_advisory_lock(%s)", (key,))
        conn.commit()
        try:
            yield
        finally:
            if not conn.closed:
                self.rollback(conn)
                self.execute(conn, "SELECT pg_advisory_unlock(%s)", (key,))
                conn.commit()
                logger.debug(f"Released advisory lock {key}")

    def is_disconnect(self, conn: Any, exc: BaseException) -> bool:
        return bool(conn.closed) or isinstance(exc, psycopg2.InterfaceError)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
