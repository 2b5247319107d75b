"""
Datastore abstraction shared by the SQLite and Postgres backends.

A Datastore owns its connections (or pool) for the duration of a run and
hands out scoped connections that are always released. Dialect details
(placeholders, ledger DDL, script execution, locking) live in subclasses.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from ..errors import ConfigurationError, ConnectivityError

logger = logging.getLogger(__name__)


def redact_url(url: str) -> str:
    """Replace the password in a datastore URL with '***'."""
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


def advisory_lock_key(name: str) -> int:
    """Stable signed 64-bit key derived from a lock name."""
    digest = hashlib.sha256(f"ledger_migrate:{name}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class Datastore(ABC):
    """
    Base class for relational datastores the runner can migrate.

    Usable as a context manager; leaving the block closes the datastore.
    """

    #: DB-API parameter placeholder for this driver
    placeholder = "?"

    #: Driver exception base classes converted into migration errors
    errors: tuple[type[BaseException], ...] = ()

    def __init__(self, url: str):
        self.url = url

    def __enter__(self) -> "Datastore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def describe(self) -> str:
        """Human-readable target for log lines (password redacted)."""
        return redact_url(self.url)

    @abstractmethod
    def _connect(self) -> Any:
        """Open (or borrow) a raw DB-API connection."""

    @abstractmethod
    def _release(self, conn: Any) -> None:
        """Close (or return) a raw DB-API connection."""

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Scoped connection; released unconditionally on exit."""
        try:
            conn = self._connect()
        except self.errors as e:
            raise ConnectivityError(f"Cannot connect to {self.describe()}: {e}") from e
        try:
            yield conn
        finally:
            self._release(conn)

    def execute(self, conn: Any, sql: str, params: tuple = ()) -> Any:
        """Execute a single parameterized statement and return the cursor."""
        cursor = conn.cursor()
        cursor.execute(sql, params)
        return cursor

    @abstractmethod
    def execute_script(self, conn: Any, body: str) -> None:
        """
        Execute a multi-statement script inside a transaction.

        The transaction stays open afterwards; callers must commit or roll back.
        """

    @abstractmethod
    def commit(self, conn: Any) -> None:
        """Commit the open transaction, if any."""

    @abstractmethod
    def rollback(self, conn: Any) -> None:
        """Roll back the open transaction, if any."""

    @abstractmethod
    def ledger_ddl(self, table: str) -> str:
        """CREATE TABLE IF NOT EXISTS statement for the ledger table."""

    @abstractmethod
    def column_names(self, conn: Any, table: str) -> set[str]:
        """Column names of an existing table."""

    @contextmanager
    def lock(self, conn: Any, name: str) -> Iterator[None]:
        """Datastore-wide lock held for a whole run. No-op by default."""
        yield

    def is_disconnect(self, conn: Any, exc: BaseException) -> bool:
        """Whether exc means the connection itself was lost."""
        return False

    def close(self) -> None:
        """Release everything the datastore holds."""
        pass


def open_datastore(url: str, pool_size: int = 2) -> Datastore:
    """
    Create the datastore backend matching the URL scheme.

    Args:
        url: sqlite:///path.db, postgres://... or postgresql://...
        pool_size: Max connections for pooled backends

    Raises:
        ConfigurationError: If the scheme is not supported
    """
    from .postgres_store import PostgresDatastore
    from .sqlite_store import SQLiteDatastore

    scheme = urlsplit(url).scheme.lower()
    if scheme == "sqlite":
        datastore: Datastore = SQLiteDatastore(url)
    elif scheme in ("postgres", "postgresql"):
        datastore = PostgresDatastore(url, pool_size=pool_size)
    else:
        raise ConfigurationError(f"Unsupported datastore URL scheme: '{scheme}'")

    logger.debug(f"Opened {scheme} datastore: {datastore.describe()}")
    return datastore
