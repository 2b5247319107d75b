"""
Test fixtures for migration runs.

Sample migration scripts modeled on a storefront schema, plus helpers to
write them to disk and inspect the resulting SQLite database directly.
"""

import sqlite3
from contextlib import closing
from pathlib import Path

SAMPLE_MIGRATIONS = {
    "001_init.sql": """
        CREATE TABLE products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            price_cents INTEGER NOT NULL
        );
    """,
    "002_add_stock_columns.sql": """
        -- Stock tracking for the supplier dashboard
        ALTER TABLE products ADD COLUMN stock_quantity INTEGER NOT NULL DEFAULT 0;
        ALTER TABLE products ADD COLUMN min_stock_level INTEGER;
    """,
    "010_index.sql": """
        CREATE INDEX idx_products_stock ON products(stock_quantity);
    """,
}

BROKEN_MIGRATION = """
    CREATE TABLE half_done (id INTEGER PRIMARY KEY);
    INSERT INTO table_that_does_not_exist (id) VALUES (1);
"""


def write_migrations(directory: Path, migrations: dict[str, str]) -> Path:
    """Write name -> body scripts into directory."""
    directory.mkdir(parents=True, exist_ok=True)
    for name, body in migrations.items():
        (directory / name).write_text(body, encoding="utf-8")
    return directory


def table_names(db_path: Path) -> set[str]:
    """All table names in a SQLite database."""
    with closing(sqlite3.connect(str(db_path))) as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    return {row[0] for row in rows}


def column_names(db_path: Path, table: str) -> set[str]:
    """Column names of a SQLite table."""
    with closing(sqlite3.connect(str(db_path))) as conn:
        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row[1] for row in rows}


def ledger_names(db_path: Path, table: str = "migrations") -> list[str]:
    """Ledger names in insertion order."""
    with closing(sqlite3.connect(str(db_path))) as conn:
        rows = conn.execute(f"SELECT name FROM {table} ORDER BY id").fetchall()
    return [row[0] for row in rows]
