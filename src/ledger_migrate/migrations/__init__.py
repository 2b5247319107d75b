"""
SQL script migrations.

Scripts are applied in name order, each exactly once and in its own
transaction, and tracked in a ledger table.
"""

from .runner import (
    MigrationRecord,
    MigrationRunner,
    MigrationStatus,
    RunReport,
    UnitResult,
    UnitStatus,
    run_migrations,
)
from .sources import DirectorySource, InMemorySource, MigrationSource, MigrationUnit

__all__ = [
    "DirectorySource",
    "InMemorySource",
    "MigrationRecord",
    "MigrationRunner",
    "MigrationSource",
    "MigrationStatus",
    "MigrationUnit",
    "RunReport",
    "UnitResult",
    "UnitStatus",
    "run_migrations",
]
