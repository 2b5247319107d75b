"""
Migration sources.

A source produces the ordered list of migration units to consider. Units
are totally ordered by name, so files should carry a zero-padded sequence
number or timestamp prefix, e.g. 001_init.sql, 002_add_stock_columns.sql.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationUnit:
    """A single named migration script."""

    name: str
    body: str

    @property
    def checksum(self) -> str:
        """SHA-256 hex digest of the script body."""
        return hashlib.sha256(self.body.encode("utf-8")).hexdigest()


class MigrationSource(ABC):
    """Base class for anything that can list migration units."""

    @abstractmethod
    def list_units(self) -> list[MigrationUnit]:
        """
        Return all migration units sorted by name ascending.

        Duplicate names are not detected.
        """
        pass


class DirectorySource(MigrationSource):
    """Migration scripts stored as files in a directory."""

    def __init__(self, directory: Path | str, extension: str = ".sql"):
        self.directory = Path(directory)
        self.extension = extension

    def list_units(self) -> list[MigrationUnit]:
        if not self.directory.is_dir():
            raise ConfigurationError(f"Migrations directory not found: {self.directory}")

        files = sorted(
            (p for p in self.directory.iterdir() if p.is_file() and p.name.endswith(self.extension)),
            key=lambda p: p.name,
        )
        logger.debug(f"Found {len(files)} '{self.extension}' files in {self.directory}")

        units = []
        for p in files:
            try:
                body = p.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError) as e:
                raise ConfigurationError(f"Cannot read migration {p.name}: {e}") from e
            units.append(MigrationUnit(name=p.name, body=body))
        return units

    def __repr__(self) -> str:
        return f"DirectorySource({str(self.directory)!r}, extension={self.extension!r})"


class InMemorySource(MigrationSource):
    """Migration units held in memory (tests, embedded schemas)."""

    def __init__(self, units: Iterable[MigrationUnit] | Mapping[str, str]):
        if isinstance(units, Mapping):
            self._units = [MigrationUnit(name=name, body=body) for name, body in units.items()]
        else:
            self._units = list(units)

    def list_units(self) -> list[MigrationUnit]:
        return sorted(self._units, key=lambda u: u.name)
