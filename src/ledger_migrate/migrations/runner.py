"""
Migration runner for SQL script migrations.

Scripts are applied in name order, each exactly once, each in its own
transaction together with the ledger insert that records it:

    ensure ledger -> load applied -> list units -> apply each missing unit

A failing unit is rolled back and halts the run; everything applied before
it stays committed. Applied units are tracked by name in a ledger table
(default `migrations`) along with a checksum of the applied body.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager, nullcontext
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from ..config import CHECKSUM_MODES, MigrateConfig, is_valid_identifier
from ..errors import (
    ChecksumMismatchError,
    ConfigurationError,
    ConnectivityError,
    LedgerError,
    LedgerWriteError,
    MigrationError,
    MigrationExecutionError,
    UnitError,
)
from ..state_store import Datastore
from .sources import DirectorySource, MigrationSource, MigrationUnit

logger = logging.getLogger(__name__)


class UnitStatus(str, Enum):
    """Outcome of processing one migration unit."""

    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"  # already in the ledger
    PENDING = "PENDING"  # dry run only
    FAILED = "FAILED"


@dataclass
class MigrationRecord:
    """A row of the ledger table."""

    id: int
    name: str
    checksum: str | None
    executed_at: str


@dataclass
class UnitResult:
    """Result of processing a single unit."""

    name: str
    status: UnitStatus
    error: UnitError | None = None
    duration_ms: int = 0


@dataclass
class RunReport:
    """Outcome of a whole run, in application order."""

    found: int = 0
    results: list[UnitResult] = field(default_factory=list)
    # Units after a failure that were never tried
    not_attempted: list[str] = field(default_factory=list)
    dry_run: bool = False

    def _names(self, status: UnitStatus) -> list[str]:
        return [r.name for r in self.results if r.status is status]

    @property
    def applied(self) -> list[str]:
        return self._names(UnitStatus.APPLIED)

    @property
    def skipped(self) -> list[str]:
        return self._names(UnitStatus.SKIPPED)

    @property
    def pending(self) -> list[str]:
        return self._names(UnitStatus.PENDING)

    @property
    def failed(self) -> UnitResult | None:
        for result in self.results:
            if result.status is UnitStatus.FAILED:
                return result
        return None

    @property
    def success(self) -> bool:
        return self.failed is None


@dataclass
class MigrationStatus:
    """Comparison of the ledger against the current migration source."""

    applied: list[MigrationRecord]
    pending: list[MigrationUnit]
    # In the ledger, but no longer in the source
    missing: list[str]
    # Applied, but the body changed since
    modified: list[str]

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class MigrationRunner:
    """
    Applies pending migration units to a datastore.

    The datastore is owned by the caller; the runner only borrows scoped
    connections from it. One control connection holds the run lock and
    reads the ledger, and each unit gets its own connection for its
    transaction.
    """

    def __init__(
        self,
        datastore: Datastore,
        source: MigrationSource,
        ledger_table: str = "migrations",
        use_lock: bool = True,
        checksum_mode: str = "warn",
    ):
        if not is_valid_identifier(ledger_table):
            raise ConfigurationError(f"Invalid ledger table name: {ledger_table!r}")
        if checksum_mode not in CHECKSUM_MODES:
            raise ConfigurationError(f"Invalid checksum mode: {checksum_mode!r}")

        self.datastore = datastore
        self.source = source
        self.ledger_table = ledger_table
        self.use_lock = use_lock
        self.checksum_mode = checksum_mode

    @classmethod
    def from_config(cls, config: MigrateConfig, datastore: Datastore) -> "MigrationRunner":
        """Build a runner reading scripts from the configured directory."""
        return cls(
            datastore,
            DirectorySource(config.migrations_dir, config.file_extension),
            ledger_table=config.ledger_table,
            use_lock=config.use_lock,
            checksum_mode=config.checksum_mode,
        )

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _control_connection(self, conn: Any = None) -> Iterator[Any]:
        if conn is not None:
            yield conn
            return
        with self.datastore.connection() as owned:
            yield owned

    def _safe_rollback(self, conn: Any) -> None:
        try:
            self.datastore.rollback(conn)
        except self.datastore.errors as e:
            logger.warning(f"Rollback failed: {e}")

    def _control_error(self, conn: Any, action: str, exc: BaseException) -> MigrationError:
        self._safe_rollback(conn)
        if self.datastore.is_disconnect(conn, exc):
            return ConnectivityError(
                f"Lost connection to {self.datastore.describe()} while trying to {action}: {exc}"
            )
        return LedgerError(f"Failed to {action} (ledger '{self.ledger_table}'): {exc}")

    def _run_lock(self, conn: Any) -> AbstractContextManager:
        if not self.use_lock:
            return nullcontext()
        return self.datastore.lock(conn, self.ledger_table)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _ledger_columns(self, conn: Any) -> set[str]:
        try:
            columns = self.datastore.column_names(conn, self.ledger_table)
            self.datastore.commit(conn)
        except self.datastore.errors as e:
            raise self._control_error(conn, "inspect ledger table", e) from e
        return columns

    def ledger_exists(self, conn: Any = None) -> bool:
        """Whether the ledger table has been created."""
        with self._control_connection(conn) as active:
            return bool(self._ledger_columns(active))

    def ensure_ledger(self, conn: Any = None) -> None:
        """
        Create the ledger table if it does not exist.

        Ledgers created by older runners get the checksum column and a
        unique index on name added.
        """
        with self._control_connection(conn) as active:
            try:
                self.datastore.execute_script(active, self.datastore.ledger_ddl(self.ledger_table))
                if "checksum" not in self.datastore.column_names(active, self.ledger_table):
                    logger.info(f"Upgrading legacy ledger table '{self.ledger_table}'")
                    self.datastore.execute(
                        active, f"ALTER TABLE {self.ledger_table} ADD COLUMN checksum VARCHAR(64)"
                    )
                    # Fails on existing duplicate names; the whole upgrade rolls back
                    self.datastore.execute(
                        active,
                        f"CREATE UNIQUE INDEX IF NOT EXISTS {self.ledger_table}_name_key "
                        f"ON {self.ledger_table} (name)",
                    )
                self.datastore.commit(active)
            except self.datastore.errors as e:
                raise self._control_error(active, "create ledger table", e) from e

    def load_ledger(self, conn: Any = None, checksums: bool = True) -> dict[str, MigrationRecord]:
        """
        Ledger records keyed by migration name, in application order.

        Pass checksums=False to read a legacy ledger that has no checksum column.
        """
        checksum = "checksum" if checksums else "NULL"
        sql = f"SELECT id, name, {checksum}, executed_at FROM {self.ledger_table} ORDER BY id"
        with self._control_connection(conn) as active:
            try:
                rows = self.datastore.execute(active, sql).fetchall()
                self.datastore.commit(active)
            except self.datastore.errors as e:
                raise self._control_error(active, "read ledger table", e) from e

        return {
            row[1]: MigrationRecord(
                id=row[0],
                name=row[1],
                checksum=row[2],
                executed_at=str(row[3]),
            )
            for row in rows
        }

    def load_applied(self, conn: Any = None) -> set[str]:
        """Names of all applied migrations (empty on a fresh ledger)."""
        return set(self.load_ledger(conn))

    def list_units(self) -> list[MigrationUnit]:
        """Migration units from the source, sorted by name."""
        return self.source.list_units()

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def apply(self, unit: MigrationUnit) -> UnitResult:
        """
        Apply one unit and record it, atomically.

        The script and the ledger insert share a transaction on a dedicated
        connection. On failure the transaction is rolled back and a FAILED
        result is returned.

        Raises:
            ConnectivityError: If the connection is lost mid-unit
        """
        logger.info(f"Applying migration {unit.name}")
        started = time.monotonic()
        ph = self.datastore.placeholder
        insert_sql = f"INSERT INTO {self.ledger_table} (name, checksum) VALUES ({ph}, {ph})"

        with self.datastore.connection() as conn:
            stage = "execute"
            try:
                self.datastore.execute_script(conn, unit.body)
                stage = "record"
                self.datastore.execute(conn, insert_sql, (unit.name, unit.checksum))
                stage = "commit"
                self.datastore.commit(conn)
            except self.datastore.errors as e:
                self._safe_rollback(conn)
                if self.datastore.is_disconnect(conn, e):
                    raise ConnectivityError(
                        f"Lost connection to {self.datastore.describe()} "
                        f"while applying {unit.name}: {e}"
                    ) from e

                error: UnitError
                if stage == "record":
                    error = LedgerWriteError(unit.name, e)
                else:
                    error = MigrationExecutionError(unit.name, e)
                logger.error(f"{error} (rolled back)")
                return UnitResult(
                    unit.name, UnitStatus.FAILED, error=error, duration_ms=_elapsed_ms(started)
                )

        duration_ms = _elapsed_ms(started)
        logger.info(f"Migration {unit.name} applied successfully ({duration_ms} ms)")
        return UnitResult(unit.name, UnitStatus.APPLIED, duration_ms=duration_ms)

    def _check_applied(self, unit: MigrationUnit, record: MigrationRecord) -> UnitResult:
        if (
            self.checksum_mode != "ignore"
            and record.checksum is not None
            and record.checksum != unit.checksum
        ):
            error = ChecksumMismatchError(unit.name, record.checksum, unit.checksum)
            if self.checksum_mode == "fail":
                logger.error(str(error))
                return UnitResult(unit.name, UnitStatus.FAILED, error=error)
            logger.warning(f"{error}; file changed after it was applied")

        logger.info(f"Migration {unit.name} already applied, skipping")
        return UnitResult(unit.name, UnitStatus.SKIPPED)

    def run(self, dry_run: bool = False) -> RunReport:
        """
        Apply all pending units in order.

        Args:
            dry_run: Report pending units without executing them

        Returns:
            RunReport; check `success` for the outcome of the run

        Raises:
            ConnectivityError: Datastore unreachable or connection lost
            LedgerError: Ledger table could not be created or read
            ConfigurationError: Migration source is unusable
        """
        report = RunReport(dry_run=dry_run)
        logger.info(f"Starting migration run against {self.datastore.describe()}")

        with self.datastore.connection() as conn:
            try:
                with self._run_lock(conn):
                    self._run_locked(conn, report)
            except self.datastore.errors as e:
                raise self._control_error(conn, "manage the run lock", e) from e

        if report.success:
            logger.info(
                f"Migration run finished: {len(report.applied)} applied, "
                f"{len(report.skipped)} skipped, {len(report.pending)} pending"
            )
        return report

    def _read_ledger(self, conn: Any, create: bool) -> dict[str, MigrationRecord]:
        if create:
            self.ensure_ledger(conn)
            return self.load_ledger(conn)

        # Inspection leaves the schema alone; no table means nothing applied
        columns = self._ledger_columns(conn)
        if not columns:
            logger.info(f"Ledger table '{self.ledger_table}' does not exist yet")
            return {}
        return self.load_ledger(conn, checksums="checksum" in columns)

    def _run_locked(self, conn: Any, report: RunReport) -> None:
        ledger = self._read_ledger(conn, create=not report.dry_run)
        units = self.list_units()
        report.found = len(units)
        logger.info(f"Found {len(units)} migration(s) to process")

        for index, unit in enumerate(units):
            record = ledger.get(unit.name)
            if record is not None:
                result = self._check_applied(unit, record)
            elif report.dry_run:
                logger.info(f"Migration {unit.name} is pending")
                result = UnitResult(unit.name, UnitStatus.PENDING)
            else:
                result = self.apply(unit)

            report.results.append(result)

            if result.status is UnitStatus.FAILED:
                report.not_attempted = [u.name for u in units[index + 1 :]]
                logger.error(
                    f"Halting after {unit.name}; "
                    f"{len(report.not_attempted)} later migration(s) not attempted"
                )
                break

    def status(self) -> MigrationStatus:
        """Compare the ledger against the source without applying anything."""
        with self.datastore.connection() as conn:
            ledger = self._read_ledger(conn, create=False)
        units = self.list_units()
        names = {u.name for u in units}

        modified = []
        for unit in units:
            record = ledger.get(unit.name)
            if record is not None and record.checksum is not None and record.checksum != unit.checksum:
                modified.append(unit.name)

        return MigrationStatus(
            applied=[record for record in ledger.values() if record.name in names],
            pending=[u for u in units if u.name not in ledger],
            missing=[name for name in ledger if name not in names],
            modified=modified,
        )


def run_migrations(
    datastore: Datastore,
    directory: Path | str,
    extension: str = ".sql",
    **runner_kwargs: Any,
) -> RunReport:
    """Apply pending `.sql` files from a directory (convenience wrapper)."""
    runner = MigrationRunner(datastore, DirectorySource(directory, extension), **runner_kwargs)
    return runner.run()
