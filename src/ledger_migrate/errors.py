"""
Error taxonomy for migration runs.

Run-level errors (configuration, connectivity, ledger) abort the whole run.
Unit-level errors are carried on a UnitResult and halt the loop after the
failing unit's transaction has been rolled back.
"""


class MigrationError(Exception):
    """Base class for all migration errors."""

    pass


class ConfigurationError(MigrationError):
    """Raised when required configuration is missing or invalid."""

    pass


class ConnectivityError(MigrationError):
    """Raised when the datastore cannot be reached or the connection drops."""

    pass


class LedgerError(MigrationError):
    """Raised when the ledger table cannot be created or read."""

    pass


class UnitError(MigrationError):
    """An error scoped to a single migration unit."""

    def __init__(self, unit_name: str, message: str, cause: BaseException | None = None):
        self.unit_name = unit_name
        self.cause = cause
        super().__init__(f"Migration {unit_name}: {message}")


class MigrationExecutionError(UnitError):
    """The unit's script failed; its transaction was rolled back."""

    def __init__(self, unit_name: str, cause: BaseException):
        super().__init__(unit_name, f"script failed: {cause}", cause)


class LedgerWriteError(UnitError):
    """Recording the unit in the ledger failed; the unit was rolled back."""

    def __init__(self, unit_name: str, cause: BaseException):
        super().__init__(unit_name, f"ledger insert failed: {cause}", cause)


class ChecksumMismatchError(UnitError):
    """An applied unit's body no longer matches the recorded checksum."""

    def __init__(self, unit_name: str, recorded: str, actual: str):
        self.recorded = recorded
        self.actual = actual
        super().__init__(
            unit_name,
            f"checksum mismatch (recorded {recorded[:12]}, current {actual[:12]})",
        )
