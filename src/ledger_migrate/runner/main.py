"""
CLI main entry point.
"""

import argparse
import logging
import sys
from pathlib import Path

from ..config import DEFAULT_CONFIG_PATH, MigrateConfig, create_default_config, load_config
from ..errors import ConfigurationError, ConnectivityError, LedgerError
from ..migrations import MigrationRunner
from ..state_store import open_datastore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1  # a migration unit failed
EXIT_CONFIG = 2
EXIT_DATABASE = 3  # unreachable datastore or unusable ledger


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-migrate",
        description="Apply pending SQL migrations and record them in a ledger table",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH}, optional)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-d",
        "--dir",
        type=Path,
        default=None,
        help="Migrations directory (overrides config and MIGRATIONS_DIR)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run (default: up)")

    # up command
    up_parser = subparsers.add_parser("up", help="Apply pending migrations")
    up_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List pending migrations without applying them or creating the ledger table",
    )

    # status command
    subparsers.add_parser("status", help="Show applied and pending migrations")

    # init command
    subparsers.add_parser("init", help="Write a default config file and migrations directory")

    return parser


def cmd_up(config: MigrateConfig, dry_run: bool = False) -> int:
    """Apply pending migrations."""
    try:
        with open_datastore(config.database_url, pool_size=config.pool_size) as datastore:
            runner = MigrationRunner.from_config(config, datastore)
            report = runner.run(dry_run=dry_run)
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return EXIT_CONFIG
    except (ConnectivityError, LedgerError) as e:
        print(f"❌ Database error: {e}")
        return EXIT_DATABASE

    failed = report.failed
    if failed is not None:
        print(f"❌ Migration failed: {failed.error}")
        if report.applied:
            print(f"   Committed before the failure: {', '.join(report.applied)}")
        if report.not_attempted:
            print(f"   Not attempted: {', '.join(report.not_attempted)}")
        return EXIT_FAILURE

    if dry_run:
        if report.pending:
            print(f"📋 {len(report.pending)} pending migration(s):")
            for name in report.pending:
                print(f"   - {name}")
        else:
            print("✓ Database is up to date (dry run)")
        return EXIT_OK

    print(
        f"✓ Migrations completed successfully: {len(report.applied)} applied, "
        f"{len(report.skipped)} already applied"
    )
    return EXIT_OK


def cmd_status(config: MigrateConfig) -> int:
    """Show migration status."""
    try:
        with open_datastore(config.database_url, pool_size=config.pool_size) as datastore:
            status = MigrationRunner.from_config(config, datastore).status()
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        return EXIT_CONFIG
    except (ConnectivityError, LedgerError) as e:
        print(f"❌ Database error: {e}")
        return EXIT_DATABASE

    print(f"\n📊 Migration Status (ledger: {config.ledger_table})")
    print("=" * 60)
    for record in status.applied:
        marker = "~" if record.name in status.modified else "✓"
        print(f"  {marker} {record.name:<40} {record.executed_at}")
    for unit in status.pending:
        print(f"  · {unit.name:<40} pending")
    for name in status.missing:
        print(f"  ! {name:<40} applied, file missing")
    print()
    print(f"  Applied:  {len(status.applied)}")
    print(f"  Pending:  {len(status.pending)}")
    if status.modified:
        print(f"  Modified: {len(status.modified)} (changed after being applied)")
    print()

    return EXIT_OK


def cmd_init(config_path: Path, migrations_dir: Path) -> int:
    """Write a default config file and create the migrations directory."""
    if config_path.exists():
        print(f"⚠️  {config_path} already exists, leaving it unchanged")
    else:
        create_default_config(config_path)
        print(f"✓ Wrote {config_path}")

    migrations_dir.mkdir(parents=True, exist_ok=True)
    print(f"✓ Migrations directory: {migrations_dir}")
    return EXIT_OK


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    command = parsed.command or "up"

    if command == "init":
        return cmd_init(parsed.config, parsed.dir or Path("migrations"))

    # Load config
    try:
        config = load_config(parsed.config)
    except ConfigurationError as e:
        print(f"❌ Failed to load config: {e}")
        return EXIT_CONFIG

    if parsed.dir is not None:
        config.migrations_dir = parsed.dir

    # Route to command
    if command == "up":
        return cmd_up(config, dry_run=getattr(parsed, "dry_run", False))
    elif command == "status":
        return cmd_status(config)
    else:
        parser.print_help()
        return EXIT_CONFIG


if __name__ == "__main__":
    sys.exit(main())
