"""Tests for CLI commands.

These tests verify that all CLI commands are registered and that exit codes
reflect the outcome of a run.
"""

import pytest

from fixtures import BROKEN_MIGRATION, SAMPLE_MIGRATIONS, ledger_names, table_names, write_migrations
from ledger_migrate.runner.main import (
    EXIT_CONFIG,
    EXIT_DATABASE,
    EXIT_FAILURE,
    EXIT_OK,
    create_cli,
    main,
)


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_no_command_defaults_to_up(self):
        """Running without arguments is allowed (defaults to up)."""
        args = create_cli().parse_args([])
        assert args.command is None

    def test_up_has_dry_run_option(self):
        parser = create_cli()

        assert parser.parse_args(["up"]).dry_run is False
        assert parser.parse_args(["up", "--dry-run"]).dry_run is True

    def test_all_commands_registered(self):
        parser = create_cli()

        subparsers_action = None
        for action in parser._actions:
            if action.dest == "command":
                subparsers_action = action
                break

        assert subparsers_action is not None
        assert set(subparsers_action.choices) == {"up", "status", "init"}

    def test_global_options(self, tmp_path):
        args = create_cli().parse_args(["-v", "-c", "x.yaml", "-d", str(tmp_path), "status"])
        assert args.verbose is True
        assert str(args.config) == "x.yaml"
        assert args.dir == tmp_path


class TestCLIRun:
    """End-to-end CLI runs against a temporary SQLite database."""

    @pytest.fixture
    def cli_args(self, tmp_path, migrations_dir):
        return ["-c", str(tmp_path / "absent.yaml"), "-d", str(migrations_dir)]

    @pytest.fixture(autouse=True)
    def database_url(self, monkeypatch, db_url):
        monkeypatch.setenv("DATABASE_URL", db_url)

    def test_up_applies_and_is_idempotent(self, cli_args, migrations_dir, temp_db, capsys):
        write_migrations(migrations_dir, SAMPLE_MIGRATIONS)

        assert main(cli_args) == EXIT_OK
        assert main(cli_args + ["up"]) == EXIT_OK

        out = capsys.readouterr().out
        assert "3 applied" in out
        assert "0 applied, 3 already applied" in out
        assert len(ledger_names(temp_db)) == 3

    def test_failure_exit_code(self, cli_args, migrations_dir, temp_db, capsys):
        write_migrations(
            migrations_dir,
            {
                "001_init.sql": SAMPLE_MIGRATIONS["001_init.sql"],
                "002_broken.sql": BROKEN_MIGRATION,
                "003_later.sql": "SELECT 1;",
            },
        )

        assert main(cli_args) == EXIT_FAILURE

        out = capsys.readouterr().out
        assert "002_broken.sql" in out
        assert "Not attempted: 003_later.sql" in out
        assert ledger_names(temp_db) == ["001_init.sql"]

    def test_missing_database_url(self, cli_args, monkeypatch, capsys):
        monkeypatch.delenv("DATABASE_URL")

        assert main(cli_args) == EXIT_CONFIG
        assert "DATABASE_URL" in capsys.readouterr().out

    def test_unreachable_database(self, cli_args, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'nowhere' / 'app.db'}")

        assert main(cli_args) == EXIT_DATABASE

    def test_missing_migrations_directory(self, tmp_path):
        args = ["-c", str(tmp_path / "absent.yaml"), "-d", str(tmp_path / "nope")]
        assert main(args) == EXIT_CONFIG

    def test_non_utf8_migration_is_config_error(self, cli_args, migrations_dir, temp_db, capsys):
        write_migrations(migrations_dir, {"001_init.sql": SAMPLE_MIGRATIONS["001_init.sql"]})
        (migrations_dir / "002_latin1.sql").write_bytes("INSERT INTO products (name) VALUES ('café');".encode("latin-1"))

        assert main(cli_args) == EXIT_CONFIG

        assert "002_latin1.sql" in capsys.readouterr().out
        assert ledger_names(temp_db) == []

    def test_dry_run(self, cli_args, migrations_dir, temp_db, capsys):
        write_migrations(migrations_dir, SAMPLE_MIGRATIONS)

        assert main(cli_args + ["up", "--dry-run"]) == EXIT_OK

        out = capsys.readouterr().out
        assert "3 pending migration(s)" in out
        assert "migrations" not in table_names(temp_db)

    def test_status(self, cli_args, migrations_dir, capsys):
        write_migrations(migrations_dir, {"001_init.sql": SAMPLE_MIGRATIONS["001_init.sql"]})
        main(cli_args)
        write_migrations(migrations_dir, {"010_index.sql": "SELECT 1;"})

        assert main(cli_args + ["status"]) == EXIT_OK

        out = capsys.readouterr().out
        assert "001_init.sql" in out
        assert "010_index.sql" in out
        assert "Pending:  1" in out


def test_init_writes_config(tmp_path, capsys):
    config_path = tmp_path / "migrate.yaml"
    migrations_dir = tmp_path / "db" / "migrations"

    assert main(["-c", str(config_path), "-d", str(migrations_dir), "init"]) == EXIT_OK
    assert config_path.exists()
    assert migrations_dir.is_dir()

    assert main(["-c", str(config_path), "-d", str(migrations_dir), "init"]) == EXIT_OK
    assert "already exists" in capsys.readouterr().out
