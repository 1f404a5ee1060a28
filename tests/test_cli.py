"""Tests for the db-reconcile command line interface.

Commands run through ``main()`` against SQLite profiles; output is
captured by swapping the module console for one writing to a buffer.
"""

import inspect
import io
import json
import sqlite3
from unittest.mock import patch

import pytest
from rich.console import Console

from db_reconcile.cli import (
    _async_data_diff,
    _async_diff,
    _async_migrate,
    _async_sync,
    build_parser,
    cmd_diff,
    cmd_profiles,
    main,
)


def _seed(path, *statements):
    conn = sqlite3.connect(path)
    try:
        for statement in statements:
            conn.execute(statement)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def workspace(tmp_path):
    """Config file with src/dst SQLite profiles plus a read-only copy of dst."""
    source_path, target_path = tmp_path / "source.db", tmp_path / "target.db"
    _seed(
        source_path,
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)",
        "INSERT INTO users VALUES (1, 'a'), (2, 'b')",
    )
    _seed(
        target_path,
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, legacy TEXT)",
        "INSERT INTO users (id, name) VALUES (1, 'a'), (3, 'c')",
    )
    config_path = tmp_path / "db-reconcile.toml"
    config_path.write_text(
        f"""
[profiles.src]
url = "sqlite:///{source_path}"
provider = "sqlite"
description = "Source"

[profiles.dst]
url = "sqlite:///{target_path}"
provider = "sqlite"

[profiles.frozen]
url = "sqlite:///{target_path}"
provider = "sqlite"
read_only = true
"""
    )
    return config_path, source_path, target_path


@pytest.fixture
def output():
    """Buffer receiving everything the CLI prints."""
    buffer = io.StringIO()
    with patch("db_reconcile.cli.console", Console(file=buffer, width=200)):
        yield buffer


# ------------------------------------------------------------------
# Parser structure
# ------------------------------------------------------------------


class TestParser:
    """Argument structure and async wrapping."""

    def test_prog(self):
        """The program is called db-reconcile."""
        assert build_parser().prog == "db-reconcile"

    def test_global_options(self):
        """--config and --verbose precede the subcommand."""
        args = build_parser().parse_args(["-c", "x.toml", "-v", "profiles"])
        assert args.config == "x.toml"
        assert args.verbose
        assert args.func is cmd_profiles

    def test_sync_requires_tables_and_keys(self):
        """sync without --tables exits with an argparse error."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["sync", "-s", "a", "-t", "b", "--keys", "id"])
        assert exc_info.value.code == 2

    def test_sync_defaults(self):
        """sync defaults to upsert without deletes."""
        args = build_parser().parse_args(
            ["sync", "-s", "a", "-t", "b", "--tables", "users", "--keys", "id"]
        )
        assert args.mode == "upsert"
        assert not args.delete_extra
        assert args.batch_size is None

    def test_cmd_wraps_asyncio_run(self):
        """cmd_* wrappers run the async implementations."""
        assert "asyncio.run" in inspect.getsource(cmd_diff)
        assert "asyncio.run" not in inspect.getsource(cmd_profiles)
        for func in (_async_diff, _async_migrate, _async_data_diff, _async_sync):
            assert inspect.iscoroutinefunction(func)

    def test_dispatch(self):
        """main() dispatches to the selected command."""
        with patch("db_reconcile.cli.cmd_profiles", return_value=0) as mock_profiles:
            assert main(["--config", "x.toml", "profiles"]) == 0
        assert mock_profiles.call_args[0][0].config == "x.toml"


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


class TestCommands:
    """Commands end to end against SQLite."""

    def test_profiles(self, workspace, output):
        """profiles lists every configured profile."""
        config_path, _, _ = workspace
        assert main(["-c", str(config_path), "profiles"]) == 0
        text = output.getvalue()
        assert "src" in text and "dst" in text
        assert "(read-only)" in text

    def test_missing_config(self, tmp_path, output):
        """A missing config file is reported."""
        assert main(["-c", str(tmp_path / "none.toml"), "profiles"]) == 1
        assert "Config file not found" in output.getvalue()

    def test_unknown_profile(self, workspace, output):
        """An unknown profile name is reported."""
        config_path, _, _ = workspace
        assert main(["-c", str(config_path), "diff", "-s", "src", "-t", "nope"]) == 1
        assert "Profile 'nope' not found" in output.getvalue()

    def test_diff_with_sql(self, workspace, output):
        """diff prints the differences and the migration SQL."""
        config_path, _, _ = workspace
        assert main(["-c", str(config_path), "diff", "-s", "src", "-t", "dst", "--sql"]) == 0
        text = output.getvalue()
        assert "column_removed" in text
        assert 'ALTER TABLE "users" DROP COLUMN "legacy";' in text

    def test_diff_identical(self, workspace, output):
        """Identical schemas report a match."""
        config_path, _, _ = workspace
        assert main(["-c", str(config_path), "diff", "-s", "src", "-t", "src"]) == 0
        assert "Schemas match" in output.getvalue()

    def test_migrate_requires_confirm(self, workspace, output):
        """Without --confirm the plan is shown and nothing changes."""
        config_path, _, target_path = workspace
        assert main(["-c", str(config_path), "migrate", "-s", "src", "-t", "dst"]) == 0
        assert "--confirm" in output.getvalue()
        columns = [r[1] for r in sqlite3.connect(target_path).execute("PRAGMA table_info(users)")]
        assert "legacy" in columns

    def test_migrate_read_only_target(self, workspace, output):
        """Read-only targets are refused."""
        config_path, _, _ = workspace
        assert main(
            ["-c", str(config_path), "migrate", "-s", "src", "-t", "frozen", "--confirm"]
        ) == 1
        assert "read-only" in output.getvalue()

    def test_migrate_confirm_writes_history(self, workspace, output, tmp_path):
        """--confirm applies the migration and records it."""
        config_path, _, target_path = workspace
        history = tmp_path / "history.jsonl"

        assert main([
            "-c", str(config_path), "migrate", "-s", "src", "-t", "dst",
            "--confirm", "--history", str(history), "--description", "drop legacy",
        ]) == 0

        columns = [r[1] for r in sqlite3.connect(target_path).execute("PRAGMA table_info(users)")]
        assert columns == ["id", "name"]
        record = json.loads(history.read_text().splitlines()[0])
        assert record["success"] is True
        assert record["description"] == "drop legacy"
        assert record["summary"]["columns_removed"] == 1

    def test_data_diff_by_key(self, workspace, output):
        """data-diff with keys compares rows."""
        config_path, _, _ = workspace
        assert main([
            "-c", str(config_path), "data-diff", "-s", "src", "-t", "dst",
            "--tables", "users", "--keys", "id",
        ]) == 0
        assert "Data Comparison" in output.getvalue()

    def test_sync_same_profile_refused(self, workspace, output):
        """Syncing a profile into itself is refused."""
        config_path, _, _ = workspace
        assert main([
            "-c", str(config_path), "sync", "-s", "src", "-t", "src",
            "--tables", "users", "--keys", "id", "--confirm",
        ]) == 1
        assert "same profile" in output.getvalue()

    def test_sync_confirm(self, workspace, output):
        """sync --confirm reconciles the rows."""
        config_path, _, target_path = workspace
        assert main([
            "-c", str(config_path), "sync", "-s", "src", "-t", "dst",
            "--tables", "users", "--keys", "id", "--delete-extra", "--confirm",
        ]) == 0
        rows = sqlite3.connect(target_path).execute(
            "SELECT id, name FROM users ORDER BY id"
        ).fetchall()
        assert rows == [(1, "a"), (2, "b")]
        assert "1 inserted, 0 updated, 1 deleted" in output.getvalue()

    def test_sync_dry_run(self, workspace, output):
        """--dry-run changes nothing."""
        config_path, _, target_path = workspace
        assert main([
            "-c", str(config_path), "sync", "-s", "src", "-t", "dst",
            "--tables", "users", "--keys", "id", "--dry-run",
        ]) == 0
        assert "DRY RUN" in output.getvalue()
        count = sqlite3.connect(target_path).execute("SELECT COUNT(*) FROM users").fetchone()
        assert count == (2,)
