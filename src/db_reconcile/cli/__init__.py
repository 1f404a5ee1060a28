"""CLI for cross-database schema diff, migration, and data sync.

Usage:
    db-reconcile profiles
    db-reconcile diff --source prod --target staging --sql
    db-reconcile migrate --source prod --target staging --dry-run
    db-reconcile migrate --source prod --target staging --confirm --history migrations.jsonl
    db-reconcile data-diff --source prod --target staging --tables users,orders --keys id
    db-reconcile sync --source prod --target staging --tables users --keys id --confirm

Commands:
    profiles   - List configured profiles
    diff       - Compare two schemas and show the differences
    migrate    - Apply migration SQL so the target matches the source schema
    data-diff  - Compare row counts / row contents of tables
    sync       - Reconcile target table rows toward the source
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from db_reconcile.config.loader import load_config
from db_reconcile.config.models import ReconcileConfig
from db_reconcile.errors import ReconcileError
from db_reconcile.factory import ProfileNotFoundError, connector_session, get_profile
from db_reconcile.schema.comparator import compare_schemas, get_migration_sql
from db_reconcile.schema.migrate import JsonLinesHistoryRecorder, apply_migration
from db_reconcile.schema.models import SchemaDiff
from db_reconcile.sync.engine import (
    get_table_data_diff,
    get_table_row_counts,
    sync_table,
)
from db_reconcile.sync.models import SyncMode, SyncOptions, SyncStatus, TableDataDiff
from db_reconcile.sync.sources import TableRowSource
from db_reconcile.validation import validate_query

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def _load(args: argparse.Namespace) -> ReconcileConfig | None:
    """Load config, printing the error and returning None on failure."""
    try:
        return load_config(Path(args.config) if args.config else None)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def _print_diff(diff: SchemaDiff) -> None:
    if not diff.has_changes:
        console.print("[bold green]v[/bold green] Schemas match")
        return

    table = Table(title="Schema Differences", show_header=True, header_style="bold")
    table.add_column("Change", style="dim")
    table.add_column("Table")
    table.add_column("Object")
    table.add_column("Notes")

    for item in diff.items:
        table.add_row(
            item.type.value,
            item.table,
            item.name or "",
            "; ".join(item.notes),
        )
    console.print(table)

    summary = diff.summary.model_dump()
    counts = ", ".join(f"{name}={count}" for name, count in summary.items() if count)
    console.print(f"[dim]{diff.summary.total} changes: {counts}[/dim]")


def _print_statements(statements: list[str]) -> int:
    """Print SQL, marking destructive statements.  Returns the marked count."""
    dangerous = 0
    for sql in statements:
        check = validate_query(sql)
        if check.is_dangerous:
            dangerous += 1
            console.print(f"[bold red]![/bold red] {sql}")
            console.print(f"  [red]{check.message}[/red]")
        else:
            console.print(f"  {sql}")
    return dangerous


def _print_data_diffs(diffs: list[TableDataDiff], source: str, target: str) -> None:
    table = Table(title="Data Comparison", show_header=True, header_style="bold")
    table.add_column("Table", style="dim")
    table.add_column(f"{source} (source)", justify="right")
    table.add_column(f"{target} (target)", justify="right")
    table.add_column("Missing", justify="right", style="green")
    table.add_column("Extra", justify="right", style="red")
    table.add_column("Different", justify="right", style="yellow")

    for d in diffs:
        table.add_row(
            d.table,
            str(d.source_count),
            str(d.target_count),
            str(d.missing_in_target) if d.missing_in_target else "-",
            str(d.missing_in_source) if d.missing_in_source else "-",
            str(d.different) if d.different else "-",
        )
    console.print(table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_diff(args: argparse.Namespace) -> int:
    """Async implementation for diff command.

    Returns:
        0 on success (with or without differences), 1 on failure.
    """
    config = _load(args)
    if config is None:
        return 1

    try:
        source_profile = get_profile(config, args.source)
        target_profile = get_profile(config, args.target)
        async with connector_session(source_profile, args.source) as source, \
                connector_session(target_profile, args.target) as target:
            diff = await compare_schemas(
                source,
                target,
                args.source_schema,
                args.target_schema,
                excluded_tables=set(_split(args.exclude)),
            )
    except ReconcileError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(
        f"Comparing [bold]{args.source}[/bold] (source) -> "
        f"[bold cyan]{args.target}[/bold cyan] (target)"
    )
    console.print()
    _print_diff(diff)

    if args.sql and diff.has_changes:
        console.print()
        console.print("[bold]Migration SQL:[/bold]")
        _print_statements(get_migration_sql(diff))
    return 0


async def _async_migrate(args: argparse.Namespace) -> int:
    """Async implementation for migrate command.

    Shows the plan, then applies it only with ``--confirm``.

    Returns:
        0 on success or preview, 1 on failure.
    """
    config = _load(args)
    if config is None:
        return 1

    try:
        source_profile = get_profile(config, args.source)
        target_profile = get_profile(config, args.target)
    except ProfileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if target_profile.read_only:
        console.print(f"[red]Error: Profile '{args.target}' is read-only.[/red]")
        return 1

    history = args.history or config.history_file
    recorder = JsonLinesHistoryRecorder(history) if history else None

    try:
        async with connector_session(source_profile, args.source) as source, \
                connector_session(target_profile, args.target) as target:
            diff = await compare_schemas(
                source, target, args.source_schema, args.target_schema
            )
            _print_diff(diff)
            if not diff.has_changes:
                return 0

            statements = get_migration_sql(diff)
            console.print()
            console.print("[bold]Execution Plan:[/bold]")
            dangerous = _print_statements(statements)
            if dangerous:
                console.print(
                    f"\n[bold red]{dangerous} destructive statement(s).[/bold red]"
                )

            if args.dry_run:
                console.print()
                console.print("[bold yellow]DRY RUN[/bold yellow] - No changes made.")
                return 0

            if not args.confirm:
                console.print()
                console.print(
                    "[dim]To apply the migration, add[/dim] [cyan]--confirm[/cyan] "
                    "[dim]flag.[/dim]"
                )
                return 0

            console.print()
            console.print("Applying migration...", style="dim")
            result = await apply_migration(
                target,
                diff,
                recorder,
                description=args.description,
                dry_run=False,
                confirm=True,
            )
    except ReconcileError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if result.success:
        console.print(
            f"[bold green]v[/bold green] Migration complete: "
            f"{result.executed} statement(s) executed."
        )
        return 0

    console.print(
        f"[bold red]x[/bold red] Migration failed after {result.executed} "
        f"statement(s): {result.error}"
    )
    return 1


async def _async_data_diff(args: argparse.Namespace) -> int:
    """Async implementation for data-diff command.

    With ``--tables`` and ``--keys``, compares rows by key; otherwise
    compares ``COUNT(*)`` for every table of the source schema.

    Returns:
        0 on success, 1 on failure.
    """
    config = _load(args)
    if config is None:
        return 1

    tables = _split(args.tables)
    keys = _split(args.keys)

    try:
        source_profile = get_profile(config, args.source)
        target_profile = get_profile(config, args.target)
        async with connector_session(source_profile, args.source) as source, \
                connector_session(target_profile, args.target) as target:
            if tables and keys:
                page_size = config.sync.page_size
                diffs = [
                    await get_table_data_diff(
                        TableRowSource(source, name, args.source_schema, page_size),
                        TableRowSource(target, name, args.target_schema, page_size),
                        keys,
                    )
                    for name in tables
                ]
            else:
                diffs = await get_table_row_counts(
                    source, target, args.source_schema, args.target_schema
                )
                if tables:
                    diffs = [d for d in diffs if d.table in tables]
    except ReconcileError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    _print_data_diffs(diffs, args.source, args.target)
    return 0


async def _async_sync(args: argparse.Namespace) -> int:
    """Async implementation for sync command.

    Returns:
        0 if every table synced, 1 on any failure.
    """
    config = _load(args)
    if config is None:
        return 1

    tables = _split(args.tables)
    keys = _split(args.keys)
    if not tables or not keys:
        console.print("[red]Error: --tables and --keys are required.[/red]")
        return 1

    try:
        source_profile = get_profile(config, args.source)
        target_profile = get_profile(config, args.target)
    except ProfileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if args.source == args.target:
        console.print(
            f"[red]Error: Source and target are the same profile: {args.source}[/red]"
        )
        return 1
    if target_profile.read_only:
        console.print(f"[red]Error: Profile '{args.target}' is read-only.[/red]")
        return 1

    defaults = config.sync
    options = SyncOptions(
        delete_extra=args.delete_extra,
        mode=SyncMode(args.mode),
        batch_size=args.batch_size or defaults.batch_size,
        continue_on_error=args.continue_on_error or defaults.continue_on_error,
        max_errors=defaults.max_errors,
        max_retries=defaults.max_retries,
        retry_delay=defaults.retry_delay,
    )

    failed = False
    try:
        async with connector_session(source_profile, args.source) as source, \
                connector_session(target_profile, args.target) as target:

            def rows_of(connector, name, schema) -> TableRowSource:
                return TableRowSource(
                    connector,
                    name,
                    schema,
                    page_size=defaults.page_size,
                    max_retries=defaults.max_retries,
                    retry_delay=defaults.retry_delay,
                )

            diffs = [
                await get_table_data_diff(
                    rows_of(source, name, args.source_schema),
                    rows_of(target, name, args.target_schema),
                    keys,
                )
                for name in tables
            ]
            _print_data_diffs(diffs, args.source, args.target)
            console.print("[dim]Source overwrites on collision.[/dim]")

            if args.dry_run:
                console.print()
                console.print("[bold yellow]DRY RUN[/bold yellow] - No changes made.")
                return 0

            if not args.confirm:
                console.print()
                console.print(
                    "[dim]To actually sync, add[/dim] [cyan]--confirm[/cyan] "
                    "[dim]flag.[/dim]"
                )
                return 0

            console.print()
            for name in tables:
                console.print(f"Syncing [cyan]{name}[/cyan]...", style="dim")
                run = await sync_table(
                    rows_of(source, name, args.source_schema),
                    rows_of(target, name, args.target_schema),
                    keys,
                    options,
                )
                if run.status is SyncStatus.COMPLETED:
                    console.print(
                        f"[bold green]v[/bold green] {name}: {run.inserts} inserted, "
                        f"{run.updates} updated, {run.deletes} deleted"
                    )
                else:
                    failed = True
                    console.print(f"[bold red]x[/bold red] {name}: {run.status.value}")
                    for error in run.errors:
                        console.print(f"  [red]{error}[/red]")
    except ReconcileError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    return 1 if failed else 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from the config file.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if the config file is missing or invalid.
    """
    config = _load(args)
    if config is None:
        return 1

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Schema")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        table.add_row(
            f"[bold cyan]{name}[/bold cyan]",
            profile.provider.value,
            profile.default_schema or "",
            profile.description + (" (read-only)" if profile.read_only else ""),
        )

    console.print(table)
    return 0


def cmd_diff(args: argparse.Namespace) -> int:
    """Compare two schemas.  Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_diff(args))


def cmd_migrate(args: argparse.Namespace) -> int:
    """Migrate the target schema.  Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_migrate(args))


def cmd_data_diff(args: argparse.Namespace) -> int:
    """Compare table data.  Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_data_diff(args))


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync table rows.  Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_sync(args))


# ============================================================================
# Main entry point
# ============================================================================


def _add_pair_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--source", "-s", required=True, help="Source profile (desired state)")
    parser.add_argument("--target", "-t", required=True, help="Target profile (to reconcile)")
    parser.add_argument("--source-schema", default=None, help="Source schema (profile default)")
    parser.add_argument("--target-schema", default=None, help="Target schema (profile default)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-reconcile",
        description="Cross-database schema diff, migration, and data sync",
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to config file (default: $DB_RECONCILE_CONFIG or ./db-reconcile.toml)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List configured profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # diff command
    p_diff = subparsers.add_parser("diff", help="Compare two schemas")
    _add_pair_arguments(p_diff)
    p_diff.add_argument("--exclude", help="Comma-separated tables to skip")
    p_diff.add_argument("--sql", action="store_true", help="Print migration SQL")
    p_diff.set_defaults(func=cmd_diff)

    # migrate command
    p_migrate = subparsers.add_parser(
        "migrate", help="Apply migration SQL so the target matches the source"
    )
    _add_pair_arguments(p_migrate)
    p_migrate.add_argument(
        "--dry-run", action="store_true", help="Show the plan without making changes"
    )
    p_migrate.add_argument(
        "--confirm", action="store_true", help="Apply the migration (required for non-dry-run)"
    )
    p_migrate.add_argument("--history", help="Append a record to this JSON Lines file")
    p_migrate.add_argument("--description", default="", help="Description for the history record")
    p_migrate.set_defaults(func=cmd_migrate)

    # data-diff command
    p_data_diff = subparsers.add_parser("data-diff", help="Compare table data")
    _add_pair_arguments(p_data_diff)
    p_data_diff.add_argument("--tables", help="Comma-separated tables (default: all)")
    p_data_diff.add_argument("--keys", help="Comma-separated key columns for row comparison")
    p_data_diff.set_defaults(func=cmd_data_diff)

    # sync command
    p_sync = subparsers.add_parser("sync", help="Reconcile target rows toward the source")
    _add_pair_arguments(p_sync)
    p_sync.add_argument("--tables", required=True, help="Comma-separated tables to sync")
    p_sync.add_argument("--keys", required=True, help="Comma-separated key columns")
    p_sync.add_argument(
        "--mode",
        choices=[m.value for m in SyncMode],
        default=SyncMode.UPSERT.value,
        help="Conflict strategy (default: upsert)",
    )
    p_sync.add_argument("--batch-size", type=int, default=None, help="Rows per batch")
    p_sync.add_argument(
        "--delete-extra", action="store_true", help="Delete target rows missing from the source"
    )
    p_sync.add_argument(
        "--continue-on-error", action="store_true", help="Keep going after a failed batch"
    )
    p_sync.add_argument(
        "--dry-run", action="store_true", help="Show what would be synced without making changes"
    )
    p_sync.add_argument(
        "--confirm", action="store_true", help="Actually perform the sync (required for non-dry-run)"
    )
    p_sync.set_defaults(func=cmd_sync)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
