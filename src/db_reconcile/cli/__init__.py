"""CLI module for declarative schema reconciliation.

Provides commands to pull a database schema into an authoring source,
push the authored schema back, and manage migration files and restore
points.

Usage:
    db-reconcile init --url postgresql://postgres@localhost/app
    db-reconcile pull
    db-reconcile diff
    db-reconcile push --dry-run --full
    db-reconcile push --yes
    db-reconcile sync --push-only
    db-reconcile generate add_orders
    db-reconcile migrate
    db-reconcile rollback --step 1
    db-reconcile --profile prod status

Commands:
    init        - Create db-reconcile.toml, the ignore file and state directory
    introspect  - Print the observed database schema
    pull        - Write the observed schema to the authoring source and snapshot
    diff        - Show what push would change
    generate    - Write a migration file from the current diff
    push        - Reconcile the database with the authored schema
    sync        - Pull remote changes, then push local ones
    migrate     - Apply pending migration files
    rollback    - Reverse recent pushes and migrations
    status      - Show applied entries, pending files and snapshot freshness
    validate    - Check the authored schema against the target dialect
    export      - Write the observed schema to a file
    import      - Replace the authoring source with a schema document

Exit codes: 0 success, 1 failure, 128 not a managed repository.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from db_reconcile.config import (
    CONFIG_FILENAME,
    ReconcileConfig,
    load_config,
    render_starter_config,
)
from db_reconcile.errors import (
    ConnectivityError,
    DestructiveChangeError,
    DialectIncompatibilityError,
    IgnoreDependencyError,
    ReconcileError,
    SchemaInvariantError,
)
from db_reconcile.factory import resolve_target
from db_reconcile.reconcile import Project, Reconciler, import_schema
from db_reconcile.schema.comparator import DestructiveChange
from db_reconcile.schema.ignore import DEFAULT_IGNORE_FILE
from db_reconcile.schema.models import DatabaseSchema
from db_reconcile.schema.validator import DialectValidationResult
from db_reconcile.source import dump_schema

console = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_UNMANAGED = 128


# ============================================================================
# Shared helpers
# ============================================================================


def _load_config(args: argparse.Namespace) -> ReconcileConfig | None:
    """Load the project config, printing why when this is not a managed repo."""
    config_path = Path(args.config) if getattr(args, "config", None) else None
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _reconciler(args: argparse.Namespace, config: ReconcileConfig) -> Reconciler:
    target = resolve_target(
        config,
        profile_name=getattr(args, "profile", None),
        env_prefix=getattr(args, "env_prefix", ""),
    )
    on_progress = None
    if getattr(args, "verbose", False):
        def on_progress(step: str, detail: str | None) -> None:
            console.print(f"[dim]{step} {detail or ''}[/dim]")
    return Reconciler(Project.from_config(config), target, on_progress=on_progress)


def _print_validation(result: DialectValidationResult) -> None:
    if not result.errors and not result.warnings:
        return
    table = Table(
        title=f"Dialect compatibility: {result.dialect}", show_header=True, header_style="bold"
    )
    table.add_column("", width=2)
    table.add_column("Category")
    table.add_column("Feature")
    table.add_column("Location", style="dim")
    table.add_column("Alternative")
    for issue in result.errors:
        table.add_row(
            "[bold red]x[/bold red]", issue.category, issue.feature,
            issue.location or "", issue.alternative or "",
        )
    for issue in result.warnings:
        table.add_row(
            "[yellow]![/yellow]", issue.category, issue.feature,
            issue.location or "", issue.alternative or "",
        )
    console.print(table)


def _print_error(error: ReconcileError) -> None:
    """Format a library error at the CLI boundary."""
    if isinstance(error, DialectIncompatibilityError):
        console.print(f"[bold red]x[/bold red] {error}")
        _print_validation(error.result)
    elif isinstance(error, (SchemaInvariantError, IgnoreDependencyError)):
        console.print("[bold red]x[/bold red] Schema cannot be applied:")
        for problem in error.problems:
            console.print(f"  - {problem}")
    elif isinstance(error, DestructiveChangeError):
        console.print("[bold red]x[/bold red] Destructive changes need confirmation:")
        for change in error.changes:
            console.print(f"  - [red]{change}[/red]")
        console.print("[dim]Re-run with[/dim] [cyan]--force[/cyan] [dim]or[/dim] [cyan]--yes[/cyan]")
    elif isinstance(error, ConnectivityError):
        console.print(f"[bold red]x[/bold red] Cannot connect ({error.hint}): {error}")
    else:
        console.print(f"[bold red]x[/bold red] {error}")


def _run(coro) -> int:
    """Run an async command, mapping library errors to exit code 1."""
    try:
        return asyncio.run(coro)
    except ReconcileError as e:
        _print_error(e)
        return EXIT_FAILURE


def _print_statements(title: str, statements: list[str]) -> None:
    console.print(f"\n[bold]{title}[/bold] ({len(statements)})")
    for statement in statements:
        console.print(statement, markup=False, highlight=False)


def _destructive_prompt(args: argparse.Namespace):
    """Confirmation callback for destructive changes, or None if unavailable."""
    if args.yes:
        return lambda changes: True
    if not sys.stdin.isatty():
        return None

    def confirm(changes: list[DestructiveChange]) -> bool:
        console.print("\n[bold yellow]Destructive changes:[/bold yellow]")
        for change in changes:
            console.print(f"  - [red]{change.describe()}[/red]")
        return Confirm.ask("Apply destructive changes?", default=False)

    return confirm


def _print_schema(schema: DatabaseSchema) -> None:
    table = Table(title="Tables", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Columns", justify="right")
    table.add_column("Indexes", justify="right")
    table.add_column("Constraints", justify="right")
    for t in schema.tables:
        table.add_row(t.name, str(len(t.columns)), str(len(t.indexes)), str(len(t.constraints)))
    console.print(table)

    others = {
        kind: len(getattr(schema, kind))
        for kind in (
            "extensions", "enums", "domains", "composite_types", "sequences",
            "functions", "triggers", "views", "materialized_views", "foreign_tables",
        )
        if getattr(schema, kind)
    }
    for kind, count in others.items():
        console.print(f"  {kind.replace('_', ' ')}: {count}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_introspect(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        schema = await reconciler.introspect(include_views=True)
    if args.json:
        print(dump_schema(schema), end="")
    else:
        _print_schema(schema)
    return EXIT_OK


async def _async_pull(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        console.print(
            f"Pulling schema from profile: "
            f"[bold cyan]{reconciler.target.profile_name}[/bold cyan]"
        )
        schema = await reconciler.pull()
        source = reconciler.project.source
    console.print(
        f"[bold green]v[/bold green] Wrote {len(schema.tables)} table(s) to "
        f"[cyan]{source}[/cyan] and updated the snapshot"
    )
    return EXIT_OK


async def _async_diff(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        report = await reconciler.diff(transform=args.transform)

    if args.json:
        print(json.dumps({
            "summary": report.summary,
            "up": report.migration.up,
            "down": report.migration.down,
            "destructive": [c.describe() for c in report.destructive],
            "valid": report.validation.valid if report.validation else True,
        }, indent=2))
        return EXIT_OK

    for line in report.summary:
        console.print(f"  {line}")
    if report.destructive:
        console.print("\n[bold yellow]Destructive:[/bold yellow]")
        for change in report.destructive:
            console.print(f"  - [red]{change.describe()}[/red]")
    if report.validation is not None:
        _print_validation(report.validation)
    return EXIT_OK


async def _async_generate(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        path = await reconciler.generate(args.name, transform=args.transform)
    if path is None:
        console.print("[bold green]v[/bold green] No changes - nothing to generate")
        return EXIT_OK
    console.print(f"[bold green]v[/bold green] Created [cyan]{path}[/cyan]")
    return EXIT_OK


async def _async_push(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        console.print(
            f"Pushing schema to profile: [bold cyan]{reconciler.target.profile_name}[/bold cyan] "
            f"[dim]({reconciler.dialect.display_name})[/dim]"
        )
        result = await reconciler.push(
            dry_run=args.dry_run,
            force=args.force,
            transform=args.transform,
            confirm=None if args.dry_run else _destructive_prompt(args),
        )

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")

    if result.no_changes:
        console.print("[bold green]v[/bold green] Database is up to date")
        return EXIT_OK

    for line in result.summary:
        console.print(f"  {line}")

    if result.dry_run:
        console.print("\n[bold yellow]DRY RUN[/bold yellow] - no changes applied")
        _print_statements("UP", result.up)
        if args.full:
            _print_statements("DOWN", result.down)
        else:
            console.print(f"\n[dim]{len(result.down)} DOWN statement(s); use --full to show them[/dim]")
        if result.destructive:
            console.print("\n[bold yellow]Destructive:[/bold yellow]")
            for change in result.destructive:
                console.print(f"  - [red]{change}[/red]")
        return EXIT_OK

    if not result.success:
        console.print(f"\n[bold red]x[/bold red] {result.error}")
        return EXIT_FAILURE

    applied = result.apply.statements_applied if result.apply else 0
    console.print(
        f"\n[bold green]v[/bold green] Applied {applied} statement(s); "
        f"restore point [cyan]{result.restore_point}[/cyan]"
    )
    return EXIT_OK


async def _async_sync(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        console.print(
            f"Syncing with profile: [bold cyan]{reconciler.target.profile_name}[/bold cyan] "
            f"[dim]({reconciler.dialect.display_name})[/dim]"
        )
        result = await reconciler.sync(
            pull_only=args.pull_only,
            push_only=args.push_only,
            force=args.force,
            confirm=_destructive_prompt(args),
        )
        source = reconciler.project.source

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if result.pulled:
        console.print(f"[bold green]v[/bold green] Pulled the database schema into [cyan]{source}[/cyan]")

    push = result.push
    if push is None:
        return EXIT_OK
    if push.no_changes:
        console.print("[bold green]v[/bold green] Database is up to date")
        return EXIT_OK
    for line in push.summary:
        console.print(f"  {line}")
    if not push.success:
        console.print(f"\n[bold red]x[/bold red] {push.error}")
        return EXIT_FAILURE
    applied = push.apply.statements_applied if push.apply else 0
    console.print(
        f"\n[bold green]v[/bold green] Applied {applied} statement(s); "
        f"restore point [cyan]{push.restore_point}[/cyan]"
    )
    return EXIT_OK


async def _async_migrate(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        result = await reconciler.migrate(dry_run=args.dry_run, transform=args.transform)

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if not result.pending:
        console.print("[bold green]v[/bold green] No pending migrations")
        return EXIT_OK
    if args.dry_run:
        console.print("[bold yellow]DRY RUN[/bold yellow] - pending migrations:")
        for name in result.pending:
            console.print(f"  - {name}")
        return EXIT_OK
    for name in result.applied:
        console.print(f"[bold green]v[/bold green] {name}")
    if not result.success:
        console.print(f"[bold red]x[/bold red] {result.failed}")
        console.print(result.error, markup=False)
        return EXIT_FAILURE
    return EXIT_OK


async def _async_rollback(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED

    def confirm(plan) -> bool:
        if args.yes:
            return True
        if not sys.stdin.isatty():
            console.print("[red]Refusing to roll back without --yes in a non-interactive shell[/red]")
            return False
        for item in plan.plan:
            console.print(f"  - {item.name} [dim]({item.source})[/dim]")
        return Confirm.ask("Roll back these entries?", default=False)

    async with _reconciler(args, config) as reconciler:
        result = await reconciler.rollback(
            step=args.step, to=args.to, dry_run=args.dry_run, confirm=confirm
        )

    for warning in result.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")
    if not result.success:
        console.print(f"[bold red]x[/bold red] {result.error}")
        return EXIT_FAILURE
    if args.dry_run:
        console.print("[bold yellow]DRY RUN[/bold yellow] - would roll back:")
        for item in result.plan:
            console.print(f"  - {item.name} [dim]({item.source})[/dim]")
            if args.full:
                console.print(item.down, markup=False, highlight=False)
        return EXIT_OK
    if not result.rolled_back:
        console.print("Nothing to roll back")
        return EXIT_OK
    for name in result.rolled_back:
        console.print(f"[bold green]v[/bold green] Rolled back {name}")
    return EXIT_OK


async def _async_status(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    async with _reconciler(args, config) as reconciler:
        report = await reconciler.status()
        profile_name = reconciler.target.profile_name

    if args.json:
        print(report.model_dump_json(indent=2))
        return EXIT_OK

    console.print(f"Profile: [bold cyan]{profile_name}[/bold cyan]")
    table = Table(title="Applied", show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Batch", justify="right")
    table.add_column("Applied at", style="dim")
    for entry in report.applied:
        table.add_row(entry.name, entry.source or "", str(entry.batch), str(entry.applied_at or ""))
    console.print(table)

    if report.pending:
        console.print(f"\n[yellow]Pending ({len(report.pending)}):[/yellow]")
        for name in report.pending:
            console.print(f"  - {name}")
    if not report.snapshot_exists:
        console.print("\n[yellow]No snapshot yet.[/yellow] [dim]Run[/dim] [cyan]db-reconcile pull[/cyan]")
    elif report.source_changed:
        console.print("\n[yellow]Schema source changed since the last snapshot[/yellow]")
    if report.database_changed:
        console.print(
            "\n[yellow]Database changed since the last snapshot[/yellow] "
            "[dim]Run[/dim] [cyan]db-reconcile diff[/cyan]"
        )
    return EXIT_OK


async def _async_export(args: argparse.Namespace) -> int:
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    output = Path(args.output)
    async with _reconciler(args, config) as reconciler:
        schema = await reconciler.export(output)
    console.print(f"[bold green]v[/bold green] Exported {len(schema.tables)} table(s) to [cyan]{output}[/cyan]")
    return EXIT_OK


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Create a starter config, ignore file, state and migrations directories.

    Returns:
        0 on success, 1 if a config already exists.
    """
    root = Path(args.directory)
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        console.print(f"[yellow]{config_path} already exists[/yellow]")
        return EXIT_FAILURE

    root.mkdir(parents=True, exist_ok=True)
    config_path.write_text(render_starter_config(args.url, args.dialect))
    ignore_path = root / ".db-reconcile-ignore"
    if not ignore_path.exists():
        ignore_path.write_text(DEFAULT_IGNORE_FILE)
    (root / ".db-reconcile").mkdir(exist_ok=True)
    (root / "migrations").mkdir(exist_ok=True)

    console.print(f"[bold green]v[/bold green] Created [cyan]{config_path}[/cyan]")
    console.print("[dim]Next:[/dim] [cyan]db-reconcile pull[/cyan]")
    return EXIT_OK


def cmd_introspect(args: argparse.Namespace) -> int:
    """Print the observed schema."""
    return _run(_async_introspect(args))


def cmd_pull(args: argparse.Namespace) -> int:
    """Write the observed schema to the authoring source and snapshot."""
    return _run(_async_pull(args))


def cmd_diff(args: argparse.Namespace) -> int:
    """Show what push would change."""
    return _run(_async_diff(args))


def cmd_generate(args: argparse.Namespace) -> int:
    """Write a migration file from the current diff."""
    return _run(_async_generate(args))


def cmd_push(args: argparse.Namespace) -> int:
    """Reconcile the database with the authored schema.

    Wraps the async implementation with ``asyncio.run()``.

    Returns:
        0 on success or dry run, 1 on failure, 128 outside a managed repo.
    """
    return _run(_async_push(args))


def cmd_sync(args: argparse.Namespace) -> int:
    """Pull remote changes, then push local ones."""
    return _run(_async_sync(args))


def cmd_migrate(args: argparse.Namespace) -> int:
    """Apply pending migration files."""
    return _run(_async_migrate(args))


def cmd_rollback(args: argparse.Namespace) -> int:
    """Reverse recent pushes and migrations."""
    return _run(_async_rollback(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show applied entries, pending files and snapshot freshness."""
    return _run(_async_status(args))


def cmd_export(args: argparse.Namespace) -> int:
    """Write the observed schema to a file."""
    return _run(_async_export(args))


def cmd_validate(args: argparse.Namespace) -> int:
    """Check the authored schema and its creation DDL against the target dialect.

    Runs offline: only the profile's dialect is used.

    Returns:
        0 when compatible, 1 otherwise.
    """
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    try:
        reconciler = _reconciler(args, config)
        report = reconciler.validate(transform=args.transform)
    except ReconcileError as e:
        _print_error(e)
        return EXIT_FAILURE

    _print_validation(report.validation)
    if not report.validation.valid:
        console.print(f"[bold red]x[/bold red] Not compatible with {reconciler.dialect.display_name}")
        return EXIT_FAILURE
    console.print(f"[bold green]v[/bold green] Compatible with {reconciler.dialect.display_name}")
    return EXIT_OK


def cmd_import(args: argparse.Namespace) -> int:
    """Replace the authoring source with a schema document."""
    config = _load_config(args)
    if config is None:
        return EXIT_UNMANAGED
    project = Project.from_config(config)
    try:
        schema = import_schema(project, Path(args.file))
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return EXIT_FAILURE
    except ReconcileError as e:
        _print_error(e)
        return EXIT_FAILURE
    console.print(
        f"[bold green]v[/bold green] Imported {len(schema.tables)} table(s) into "
        f"[cyan]{project.source}[/cyan]"
    )
    return EXIT_OK


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-reconcile",
        description="Declarative schema reconciliation for SQL databases",
    )
    parser.add_argument("--config", help=f"Path to {CONFIG_FILENAME}")
    parser.add_argument("--profile", help="Profile to use (overrides DB_PROFILE)")
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # init command
    p_init = subparsers.add_parser("init", help="Create a starter configuration")
    p_init.add_argument("--url", help="Connection URL for the default profile")
    p_init.add_argument("--dialect", help="Dialect name when the URL is ambiguous")
    p_init.add_argument("--directory", default=".", help="Project directory")
    p_init.set_defaults(func=cmd_init)

    # introspect command
    p_introspect = subparsers.add_parser("introspect", help="Print the observed schema")
    p_introspect.add_argument("--json", action="store_true", help="Print JSON")
    p_introspect.set_defaults(func=cmd_introspect)

    # pull command
    p_pull = subparsers.add_parser("pull", help="Write the observed schema to the source")
    p_pull.set_defaults(func=cmd_pull)

    # diff command
    p_diff = subparsers.add_parser("diff", help="Show what push would change")
    p_diff.add_argument("--json", action="store_true", help="Print JSON")
    p_diff.add_argument("--transform", action="store_true", help="Rewrite SQL for the dialect")
    p_diff.set_defaults(func=cmd_diff)

    # generate command
    p_generate = subparsers.add_parser("generate", help="Write a migration file")
    p_generate.add_argument("name", help="Migration name")
    p_generate.add_argument("--transform", action="store_true", help="Rewrite SQL for the dialect")
    p_generate.set_defaults(func=cmd_generate)

    # push command
    p_push = subparsers.add_parser("push", help="Reconcile the database with the schema")
    p_push.add_argument("--dry-run", action="store_true", help="Show SQL without applying")
    p_push.add_argument("--full", action="store_true", help="With --dry-run, also show DOWN SQL")
    p_push.add_argument("--force", action="store_true", help="Apply destructive changes")
    p_push.add_argument("--yes", "-y", action="store_true", help="Answer yes to prompts")
    p_push.add_argument("--transform", action="store_true", help="Rewrite SQL for the dialect")
    p_push.set_defaults(func=cmd_push)

    # sync command
    p_sync = subparsers.add_parser("sync", help="Pull remote changes, then push local ones")
    direction = p_sync.add_mutually_exclusive_group()
    direction.add_argument("--pull-only", action="store_true", help="Only pull, don't push")
    direction.add_argument("--push-only", action="store_true", help="Only push, don't pull")
    p_sync.add_argument("--force", action="store_true", help="Overwrite local edits and apply destructive changes")
    p_sync.add_argument("--yes", "-y", action="store_true", help="Answer yes to prompts")
    p_sync.set_defaults(func=cmd_sync)

    # migrate command
    p_migrate = subparsers.add_parser("migrate", help="Apply pending migration files")
    p_migrate.add_argument("--dry-run", action="store_true", help="List pending files only")
    p_migrate.add_argument("--transform", action="store_true", help="Rewrite SQL for the dialect")
    p_migrate.set_defaults(func=cmd_migrate)

    # rollback command
    p_rollback = subparsers.add_parser("rollback", help="Reverse recent changes")
    target = p_rollback.add_mutually_exclusive_group()
    target.add_argument("--step", type=int, default=1, help="Entries to roll back")
    target.add_argument("--to", help="Roll back everything applied after this entry")
    p_rollback.add_argument("--dry-run", action="store_true", help="Show the plan only")
    p_rollback.add_argument("--full", action="store_true", help="With --dry-run, show DOWN SQL")
    p_rollback.add_argument("--yes", "-y", action="store_true", help="Answer yes to prompts")
    p_rollback.set_defaults(func=cmd_rollback)

    # status command
    p_status = subparsers.add_parser("status", help="Show migration and snapshot status")
    p_status.add_argument("--json", action="store_true", help="Print JSON")
    p_status.set_defaults(func=cmd_status)

    # validate command
    p_validate = subparsers.add_parser("validate", help="Check dialect compatibility")
    p_validate.add_argument("--transform", action="store_true", help="Rewrite SQL for the dialect")
    p_validate.set_defaults(func=cmd_validate)

    # export command
    p_export = subparsers.add_parser("export", help="Write the observed schema to a file")
    p_export.add_argument("--output", "-o", default="schema.export.json", help="Output path")
    p_export.set_defaults(func=cmd_export)

    # import command
    p_import = subparsers.add_parser("import", help="Replace the schema source")
    p_import.add_argument("file", help="Schema document (.json or .py)")
    p_import.set_defaults(func=cmd_import)

    return parser


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 success, 1 failure, 128 not a managed repository).
    """
    parser = build_parser()
    args = parser.parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
