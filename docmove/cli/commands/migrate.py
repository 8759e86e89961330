"""
Migration CLI commands for managing database migrations.
"""

import asyncio
from typing import Annotated, Optional

import typer
from rich.table import Table

from docmove.cli.output import (
    console,
    print_error,
    print_json,
    print_status_summary,
    print_success,
    print_warning,
)

migrate_app = typer.Typer(name="migrate", help="Database migration commands")

PathOption = Annotated[
    Optional[str],
    typer.Option("--path", "-p", envvar="MIGRATIONS_PATH", help="Migration directory"),
]
DatabaseOption = Annotated[
    Optional[str],
    typer.Option("--database", "-d", envvar="MONGODB_DATABASE", help="Database to migrate"),
]


def get_runner(path: Optional[str] = None, database: Optional[str] = None):
    """Get migration runner instance."""
    from docmove.core.mongo import get_database
    from docmove.migrations.runner import MigrationRunner

    return MigrationRunner(get_database(database), path)


@migrate_app.command("up")
def up(path: PathOption = None, database: DatabaseOption = None):
    """Apply pending changelogs."""

    async def _up():
        runner = get_runner(path, database)
        await runner.initialize()
        return await runner.run()

    try:
        executed = asyncio.run(_up())
    except Exception as e:
        details = {"cause": type(e.__cause__).__name__} if e.__cause__ is not None else None
        print_error(f"Migration failed: {e}", details)
        raise typer.Exit(1)

    if not executed:
        print_success("No pending changelogs to apply.")
        return

    console.print()
    print_success(f"Successfully applied {len(executed)} changelog(s):")
    for c in executed:
        console.print(f"  • [cyan]{c.version}[/cyan] - {c.description} ({c.duration}ms)")


@migrate_app.command("status")
def status(
    path: PathOption = None,
    database: DatabaseOption = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print status as JSON")] = False,
):
    """Show current migration status."""

    async def _status():
        return await get_runner(path, database).get_status()

    try:
        result = asyncio.run(_status())
    except Exception as e:
        print_error(f"Failed to get migration status: {e}")
        raise typer.Exit(1)

    if as_json:
        print_json(result)
    else:
        print_status_summary(result)


@migrate_app.command("verify")
def verify(path: PathOption = None, database: DatabaseOption = None):
    """Verify changelog checksums to detect modified sources."""

    async def _verify():
        return await get_runner(path, database).verify_checksums()

    try:
        mismatches = asyncio.run(_verify())
    except Exception as e:
        print_error(f"Verification failed: {e}")
        raise typer.Exit(1)

    if not mismatches:
        print_success("All changelog checksums are valid.")
        return

    console.print("[red]WARNING: Modified changelogs detected![/red]")
    console.print()

    table = Table(title="Checksum Mismatches", show_header=True)
    table.add_column("Version", style="red")
    table.add_column("Description", style="white")
    table.add_column("Status", style="red")

    for m in mismatches:
        table.add_row(m["version"], m["description"], "MODIFIED")

    console.print(table)
    console.print()
    print_warning("Executed changelogs must not be modified: the next run will fail.")
    raise typer.Exit(1)


@migrate_app.command("unlock")
def unlock(
    database: DatabaseOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Skip confirmation prompt"),
    ] = False,
):
    """Remove a stale migration lock left by a crashed runner."""

    if not force:
        confirm = typer.confirm(
            "Removing a lock held by a live runner allows concurrent migrations. Continue?"
        )
        if not confirm:
            print_warning("Unlock cancelled.")
            raise typer.Exit(0)

    async def _unlock():
        from docmove.core.mongo import get_database
        from docmove.migrations.lock import ChangeLockService

        db = get_database(database)
        return await ChangeLockService(db).force_release(db.name)

    try:
        removed = asyncio.run(_unlock())
    except Exception as e:
        print_error(f"Unlock failed: {e}")
        raise typer.Exit(1)

    if removed:
        print_success("Migration lock removed.")
    else:
        print_warning("No migration lock was held.")
