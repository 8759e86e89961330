"""CLI entry point for the docmove migration engine."""

from typing import Annotated, Optional

import typer
from rich.console import Console

from docmove.cli.commands import migrate
from docmove.log.logging import setup_logging

# Version from pyproject.toml
__version__ = "1.0.0"

app = typer.Typer(
    name="docmove",
    help="docmove - Versioned changelog migrations for MongoDB",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(migrate.migrate_app, name="migrate", help="Database migration commands")

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"docmove version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
    mongodb: Annotated[
        Optional[str],
        typer.Option("--mongodb", "-m", envvar="MONGODB", help="MongoDB connection string"),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="Log level (DEBUG, INFO, WARNING...)"),
    ] = None,
) -> None:
    """
    docmove CLI.

    Apply versioned changelogs to a MongoDB database exactly once.

    [bold]Quick Start:[/bold]

        # Apply pending changelogs from db/migration
        docmove migrate up

        # Show applied and pending changelogs
        docmove migrate status

        # Detect modified changelogs
        docmove migrate verify

    [bold]Environment Variables:[/bold]

        MONGODB           - MongoDB connection string
        MONGODB_DATABASE  - Database to migrate
        MIGRATIONS_PATH   - Migration directory
    """
    from docmove.core.config import settings

    if mongodb:
        settings.mongodb = mongodb

    config = settings.logging_config
    if log_level:
        config["log_level"] = log_level.upper()
    setup_logging(config)


if __name__ == "__main__":
    app()
