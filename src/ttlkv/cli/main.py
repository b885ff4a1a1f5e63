"""
CLI for ttlkv.

Commands:
    ttlkv get KEY - Show a live entry
    ttlkv set KEY VALUE - Store a value
    ttlkv getdel KEY - Show and remove a live entry
    ttlkv delete KEY... - Remove entries
    ttlkv incr KEY / ttlkv decr KEY - Adjust an entry's counter
    ttlkv config - Show current configuration
    ttlkv version - Print version
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Annotated, Generator, Optional

import orjson
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ttlkv import __version__
from ttlkv.config import Settings, clear_settings_cache, get_settings
from ttlkv.exceptions import KVError
from ttlkv.logging import setup_logging
from ttlkv.store import KVStore, open_store
from ttlkv.types import Entry

app = typer.Typer(
    name="ttlkv",
    help="ttlkv - embedded key-value store with expiry and counters",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

EXIT_MISS = 1
EXIT_ERROR = 2


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValueError:
        return None


@app.callback()
def main_options(
    ctx: typer.Context,
    db: Annotated[
        Optional[Path],
        typer.Option("--db", "-d", help="Database file (defaults to KV_DB_PATH)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log store activity to stderr"),
    ] = False,
    log_file: Annotated[
        Optional[Path],
        typer.Option("--log-file", help="Append JSON-lines log records (defaults to KV_LOG_FILE)"),
    ] = None,
) -> None:
    """Global options shared by every command."""
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Check the KV_* environment variables and .env file."
        )
        raise typer.Exit(EXIT_ERROR)

    setup_logging(
        log_level="DEBUG" if verbose else settings.KV_LOG_LEVEL,
        log_file=log_file if log_file is not None else settings.KV_LOG_FILE,
    )
    ctx.obj = {"settings": settings, "db": db}


@contextmanager
def _store(ctx: typer.Context) -> Generator[KVStore, None, None]:
    """Open the store for one command and report faults uniformly."""
    settings: Settings = ctx.obj["settings"]
    db: Path | None = ctx.obj["db"]

    try:
        with open_store(db if db is not None else settings.KV_DB_PATH, settings=settings) as kv:
            yield kv
    except KVError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(EXIT_ERROR)


def _print_entry(key: str, entry: Entry) -> None:
    """Render an entry as a two-column table."""
    table = Table(title=escape(key), show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    data = orjson.dumps(entry.data).decode("utf-8")
    table.add_row("data", escape(data))
    table.add_row("counter", str(entry.counter))
    table.add_row(
        "expires_at",
        entry.expires_at.isoformat() if entry.expires_at else "[dim]never[/dim]",
    )
    table.add_row("created_at", entry.created_at.isoformat())
    table.add_row("updated_at", entry.updated_at.isoformat())

    console.print(table)


def _print_or_miss(key: str, entry: Entry | None) -> None:
    if entry is None:
        error_console.print(f"[yellow]Not found:[/yellow] {escape(key)}")
        raise typer.Exit(EXIT_MISS)
    _print_entry(key, entry)


@app.command()
def get(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Entry key")],
) -> None:
    """Show the live entry for KEY."""
    with _store(ctx) as kv:
        entry = kv.get(key)
    _print_or_miss(key, entry)


@app.command("set")
def set_(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Entry key")],
    value: Annotated[str, typer.Argument(help="Value to store")],
    as_json: Annotated[
        bool,
        typer.Option("--json", "-j", help="Parse VALUE as JSON instead of storing a string"),
    ] = False,
    ttl: Annotated[
        Optional[float],
        typer.Option("--ttl", "-t", help="Lifetime in seconds"),
    ] = None,
    expires_at: Annotated[
        Optional[datetime],
        typer.Option("--expires-at", "-e", help="Absolute expiry (UTC if no offset)"),
    ] = None,
    replace: Annotated[
        bool,
        typer.Option("--replace", "-r", help="Overwrite an existing entry"),
    ] = False,
) -> None:
    """Store VALUE under KEY.

    Fails with exit code 1 if KEY already holds a live entry and --replace
    was not given.
    """
    data: object = value
    if as_json:
        try:
            data = orjson.loads(value)
        except orjson.JSONDecodeError as e:
            raise typer.BadParameter(f"Invalid JSON: {e}", param_hint="VALUE")

    with _store(ctx) as kv:
        stored = kv.set(key, data, replace=replace, ttl=ttl, expires_at=expires_at)

    if not stored:
        error_console.print(f"[yellow]Exists:[/yellow] {escape(key)} (use --replace to overwrite)")
        raise typer.Exit(EXIT_MISS)

    console.print(f"[green]Stored[/green] {escape(key)}")


@app.command()
def getdel(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Entry key")],
) -> None:
    """Show the live entry for KEY and remove it."""
    with _store(ctx) as kv:
        entry = kv.get_and_delete(key)
    _print_or_miss(key, entry)


@app.command()
def delete(
    ctx: typer.Context,
    keys: Annotated[list[str], typer.Argument(help="Keys to delete")],
) -> None:
    """Delete one or more keys. Missing keys are ignored."""
    with _store(ctx) as kv:
        kv.delete_many(keys)
    console.print(f"[green]Deleted[/green] {len(keys)} key(s)")


@app.command()
def incr(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Entry key")],
) -> None:
    """Increment the counter of KEY."""
    with _store(ctx) as kv:
        entry = kv.increment(key)
    _print_or_miss(key, entry)


@app.command()
def decr(
    ctx: typer.Context,
    key: Annotated[str, typer.Argument(help="Entry key")],
) -> None:
    """Decrement the counter of KEY."""
    with _store(ctx) as kv:
        entry = kv.decrement(key)
    _print_or_miss(key, entry)


@app.command()
def config(ctx: typer.Context) -> None:
    """Show current configuration."""
    settings: Settings = ctx.obj["settings"]
    db: Path | None = ctx.obj["db"]

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        table.add_row(key, str(value))
    if db is not None:
        table.add_row("--db", str(db))

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"ttlkv version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
