"""
Command line interface for minorm.

Entity types are addressed as ``MODULE:CLASS``; the module must be importable
from the current environment.

Entry point::

    minorm ddl myapp.models:Person --dialect sqlite
    minorm describe myapp.models:Person
    minorm create-table myapp.models:Person --database sqlite:///people.db
"""

from __future__ import annotations

import importlib
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from minorm.datasource import create_data_source
from minorm.dialect import get_dialect
from minorm.errors import OrmError
from minorm.logging import configure_logging
from minorm.metadata import entity_info
from minorm.schema import create_table, create_table_sql
from minorm.settings import get_settings
from minorm.transaction import transaction

app = typer.Typer(
    name="minorm",
    help="minorm: DDL and table management for mapped entity types.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)


# ── Helpers ──────────────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("minorm")
        except PackageNotFoundError:
            from minorm import __version__ as v
        typer.echo(f"minorm {v}")
        raise typer.Exit()


def _load_entity(target: str) -> type:
    """Import ``MODULE:CLASS`` (``CLASS`` may be dotted)."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise typer.BadParameter(f"expected MODULE:CLASS, got {target!r}")
    try:
        obj: Any = importlib.import_module(module_name)
    except ImportError as e:
        raise typer.BadParameter(f"cannot import module {module_name!r}: {e}") from e
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise typer.BadParameter(f"{module_name!r} has no attribute {attr!r}") from e
    if not isinstance(obj, type):
        raise typer.BadParameter(f"{target!r} is not a class")
    return obj


def _fail(error: OrmError) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


# ── Commands ─────────────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override MINORM_LOG_LEVEL"),
) -> None:
    """minorm CLI: inspect entity mappings and create their tables."""
    settings = get_settings()
    configure_logging(level=log_level or settings.log_level, json_format=settings.json_logs)


@app.command()
def ddl(
    entity: str = typer.Argument(..., help="Entity type as MODULE:CLASS"),
    dialect: str = typer.Option("standard", "--dialect", "-D", help="standard, h2 or sqlite"),
) -> None:
    """Print the CREATE TABLE statement of an entity type."""
    entity_type = _load_entity(entity)
    try:
        sql = create_table_sql(entity_type, get_dialect(dialect))
    except OrmError as e:
        _fail(e)
    console.print(sql, markup=False, highlight=False, soft_wrap=True)


@app.command()
def describe(
    entity: str = typer.Argument(..., help="Entity type as MODULE:CLASS"),
) -> None:
    """Show the mapped properties of an entity type."""
    entity_type = _load_entity(entity)
    try:
        info = entity_info(entity_type)
    except OrmError as e:
        _fail(e)

    table = Table(title=f"{entity_type.__name__} → {info.table_name}")
    table.add_column("Property", style="cyan")
    table.add_column("Column")
    table.add_column("Type")
    table.add_column("Nullable")
    table.add_column("Id")
    table.add_column("Generated")
    for prop in info.properties:
        table.add_row(
            prop.name,
            prop.column_name,
            prop.sql_type,
            "yes" if prop.nullable else "no",
            "✓" if prop.is_id else "",
            "✓" if prop.is_generated else "",
        )
    console.print(table)


@app.command("create-table")
def create_table_command(
    entity: str = typer.Argument(..., help="Entity type as MODULE:CLASS"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or SQLite path"),
    dialect: str | None = typer.Option(None, "--dialect", "-D", help="Force a dialect"),
) -> None:
    """Create the table of an entity type in a database."""
    settings = get_settings()
    entity_type = _load_entity(entity)
    try:
        source = create_data_source(
            database or settings.database_url,
            dialect=dialect or settings.dialect,
        )
        try:
            transaction(source, lambda: create_table(entity_type))
        finally:
            close = getattr(source, "close", None)
            if close is not None:
                close()
    except OrmError as e:
        _fail(e)
    console.print(
        f"[green]✓[/green] Created table [bold]{entity_info(entity_type).table_name}[/bold]"
    )


__all__ = ["app"]
