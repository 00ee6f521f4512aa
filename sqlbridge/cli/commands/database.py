"""Database connection and introspection CLI commands."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Tuple, TypeVar

import click
from rich.table import Table
from rich.tree import Tree

from sqlbridge.cli.utils import console, format_value, print_exception, resolve_params, run_async
from sqlbridge.config import ConnectionParams, get_config
from sqlbridge.db import ConnectionManager, DatabaseClient
from sqlbridge.exceptions import ConfigurationError, DatabaseError

T = TypeVar("T")


async def with_client(params: ConnectionParams, action: Callable[[DatabaseClient], Awaitable[T]]) -> T:
    """Connect, run ``action`` on the client and always disconnect."""
    manager = ConnectionManager()
    client = await manager.connect(params)
    try:
        return await action(client)
    finally:
        await manager.disconnect(params.uid)


@click.group(name="db")
@click.pass_context
def db_group(ctx: click.Context) -> None:
    """🗄️  Database connection management."""
    pass


@db_group.command(name="test")
@click.option("--connection", "-c", "connection", help="Specific connection to test (default: all)")
@click.pass_context
def test_connection_command(ctx: click.Context, connection: Optional[str]) -> None:
    """Test database connections."""
    try:
        config = get_config(ctx.obj.get('config'), reload=True)
        manager = ConnectionManager(config)

        console.print("[bold blue]Testing Database Connections[/bold blue]\n")

        connection = connection or ctx.obj.get('connection')
        names = [connection] if connection else list(config.connections.keys())
        failed = 0
        for name in names:
            result = run_async(manager.test_connection(manager.resolve_params(name)))
            _show_connection_result(result)
            console.print()
            failed += result['status'] != 'success'

        if failed:
            raise SystemExit(1)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


@db_group.command(name="status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """Show configured connections."""
    try:
        config = get_config(ctx.obj.get('config'), reload=True)
        status_info = ConnectionManager(config).get_connection_status()

        console.print("[bold blue]Database Connection Status[/bold blue]\n")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Connection", style="cyan")
        table.add_column("Host", style="green")
        table.add_column("Mode", style="yellow")
        table.add_column("Schema", style="white")
        table.add_column("Default", style="blue")

        for name, conn_info in status_info['connections'].items():
            params = config.connections[name]
            mode = f"pool ({params.pool_size})" if conn_info['pooled'] else "single"
            is_default = "✓" if name == status_info['default_connection'] else ""
            table.add_row(
                name,
                f"{params.host}:{params.port}/{params.database or ''}",
                mode,
                conn_info['schema'] or "public",
                is_default,
            )

        console.print(table)
        console.print(f"\nTotal: {status_info['total_configured']} configured")
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc


@db_group.command(name="structure")
@click.option("--schema", "-s", "schemas", multiple=True, help="Schema to expand (repeatable)")
@click.pass_context
def structure_command(ctx: click.Context, schemas: Tuple[str, ...]) -> None:
    """Show schemas with their tables, views, routines and triggers."""
    try:
        params = resolve_params(ctx.obj)

        async def fetch(client: DatabaseClient):
            return await client.get_structure(set(schemas) or {client.context.schema})

        structures = run_async(with_client(params, fetch))

        tree = Tree(f"[bold blue]{params.uid}[/bold blue]")
        for structure in structures:
            branch = tree.add(f"[cyan]{structure.name}[/cyan]")
            for table in structure.tables:
                icon = "👁 " if table.type == 'view' else "▦ "
                branch.add(f"{icon}{table.name} [dim]{_describe_table(table)}[/dim]")
            for routine in structure.functions + structure.procedures:
                branch.add(f"ƒ {routine.name} [dim]{routine.type.lower()}[/dim]")
            for routine in structure.trigger_functions:
                branch.add(f"ƒ {routine.name} [dim]trigger function[/dim]")
            for trigger in structure.triggers:
                branch.add(f"⚡ {trigger.name} [dim]{trigger.timing} {trigger.event} ON {trigger.table}[/dim]")

        console.print(tree)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


@db_group.command(name="columns")
@click.argument("schema")
@click.argument("table_name")
@click.pass_context
def columns_command(ctx: click.Context, schema: str, table_name: str) -> None:
    """Describe the columns of SCHEMA.TABLE_NAME."""
    try:
        params = resolve_params(ctx.obj)

        async def fetch(client: DatabaseClient):
            columns = await client.get_table_columns(schema, table_name)
            indexes = await client.get_table_indexes(schema, table_name)
            return columns, indexes

        columns, indexes = run_async(with_client(params, fetch))

        if not columns:
            console.print(f"[yellow]No columns found for {schema}.{table_name}[/yellow]")
            return

        keys = {index.column: index.key_marker for index in indexes}

        console.print(f"[bold blue]Table Structure: {schema}.{table_name}[/bold blue]\n")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("#", style="dim", width=4)
        table.add_column("Name", style="cyan")
        table.add_column("Type", style="green")
        table.add_column("Length", style="white")
        table.add_column("Nullable", style="yellow")
        table.add_column("Default", style="white")
        table.add_column("Key", style="blue")

        for column in columns:
            type_name = f"{column.type}[]" if column.is_array else column.type
            table.add_row(
                str(column.order or ''),
                column.name,
                format_value(type_name),
                format_value(column.length),
                "Yes" if column.nullable else "No",
                format_value(column.default),
                keys.get(column.name, ''),
            )

        console.print(table)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Database Error", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc


def _describe_table(table: Any) -> str:
    parts = []
    if table.rows is not None and table.rows >= 0:
        parts.append(f"~{int(table.rows)} rows")
    if table.size:
        parts.append(f"{table.size} bytes")
    return ", ".join(parts)


def _show_connection_result(result: dict) -> None:
    status_color = "green" if result['status'] == 'success' else "red"
    console.print(f"Connection: [cyan]{result['connection']}[/cyan]")
    console.print(f"Status: [{status_color}]{result['status'].upper()}[/{status_color}]")
    console.print(f"Message: {result.get('message', 'No message provided')}")
    if result.get('server_version'):
        console.print(f"Server Version: {result['server_version']}")
    console.print(f"Response Time: {result.get('response_time', 0)} ms")
