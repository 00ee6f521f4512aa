"""Raw query CLI command."""

from __future__ import annotations

import json
from typing import List

import click
from rich.table import Table

from sqlbridge.cli.commands.database import with_client
from sqlbridge.cli.utils import console, format_value, print_exception, resolve_params, run_async
from sqlbridge.db import DatabaseClient, ExecuteOptions, QueryResult
from sqlbridge.exceptions import ConfigurationError, DatabaseError


@click.command(name="query")
@click.argument("sql")
@click.option("--schema", "-s", help="Default schema for the statements")
@click.option("--details", is_flag=True, help="Merge column, index and foreign key details into fields")
@click.option("--nest", is_flag=True, help="Key row values by table.column")
@click.option("--no-split", "no_split", is_flag=True, help="Send SQL as one statement")
@click.option(
    "--format", "output_format",
    type=click.Choice(["table", "json", "csv"]),
    default="table",
    help="Output format",
)
@click.pass_context
def query_command(
    ctx: click.Context,
    sql: str,
    schema: str,
    details: bool,
    nest: bool,
    no_split: bool,
    output_format: str,
) -> None:
    """🔎 Execute SQL and show every statement's result."""
    options = ExecuteOptions(nest=nest, details=details, split=not no_split)

    try:
        params = resolve_params(ctx.obj)

        async def execute(client: DatabaseClient):
            if schema:
                await client.use(schema)
            return await client.raw(sql, options)

        outcome = run_async(with_client(params, execute))
    except ConfigurationError as exc:
        console.print(f"[red]Configuration Error: {exc}[/red]")
        raise SystemExit(1) from exc
    except DatabaseError as exc:
        print_exception("Query failed", exc, ctx.obj.get('verbose', False))
        raise SystemExit(1) from exc

    results: List[QueryResult] = outcome if isinstance(outcome, list) else [outcome]

    if output_format == "json":
        click.echo(json.dumps([result.to_dict() for result in results], indent=2, default=str))
        return

    for index, result in enumerate(results, start=1):
        if output_format == "csv":
            click.echo(result.to_dataframe().to_csv(index=False), nl=False)
        else:
            _print_result(index, result, len(results) > 1)


def _print_result(index: int, result: QueryResult, numbered: bool) -> None:
    prefix = f"[{index}] " if numbered else ""

    if result.report is not None:
        console.print(
            f"{prefix}[green]{result.report.command}[/green] "
            f"({result.report.row_count} row(s), {result.duration} ms)"
        )
        return

    table = Table(show_header=True, header_style="bold magenta")
    columns = list(result.rows[0].keys()) if result.rows else [f.alias for f in result.fields]
    for column in columns:
        table.add_column(column, style="cyan")
    for row in result.rows or []:
        table.add_row(*(format_value(row.get(column)) for column in columns))

    console.print(table)
    console.print(f"{prefix}[dim]{result.row_count} row(s) in {result.duration} ms[/dim]")

    if result.keys:
        console.print("[bold]Foreign keys:[/bold]")
        for key in result.keys:
            console.print(f"  {key.table}.{key.field} → {key.ref_table}.{key.ref_field}")
