"""Main CLI entry point for SQLBridge."""

from __future__ import annotations

import click
from rich.panel import Panel
from rich.text import Text

from sqlbridge import __version__
from sqlbridge.cli.commands import register_commands
from sqlbridge.cli.commands.configuration import config_group
from sqlbridge.cli.commands.database import db_group
from sqlbridge.cli.commands.query import query_command
from sqlbridge.cli.utils import console, setup_logging


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option("--config", type=click.Path(exists=True), help="Path to configuration file")
@click.option("--connection", "-c", help="Connection profile name")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    config: str,
    connection: str,
    verbose: bool,
) -> None:
    """SQLBridge - query, inspect and alter relational databases."""
    ctx.ensure_object(dict)
    ctx.obj.update(
        {
            "config": config,
            "connection": connection,
            "verbose": verbose,
        }
    )
    setup_logging(verbose)

    if version:
        console.print(f"SQLBridge v{__version__}")
        return

    if ctx.invoked_subcommand is None:
        show_dashboard()


# Connections first, then execution, then environment tools.
COMMAND_REGISTRY = [
    db_group,
    query_command,
    config_group,
]

register_commands(cli, COMMAND_REGISTRY)


def show_dashboard() -> None:
    """Display the command overview."""
    title = Text("SQLBridge", style="bold blue")
    subtitle = Text("A dialect-abstracting database client", style="italic")

    dashboard_content = Text()
    dashboard_content.append("🗄️  db test | status      Check connection profiles\n", style="bold")
    dashboard_content.append("🌳 db structure         Browse schemas and objects\n", style="bold")
    dashboard_content.append("📋 db columns           Describe a table\n", style="bold")
    dashboard_content.append("🔎 query                Run SQL\n", style="bold")
    dashboard_content.append("⚙️  config               Manage profiles\n", style="bold")
    dashboard_content.append("\nRun 'sqlbridge --help' for available commands", style="dim")

    panel = Panel(
        dashboard_content,
        title=title,
        subtitle=subtitle,
        border_style="blue",
        padding=(1, 2),
    )

    console.print(panel)


if __name__ == "__main__":
    cli()
