"""Shared CLI utilities for SQLBridge."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Optional, TypeVar

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from sqlbridge.config import ConnectionParams, EnvironmentSettings, get_config

T = TypeVar("T")

# Single console instance reused across CLI modules
console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route log records through rich.

    ``--verbose`` forces DEBUG; otherwise ``SQLBRIDGE_LOG_LEVEL`` decides.
    """
    level = "DEBUG" if verbose else EnvironmentSettings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


def run_async(coroutine: Awaitable[T]) -> T:
    """Run a coroutine to completion from a synchronous click command."""
    return asyncio.run(coroutine)


def resolve_params(ctx_obj: dict, name: Optional[str] = None) -> ConnectionParams:
    """Connection parameters for ``name`` or the ``--connection`` option.

    Raises:
        ConfigurationError: If the configuration cannot be loaded.
        DatabaseError: If the profile does not exist.
    """
    from sqlbridge.db import ConnectionManager

    config = get_config(ctx_obj.get('config'), reload=True)
    return ConnectionManager(config).resolve_params(name or ctx_obj.get('connection'))


def format_value(value: Any) -> str:
    """Render a cell value for rich tables."""
    if value is None:
        return "[dim]NULL[/dim]"
    return escape(str(value))


def print_exception(message: str, error: Exception, verbose: bool = False) -> None:
    """Render a formatted exception message.

    Args:
        message: Friendly context message to display before the exception.
        error: Original exception instance.
        verbose: When True, render the full traceback for debugging.
    """
    console.print(f"[red]{message}: {error}[/red]")
    if verbose:
        console.print_exception()
