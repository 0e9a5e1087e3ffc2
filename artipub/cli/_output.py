"""Shared console, logging setup and error reporting for CLI commands."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from artipub.core.errors import PublishError

console = Console(stderr=True)


def configure_logging(verbose: int, default_level: str = "WARNING") -> None:
    """Route log records through Rich; ``-v`` is INFO, ``-vv`` is DEBUG."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.getLevelName(default_level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)


def report_error(exc: PublishError) -> None:
    """Print a fatal error in the form the user sees before a non-zero exit."""
    console.print(f"[bold red]{type(exc).__name__}:[/bold red] {escape(str(exc))}", highlight=False)
