"""
Shared CLI utilities for micrite commands.

Provides logging setup, progress display and error reporting used across
CLI modules.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from micrite.core.exceptions import MicriteError

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure the 'micrite' logger namespace.

    Console output is INFO by default, DEBUG with verbose and WARNING with
    quiet. A log file, if given, always records DEBUG.
    """
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO

    app_logger = logging.getLogger("micrite")
    app_logger.setLevel(logging.DEBUG if log_file else level)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    app_logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        app_logger.addHandler(file_handler)

    app_logger.propagate = False


@contextmanager
def spinner_progress(
    description: str,
    console: Console | None = None,
    quiet: bool = False,
) -> Generator[Progress, None, None]:
    """Context manager for spinner-style progress display.

    The spinner is suppressed when quiet mode is enabled.

    Example:
        >>> with spinner_progress("Scanning reads...", console, quiet):
        ...     result = scanner.scan(source, fasta_path)
    """
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console if not quiet else None,
        disable=quiet,
    ) as progress:
        progress.add_task(description=description, total=None)
        yield progress


def exit_with_error(console: Console, error: MicriteError) -> typer.Exit:
    """Print a micrite error with its suggestion and build an exit code 1.

    Usage: ``raise exit_with_error(console, e) from None``
    """
    logging.getLogger("micrite").debug("Fatal %s error", error.kind.value, exc_info=error)
    console.print(f"\n[red]Error:[/red] {escape(error.message)}")
    if error.suggestion:
        console.print(f"\n[dim]{escape(error.suggestion)}[/dim]")
    return typer.Exit(code=1)


class QuietConsole:
    """Console wrapper that suppresses output in quiet mode.

    Example:
        >>> qc = QuietConsole(Console(), quiet=True)
        >>> qc.print("This won't be shown")
    """

    def __init__(self, console: Console, quiet: bool = False):
        self._console = console
        self._quiet = quiet

    @property
    def console(self) -> Console:
        """The wrapped Console, for output that ignores quiet mode."""
        return self._console

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console unless quiet mode is enabled."""
        if not self._quiet:
            self._console.print(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._console, name)
