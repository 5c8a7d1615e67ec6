"""
Shared CLI utilities for reabund commands.

Provides common functionality used across CLI modules.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from reabund.core.exceptions import ReabundError


@contextmanager
def spinner_progress(
    description: str,
    console: Console | None = None,
    quiet: bool = False,
) -> Generator[Progress, None, None]:
    """Context manager for spinner-style progress display.

    The spinner is suppressed when quiet mode is enabled.

    Args:
        description: Task description to display.
        console: Rich Console instance. If None and not quiet, creates one.
        quiet: If True, suppress the progress display entirely.

    Yields:
        Progress instance (even when quiet, for API consistency).
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


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Route library logging through Rich.

    Data-quality warnings from the estimator are shown by default; --verbose
    adds progress details.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    handler = RichHandler(console=console, show_path=False, markup=False)
    root = logging.getLogger("reabund")
    root.handlers = [handler]
    root.setLevel(level)
    root.propagate = False


def extract_sample_name(path: Path, suffixes: tuple[str, ...] = ()) -> str:
    """Extract sample name from a report file path.

    Removes common suffixes from the file name to get a clean sample name.

    Example:
        >>> from pathlib import Path
        >>> extract_sample_name(Path("sample_001.kreport"))
        'sample_001'
        >>> extract_sample_name(Path("sample.k2report.txt"))
        'sample'
    """
    name = path.name
    if name.endswith(".gz"):
        name = name[:-3]

    default_suffixes = (
        ".txt",
        ".tsv",
        ".kreport2",
        ".kreport",
        ".k2report",
        ".report",
        ".kraken2",
        ".kraken",
        "_report",
    )
    changed = True
    while changed:
        changed = False
        for suffix in default_suffixes + suffixes:
            if name.endswith(suffix) and len(name) > len(suffix):
                name = name[: -len(suffix)]
                changed = True

    return name


def exit_with_error(console: Console, error: ReabundError, verbose: bool = False) -> None:
    """Print a ReabundError with its suggestion and exit with code 1."""
    console.print(f"\n[red]Error: {error.message}[/red]")
    if error.suggestion:
        console.print(f"[dim]{error.suggestion}[/dim]")
    if verbose:
        console.print_exception()
    raise typer.Exit(code=1) from None


class QuietConsole:
    """Console wrapper that suppresses output in quiet mode.

    Wraps a Rich Console instance and conditionally suppresses print output
    when quiet mode is enabled. All other console methods are delegated to
    the wrapped instance.

    Example:
        >>> console = Console()
        >>> qc = QuietConsole(console, quiet=True)
        >>> qc.print("This won't be shown")  # Suppressed
    """

    def __init__(self, console: Console, quiet: bool = False):
        self._console = console
        self._quiet = quiet

    @property
    def console(self) -> Console:
        """Access the underlying Rich Console instance."""
        return self._console

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Print to console unless quiet mode is enabled."""
        if not self._quiet:
            self._console.print(*args, **kwargs)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._console, name)
