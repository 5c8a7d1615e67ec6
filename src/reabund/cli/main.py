"""
Main CLI entry point for reabund.

Provides subcommands for each stage of abundance re-estimation:
- build: Build a read distribution model from simulated-read classifications
- inspect: Look up distribution entries in a model
- estimate: Re-estimate abundance from Kraken reports
"""

from __future__ import annotations

import typer
from rich import print as rprint
from rich.console import Console

from reabund import __version__

app = typer.Typer(
    name="reabund",
    help="Bayesian re-estimation of taxon abundance from k-mer classifier reports",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        rprint(f"reabund version {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """
    reabund: Bayesian re-estimation of taxon abundance.

    Redistributes reads that a k-mer classifier left at ancestor nodes down
    to a target rank, using a model of where each reference genome's reads
    get classified.
    """


# Import subcommands
from reabund.cli import build, estimate, inspect_db  # noqa: E402

# Register subcommands
app.add_typer(build.app, name="build")
app.add_typer(inspect_db.app, name="inspect")
app.add_typer(estimate.app, name="estimate")


if __name__ == "__main__":
    app()
