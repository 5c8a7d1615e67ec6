"""
Estimate command for corrected taxon abundances.

Re-estimates read counts at a target rank from one or more Kraken reports,
using a read distribution database built for the same Kraken database.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from reabund.cli.utils import (
    QuietConsole,
    exit_with_error,
    extract_sample_name,
    setup_logging,
    spinner_progress,
)
from reabund.core.constants import LEVEL_PLURALS
from reabund.core.distribution import ReadDistributionModel, is_kmer_distrib, load_model
from reabund.core.estimator import AbundanceEstimator
from reabund.core.exceptions import ReabundError
from reabund.core.io_utils import FORMAT_SUFFIXES
from reabund.core.parsers import KrakenReportParser
from reabund.core.report_writer import ReportWriter
from reabund.core.taxonomy import load_taxonomy
from reabund.models.abundance import EstimationResult
from reabund.models.config import EstimationConfig

app = typer.Typer(
    name="estimate",
    help="Re-estimate taxon abundances from Kraken reports",
    no_args_is_help=True,
)

console = Console()


def _output_paths(reports: list[Path], output: Path, suffix: str) -> list[Path]:
    """One output file per report; a directory is used for several reports."""
    if len(reports) == 1 and not output.is_dir():
        output.parent.mkdir(parents=True, exist_ok=True)
        return [output]
    output.mkdir(parents=True, exist_ok=True)
    return [output / f"{extract_sample_name(report)}{suffix}" for report in reports]


def _print_summary(out: QuietConsole, result: EstimationResult) -> None:
    s = result.summary
    table = Table(title=f"Sample {s.sample}", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Total reads", f"{s.total_reads:,}")
    table.add_row("Unclassified reads", f"{s.unclassified_reads:,}")
    plural = LEVEL_PLURALS.get(s.level, "taxa")
    table.add_row(f"{plural.capitalize()} with reads", f"{s.n_taxa_in_sample:,}")
    table.add_row("Taxa kept", f"{s.n_taxa_kept:,}")
    if s.threshold:
        table.add_row(f"Taxa removed (< {s.threshold} reads)", f"{s.n_taxa_removed:,}")
    table.add_row("Reads at level", f"{s.reads_at_level:,}")
    table.add_row("Reads distributed", f"{s.reads_distributed:,}")
    table.add_row("Reads not distributed", f"{s.reads_not_distributed:,}")
    if s.threshold:
        table.add_row("Reads reallocated", f"{s.reads_reallocated:,}")
    table.add_row("Unresolved reads", f"{result.unresolved_reads:,}")
    out.print(table)

    for warning in result.warnings:
        out.print(f"[yellow]Warning: {warning}[/yellow]")


@app.command(name="abundance")
def estimate_abundance(
    reports: list[Path] = typer.Argument(
        ...,
        help="Kraken report file(s)",
        exists=True,
        dir_okay=False,
    ),
    distribution: Path = typer.Option(
        ...,
        "--distribution", "-d",
        help="Distribution database (JSON or legacy kmer_distrib)",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Output file, or directory when several reports are given",
    ),
    level: str | None = typer.Option(
        None,
        "--level", "-l",
        help="Target rank, e.g. S, G, S1 or species (default: S)",
    ),
    threshold: int | None = typer.Option(
        None,
        "--threshold", "-t",
        help="Minimum estimated reads per reported taxon (default: 0)",
        min=0,
    ),
    output_format: str | None = typer.Option(
        None,
        "--format", "-f",
        help="Output format: tsv, csv, parquet or json (default: tsv)",
    ),
    taxonomy: Path | None = typer.Option(
        None,
        "--taxonomy",
        help="Kraken taxonomy directory; by default the tree is taken from each report",
        exists=True,
        file_okay=False,
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        help="YAML config file with an 'estimation' section",
        exists=True,
        dir_okay=False,
    ),
    threads: int | None = typer.Option(
        None,
        "--threads", "-p",
        help="Samples estimated concurrently",
        min=1,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose output",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet", "-q",
        help="Suppress progress output",
    ),
) -> None:
    """
    Re-estimate abundances at a target rank.

    Reads classified above the target rank are redistributed to the
    taxa below them, in proportion to how likely each taxon's reads are
    to end up at that node.

    Example:

        reabund estimate abundance sample.kreport \\
            --distribution database100mers.json \\
            --level S --threshold 10 \\
            --output sample.bracken
    """
    out = QuietConsole(console, quiet=quiet)
    setup_logging(verbose, console)

    overrides = {
        "level": level,
        "threshold": threshold,
        "output_format": output_format,
        "threads": threads,
    }
    try:
        base = EstimationConfig.from_yaml(config_file) if config_file else EstimationConfig()
        config = EstimationConfig(
            **{**base.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Error: invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from None

    out.print("\n[bold blue]reabund abundance estimation[/bold blue]\n")
    out.print(f"  Reports:      {len(reports)}")
    out.print(f"  Distribution: {distribution}")
    out.print(f"  Level:        {config.level}")
    out.print(f"  Threshold:    {config.threshold}")

    writer = ReportWriter()
    paths = _output_paths(reports, output, FORMAT_SUFFIXES[config.output_format])
    parsers = [KrakenReportParser(r, sample=extract_sample_name(r)) for r in reports]

    try:
        if taxonomy is not None:
            with spinner_progress("Loading taxonomy and distributions...", console, quiet):
                tree = load_taxonomy(taxonomy)
                model = load_model(distribution, tree)
                estimator = AbundanceEstimator(tree, model, config.level, config.threshold)
            with spinner_progress("Estimating abundances...", console, quiet):
                parsed = [p.parse(tree) for p in parsers]
                results = estimator.estimate_many(parsed, threads=config.threads)
        else:
            # Legacy kmer distribution files are resolved against each report's tree
            shared: ReadDistributionModel | None = None
            if not is_kmer_distrib(distribution):
                with spinner_progress("Loading distributions...", console, quiet):
                    shared = load_model(distribution)
            results = []
            with spinner_progress("Estimating abundances...", console, quiet):
                for parser in parsers:
                    tree = parser.build_tree()
                    model = shared if shared is not None else load_model(distribution, tree)
                    estimator = AbundanceEstimator(tree, model, config.level, config.threshold)
                    results.append(estimator.estimate(parser.parse(tree)))

        for result, path in zip(results, paths, strict=True):
            writer.write(result, path, config.output_format)
    except ReabundError as e:
        exit_with_error(console, e, verbose)
    except FileNotFoundError as e:
        console.print(f"\n[red]File not found: {e}[/red]")
        raise typer.Exit(code=1) from None

    for result, path in zip(results, paths, strict=True):
        out.print()
        _print_summary(out, result)
        out.print(f"[green]Wrote {len(result.estimates):,} estimates to {path}[/green]")
