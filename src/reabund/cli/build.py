"""
Build command for read distribution models.

Turns classification outcomes of simulated reads into a distribution
database that 'reabund estimate' can reuse for every sample classified
against the same Kraken database.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from reabund.cli.utils import (
    QuietConsole,
    exit_with_error,
    setup_logging,
    spinner_progress,
)
from reabund.core.distribution import (
    DistributionBuilder,
    DistributionMetadata,
    save_model,
    write_kmer_distrib,
)
from reabund.core.exceptions import ReabundError
from reabund.core.parsers import KrakenReportParser, read_kraken_counts, read_training_reads
from reabund.core.taxonomy import TaxonomyTree, load_taxonomy
from reabund.models.config import BuildConfig

app = typer.Typer(
    name="build",
    help="Build read distribution models from simulated-read classifications",
    no_args_is_help=True,
)

console = Console()


def load_tree(taxonomy: Path | None, tree_report: Path | None) -> TaxonomyTree:
    """Load a taxonomy from a Kraken taxonomy directory or a Kraken report."""
    if taxonomy is not None:
        return load_taxonomy(taxonomy)
    if tree_report is not None:
        return KrakenReportParser(tree_report).build_tree()
    console.print("[red]Error: one of --taxonomy or --tree-report is required[/red]")
    raise typer.Exit(code=1) from None


@app.command(name="distribution")
def build_distribution(
    counts: Path = typer.Option(
        ...,
        "--counts", "-c",
        help="Training tallies: kraken_cnts file or per-read TSV",
        exists=True,
        dir_okay=False,
    ),
    output: Path = typer.Option(
        ...,
        "--output", "-o",
        help="Output distribution database (JSON)",
    ),
    taxonomy: Path | None = typer.Option(
        None,
        "--taxonomy", "-t",
        help="Kraken taxonomy directory containing nodes.dmp (and names.dmp)",
        exists=True,
        file_okay=False,
    ),
    tree_report: Path | None = typer.Option(
        None,
        "--tree-report",
        help="Kraken report (ideally with --report-zero-counts) to take the taxonomy from",
        exists=True,
        dir_okay=False,
    ),
    training_format: str | None = typer.Option(
        None,
        "--format", "-f",
        help="Training file format: kraken-cnts or reads-tsv (default: kraken-cnts)",
    ),
    read_length: int | None = typer.Option(
        None,
        "--read-length", "-l",
        help="Simulated read length, stored as provenance",
        min=1,
    ),
    kmer_length: int | None = typer.Option(
        None,
        "--kmer-length", "-k",
        help="k-mer length of the Kraken database, stored as provenance",
        min=1,
    ),
    min_reads: int | None = typer.Option(
        None,
        "--min-reads",
        help="Minimum simulated reads per taxon (default: 1)",
        min=1,
    ),
    export_kmer_distrib: Path | None = typer.Option(
        None,
        "--export-kmer-distrib",
        help="Also write the model in the legacy Bracken kmer_distrib format",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        help="YAML config file with a 'build' section",
        exists=True,
        dir_okay=False,
    ),
    threads: int | None = typer.Option(
        None,
        "--threads", "-p",
        help="Worker threads for building entries",
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
    Build a read distribution database.

    Each reference taxon's simulated reads are tallied by the node the
    classifier put them at, then normalized into probabilities.

    Example:

        reabund build distribution \\
            --counts database100mers.kraken_cnts \\
            --taxonomy /path/to/kraken_db/taxonomy \\
            --read-length 100 --kmer-length 35 \\
            --output database100mers.json
    """
    out = QuietConsole(console, quiet=quiet)
    setup_logging(verbose, console)

    overrides = {
        "training_format": training_format,
        "read_length": read_length,
        "kmer_length": kmer_length,
        "min_training_reads": min_reads,
        "threads": threads,
    }
    try:
        base = BuildConfig.from_yaml(config_file) if config_file else BuildConfig()
        config = BuildConfig(
            **{**base.model_dump(), **{k: v for k, v in overrides.items() if v is not None}}
        )
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Error: invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from None

    out.print("\n[bold blue]reabund distribution build[/bold blue]\n")
    out.print(f"  Training file: {counts} ({config.training_format})")
    out.print(f"  Threads:       {config.threads}")

    try:
        with spinner_progress("Loading taxonomy...", console, quiet):
            tree = load_tree(taxonomy, tree_report)
        out.print(f"  Taxonomy:      {len(tree):,} nodes")

        with spinner_progress("Reading training tallies...", console, quiet):
            if config.training_format == "reads-tsv":
                training = read_training_reads(counts)
            else:
                training = read_kraken_counts(counts)
        out.print(f"  Reference taxa: {len(training):,}")

        metadata = DistributionMetadata(
            read_length=config.read_length,
            kmer_length=config.kmer_length,
            source=str(counts),
        )
        builder = DistributionBuilder(tree, min_reads=config.min_training_reads)
        with spinner_progress("Building distributions...", console, quiet):
            report = builder.build_all(training, threads=config.threads, metadata=metadata)

        save_model(report.model, output)
        if export_kmer_distrib is not None:
            write_kmer_distrib(report.model, export_kmer_distrib)
    except ReabundError as e:
        exit_with_error(console, e, verbose)
    except FileNotFoundError as e:
        console.print(f"\n[red]File not found: {e}[/red]")
        raise typer.Exit(code=1) from None

    out.print(f"\n[green]Wrote {len(report.model):,} distribution entries to {output}[/green]")
    if report.skipped:
        out.print(
            f"[yellow]{len(report.skipped)} taxa excluded for lack of training reads[/yellow]"
        )
    if export_kmer_distrib is not None:
        out.print(f"  Legacy export: {export_kmer_distrib}")
