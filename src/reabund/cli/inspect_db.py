"""
Inspect command for read distribution databases.

Shows where the reads of one reference taxon get classified, which genomes
send reads to a given node, and overall database statistics.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from reabund.cli.utils import exit_with_error, setup_logging
from reabund.core.constants import UNCLASSIFIED_TAXID
from reabund.core.distribution import ReadDistributionModel, load_model
from reabund.core.exceptions import ReabundError
from reabund.core.taxonomy import TaxonomyTree, load_taxonomy

app = typer.Typer(
    name="inspect",
    help="Inspect read distribution databases",
    no_args_is_help=True,
)

console = Console()

DISTRIBUTION_OPTION = typer.Option(
    ...,
    "--distribution", "-d",
    help="Distribution database (JSON or legacy kmer_distrib)",
    exists=True,
    dir_okay=False,
)
TAXONOMY_OPTION = typer.Option(
    None,
    "--taxonomy", "-t",
    help="Kraken taxonomy directory, for names (required for kmer_distrib files)",
    exists=True,
    file_okay=False,
)


def _load(distribution: Path, taxonomy: Path | None) -> tuple[ReadDistributionModel, TaxonomyTree | None]:
    tree = load_taxonomy(taxonomy) if taxonomy is not None else None
    return load_model(distribution, tree), tree


def _label(node: int, tree: TaxonomyTree | None) -> tuple[str, str]:
    """Name and rank code of a node, when a taxonomy is available."""
    if node == UNCLASSIFIED_TAXID:
        return "unclassified", "U"
    if tree is not None and node in tree:
        taxon = tree.get(node)
        return taxon.name, taxon.level_id
    return "", ""


@app.command(name="taxon")
def inspect_taxon(
    taxid: int = typer.Option(..., "--taxid", "-i", help="Reference taxon to show"),
    distribution: Path = DISTRIBUTION_OPTION,
    taxonomy: Path | None = TAXONOMY_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """
    Show the distribution entry of one reference taxon.

    Lists every node the taxon's simulated reads were classified at, from
    the root down, with the probability of landing there.
    """
    setup_logging(verbose, console)
    try:
        model, tree = _load(distribution, taxonomy)
    except ReabundError as e:
        exit_with_error(console, e, verbose)

    entry = model.get(taxid)
    if entry is None:
        console.print(f"[red]Error: taxon {taxid} has no entry in {distribution}[/red]")
        raise typer.Exit(code=1) from None

    table = Table(
        title=f"Taxon {taxid}: {entry.total_reads:,} training reads",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Node", justify="right", style="cyan")
    table.add_column("Rank")
    table.add_column("Name")
    table.add_column("Probability", justify="right")

    for node in (*entry.lineage, UNCLASSIFIED_TAXID):
        mass = entry.probability_at(node)
        if mass == 0.0:
            continue
        name, level_id = _label(node, tree)
        table.add_row(str(node), level_id, name, f"{mass:.6f}")

    console.print(table)


@app.command(name="node")
def inspect_node(
    taxid: int = typer.Option(..., "--taxid", "-i", help="Classification node to show"),
    distribution: Path = DISTRIBUTION_OPTION,
    taxonomy: Path | None = TAXONOMY_OPTION,
    top: int = typer.Option(20, "--top", "-n", help="Number of genomes to list", min=1),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """
    Show the reference genomes whose reads get classified at a node.
    """
    setup_logging(verbose, console)
    try:
        model, tree = _load(distribution, taxonomy)
    except ReabundError as e:
        exit_with_error(console, e, verbose)

    genomes = model.genomes_classified_at(taxid)
    if not genomes:
        console.print(f"[yellow]No genome sends reads to node {taxid}[/yellow]")
        raise typer.Exit(code=0)

    table = Table(
        title=f"Node {taxid}: {len(genomes):,} genomes",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Genome", justify="right", style="cyan")
    table.add_column("Name")
    table.add_column("Probability", justify="right")

    for genome, mass in genomes[:top]:
        name, _ = _label(genome, tree)
        table.add_row(str(genome), name, f"{mass:.6f}")

    console.print(table)
    if len(genomes) > top:
        console.print(f"[dim]... and {len(genomes) - top} more (use --top)[/dim]")


@app.command(name="summary")
def inspect_summary(
    distribution: Path = DISTRIBUTION_OPTION,
    taxonomy: Path | None = TAXONOMY_OPTION,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """
    Show statistics of a distribution database.
    """
    setup_logging(verbose, console)
    try:
        model, _ = _load(distribution, taxonomy)
    except ReabundError as e:
        exit_with_error(console, e, verbose)

    n_entries = len(model)
    self_masses = [e.probability_at(e.taxid) for e in model]
    unclassified = [e.unclassified_mass for e in model]
    training_reads = sum(e.total_reads for e in model)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Reference taxa", f"{n_entries:,}")
    table.add_row("Training reads", f"{training_reads:,}")
    if n_entries:
        table.add_row("Mean P(classified at own taxon)", f"{sum(self_masses) / n_entries:.4f}")
        table.add_row("Mean P(unclassified)", f"{sum(unclassified) / n_entries:.4f}")
    if model.metadata.read_length is not None:
        table.add_row("Read length", str(model.metadata.read_length))
    if model.metadata.kmer_length is not None:
        table.add_row("k-mer length", str(model.metadata.kmer_length))
    if model.metadata.created:
        table.add_row("Created", model.metadata.created)

    console.print(table)
