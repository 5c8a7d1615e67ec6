"""
Shared pytest fixtures for reabund tests.

Most tests use the same small world: a root with one genus (10) holding
two species (11 and 12). Reads from species 11 land at the genus 20% of
the time, reads from species 12 40% of the time.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from reabund.core.distribution import DistributionEntry, ReadDistributionModel
from reabund.core.parsers import ClassificationReport
from reabund.core.taxonomy import TaxonomyTree


# =============================================================================
# Taxonomy Fixtures
# =============================================================================


SCENARIO_RECORDS = [
    (1, None, "no rank", "root"),
    (10, 1, "genus", "Genus"),
    (11, 10, "species", "Genus alpha"),
    (12, 10, "species", "Genus beta"),
]


@pytest.fixture
def scenario_tree() -> TaxonomyTree:
    """Root -> genus 10 -> species 11 and 12."""
    return TaxonomyTree.from_records(SCENARIO_RECORDS)


@pytest.fixture
def two_genus_tree() -> TaxonomyTree:
    """Root with genus 10 (species 11, 12), genus 20 (species 21) and genus 30 (no species)."""
    return TaxonomyTree.from_records([
        *SCENARIO_RECORDS,
        (20, 1, "genus", "Othergenus"),
        (21, 20, "species", "Othergenus gamma"),
        (30, 1, "genus", "Emptygenus"),
    ])


@pytest.fixture
def taxonomy_dir(tmp_path: Path) -> Path:
    """Kraken-style taxonomy directory with nodes.dmp and names.dmp."""
    directory = tmp_path / "taxonomy"
    directory.mkdir()
    nodes = [
        "1\t|\t1\t|\tno rank\t|\t\t|",
        "10\t|\t1\t|\tgenus\t|\t\t|",
        "11\t|\t10\t|\tspecies\t|\t\t|",
        "12\t|\t10\t|\tspecies\t|\t\t|",
    ]
    names = [
        "1\t|\troot\t|\t\t|\tscientific name\t|",
        "10\t|\tGenus\t|\t\t|\tscientific name\t|",
        "11\t|\tGenus alpha\t|\t\t|\tscientific name\t|",
        "11\t|\talpha\t|\t\t|\tsynonym\t|",
        "12\t|\tGenus beta\t|\t\t|\tscientific name\t|",
    ]
    (directory / "nodes.dmp").write_text("\n".join(nodes) + "\n")
    (directory / "names.dmp").write_text("\n".join(names) + "\n")
    return directory


# =============================================================================
# Distribution Model Fixtures
# =============================================================================


@pytest.fixture
def scenario_entries() -> list[DistributionEntry]:
    return [
        DistributionEntry(
            taxid=11, lineage=(1, 10, 11), masses={11: 0.8, 10: 0.2}, total_reads=100
        ),
        DistributionEntry(
            taxid=12, lineage=(1, 10, 12), masses={12: 0.6, 10: 0.4}, total_reads=100
        ),
    ]


@pytest.fixture
def scenario_model(scenario_entries: list[DistributionEntry]) -> ReadDistributionModel:
    return ReadDistributionModel(scenario_entries)


@pytest.fixture
def scenario_counts(tmp_path: Path) -> Path:
    """kraken_cnts training file that reproduces scenario_model."""
    path = tmp_path / "database100mers.kraken_cnts"
    path.write_text(
        "seq_a1\t11\t\t11:50 10:10\n"
        "seq_a2\t11\t\t11:30 10:10\n"
        "seq_b1\t12\t\t12:60 10:40\n"
        "seq_unmapped\t0\t\t0:25\n"
    )
    return path


# =============================================================================
# Classification Report Fixtures
# =============================================================================


@pytest.fixture
def scenario_report() -> ClassificationReport:
    """Genus 100 direct reads, species 50 and 30, 20 unclassified."""
    return ClassificationReport(
        sample="sample",
        direct_reads={1: 0, 10: 100, 11: 50, 12: 30},
        clade_reads={1: 180, 10: 180, 11: 50, 12: 30},
        unclassified_reads=20,
        names={1: "root", 10: "Genus", 11: "Genus alpha", 12: "Genus beta"},
        level_ids={1: "R", 10: "G", 11: "S", 12: "S"},
    )


SCENARIO_KREPORT_LINES = [
    (" 10.00", 20, 20, "U", 0, "unclassified"),
    (" 90.00", 180, 0, "R", 1, "root"),
    (" 90.00", 180, 100, "G", 10, "  Genus"),
    (" 25.00", 50, 50, "S", 11, "    Genus alpha"),
    (" 15.00", 30, 30, "S", 12, "    Genus beta"),
]


@pytest.fixture
def write_kreport(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing Kraken reports from (pct, clade, direct, rank, taxid, name) rows."""

    def _write(name: str = "sample.kreport", rows: list[tuple] | None = None) -> Path:
        path = tmp_path / name
        lines = ["\t".join(str(v) for v in row) for row in (rows or SCENARIO_KREPORT_LINES)]
        path.write_text("\n".join(lines) + "\n")
        return path

    return _write


@pytest.fixture
def scenario_kreport(write_kreport: Callable[..., Path]) -> Path:
    return write_kreport()
