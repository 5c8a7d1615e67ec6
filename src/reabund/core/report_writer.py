"""
Serialization of abundance estimation results.

The tabular layout follows the classic Bracken output so downstream tools
keep working: one row per target-rank taxon, sorted by estimated reads
(descending, ties by taxid ascending), followed by a summary row holding
the reads that could not be resolved at the target rank.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import ClassVar

import polars as pl

from reabund.core.constants import ABUNDANCE_COLUMNS, UNRESOLVED_ROW_NAME
from reabund.core.io_utils import write_dataframe
from reabund.models.abundance import EstimationResult
from reabund.models.config import OutputFormatName

logger = logging.getLogger(__name__)


class ReportWriter:
    """
    Writes EstimationResult objects as TSV, CSV, Parquet or JSON.

    Example:
        >>> writer = ReportWriter()
        >>> writer.write(result, Path("sample.bracken"), "tsv")
    """

    SCHEMA: ClassVar[dict[str, pl.DataType]] = {
        "name": pl.Utf8,
        "taxonomy_id": pl.Int64,
        "taxonomy_lvl": pl.Utf8,
        "lineage": pl.Utf8,
        "kraken_assigned_reads": pl.Int64,
        "direct_reads": pl.Int64,
        "added_reads": pl.Int64,
        "new_est_reads": pl.Int64,
        "fraction_total_reads": pl.Float64,
    }

    def __init__(self, include_unresolved: bool = True, precision: int = 5) -> None:
        self.include_unresolved = include_unresolved
        self.precision = precision

    def to_dataframe(self, result: EstimationResult) -> pl.DataFrame:
        """Build the output table for one result."""
        estimates = sorted(result.estimates, key=lambda e: (-e.estimated_reads, e.taxid))
        rows = [
            {
                "name": e.name,
                "taxonomy_id": e.taxid,
                "taxonomy_lvl": e.level_id,
                "lineage": e.lineage,
                "kraken_assigned_reads": e.clade_reads,
                "direct_reads": e.direct_reads,
                "added_reads": e.added_reads,
                "new_est_reads": e.estimated_reads,
                "fraction_total_reads": round(e.fraction_of_total, self.precision),
            }
            for e in estimates
        ]

        if self.include_unresolved:
            total = result.summary.total_reads
            rows.append({
                "name": UNRESOLVED_ROW_NAME,
                "taxonomy_id": None,
                "taxonomy_lvl": result.summary.level,
                "lineage": "",
                "kraken_assigned_reads": None,
                "direct_reads": None,
                "added_reads": None,
                "new_est_reads": result.unresolved_reads,
                "fraction_total_reads": (
                    round(result.unresolved_reads / total, self.precision) if total else 0.0
                ),
            })

        return pl.DataFrame(rows, schema=self.SCHEMA).select(list(ABUNDANCE_COLUMNS))

    def write(
        self,
        result: EstimationResult,
        path: Path,
        output_format: OutputFormatName = "tsv",
    ) -> None:
        """
        Write one result to `path`.

        JSON output contains the full result including summary statistics
        and warnings; the tabular formats contain the estimates only.
        """
        if output_format == "json":
            path.write_text(result.model_dump_json(indent=2))
        else:
            write_dataframe(self.to_dataframe(result), path, output_format)
        logger.debug("Wrote %d estimates to %s", len(result.estimates), path)
