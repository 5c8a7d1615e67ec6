"""
Parsers for classifier output files.

Handles the Kraken report of a sample (per-node read counts, plus the tree
its indentation encodes) and the training tallies used to build read
distribution models: the Bracken ``kraken_cnts`` file and a plain per-read
TSV of (source_taxid, classified_taxid) pairs.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

import polars as pl

from reabund.core.constants import (
    NO_RANK_CODE,
    ROOT_TAXID,
    UNCLASSIFIED_CODE,
    UNCLASSIFIED_TAXID,
)
from reabund.core.exceptions import DistributionError, MalformedReportError, TaxonomyError
from reabund.core.taxonomy import Rank, Taxon, TaxonomyTree, derive_level_id

logger = logging.getLogger(__name__)


class ReportRow(NamedTuple):
    """One line of a Kraken report."""

    pct: float
    clade_reads: int
    direct_reads: int
    level_id: str
    taxid: int
    name: str
    depth: int
    line_num: int


@dataclass(frozen=True)
class ClassificationReport:
    """
    Per-node read counts of one sample.

    Attributes:
        sample: Sample name (report file stem by default).
        direct_reads: Taxid -> reads classified exactly at that node.
        clade_reads: Taxid -> reads at the node or any descendant, as
            reported by the classifier.
        unclassified_reads: Reads the classifier left unclassified.
        names: Taxid -> name as written in the report.
        level_ids: Taxid -> rank code as written in the report.
        source: Where the counts came from, used in error messages.
    """

    sample: str
    direct_reads: dict[int, int]
    clade_reads: dict[int, int] = field(default_factory=dict)
    unclassified_reads: int = 0
    names: dict[int, str] = field(default_factory=dict)
    level_ids: dict[int, str] = field(default_factory=dict)
    source: str | None = None

    @property
    def classified_reads(self) -> int:
        return sum(self.direct_reads.values())

    @property
    def total_reads(self) -> int:
        """All reads in the report, classified or not."""
        return self.classified_reads + self.unclassified_reads

    def direct(self, taxid: int) -> int:
        return self.direct_reads.get(taxid, 0)

    def check_against(self, tree: TaxonomyTree) -> None:
        """
        Ensure every node of the report exists in `tree`.

        Raises:
            MalformedReportError: On the first unknown taxid.
        """
        missing = sorted(t for t in self.direct_reads if t not in tree)
        if missing:
            examples = ", ".join(str(t) for t in missing[:5])
            raise MalformedReportError(
                self.source or f"sample {self.sample}",
                f"{len(missing)} taxids are not in the taxonomy (e.g. {examples})",
            )


class KrakenReportParser:
    """
    Parser for Kraken2 report files (kraken2 --report).

    Expected columns (tab-separated):
        percentage, clade_reads, direct_reads, rank_code, taxid, name

    The 8-column variant written with --report-minimizer-data is also
    accepted; rank code, taxid and name are always the last three columns.
    Names are indented by two spaces per tree level.

    Example:
        >>> parser = KrakenReportParser(Path("sample.kreport"))
        >>> tree = parser.build_tree()
        >>> report = parser.parse()
        >>> report.direct(562)
        1200
    """

    def __init__(self, report_path: Path, sample: str | None = None) -> None:
        self.report_path = report_path
        self.sample = sample or report_path.name.split(".")[0]
        self._rows: list[ReportRow] | None = None

    def _fail(self, reason: str, line_num: int | None = None) -> MalformedReportError:
        return MalformedReportError(str(self.report_path), reason, line_num)

    def rows(self) -> list[ReportRow]:
        """Parse and cache the report lines."""
        if self._rows is not None:
            return self._rows

        if not self.report_path.exists():
            msg = f"Classification report not found: {self.report_path}"
            raise FileNotFoundError(msg)

        rows: list[ReportRow] = []
        seen: set[int] = set()
        with self.report_path.open() as f:
            for line_num, line in enumerate(f, start=1):
                line = line.rstrip("\r\n")
                if not line.strip() or line.startswith(("#", "%")):
                    continue
                row = self._parse_line(line, line_num, first=not rows)
                if row.taxid in seen:
                    raise self._fail(f"taxid {row.taxid} appears more than once", line_num)
                seen.add(row.taxid)
                rows.append(row)

        if not rows:
            raise self._fail("report contains no records")

        self._rows = rows
        return rows

    def _parse_line(self, line: str, line_num: int, first: bool) -> ReportRow:
        fields = line.split("\t")

        if first and fields[0] in ("C", "U"):
            raise self._fail(
                "this is Kraken per-read output, not a Kraken report", line_num
            )
        if len(fields) == 2:
            raise self._fail("mpa-style reports are not supported", line_num)
        if len(fields) not in (6, 8):
            raise self._fail(f"expected 6 or 8 columns, got {len(fields)}", line_num)

        try:
            pct = float(fields[0])
        except ValueError:
            raise self._fail(f"percentage {fields[0]!r} is not a number", line_num) from None

        counts = []
        for column, value in (("clade_reads", fields[1]), ("direct_reads", fields[2])):
            try:
                count = int(value)
            except ValueError:
                raise self._fail(f"{column} {value!r} is not an integer", line_num) from None
            if count < 0:
                raise self._fail(f"{column} is negative ({count})", line_num)
            counts.append(count)

        try:
            taxid = int(fields[-2])
        except ValueError:
            raise self._fail(f"taxid {fields[-2]!r} is not an integer", line_num) from None

        level_id = fields[-3].strip() or NO_RANK_CODE
        raw_name = fields[-1]
        name = raw_name.lstrip(" ")
        depth = (len(raw_name) - len(name)) // 2

        return ReportRow(pct, counts[0], counts[1], level_id, taxid, name.strip(), depth, line_num)

    @staticmethod
    def _is_unclassified(row: ReportRow) -> bool:
        return (
            row.level_id == UNCLASSIFIED_CODE
            or row.taxid == UNCLASSIFIED_TAXID
            or row.name == "unclassified"
        )

    def parse(self, tree: TaxonomyTree | None = None) -> ClassificationReport:
        """
        Build the ClassificationReport of the sample.

        Args:
            tree: Taxonomy the report must be consistent with. When None,
                consistency with the report's own tree is implied.

        Raises:
            MalformedReportError: If the file is not a usable Kraken report
                or references taxids missing from `tree`.
        """
        direct: dict[int, int] = {}
        clade: dict[int, int] = {}
        names: dict[int, str] = {}
        level_ids: dict[int, str] = {}
        unclassified = 0

        for row in self.rows():
            if self._is_unclassified(row):
                unclassified += row.direct_reads
                continue
            direct[row.taxid] = row.direct_reads
            clade[row.taxid] = row.clade_reads
            names[row.taxid] = row.name
            level_ids[row.taxid] = row.level_id

        report = ClassificationReport(
            sample=self.sample,
            direct_reads=direct,
            clade_reads=clade,
            unclassified_reads=unclassified,
            names=names,
            level_ids=level_ids,
            source=str(self.report_path),
        )
        if tree is not None:
            report.check_against(tree)

        logger.debug(
            "Parsed %s: %d nodes, %d classified, %d unclassified reads",
            self.report_path, len(direct), report.classified_reads, unclassified,
        )
        return report

    def build_tree(self) -> TaxonomyTree:
        """
        Reconstruct the taxonomy encoded by the report's indentation.

        Unranked nodes ('-') get Kraken-style sub-rank codes derived from
        their parent, e.g. a strain below species becomes 'S1'.

        Raises:
            MalformedReportError: If the indentation does not describe a
                single rooted tree.
        """
        taxa: list[Taxon] = []
        # stack[d] holds (taxid, level_id) of the current node at depth d
        stack: list[tuple[int, str]] = []

        for row in self.rows():
            if self._is_unclassified(row):
                continue

            if row.depth > len(stack):
                raise self._fail(
                    f"indentation jumps from depth {len(stack) - 1} to {row.depth}",
                    row.line_num,
                )
            del stack[row.depth:]

            if row.depth == 0:
                if taxa:
                    raise self._fail("report has more than one root node", row.line_num)
                parent_id, parent_level = None, None
            else:
                parent_id, parent_level = stack[-1]

            if row.level_id == NO_RANK_CODE:
                level_id = derive_level_id(Rank.NO_RANK, parent_level)
            else:
                level_id = row.level_id

            rank = Rank.from_code(level_id)
            if parent_id is None and (rank is Rank.NO_RANK or row.taxid == ROOT_TAXID):
                rank, level_id = Rank.ROOT, Rank.ROOT.code

            taxa.append(Taxon(row.taxid, parent_id, rank, row.name, level_id))
            stack.append((row.taxid, level_id))

        if not taxa:
            raise self._fail("report contains only unclassified reads")

        try:
            return TaxonomyTree(taxa)
        except TaxonomyError as e:
            raise self._fail(e.message) from e


# =============================================================================
# Training tallies
# =============================================================================


def read_kraken_counts(path: Path) -> dict[int, Counter[int]]:
    """
    Read a Bracken ``kraken_cnts`` file of simulated read classifications.

    Each line describes one reference sequence::

        seqid<TAB>taxid<TAB><TAB>node:count node:count ...

    Sequences of the same taxid are aggregated. Sequences that could not be
    mapped to a taxid (taxid 0) are skipped.

    Returns:
        Taxid -> Counter of node -> simulated read count.
    """
    tallies: dict[int, Counter[int]] = {}
    n_sequences = 0

    with path.open() as f:
        for line_num, line in enumerate(f, start=1):
            fields = line.rstrip("\n").split("\t")
            if len(fields) < 4:
                continue
            try:
                taxid = int(fields[1])
            except ValueError as e:
                raise DistributionError(
                    f"Bad taxid {fields[1]!r} in {path} at line {line_num}"
                ) from e
            if taxid == UNCLASSIFIED_TAXID:
                continue

            n_sequences += 1
            tally = tallies.setdefault(taxid, Counter())
            for item in fields[3].split():
                node, _, count = item.partition(":")
                try:
                    tally[int(node)] += int(count)
                except ValueError as e:
                    raise DistributionError(
                        f"Bad node:count pair {item!r} in {path} at line {line_num}"
                    ) from e

    logger.info("Read %d sequences of %d taxa from %s", n_sequences, len(tallies), path)
    return tallies


def read_training_reads(path: Path) -> dict[int, Counter[int]]:
    """
    Read per-read training outcomes from a TSV file.

    The file needs a header with columns ``source_taxid`` (the genome the
    simulated read was drawn from) and ``classified_taxid`` (where the
    classifier put it; 0 for unclassified).

    Returns:
        Taxid -> Counter of node -> simulated read count.
    """
    df = pl.read_csv(path, separator="\t")
    required = {"source_taxid", "classified_taxid"}
    if not required.issubset(df.columns):
        raise DistributionError(
            f"Training file {path} lacks columns: {', '.join(sorted(required - set(df.columns)))}",
            suggestion="The first line must be a header naming source_taxid and classified_taxid.",
        )

    grouped = (
        df.select(
            pl.col("source_taxid").cast(pl.Int64),
            pl.col("classified_taxid").cast(pl.Int64),
        )
        .group_by(["source_taxid", "classified_taxid"])
        .agg(pl.len().alias("n_reads"))
        .sort(["source_taxid", "classified_taxid"])
    )

    tallies: dict[int, Counter[int]] = {}
    for source, classified, n_reads in grouped.iter_rows():
        tallies.setdefault(int(source), Counter())[int(classified)] += int(n_reads)
    return tallies
