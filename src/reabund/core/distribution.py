"""
Read distribution model: where do reads from a genome get classified?

For each reference taxon g the model holds a probability distribution over
the nodes a read truly drawn from g ends up at after lowest-common-ancestor
classification: g itself, one of its ancestors, or unclassified. The model
is learned from classification outcomes of simulated reads, persisted as a
JSON database, and shared read-only by every estimation.

The legacy Bracken kmer distribution text format
(``mapped_taxid<TAB>genome:mapped:total ...``) can be read and written for
compatibility with existing databases.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from reabund.core.constants import (
    DISTRIBUTION_FORMAT_VERSION,
    DISTRIBUTION_SUM_TOLERANCE,
    KMER_DISTRIB_HEADER,
    UNCLASSIFIED_TAXID,
)
from reabund.core.exceptions import (
    DistributionError,
    InsufficientTrainingDataError,
    InvalidDistributionEntryError,
)
from reabund.core.taxonomy import TaxonomyTree

logger = logging.getLogger(__name__)

# Training outcomes for one taxon: node -> count, or one node per read
Outcomes = Mapping[int, int] | Iterable[int]


class DistributionEntry(BaseModel):
    """
    Classification distribution of reads originating from one taxon.

    Attributes:
        taxid: Reference taxon the reads were drawn from.
        lineage: Root-to-taxon path, used to check that mass only sits on
            the taxon or its ancestors.
        masses: Node taxid -> probability. Taxid 0 is the unclassified
            sentinel. Nodes with zero mass are omitted.
        total_reads: Number of simulated reads the entry was learned from.
    """

    taxid: int
    lineage: tuple[int, ...]
    masses: dict[int, float]
    total_reads: int = Field(ge=0)

    model_config = {"frozen": True}

    def probability_at(self, node: int) -> float:
        return self.masses.get(node, 0.0)

    @property
    def unclassified_mass(self) -> float:
        return self.masses.get(UNCLASSIFIED_TAXID, 0.0)

    def check(self) -> None:
        """
        Verify the entry invariants.

        Raises:
            InvalidDistributionEntryError: If a mass is outside [0, 1], the
                masses do not sum to 1, or mass sits on a node that is not
                the taxon, one of its ancestors, or the unclassified sentinel.
        """
        if not self.lineage or self.lineage[-1] != self.taxid:
            raise InvalidDistributionEntryError(
                self.taxid, "lineage must end at the taxon itself"
            )

        allowed = set(self.lineage)
        allowed.add(UNCLASSIFIED_TAXID)
        for node, mass in self.masses.items():
            if not math.isfinite(mass) or mass < 0.0 or mass > 1.0:
                raise InvalidDistributionEntryError(
                    self.taxid, f"mass {mass} at node {node} is outside [0, 1]"
                )
            if node not in allowed:
                raise InvalidDistributionEntryError(
                    self.taxid, f"mass {mass:.6f} assigned to non-ancestor node {node}"
                )

        total = math.fsum(self.masses.values())
        if abs(total - 1.0) > DISTRIBUTION_SUM_TOLERANCE:
            raise InvalidDistributionEntryError(
                self.taxid, f"masses sum to {total:.8f}, expected 1.0"
            )

    def check_against(self, tree: TaxonomyTree) -> None:
        """
        Verify that the entry fits `tree`: the taxon exists and all mass
        sits on its ancestors in that tree.

        Raises:
            InvalidDistributionEntryError: On the first mismatch.
        """
        if self.taxid not in tree:
            raise InvalidDistributionEntryError(self.taxid, "taxon is not in the taxonomy")
        for node in sorted(self.masses):
            if node != UNCLASSIFIED_TAXID and not tree.is_ancestor(node, self.taxid):
                raise InvalidDistributionEntryError(
                    self.taxid, f"mass assigned to node {node}, not an ancestor in the taxonomy"
                )


class DistributionMetadata(BaseModel):
    """Provenance of a distribution database."""

    read_length: int | None = None
    kmer_length: int | None = None
    source: str | None = None
    created: str | None = None

    model_config = {"frozen": True}


class DistributionDatabase(BaseModel):
    """On-disk JSON schema of a ReadDistributionModel."""

    format_version: int = DISTRIBUTION_FORMAT_VERSION
    metadata: DistributionMetadata = Field(default_factory=DistributionMetadata)
    entries: list[DistributionEntry] = Field(default_factory=list)


class ReadDistributionModel:
    """
    Immutable mapping from reference taxid to DistributionEntry.

    Every entry is validated on construction, so a model that exists is
    known to be normalized and ancestor-only.

    Example:
        >>> model = ReadDistributionModel([entry_s1, entry_s2])
        >>> model.probability(11, 10)
        0.2
    """

    def __init__(
        self,
        entries: Iterable[DistributionEntry],
        metadata: DistributionMetadata | None = None,
    ) -> None:
        self._entries: dict[int, DistributionEntry] = {}
        for entry in entries:
            entry.check()
            if entry.taxid in self._entries:
                raise InvalidDistributionEntryError(entry.taxid, "duplicate entry")
            self._entries[entry.taxid] = entry
        self.metadata = metadata or DistributionMetadata()
        self._by_node: dict[int, list[tuple[int, float]]] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, taxid: object) -> bool:
        return taxid in self._entries

    def __iter__(self) -> Iterator[DistributionEntry]:
        for taxid in sorted(self._entries):
            yield self._entries[taxid]

    def get(self, taxid: int) -> DistributionEntry | None:
        return self._entries.get(taxid)

    def probability(self, taxid: int, node: int) -> float | None:
        """P(read from `taxid` is classified at `node`); None if no entry."""
        entry = self._entries.get(taxid)
        if entry is None:
            return None
        return entry.probability_at(node)

    def genomes_classified_at(self, node: int) -> list[tuple[int, float]]:
        """
        Genomes with reads landing at `node`, by descending mass.

        This is the per-node view used by the legacy kmer distribution
        files and by 'reabund inspect node'.
        """
        if self._by_node is None:
            index: dict[int, list[tuple[int, float]]] = {}
            for entry in self._entries.values():
                for mapped, mass in entry.masses.items():
                    if mass > 0:
                        index.setdefault(mapped, []).append((entry.taxid, mass))
            self._by_node = index
        return sorted(self._by_node.get(node, []), key=lambda x: (-x[1], x[0]))

    def to_database(self) -> DistributionDatabase:
        return DistributionDatabase(metadata=self.metadata, entries=list(self))


# =============================================================================
# Building
# =============================================================================


@dataclass
class BuildReport:
    """Result of building a model for many taxa."""

    model: ReadDistributionModel
    skipped: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class DistributionBuilder:
    """
    Learns distribution entries from simulated-read classification outcomes.

    Args:
        tree: Taxonomy used to check that outcomes are ancestor-only.
        min_reads: Minimum number of simulated reads required per taxon.

    Example:
        >>> builder = DistributionBuilder(tree)
        >>> entry = builder.build_entry(11, {11: 80, 10: 20})
        >>> entry.masses
        {11: 0.8, 10: 0.2}
    """

    def __init__(self, tree: TaxonomyTree, min_reads: int = 1) -> None:
        if min_reads < 1:
            msg = f"min_reads must be at least 1, got {min_reads}"
            raise ValueError(msg)
        self.tree = tree
        self.min_reads = min_reads

    def build_entry(self, taxid: int, outcomes: Outcomes) -> DistributionEntry:
        """
        Tally outcomes for one taxon and normalize them into an entry.

        Args:
            taxid: Reference taxon the simulated reads came from.
            outcomes: Node -> read count mapping, or an iterable with the
                node of each read. Node 0 means unclassified.

        Raises:
            InsufficientTrainingDataError: Fewer than `min_reads` reads.
            InvalidDistributionEntryError: Negative counts, unknown taxon,
                or reads classified outside the taxon's lineage.
        """
        if isinstance(outcomes, Mapping):
            counts = {int(node): int(n) for node, n in outcomes.items()}
        else:
            counts = dict(Counter(int(node) for node in outcomes))

        for node, n in counts.items():
            if n < 0:
                raise InvalidDistributionEntryError(
                    taxid, f"negative read count {n} at node {node}"
                )

        n_reads = sum(counts.values())
        if n_reads < self.min_reads:
            raise InsufficientTrainingDataError(taxid, n_reads)

        if taxid not in self.tree:
            raise InvalidDistributionEntryError(taxid, "taxon is not in the taxonomy")

        entry = DistributionEntry(
            taxid=taxid,
            lineage=tuple(self.tree.ancestors(taxid)),
            masses={node: n / n_reads for node, n in sorted(counts.items()) if n > 0},
            total_reads=n_reads,
        )
        entry.check()
        return entry

    def build_all(
        self,
        training: Mapping[int, Outcomes],
        threads: int = 1,
        metadata: DistributionMetadata | None = None,
    ) -> BuildReport:
        """
        Build entries for every taxon in `training`.

        Taxa without enough reads are excluded with a warning. Any invalid
        entry aborts the whole build, since it means the training data and
        taxonomy disagree.

        Args:
            training: Taxid -> outcomes for that taxon.
            threads: Worker threads; entries are independent of each other.
            metadata: Provenance stored with the model.
        """
        entries: list[DistributionEntry] = []
        skipped: list[int] = []
        warnings: list[str] = []

        def _record_skip(error: InsufficientTrainingDataError) -> None:
            skipped.append(error.taxid)
            message = f"Taxon {error.taxid} excluded: {error.n_reads} training reads"
            warnings.append(message)
            logger.warning(message)

        if threads <= 1:
            for taxid in sorted(training):
                try:
                    entries.append(self.build_entry(taxid, training[taxid]))
                except InsufficientTrainingDataError as e:
                    _record_skip(e)
        else:
            with ThreadPoolExecutor(max_workers=threads) as executor:
                futures = {
                    executor.submit(self.build_entry, taxid, outcomes): taxid
                    for taxid, outcomes in training.items()
                }
                for future in as_completed(futures):
                    try:
                        entries.append(future.result())
                    except InsufficientTrainingDataError as e:
                        _record_skip(e)

        skipped.sort()
        if metadata is None:
            metadata = DistributionMetadata(
                created=datetime.now(timezone.utc).isoformat(timespec="seconds"),
            )
        model = ReadDistributionModel(sorted(entries, key=lambda e: e.taxid), metadata)
        logger.info(
            "Built distribution model: %d taxa, %d skipped", len(model), len(skipped)
        )
        return BuildReport(model=model, skipped=skipped, warnings=warnings)


# =============================================================================
# Persistence
# =============================================================================


def is_kmer_distrib(path: Path) -> bool:
    """True if `path` is a legacy Bracken kmer distribution file."""
    with path.open() as f:
        return f.readline().startswith("mapped_taxid")


def save_model(model: ReadDistributionModel, path: Path) -> None:
    """Write a model as a JSON distribution database."""
    path.write_text(model.to_database().model_dump_json())


def load_model(
    path: Path,
    tree: TaxonomyTree | None = None,
) -> ReadDistributionModel:
    """
    Load a distribution database, validating every entry.

    JSON databases are self-describing; when `tree` is given, every entry is
    also checked against it, so `tree` must be the full taxonomy. Legacy
    Bracken kmer distribution files are detected by their header line and
    need a taxonomy to recover lineages.

    Raises:
        FileNotFoundError: If the file does not exist.
        InvalidDistributionEntryError: If any entry is corrupt or does not
            fit `tree`.
        DistributionError: If the file cannot be parsed at all.
    """
    if not path.exists():
        msg = f"Distribution database not found: {path}"
        raise FileNotFoundError(msg)

    if is_kmer_distrib(path):
        if tree is None:
            raise DistributionError(
                f"{path} is a kmer distribution file and needs a taxonomy to load",
                suggestion="Pass --taxonomy or rebuild the database with 'reabund build'.",
            )
        return load_kmer_distrib(path, tree)

    try:
        database = DistributionDatabase.model_validate_json(path.read_text())
    except ValidationError as e:
        raise DistributionError(
            f"Could not parse distribution database {path}: {e.error_count()} errors",
            suggestion="The file may be truncated; rebuild it with 'reabund build'.",
        ) from e

    if database.format_version != DISTRIBUTION_FORMAT_VERSION:
        raise DistributionError(
            f"Unsupported distribution database version {database.format_version}",
            suggestion="Rebuild the database with this version of reabund.",
        )

    model = ReadDistributionModel(database.entries, database.metadata)
    if tree is not None:
        for entry in model:
            entry.check_against(tree)
    logger.info("Loaded %d distribution entries from %s", len(model), path)
    return model


def load_kmer_distrib(path: Path, tree: TaxonomyTree) -> ReadDistributionModel:
    """
    Read a legacy Bracken kmer distribution file.

    Each line lists, for one classification node, the genomes whose reads
    land there as ``genome:mapped:total``. P(node | genome) is
    mapped / total.

    Genomes missing from `tree` are skipped. Mass landing at nodes missing
    from `tree` is folded into the unclassified sentinel: such nodes carry
    no reads in a sample described by that tree, so for estimation they
    behave exactly like unclassified reads.
    """
    masses: dict[int, dict[int, float]] = {}
    totals: dict[int, int] = {}
    n_folded = 0

    with path.open() as f:
        for line_num, line in enumerate(f, start=1):
            if line_num == 1 or not line.strip():
                continue
            fields = line.rstrip("\n").split("\t")
            try:
                mapped = int(fields[0])
            except ValueError as e:
                raise DistributionError(
                    f"Bad mapped taxid in {path} at line {line_num}: {fields[0]!r}"
                ) from e
            if len(fields) < 2:
                continue

            for item in fields[1].split():
                parts = item.split(":")
                if len(parts) != 3:
                    raise DistributionError(
                        f"Bad genome field {item!r} in {path} at line {line_num}"
                    )
                genome, n_mapped, total = int(parts[0]), int(parts[1]), int(parts[2])
                if genome not in tree:
                    continue
                if total <= 0:
                    raise InvalidDistributionEntryError(genome, "total read count is zero")
                node = mapped
                if node != UNCLASSIFIED_TAXID and node not in tree:
                    node = UNCLASSIFIED_TAXID
                    n_folded += 1
                bucket = masses.setdefault(genome, {})
                bucket[node] = bucket.get(node, 0.0) + n_mapped / total
                totals[genome] = total

    if n_folded:
        logger.debug("Folded %d genome/node pairs outside the taxonomy into unclassified", n_folded)

    entries = [
        DistributionEntry(
            taxid=genome,
            lineage=tuple(tree.ancestors(genome)),
            masses=genome_masses,
            total_reads=totals[genome],
        )
        for genome, genome_masses in sorted(masses.items())
    ]
    model = ReadDistributionModel(entries, DistributionMetadata(source=str(path)))
    logger.info("Loaded %d distribution entries from %s", len(model), path)
    return model


def write_kmer_distrib(model: ReadDistributionModel, path: Path) -> None:
    """
    Export a model in the legacy Bracken kmer distribution format.

    Masses are converted back to integer counts using each entry's
    total_reads, so exported files reproduce the training tallies.
    """
    lines = [KMER_DISTRIB_HEADER]
    nodes: set[int] = set()
    for entry in model:
        nodes.update(entry.masses)

    for node in sorted(nodes):
        genomes = sorted(model.genomes_classified_at(node))
        fields = []
        for genome, mass in genomes:
            total = model.get(genome).total_reads
            fields.append(f"{genome}:{round(mass * total)}:{total}")
        lines.append(f"{node}\t{' '.join(fields)}")

    path.write_text("\n".join(lines) + "\n")
