"""
Bayesian re-estimation of per-taxon read counts at a target rank.

A k-mer classifier places reads whose k-mers are shared between sibling
genomes at their lowest common ancestor. The estimator pushes those reads
back down: every internal node's reads are split among the target-rank taxa
below it, in proportion to

    w_c = estimated_reads[c] * P_c(node)

where P_c(node) is the probability, learned from simulated reads, that a
read from taxon c is classified exactly at that node. Nodes are handled in
post-order so a taxon's estimate already contains everything pushed down
from lower ancestors before higher ancestors weigh it.

After the pass, taxa below a minimum read threshold are removed one by one
(smallest first) and their reads re-split among surviving relatives with
the same rule.

Every allocation is integer and conserves reads exactly, so

    sum(estimated_reads) + unresolved_reads == sum(direct reads in report)
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from reabund.core.allocation import allocate_proportionally, distribution_weights
from reabund.core.distribution import ReadDistributionModel
from reabund.core.exceptions import InvalidThresholdError, NoTaxaAtTargetRankError
from reabund.core.parsers import ClassificationReport
from reabund.core.taxonomy import TaxonomyTree, normalize_level
from reabund.models.abundance import AbundanceEstimate, EstimationResult, EstimationSummary

logger = logging.getLogger(__name__)

# Maximum number of taxids listed in a single warning message
_MAX_LISTED = 10


class _RunState:
    """Mutable bookkeeping for one estimate() call."""

    def __init__(self, report: ClassificationReport) -> None:
        self.report = report
        self.estimated: dict[int, int] = {}
        self.base: dict[int, int] = {}
        self.unresolved = 0
        self.distributed = 0
        self.not_distributed = 0
        self.reallocated = 0
        self.missing_entries: set[int] = set()
        self.warnings: list[str] = []

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning("%s: %s", self.report.sample, message)


class AbundanceEstimator:
    """
    Redistributes ancestor-level reads to a target rank.

    The tree and model are only read, so one estimator can serve many
    samples, including concurrently via estimate_many().

    Args:
        tree: Taxonomy the reports refer to.
        model: Read distribution model of the reference database.
        level: Target rank, as name ("species") or code ("S", "S1").
        threshold: Minimum estimated reads for a reported taxon; 0 disables.

    Raises:
        InvalidThresholdError: If threshold is negative.
        NoTaxaAtTargetRankError: If no taxon of the tree has the target rank.

    Example:
        >>> estimator = AbundanceEstimator(tree, model, level="S", threshold=10)
        >>> result = estimator.estimate(report)
        >>> result.estimates[0].estimated_reads
        95
    """

    def __init__(
        self,
        tree: TaxonomyTree,
        model: ReadDistributionModel,
        level: str = "S",
        threshold: int = 0,
    ) -> None:
        if threshold < 0:
            raise InvalidThresholdError("threshold", threshold, 0, float("inf"))

        self.tree = tree
        self.model = model
        self.level = normalize_level(level)
        self.threshold = threshold

        self.targets: tuple[int, ...] = tuple(tree.taxa_at_rank(self.level))
        if not self.targets:
            raise NoTaxaAtTargetRankError(self.level)
        self._target_set = frozenset(self.targets)

        self._candidate_cache: dict[int, tuple[int, ...]] = {}
        self._owner_cache: dict[int, int | None] = {}

    # ------------------------------------------------------------------
    # Tree lookups
    # ------------------------------------------------------------------

    def candidates(self, node: int) -> tuple[int, ...]:
        """Target-rank descendants of `node`, ascending by taxid."""
        cached = self._candidate_cache.get(node)
        if cached is None:
            cached = tuple(self.tree.descendants_at_rank(node, self.level))
            self._candidate_cache[node] = cached
        return cached

    def owner(self, node: int) -> int | None:
        """Target-rank ancestor of a node below the target rank, else None."""
        if node not in self._owner_cache:
            self._owner_cache[node] = self.tree.ancestor_at_rank(node, self.level)
        return self._owner_cache[node]

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------

    def estimate(self, report: ClassificationReport) -> EstimationResult:
        """
        Estimate corrected read counts for one sample.

        Raises:
            MalformedReportError: If the report references taxids that are
                not in the tree.
        """
        report.check_against(self.tree)
        state = _RunState(report)
        state.estimated = {t: report.direct(t) for t in self.targets}

        for node in self.tree.post_order():
            if node in self._target_set:
                state.base[node] = state.estimated[node]
                continue

            reads = report.direct(node)
            if reads == 0:
                continue

            owner = self.owner(node)
            if owner is not None:
                state.estimated[owner] += reads
                continue

            candidates = self.candidates(node)
            if not candidates:
                state.unresolved += reads
                state.not_distributed += reads
                continue

            self._redistribute(state, node, reads, candidates)
            state.distributed += reads

        reads_at_level = sum(state.base.values())
        n_taxa_in_sample = sum(1 for t in self.targets if state.base[t] > 0)

        survivors, removed = self._apply_threshold(state)

        if state.missing_entries:
            missing = sorted(state.missing_entries)
            listed = ", ".join(str(t) for t in missing[:_MAX_LISTED])
            more = f" and {len(missing) - _MAX_LISTED} more" if len(missing) > _MAX_LISTED else ""
            state.warn(
                f"{len(missing)} target taxa have no distribution entry and were "
                f"weighted with probability 0: {listed}{more}"
            )

        estimates = self._build_estimates(state, survivors)

        summary = EstimationSummary(
            sample=report.sample,
            level=self.level,
            threshold=self.threshold,
            total_reads=report.total_reads,
            unclassified_reads=report.unclassified_reads,
            n_taxa_in_sample=n_taxa_in_sample,
            n_taxa_kept=len(estimates),
            n_taxa_removed=len(removed),
            reads_at_level=reads_at_level,
            reads_distributed=state.distributed,
            reads_not_distributed=state.not_distributed,
            reads_reallocated=state.reallocated,
        )
        logger.info(
            "%s: %d taxa at %s, %d kept, %d reads distributed, %d unresolved",
            report.sample, n_taxa_in_sample, self.level, len(estimates),
            state.distributed, state.unresolved,
        )
        return EstimationResult(
            estimates=tuple(estimates),
            unresolved_reads=state.unresolved,
            summary=summary,
            warnings=tuple(state.warnings),
        )

    def estimate_many(
        self,
        reports: Sequence[ClassificationReport],
        threads: int = 1,
    ) -> list[EstimationResult]:
        """Estimate several independent samples; results keep input order."""
        if threads <= 1 or len(reports) <= 1:
            return [self.estimate(report) for report in reports]
        with ThreadPoolExecutor(max_workers=threads) as executor:
            return list(executor.map(self.estimate, reports))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _redistribute(
        self,
        state: _RunState,
        node: int,
        reads: int,
        candidates: Sequence[int],
    ) -> None:
        """Split `reads` at `node` among `candidates` and add them in."""
        probabilities = []
        for taxid in candidates:
            p = self.model.probability(taxid, node)
            if p is None:
                state.missing_entries.add(taxid)
                p = 0.0
            probabilities.append(p)

        estimates = [state.estimated[t] for t in candidates]
        weights, mode = distribution_weights(estimates, probabilities)
        if mode != "bayesian":
            state.warn(
                f"{reads} reads at node {node}: no candidate has both reads and "
                f"probability mass there, split by {mode} weights "
                f"across {len(candidates)} taxa"
            )

        for taxid, share in zip(candidates, allocate_proportionally(weights, reads)):
            state.estimated[taxid] += share

    def _apply_threshold(self, state: _RunState) -> tuple[set[int], list[int]]:
        """
        Remove taxa below threshold, smallest first, reallocating their reads.

        Removed reads go to surviving target-rank descendants of the
        removed taxon's parent; if there are none, of the grandparent, and
        so on up to the root. Reads that find no survivor anywhere become
        unresolved.

        Returns:
            (surviving taxids, removed taxids in removal order)
        """
        estimated = state.estimated
        survivors = {t for t in self.targets if estimated[t] > 0}
        removed: list[int] = []
        if self.threshold == 0:
            return survivors, removed

        heap = [(estimated[t], t) for t in survivors]
        heapq.heapify(heap)

        while heap:
            reads, taxid = heapq.heappop(heap)
            if taxid not in survivors or reads != estimated[taxid]:
                continue
            if reads >= self.threshold:
                break

            survivors.discard(taxid)
            removed.append(taxid)
            estimated[taxid] = 0

            node = self.tree.parent(taxid)
            while node is not None:
                relatives = [c for c in self.candidates(node) if c in survivors]
                if relatives:
                    self._redistribute(state, node, reads, relatives)
                    for c in relatives:
                        heapq.heappush(heap, (estimated[c], c))
                    state.reallocated += reads
                    break
                node = self.tree.parent(node)
            else:
                state.unresolved += reads

        if removed:
            logger.debug(
                "%s: removed %d taxa below %d reads",
                state.report.sample, len(removed), self.threshold,
            )
        return survivors, removed

    def _build_estimates(
        self,
        state: _RunState,
        survivors: set[int],
    ) -> list[AbundanceEstimate]:
        report = state.report
        total = report.total_reads

        estimates = []
        for taxid in survivors:
            taxon = self.tree.get(taxid)
            reads = state.estimated[taxid]
            estimates.append(
                AbundanceEstimate(
                    taxid=taxid,
                    name=report.names.get(taxid, taxon.name),
                    lineage=self.tree.lineage(taxid),
                    level_id=taxon.level_id,
                    direct_reads=report.direct(taxid),
                    clade_reads=state.base[taxid],
                    estimated_reads=reads,
                    fraction_of_total=reads / total if total > 0 else 0.0,
                )
            )
        estimates.sort(key=lambda e: (-e.estimated_reads, e.taxid))
        return estimates
