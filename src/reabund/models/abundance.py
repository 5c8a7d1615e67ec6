"""
Pydantic models for abundance estimation results.

These models represent the corrected per-taxon read counts produced by the
abundance estimator for one sample, together with run statistics.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, computed_field


class AbundanceEstimate(BaseModel):
    """
    Corrected abundance of one taxon at the target rank.

    Attributes:
        taxid: Taxon identifier.
        name: Scientific name.
        lineage: Names from below the root down to the taxon.
        level_id: Rank code of the taxon (e.g. 'S').
        direct_reads: Reads the classifier assigned exactly to the taxon.
        clade_reads: Reads assigned to the taxon or any of its descendants.
        estimated_reads: Corrected read count after redistribution.
        fraction_of_total: estimated_reads / total reads in the report.
    """

    taxid: int
    name: str
    lineage: str = ""
    level_id: str
    direct_reads: int = Field(ge=0)
    clade_reads: int = Field(ge=0)
    estimated_reads: int = Field(ge=0)
    fraction_of_total: float = Field(ge=0.0, le=1.0)

    model_config = {"frozen": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def added_reads(self) -> int:
        """Reads gained (or, after thresholding, lost) relative to the clade count."""
        return self.estimated_reads - self.clade_reads


class EstimationSummary(BaseModel):
    """Run statistics of one estimation, mirroring the classic Bracken summary."""

    sample: str
    level: str
    threshold: int = Field(ge=0)
    total_reads: int = Field(ge=0)
    unclassified_reads: int = Field(ge=0)
    n_taxa_in_sample: int = Field(ge=0, description="Target-rank taxa with reads in the report")
    n_taxa_kept: int = Field(ge=0, description="Target-rank taxa at or above threshold")
    n_taxa_removed: int = Field(ge=0, description="Target-rank taxa below threshold")
    reads_at_level: int = Field(
        ge=0, description="Reads assigned at or below target-rank taxa by the classifier"
    )
    reads_distributed: int = Field(
        ge=0, description="Reads at ancestor nodes reassigned to target-rank taxa"
    )
    reads_not_distributed: int = Field(
        ge=0, description="Reads at nodes with no target-rank descendants"
    )
    reads_reallocated: int = Field(
        ge=0, description="Reads of thresholded taxa moved to surviving relatives"
    )

    model_config = {"frozen": True}


class EstimationResult(BaseModel):
    """
    Complete output of one estimator run.

    `estimates` is sorted by estimated_reads descending, ties by taxid
    ascending. `unresolved_reads` counts classified reads that could not be
    placed at the target rank.
    """

    estimates: tuple[AbundanceEstimate, ...]
    unresolved_reads: int = Field(ge=0)
    summary: EstimationSummary
    warnings: tuple[str, ...] = ()

    model_config = {"frozen": True}

    @property
    def estimated_total(self) -> int:
        return sum(e.estimated_reads for e in self.estimates)

    def get(self, taxid: int) -> AbundanceEstimate | None:
        for estimate in self.estimates:
            if estimate.taxid == taxid:
                return estimate
        return None
