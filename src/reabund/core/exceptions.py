"""
Custom exceptions with actionable guidance.

Provides specific error types for common failure scenarios,
each with helpful suggestions for resolution.
"""

from __future__ import annotations


class ReabundError(Exception):
    """Base exception for reabund errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(self.full_message)

    @property
    def full_message(self) -> str:
        if self.suggestion:
            return f"{self.message}\n\nSuggestion: {self.suggestion}"
        return self.message


class TaxonomyError(ReabundError):
    """Raised when a taxonomy tree is malformed or a taxid is unknown."""


class UnknownTaxonError(TaxonomyError):
    """Raised when a taxid is not present in the taxonomy tree."""

    def __init__(self, taxid: int):
        super().__init__(
            message=f"Taxon {taxid} is not present in the taxonomy",
            suggestion=(
                "Check that the report, distribution database and taxonomy "
                "were all produced from the same Kraken database."
            ),
        )
        self.taxid = taxid


class DistributionError(ReabundError):
    """Base class for read distribution model errors."""


class InvalidDistributionEntryError(DistributionError):
    """Raised when a distribution entry violates its invariants.

    Masses must lie in [0, 1], sum to 1, and only be assigned to the
    taxon itself, one of its ancestors, or the unclassified sentinel.
    """

    def __init__(self, taxid: int, reason: str):
        super().__init__(
            message=f"Invalid distribution entry for taxon {taxid}: {reason}",
            suggestion=(
                "The distribution database is corrupt or was built against a "
                "different taxonomy. Rebuild it with 'reabund build distribution' "
                "using the taxonomy of the Kraken database."
            ),
        )
        self.taxid = taxid
        self.reason = reason


class InsufficientTrainingDataError(DistributionError):
    """Raised when a reference taxon has no simulated reads to learn from."""

    def __init__(self, taxid: int, n_reads: int = 0):
        super().__init__(
            message=(
                f"Taxon {taxid} has {n_reads} simulated reads; "
                "at least one is required to build its distribution"
            ),
            suggestion=(
                "Check that the reference sequences for this taxon are longer "
                "than the simulated read length and are listed in seqid2taxid.map."
            ),
        )
        self.taxid = taxid
        self.n_reads = n_reads


class ReportError(ReabundError):
    """Base class for classification report errors."""


class MalformedReportError(ReportError):
    """Raised when a classification report cannot be used."""

    def __init__(self, path: str, reason: str, line_num: int | None = None):
        location = f" at line {line_num}" if line_num is not None else ""
        super().__init__(
            message=f"Malformed classification report '{path}'{location}: {reason}",
            suggestion=(
                "reabund requires the standard Kraken report (the file written "
                "by kraken2 --report), not the per-read output or an mpa-style "
                "report. Each line needs six tab-separated columns:\n"
                "  percentage clade_reads direct_reads rank_code taxid name"
            ),
        )
        self.path = path
        self.reason = reason
        self.line_num = line_num


class ConfigurationError(ReabundError):
    """Raised when configuration is invalid."""


class NoTaxaAtTargetRankError(ConfigurationError):
    """Raised when the taxonomy has no taxon at the requested rank."""

    def __init__(self, level: str):
        super().__init__(
            message=f"No taxa at target rank '{level}' anywhere in the taxonomy",
            suggestion=(
                "Choose a rank present in the report, e.g. S (species), "
                "G (genus) or F (family). Sub-ranks such as S1 only exist "
                "when the report contains strain-level nodes."
            ),
        )
        self.level = level


class InvalidThresholdError(ConfigurationError):
    """Raised when a threshold parameter is out of valid range."""

    def __init__(self, param_name: str, value: float, min_val: float, max_val: float):
        super().__init__(
            message=f"{param_name} = {value} is out of valid range [{min_val}, {max_val}]",
            suggestion=f"Set {param_name} to a value between {min_val} and {max_val}.",
        )


class InvalidRankError(ConfigurationError):
    """Raised when a rank name or code cannot be interpreted."""

    def __init__(self, level: str):
        super().__init__(
            message=f"Unrecognized taxonomic rank: '{level}'",
            suggestion=(
                "Use a rank name (domain, kingdom, phylum, class, order, family, "
                "genus, species) or a Kraken rank code (D, K, P, C, O, F, G, S), "
                "optionally followed by a sub-rank digit such as S1."
            ),
        )
        self.level = level
