"""
Constants used throughout the reabund package.

Centralizes sentinel taxids, rank codes, and numeric tolerances
to improve maintainability and consistency.
"""

from __future__ import annotations

# =============================================================================
# Taxonomy Constants
# =============================================================================

# Taxid reported by Kraken for reads it could not classify
UNCLASSIFIED_TAXID = 0

# NCBI root taxid
ROOT_TAXID = 1

# Rank code used by Kraken for nodes without a main rank
NO_RANK_CODE = "-"

# Rank code used by Kraken for the unclassified line
UNCLASSIFIED_CODE = "U"

# Human readable plural names used in summaries
LEVEL_PLURALS: dict[str, str] = {
    "D": "domains",
    "K": "kingdoms",
    "P": "phylums",
    "C": "classes",
    "O": "orders",
    "F": "families",
    "G": "genuses",
    "S": "species",
}

# Separator between names in lineage strings
LINEAGE_SEPARATOR = ";"

# =============================================================================
# Numeric Tolerances
# =============================================================================

# Maximum deviation from 1.0 allowed for the sum of a distribution entry
DISTRIBUTION_SUM_TOLERANCE = 1e-6

# =============================================================================
# File Format Constants
# =============================================================================

# Header line of the legacy Bracken kmer distribution file
KMER_DISTRIB_HEADER = "mapped_taxid\tgenome_taxids:kmers_mapped:total_genome_kmers"

# Columns of the abundance output table, in order
ABUNDANCE_COLUMNS: tuple[str, ...] = (
    "name",
    "taxonomy_id",
    "taxonomy_lvl",
    "lineage",
    "kraken_assigned_reads",
    "direct_reads",
    "added_reads",
    "new_est_reads",
    "fraction_total_reads",
)

# Name of the summary row holding reads unresolved at the target rank
UNRESOLVED_ROW_NAME = "unresolved_at_target_rank"

# Database schema version written into distribution JSON files
DISTRIBUTION_FORMAT_VERSION = 1
