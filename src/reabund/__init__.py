"""
reabund: Bayesian re-estimation of taxon abundance from k-mer classifier reports.

k-mer classifiers push reads shared between sibling genomes up to their
lowest common ancestor. reabund learns, from simulated reads, where each
reference genome's reads tend to land and uses that model to redistribute
ancestor-level reads back down to a target rank such as species.
"""

__version__ = "0.1.0"
__author__ = "reabund Team"

from reabund.core.distribution import ReadDistributionModel
from reabund.core.estimator import AbundanceEstimator
from reabund.core.taxonomy import TaxonomyTree
from reabund.models.abundance import AbundanceEstimate, EstimationResult

__all__ = [
    "AbundanceEstimate",
    "AbundanceEstimator",
    "EstimationResult",
    "ReadDistributionModel",
    "TaxonomyTree",
    "__version__",
]
