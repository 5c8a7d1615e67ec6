"""
Core algorithms for read distribution modelling and abundance estimation.

This module contains the taxonomy tree, the read distribution model and its
builder, the classifier report parser, and the redistribution algorithm.
"""

from reabund.core.allocation import allocate_proportionally
from reabund.core.distribution import (
    DistributionBuilder,
    DistributionEntry,
    ReadDistributionModel,
    load_model,
    save_model,
)
from reabund.core.estimator import AbundanceEstimator
from reabund.core.parsers import ClassificationReport, KrakenReportParser
from reabund.core.taxonomy import Rank, Taxon, TaxonomyTree

__all__ = [
    "AbundanceEstimator",
    "ClassificationReport",
    "DistributionBuilder",
    "DistributionEntry",
    "KrakenReportParser",
    "Rank",
    "ReadDistributionModel",
    "Taxon",
    "TaxonomyTree",
    "allocate_proportionally",
    "load_model",
    "save_model",
]
