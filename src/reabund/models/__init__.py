"""
Pydantic data models for reabund.

Provides type-safe models for abundance estimates, run summaries,
and configuration.
"""

from reabund.models.abundance import AbundanceEstimate, EstimationResult, EstimationSummary
from reabund.models.config import BuildConfig, EstimationConfig

__all__ = [
    "AbundanceEstimate",
    "BuildConfig",
    "EstimationConfig",
    "EstimationResult",
    "EstimationSummary",
]
