"""
Proportional integer allocation with exact conservation.

Splitting an integer number of reads across candidates in proportion to
real-valued weights is a largest-remainder (Hamilton) apportionment
problem: every candidate first receives the floor of its exact quota and
the leftover units go to the largest fractional remainders. Ties between
equal remainders are broken by position, so callers that pass candidates
in a stable order (ascending taxid) get deterministic results.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def allocate_proportionally(weights: Sequence[float], total: int) -> list[int]:
    """
    Allocate `total` integer units in proportion to `weights`.

    Args:
        weights: Non-negative finite weights, at least one positive.
        total: Non-negative number of units to allocate.

    Returns:
        Integer allocations, one per weight, summing exactly to `total`.

    Raises:
        ValueError: If total is negative, weights are empty, negative,
            non-finite, or all zero.

    Example:
        >>> allocate_proportionally([10.0, 12.0], 100)
        [45, 55]
        >>> allocate_proportionally([1.0, 1.0, 1.0], 2)
        [1, 1, 0]
    """
    if total < 0:
        msg = f"total must be non-negative, got {total}"
        raise ValueError(msg)

    w = np.asarray(weights, dtype=np.float64)
    if w.ndim != 1 or w.size == 0:
        msg = "weights must be a non-empty one-dimensional sequence"
        raise ValueError(msg)
    if not np.all(np.isfinite(w)) or np.any(w < 0):
        msg = "weights must be finite and non-negative"
        raise ValueError(msg)

    weight_sum = float(w.sum())
    if weight_sum <= 0:
        msg = "at least one weight must be positive"
        raise ValueError(msg)

    if total == 0:
        return [0] * w.size

    quotas = w / weight_sum * total
    floors = np.floor(quotas).astype(np.int64)
    remainders = quotas - floors

    # Largest remainder first; lexsort uses the last key as primary
    order = np.lexsort((np.arange(w.size), -remainders))

    shortfall = total - int(floors.sum())
    if shortfall > 0:
        # Only positive weights may receive leftover units
        eligible = order[w[order] > 0]
        rounds, extra = divmod(shortfall, eligible.size)
        floors[eligible] += rounds
        floors[eligible[:extra]] += 1
    elif shortfall < 0:
        # Floating point overshoot: take units back from the smallest remainders
        for idx in order[::-1]:
            if shortfall == 0:
                break
            if floors[idx] > 0:
                floors[idx] -= 1
                shortfall += 1

    return [int(x) for x in floors]


def distribution_weights(
    estimates: Sequence[float],
    probabilities: Sequence[float],
) -> tuple[list[float], str]:
    """
    Choose redistribution weights for a set of candidates.

    The primary weight of a candidate is its current estimate times the
    probability of its reads landing at the node being redistributed. When
    every primary weight is zero the raw estimates are used instead, and
    when those are all zero too every candidate weighs the same.

    Returns:
        Tuple of (weights, mode) where mode is "bayesian", "estimate" or
        "uniform".
    """
    primary = [e * p for e, p in zip(estimates, probabilities)]
    if any(x > 0 for x in primary):
        return primary, "bayesian"
    if any(e > 0 for e in estimates):
        return [float(e) for e in estimates], "estimate"
    return [1.0] * len(estimates), "uniform"
