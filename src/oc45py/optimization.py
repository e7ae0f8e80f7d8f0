"""
oc45py.optimization
===================

Rules for folding the per-replica split scores (information gain or gain
ratio) of one candidate split into the single number used to rank it.

Only *active* replicas, i.e. those for which the candidate produced a valid
split, take part.  With no active replica every rule returns 0.
"""
from __future__ import annotations

import math
from enum import Enum

import numpy as np


class OptimizationCriterion(Enum):
    SUM = 0
    AVERAGE = 1
    PRODUCT = 2
    GEOMETRIC_MEAN = 3
    MIN = 4
    MAX = 5
    EUCLIDEAN_MIN = 6
    EUCLIDEAN_MAX = 7

    @classmethod
    def parse(cls, value) -> "OptimizationCriterion":
        """Accept a member, its name (any case, a few aliases) or its integer tag."""
        if isinstance(value, cls):
            return value
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            return cls(int(value))
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            key = _ALIASES.get(key, key)
            if key in cls.__members__:
                return cls[key]
        raise ValueError(f"Unknown optimization criterion: {value!r}")

    def combine(self, scores, active) -> float:
        return combine(self, scores, active)


_ALIASES = {
    "AVG": "AVERAGE",
    "MEAN": "AVERAGE",
    "PROD": "PRODUCT",
    "GEOMEAN": "GEOMETRIC_MEAN",
    "GEOMEAM": "GEOMETRIC_MEAN",
    "MAXMIN": "MIN",
    "MAXMAX": "MAX",
    "EUCLMIN": "EUCLIDEAN_MIN",
    "EUCLMAX": "EUCLIDEAN_MAX",
}


def combine(criterion, scores, active) -> float:
    """Combine per-replica ``scores`` over the replicas flagged in ``active``.

    Parameters
    ----------
    criterion : OptimizationCriterion or str or int
        Aggregation rule.
    scores : array-like of float
        One score per replica.
    active : array-like of bool
        Which replicas produced a valid split.

    Returns
    -------
    float
        The aggregated score; 0 when no replica is active.
    """
    criterion = OptimizationCriterion.parse(criterion)
    scores = np.asarray(scores, dtype=float)
    active = np.asarray(active, dtype=bool)
    if scores.shape != active.shape:
        raise ValueError("scores and active flags must have the same length")
    values = scores[active]
    n = values.size
    if n == 0:
        return 0.0

    if criterion in (OptimizationCriterion.SUM, OptimizationCriterion.AVERAGE):
        return float(values.sum() / n)
    if criterion is OptimizationCriterion.PRODUCT:
        # probabilistic OR of the scores
        return float(1.0 - np.prod(1.0 - values))
    if criterion is OptimizationCriterion.GEOMETRIC_MEAN:
        return float(math.pow(np.prod(values), 1.0 / n))
    if criterion is OptimizationCriterion.MIN:
        return float(values.min())
    if criterion is OptimizationCriterion.MAX:
        return float(values.max())
    if criterion is OptimizationCriterion.EUCLIDEAN_MIN:
        return float(math.sqrt(np.sum(values * values)))
    # EUCLIDEAN_MAX: distance to the ideal point (1, ..., 1)
    return float(math.sqrt(n) - math.sqrt(np.sum((1.0 - values) ** 2)))
