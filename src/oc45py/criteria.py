"""
oc45py.criteria
===============

Entropy based split criteria and the C4.5 pessimistic error estimate.

Everything here is a pure function of a :class:`~oc45py.distribution.Distribution`.
Entropies are *unnormalised* (multiplied by the total weight), exactly as in
C4.5, so that gains can be corrected for missing values before dividing by
the number of known instances.
"""
from __future__ import annotations

import logging
import math

from .distribution import Distribution
from .utils import eq, gr, log_func, norm_ppf

logger = logging.getLogger(__name__)


def old_ent(bags: Distribution) -> float:
    """Entropy of the class distribution before splitting."""
    value = 0.0
    for j in range(bags.n_classes):
        value += log_func(bags.per_class(j))
    return log_func(bags.total()) - value


def new_ent(bags: Distribution) -> float:
    """Entropy of the class distribution after splitting."""
    value = 0.0
    for i in range(bags.n_bags):
        for j in range(bags.n_classes):
            value += log_func(bags.per_class_per_bag(i, j))
        value -= log_func(bags.per_bag(i))
    return -value


def split_ent(bags: Distribution, total_no_inst: float) -> float:
    """Entropy of the split itself, counting unknowns as an extra subset."""
    value = 0.0
    no_unknown = total_no_inst - bags.total()
    if gr(bags.total(), 0):
        for i in range(bags.n_bags):
            value -= log_func(bags.per_bag(i))
        value -= log_func(no_unknown)
        value += log_func(total_no_inst)
    return value


def info_gain(bags: Distribution, total_no_inst: float, old_entropy: float | None = None) -> float:
    """Information gain of ``bags``, scaled down by the fraction of unknowns.

    Parameters
    ----------
    bags : Distribution
        Class counts of the instances with a known value, one bag per subset.
    total_no_inst : float
        Weight of all instances at the node, including unknowns.
    old_entropy : float, optional
        Pre-computed :func:`old_ent` of ``bags``.
    """
    if eq(total_no_inst, 0) or eq(bags.total(), 0):
        return 0.0
    if old_entropy is None:
        old_entropy = old_ent(bags)
    unknown_rate = (total_no_inst - bags.total()) / total_no_inst
    numerator = (1 - unknown_rate) * (old_entropy - new_ent(bags))
    # Splits with no gain are useless.
    if eq(numerator, 0):
        return 0.0
    return numerator / bags.total()


def gain_ratio(bags: Distribution, total_no_inst: float, numerator: float) -> float:
    denominator = split_ent(bags, total_no_inst)
    if eq(denominator, 0):
        return 0.0
    denominator = denominator / total_no_inst
    return numerator / denominator


def add_errs(N: float, e: float, cf: float) -> float:
    """Extra errors predicted at a leaf with ``N`` instances and ``e`` errors.

    Upper limit of the binomial confidence interval at level ``cf`` (with a
    continuity correction) minus the observed errors.
    """
    if cf > 0.5:
        logger.warning("confidence value for pruning too high; error estimate not modified")
        return 0.0

    # The normal approximation fails at the low end.
    if e < 1:
        base = N * (1 - math.pow(cf, 1 / N))
        if e == 0:
            return base
        return base + e * (add_errs(N, 1, cf) - base)

    # Interpolate between N - 0.5 and N because of the continuity correction.
    if e + 0.5 >= N:
        return max(N - e, 0.0)

    z = norm_ppf(1 - cf)
    f = (e + 0.5) / N
    r = (f + (z * z) / (2 * N)
         + z * math.sqrt((f / N) - (f * f / N) + (z * z / (4 * N * N)))) / (1 + (z * z) / N)
    return (r * N) - e


def estimated_errors(dist: Distribution, cf: float) -> float:
    """Pessimistic error count of ``dist`` treated as a single leaf."""
    if eq(dist.total(), 0):
        return 0.0
    return dist.num_incorrect() + add_errs(dist.total(), dist.num_incorrect(), cf)
