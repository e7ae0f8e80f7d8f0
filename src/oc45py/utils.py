"""Numeric helpers shared by the split, pruning and replication code."""
from __future__ import annotations

import math
from typing import Any

import numpy as np

# Tolerance used for every floating point comparison in the tree code.
SMALL = 1e-6


def eq(a: float, b: float) -> bool:
    return (a - b < SMALL) and (b - a < SMALL)


def gr(a: float, b: float) -> bool:
    return a - b > SMALL


def gr_or_eq(a: float, b: float) -> bool:
    return (b - a < SMALL) or (a >= b)


def sm(a: float, b: float) -> bool:
    return b - a > SMALL


def sm_or_eq(a: float, b: float) -> bool:
    return (a - b < SMALL) or (a <= b)


def log_func(num: float) -> float:
    # x * log2(x), with tiny values treated as zero
    if num < 1e-6:
        return 0.0
    return num * math.log2(num)


def isnan_scalar(v: Any) -> bool:
    if v is None:
        return True
    try:
        return bool(np.isnan(v))
    except (TypeError, ValueError):
        return False


def norm_ppf(p: float) -> float:
    """Approximate inverse CDF of standard normal (Acklam's approximation)."""
    # clamp
    p = min(max(p, 1e-12), 1 - 1e-12)
    # coefficients
    a = [ -3.969683028665376e+01,  2.209460984245205e+02,
          -2.759285104469687e+02,  1.383577518672690e+02,
          -3.066479806614716e+01,  2.506628277459239e+00 ]
    b = [ -5.447609879822406e+01,  1.615858368580409e+02,
          -1.556989798598866e+02,  6.680131188771972e+01,
          -1.328068155288572e+01 ]
    c = [ -7.784894002430293e-03, -3.223964580411365e-01,
          -2.400758277161838e+00, -2.549732539343734e+00,
           4.374664141464968e+00,  2.938163982698783e+00 ]
    d = [ 7.784695709041462e-03,  3.224671290700398e-01,
          2.445134137142996e+00,  3.754408661907416e+00 ]
    plow  = 0.02425
    phigh = 1 - plow
    if p < plow:
        q = math.sqrt(-2*math.log(p))
        return (((((c[0]*q + c[1])*q + c[2])*q + c[3])*q + c[4])*q + c[5]) / \
               ((((d[0]*q + d[1])*q + d[2])*q + d[3])*q + 1)
    if phigh < p:
        q = math.sqrt(-2*math.log(1-p))
        return -(((((c[0]*q + c[1])*q + c[2])*q + c[3])*q + c[4])*q + c[5]) / \
                 ((((d[0]*q + d[1])*q + d[2])*q + d[3])*q + 1)
    q = p - 0.5
    r = q*q
    return (((((a[0]*r + a[1])*r + a[2])*r + a[3])*r + a[4])*r + a[5])*q / \
           (((((b[0]*r + b[1])*r + b[2])*r + b[3])*r + b[4])*r + 1)
