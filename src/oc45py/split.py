"""
oc45py.split
============

Split models for replicated data.

A split model decides, for every row of a replicated dataset, which subset
(child) the row goes to.  There are exactly two kinds:

* :class:`NoSplit`: a single subset; the model of every leaf.
* :class:`BinarySplit`: a two-way test on one attribute.  Numeric tests hold
  one threshold *per replica*, so the rows of different replicas can be cut
  at different values of the same attribute; nominal tests compare against
  one value shared by all replicas.

Both keep one :class:`~oc45py.distribution.Distribution` per replica (bags ×
binary class), which is what leaves predict from and what pruning measures.
"""
from __future__ import annotations

import logging
import math
from typing import Callable, Optional

import numpy as np

from .criteria import gain_ratio, info_gain, old_ent
from .dataset import Dataset
from .distribution import Distribution
from .optimization import combine
from .replication import get_distributions, project_instances, split_replicas
from .utils import SMALL, gr, gr_or_eq, sm, sm_or_eq

logger = logging.getLogger(__name__)


class SplitModel:
    """Behaviour shared by :class:`NoSplit` and :class:`BinarySplit`."""

    n_subsets: int = 0
    distributions: list

    def check_model(self) -> bool:
        return self.n_subsets > 0

    def which_subset(self, data: Dataset) -> np.ndarray:
        raise NotImplementedError

    def weights(self, data: Dataset) -> Optional[np.ndarray]:
        raise NotImplementedError

    def _membership(self, data: Dataset) -> np.ndarray:
        raise NotImplementedError

    def split(self, data: Dataset) -> list:
        """Partition ``data`` into ``(rows, weights)`` pairs, one per subset.

        A row whose test attribute is missing goes to every subset it has a
        positive share of, with its weight scaled by that share.
        """
        sub = self.which_subset(data)
        member = self._membership(data)
        out = []
        for i in range(self.n_subsets):
            mask = (sub == i) | ((sub == -1) & (member[:, i] > 0))
            rows = np.flatnonzero(mask)
            out.append((rows, data.weights[rows] * member[rows, i]))
        return out

    def distribute(self, data: Dataset) -> list:
        """Per-replica distributions of ``data`` routed through this model."""
        member = self._membership(data)
        ids = data.replica_ids()
        dists = []
        for r in range(len(self.distributions)):
            rows = ids == r
            dists.append(Distribution.from_membership(member[rows], data.y[rows],
                                                      data.weights[rows], 2))
        return dists

    def class_probs(self, data: Dataset, subset: int | None = None,
                    laplace: bool = False) -> np.ndarray:
        """Class probabilities of every row, from its own replica's distribution."""
        table = np.array([d.probs(subset, laplace) for d in self.distributions])
        return table[data.replica_ids()]

    def left_side(self) -> str:
        return ""

    def right_side(self, index: int) -> str:
        return ""


class NoSplit(SplitModel):
    """The "no-split" split: every row lands in subset 0."""

    def __init__(self, distributions):
        self.distributions = [Distribution.merged(d) for d in distributions]
        self.n_subsets = 1

    @classmethod
    def from_data(cls, data: Dataset) -> "NoSplit":
        return cls(get_distributions(split_replicas(data)))

    def which_subset(self, data: Dataset) -> np.ndarray:
        return np.zeros(len(data), dtype=int)

    def weights(self, data: Dataset) -> None:
        return None

    def _membership(self, data: Dataset) -> np.ndarray:
        return np.ones((len(data), 1), dtype=float)

    def reset_distribution(self, data: Dataset):
        self.distributions = get_distributions(split_replicas(data))


class BinarySplit(SplitModel):
    """C4.5-style binary split on one attribute of replicated data.

    Parameters
    ----------
    att_index : int
        Attribute to split on.
    min_no_obj : int
        Minimum weight required in each subset.
    sum_of_weights : float
        Weight of all rows at the node (all replicas, unknowns included).
    use_mdl_correction : bool
        Penalise numeric gains by ``log2(#candidates) / sum_of_weights``.
    criterion : OptimizationCriterion
        How per-replica scores are combined.
    xor_hook : callable, optional
        Called as ``xor_hook(split, replica, replica_data)`` when a numeric
        replica finds no split although its classes are nearly balanced
        (weight above 10, class probabilities within 0.2 of each other).
    """

    def __init__(self, att_index: int, min_no_obj: int, sum_of_weights: float,
                 use_mdl_correction: bool, criterion,
                 xor_hook: Optional[Callable] = None):
        self.att_index = int(att_index)
        self.min_no_obj = min_no_obj
        self.sum_of_weights = float(sum_of_weights)
        self.use_mdl_correction = bool(use_mdl_correction)
        self.criterion = criterion
        self.xor_hook = xor_hook
        self.n_subsets = 0
        self.distributions = []

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    def build(self, data: Dataset) -> "BinarySplit":
        n_reps = data.n_replicas
        self.n_subsets = 0
        self.split_point = np.full(n_reps, np.inf)
        self.active = np.zeros(n_reps, dtype=bool)
        self.info_gains = np.zeros(n_reps)
        self.gain_ratios = np.zeros(n_reps)
        self.distributions = [Distribution(2, 2) for _ in range(n_reps)]
        self.nominal = data.is_nominal(self.att_index)
        self.feature_name = data.feature_names[self.att_index]
        self.value_names = data.categories.get(self.att_index)

        view = project_instances(data, self.att_index)
        if self.nominal:
            self._handle_enumerated(view)
        else:
            self._handle_numeric(view)
        return self

    def _handle_enumerated(self, view: Dataset):
        n_values = int(view.cardinalities[0])
        vals = view.X[:, 0]
        known = ~np.isnan(vals)
        dist = Distribution.from_bags(vals[known].astype(int), view.y[known],
                                      view.weights[known], n_values, 2)
        replicas = None
        best_gr = 0.0
        for i in range(n_values):
            if not gr_or_eq(dist.per_bag(i), self.min_no_obj):
                continue
            second = Distribution.two_way(dist, i)
            if not second.check(self.min_no_obj):
                continue
            self.n_subsets = 2
            cur_ig = info_gain(second, self.sum_of_weights)
            cur_gr = gain_ratio(second, self.sum_of_weights, cur_ig)
            if i == 0 or gr(cur_gr, best_gr):
                best_gr = cur_gr
                if replicas is None:
                    replicas = split_replicas(view)
                # the same value is used for every replica
                for j, rep in enumerate(replicas):
                    rv = rep.X[:, 0]
                    rk = ~np.isnan(rv)
                    per_value = Distribution.from_bags(rv[rk].astype(int), rep.y[rk],
                                                       rep.weights[rk], n_values, 2)
                    self.distributions[j] = Distribution.two_way(per_value, i)
                    self.info_gains[j] = cur_ig
                    self.gain_ratios[j] = cur_gr
                    self.split_point[j] = i
                    self.active[j] = True

    def _handle_numeric(self, view: Dataset):
        replicas = split_replicas(view)
        for i, rep in enumerate(replicas):
            order = np.argsort(rep.X[:, 0], kind="mergesort")
            self._handle_numeric_simple(rep.X[order, 0], rep.y[order],
                                        rep.weights[order], i)

        for i, rep in enumerate(replicas):
            if self.active[i]:
                continue
            check = Distribution.from_data(rep.y, rep.weights, 2)
            diff = check.prob(0) - check.prob(1)
            if check.total() > 10 and -0.2 <= diff <= 0.2:
                logger.debug("possible XOR on attribute %s, replica %d",
                             self.feature_name, i)
                if self.xor_hook is not None:
                    self.xor_hook(self, i, rep)

    def _handle_numeric_simple(self, vals, y, w, replica: int):
        """Best threshold for one replica; ``vals`` sorted with NaNs last."""
        self.active[replica] = False
        first_miss = int(np.sum(~np.isnan(vals)))
        dist = Distribution(2, 2)
        dist.add_range(1, y, w, 0, first_miss)
        # until a split is accepted, route everything to subset 0
        idle = Distribution(2, 2)
        idle.add_range(0, y, w, 0, first_miss)
        self.distributions[replica] = idle

        # Minimum weight required in each subset.
        min_split = 0.1 * dist.total() / 2.0
        if sm_or_eq(min_split, self.min_no_obj):
            min_split = self.min_no_obj
        elif gr(min_split, 25):
            min_split = 25

        # Enough instances with known values?
        if sm(float(first_miss), 2 * min_split):
            return

        default_ent = old_ent(dist)
        split_index = -1
        index = 0
        last = 0
        for nxt in range(1, first_miss):
            if vals[nxt - 1] + 1e-5 < vals[nxt]:
                # move everything up to this candidate into the left bag
                dist.shift_range(1, 0, y, w, last, nxt)
                if (gr_or_eq(dist.per_bag(0), min_split)
                        and gr_or_eq(dist.per_bag(1), min_split)
                        and gr(dist.per_class(0), 0)
                        and gr(dist.per_class(1), 0)):
                    cur = info_gain(dist, self.sum_of_weights, default_ent)
                    if gr(cur, self.info_gains[replica]):
                        self.info_gains[replica] = cur
                        split_index = nxt - 1
                    index += 1
                last = nxt

        # Was there any useful split?
        if index == 0:
            return
        if self.use_mdl_correction:
            self.info_gains[replica] -= math.log2(index) / self.sum_of_weights
        if sm_or_eq(self.info_gains[replica], 0) or split_index < 0:
            return

        self.active[replica] = True
        self.n_subsets = 2
        point = (vals[split_index + 1] + vals[split_index]) / 2
        # numerical precision: fall back to the smaller value
        if point == vals[split_index + 1]:
            point = vals[split_index]
        self.split_point[replica] = point

        best = Distribution(2, 2)
        best.add_range(0, y, w, 0, split_index + 1)
        best.add_range(1, y, w, split_index + 1, first_miss)
        self.distributions[replica] = best
        self.gain_ratios[replica] = gain_ratio(best, self.sum_of_weights,
                                               self.info_gains[replica])

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------
    def info_gain(self) -> float:
        return combine(self.criterion, self.info_gains, self.active)

    def gain_ratio(self) -> float:
        return combine(self.criterion, self.gain_ratios, self.active)

    def set_split_point(self, all_data: Dataset):
        """Snap every numeric threshold to the largest training value not above it."""
        if self.nominal or self.n_subsets < 2:
            return
        col = all_data.X[:, self.att_index]
        vals = col[~np.isnan(col)]
        for i, point in enumerate(self.split_point):
            if not np.isfinite(point):
                continue
            below = vals[(vals - point < SMALL) | (vals <= point)]
            if below.size:
                self.split_point[i] = float(below.max())

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------
    def which_subset(self, data: Dataset) -> np.ndarray:
        """Subset of every row; -1 where the attribute is missing."""
        vals = data.X[:, self.att_index]
        miss = np.isnan(vals)
        if self.nominal:
            sub = np.where(vals == self.split_point[0], 0, 1)
        else:
            thr = self.split_point[data.replica_ids()]
            with np.errstate(invalid="ignore"):
                left = (vals - thr < SMALL) | (vals <= thr)
            sub = np.where(left, 0, 1)
        sub[miss] = -1
        return sub

    def _replica_bag_shares(self) -> np.ndarray:
        shares = np.empty((len(self.distributions), self.n_subsets))
        for r, d in enumerate(self.distributions):
            if gr(d.total(), 0):
                shares[r] = d.per_bag_ / d.total()
            else:
                shares[r] = 1.0 / self.n_subsets
        return shares

    def weights(self, data: Dataset) -> np.ndarray:
        """Subset membership weights of every row.

        Rows with a known value get a one-hot row; rows with a missing value
        are shared out in proportion to the subset weights of their replica.
        """
        return self._membership(data)

    def _membership(self, data: Dataset) -> np.ndarray:
        sub = self.which_subset(data)
        member = np.zeros((len(data), self.n_subsets))
        known = sub >= 0
        member[np.flatnonzero(known), sub[known]] = 1.0
        if not known.all():
            shares = self._replica_bag_shares()
            miss = ~known
            member[miss] = shares[data.replica_ids()[miss]]
        return member

    def reset_distribution(self, data: Dataset):
        """Recompute the replica distributions from ``data``.

        Rows with a missing value are added afterwards, spread like the rows
        with a known value.
        """
        sub = self.which_subset(data)
        ids = data.replica_ids()
        dists = []
        for r in range(len(self.distributions)):
            rows = ids == r
            known = rows & (sub >= 0)
            d = Distribution.from_bags(sub[known], data.y[known], data.weights[known],
                                       self.n_subsets, 2)
            miss = rows & (sub < 0)
            d.add_inst_with_unknown(data.y[miss], data.weights[miss])
            dists.append(d)
        self.distributions = dists

    # ------------------------------------------------------------------
    # Description
    # ------------------------------------------------------------------
    def left_side(self) -> str:
        return str(self.feature_name)

    def right_side(self, index: int) -> str:
        if self.nominal:
            value = int(self.split_point[0])
            if self.value_names is not None:
                value = self.value_names[value]
            return (" = " if index == 0 else " != ") + str(value)
        points = " ".join("INF" if not np.isfinite(p) else f"{p:g}" for p in self.split_point)
        return (" <= [" if index == 0 else " > [") + points + "]"
