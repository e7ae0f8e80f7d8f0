"""
oc45py.distribution
===================

Weighted class counts per bag.  A *bag* is one subset produced by a split
(a leaf has a single bag).  All three marginals (per bag, per class and the
total) are kept in step so that the numeric threshold sweep can move
instances between bags without recomputing anything.
"""
from __future__ import annotations

import numpy as np

from .utils import eq, gr, gr_or_eq


class Distribution:
    """Weighted (bag, class) counts.

    Parameters
    ----------
    n_bags : int
        Number of subsets.
    n_classes : int
        Number of class values.
    """

    def __init__(self, n_bags: int, n_classes: int):
        self.per_class_per_bag_ = np.zeros((int(n_bags), int(n_classes)), dtype=float)
        self.per_bag_ = np.zeros(int(n_bags), dtype=float)
        self.per_class_ = np.zeros(int(n_classes), dtype=float)
        self.total_ = 0.0

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_data(cls, y, w, n_classes: int) -> "Distribution":
        """Single-bag distribution of the labelled rows ``(y, w)``."""
        return cls.from_bags(np.zeros(len(y), dtype=int), y, w, 1, n_classes)

    @classmethod
    def from_bags(cls, bags, y, w, n_bags: int, n_classes: int) -> "Distribution":
        dist = cls(n_bags, n_classes)
        bags = np.asarray(bags, dtype=int)
        y = np.asarray(y, dtype=float)
        w = np.asarray(w, dtype=float)
        known = ~np.isnan(y)
        if known.any():
            np.add.at(dist.per_class_per_bag_, (bags[known], y[known].astype(int)), w[known])
        dist._refresh()
        return dist

    @classmethod
    def from_membership(cls, membership, y, w, n_classes: int) -> "Distribution":
        """Rows spread over bags by a ``(n_rows, n_bags)`` membership matrix."""
        membership = np.asarray(membership, dtype=float)
        dist = cls(membership.shape[1], n_classes)
        y = np.asarray(y, dtype=float)
        w = np.asarray(w, dtype=float)
        known = ~np.isnan(y)
        cls_idx = y[known].astype(int)
        for bag in range(membership.shape[1]):
            dist.per_class_per_bag_[bag] = np.bincount(
                cls_idx, weights=w[known] * membership[known, bag], minlength=n_classes)
        dist._refresh()
        return dist

    @classmethod
    def merged(cls, other: "Distribution") -> "Distribution":
        """Copy of ``other`` with all bags merged into one."""
        dist = cls(1, other.n_classes)
        dist.per_class_per_bag_[0] = other.per_class_
        dist._refresh()
        return dist

    @classmethod
    def two_way(cls, other: "Distribution", index: int) -> "Distribution":
        """Bag ``index`` of ``other`` against the union of all other bags."""
        dist = cls(2, other.n_classes)
        dist.per_class_per_bag_[0] = other.per_class_per_bag_[index]
        dist.per_class_per_bag_[1] = other.per_class_ - other.per_class_per_bag_[index]
        dist._refresh()
        return dist

    def _refresh(self):
        self.per_bag_ = self.per_class_per_bag_.sum(axis=1)
        self.per_class_ = self.per_class_per_bag_.sum(axis=0)
        self.total_ = float(self.per_class_.sum())

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------
    def add(self, bag: int, cls: int, weight: float):
        self.per_class_per_bag_[bag, cls] += weight
        self.per_bag_[bag] += weight
        self.per_class_[cls] += weight
        self.total_ += weight

    def add_range(self, bag: int, y, w, start: int, end: int):
        """Add rows ``start..end-1`` of ``(y, w)`` to ``bag``."""
        cls = np.asarray(y[start:end], dtype=int)
        ww = np.asarray(w[start:end], dtype=float)
        delta = np.bincount(cls, weights=ww, minlength=self.n_classes)
        self.per_class_per_bag_[bag] += delta
        self.per_class_ += delta
        s = float(delta.sum())
        self.per_bag_[bag] += s
        self.total_ += s

    def shift_range(self, src: int, dst: int, y, w, start: int, end: int):
        """Move rows ``start..end-1`` of ``(y, w)`` from bag ``src`` to ``dst``."""
        cls = np.asarray(y[start:end], dtype=int)
        ww = np.asarray(w[start:end], dtype=float)
        delta = np.bincount(cls, weights=ww, minlength=self.n_classes)
        s = float(delta.sum())
        self.per_class_per_bag_[src] -= delta
        self.per_bag_[src] -= s
        self.per_class_per_bag_[dst] += delta
        self.per_bag_[dst] += s

    def add_inst_with_unknown(self, y, w):
        """Add rows whose split attribute is missing.

        Each row is spread over the bags proportionally to the bag weights
        already present (uniformly if the distribution is still empty).
        """
        y = np.asarray(y, dtype=float)
        w = np.asarray(w, dtype=float)
        known = ~np.isnan(y)
        if not known.any():
            return
        if eq(self.total_, 0):
            probs = np.full(self.n_bags, 1.0 / self.n_bags)
        else:
            probs = self.per_bag_ / self.total_
        delta = np.bincount(y[known].astype(int), weights=w[known], minlength=self.n_classes)
        self.per_class_ += delta
        self.total_ += float(delta.sum())
        self.per_class_per_bag_ += np.outer(probs, delta)
        self.per_bag_ += probs * float(delta.sum())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def n_bags(self) -> int:
        return self.per_class_per_bag_.shape[0]

    @property
    def n_classes(self) -> int:
        return self.per_class_per_bag_.shape[1]

    def total(self) -> float:
        return self.total_

    def per_bag(self, bag: int) -> float:
        return float(self.per_bag_[bag])

    def per_class(self, cls: int) -> float:
        return float(self.per_class_[cls])

    def per_class_per_bag(self, bag: int, cls: int) -> float:
        return float(self.per_class_per_bag_[bag, cls])

    def max_class(self, bag: int | None = None) -> int:
        """Majority class, overall or inside ``bag``; ties go to the first class."""
        counts = self.per_class_ if bag is None else self.per_class_per_bag_[bag]
        if counts.size == 0:
            return 0
        return int(np.argmax(counts))

    def num_incorrect(self, bag: int | None = None) -> float:
        """Weight outside the majority class (unified over bags if ``bag`` is None)."""
        if bag is None:
            return self.total_ - self.per_class(self.max_class())
        return self.per_bag(bag) - self.per_class_per_bag(bag, self.max_class(bag))

    def prob(self, cls: int, bag: int | None = None) -> float:
        if bag is not None and gr(self.per_bag_[bag], 0):
            return self.per_class_per_bag_[bag, cls] / self.per_bag_[bag]
        if not eq(self.total_, 0):
            return self.per_class_[cls] / self.total_
        return 0.0

    def laplace_prob(self, cls: int, bag: int | None = None) -> float:
        if bag is not None and gr(self.per_bag_[bag], 0):
            return ((self.per_class_per_bag_[bag, cls] + 1.0)
                    / (self.per_bag_[bag] + self.n_classes))
        return (self.per_class_[cls] + 1.0) / (self.total_ + self.n_classes)

    def probs(self, bag: int | None = None, laplace: bool = False) -> np.ndarray:
        fn = self.laplace_prob if laplace else self.prob
        return np.array([fn(c, bag) for c in range(self.n_classes)], dtype=float)

    def check(self, min_no_obj: float) -> bool:
        """True if at least two bags hold ``min_no_obj`` weight or more."""
        counter = 0
        for i in range(self.n_bags):
            if gr_or_eq(self.per_bag_[i], min_no_obj):
                counter += 1
        return counter > 1

    def __repr__(self) -> str:
        rows = ", ".join(str(list(np.round(r, 3))) for r in self.per_class_per_bag_)
        return f"Distribution([{rows}])"
