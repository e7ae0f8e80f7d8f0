"""
oc45py.dataset
==============

A small, array backed stand-in for a labelled table of instances.

``X`` holds one row per instance.  The first ``n_features`` columns are the
predictors (numeric values, or integer category codes for nominal
attributes); NaN marks a missing value.  A replicated dataset additionally
carries ``n_markers`` binary marker columns after the predictors, which tell
the replica each row belongs to.  ``y`` holds class codes ``0..n_classes-1``
(NaN for a missing label) and ``weights`` the instance weights.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


class InsufficientDataError(ValueError):
    """The data cannot support a meaningful tree (no attributes, no labels, one class)."""


@dataclass
class Dataset:
    X: np.ndarray
    y: np.ndarray
    weights: np.ndarray
    cardinalities: np.ndarray
    n_classes: int
    n_markers: int = 0
    feature_names: Optional[list] = None
    # category labels per nominal feature: {feature index: [labels]}
    categories: dict = field(default_factory=dict)

    def __post_init__(self):
        self.X = np.asarray(self.X, dtype=float)
        if self.X.ndim != 2:
            raise ValueError("X must be a 2-dimensional array")
        n = self.X.shape[0]
        self.y = np.asarray(self.y, dtype=float).reshape(-1)
        self.weights = np.asarray(self.weights, dtype=float).reshape(-1)
        self.cardinalities = np.asarray(self.cardinalities, dtype=int).reshape(-1)
        if len(self.y) != n or len(self.weights) != n:
            raise ValueError("X, y and weights must describe the same number of instances")
        if self.n_markers < 0 or self.n_markers > self.X.shape[1]:
            raise ValueError("invalid number of marker attributes")
        if len(self.cardinalities) != self.X.shape[1] - self.n_markers:
            raise ValueError("cardinalities must have one entry per feature column")
        if self.feature_names is None:
            self.feature_names = [f"f{i}" for i in range(self.n_features)]

    @classmethod
    def from_arrays(cls, X, y, n_classes: int, weights=None, cardinalities=None,
                    **kwargs) -> "Dataset":
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        if weights is None:
            weights = np.ones(X.shape[0], dtype=float)
        if cardinalities is None:
            cardinalities = np.zeros(X.shape[1], dtype=int)
        return cls(X, y, weights, cardinalities, int(n_classes), **kwargs)

    def __len__(self) -> int:
        return self.X.shape[0]

    @property
    def n_features(self) -> int:
        """Number of predictor columns (the position of the class attribute)."""
        return self.X.shape[1] - self.n_markers

    @property
    def n_replicas(self) -> int:
        return self.n_markers + 1

    @property
    def markers(self) -> np.ndarray:
        return self.X[:, self.n_features:]

    def is_nominal(self, index: int) -> bool:
        if index >= self.n_features:
            return False
        return self.cardinalities[index] > 0

    def sum_of_weights(self) -> float:
        return float(self.weights.sum())

    def replica_ids(self) -> np.ndarray:
        """Replica index of every row, read from the marker columns."""
        n = len(self)
        if self.n_markers == 0:
            return np.zeros(n, dtype=int)
        marks = self.markers == 1
        has_mark = marks.any(axis=1)
        first = np.argmax(marks, axis=1) + 1
        return np.where(has_mark, first, 0)

    def subset(self, rows, weights=None) -> "Dataset":
        rows = np.asarray(rows, dtype=np.intp)
        w = self.weights[rows] if weights is None else np.asarray(weights, dtype=float)
        return Dataset(self.X[rows], self.y[rows], w, self.cardinalities,
                       self.n_classes, self.n_markers, self.feature_names,
                       self.categories)

    def delete_with_missing_class(self) -> "Dataset":
        keep = ~np.isnan(self.y)
        if keep.all():
            return self
        return self.subset(np.flatnonzero(keep))
