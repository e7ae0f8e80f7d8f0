"""
oc45py.replication
==================

The data replication method for ordinal classification.

A problem with ``K`` ordered classes is rewritten as ``K-1`` binary problems
("replicas").  Replica ``i`` asks *is the class above rank i?*: instances of
rank ``<= i`` get the binary label 0 and the others 1.  The replicas are
stacked into one dataset; ``K-2`` marker columns appended after the
predictors say which replica a row came from (replica 0 has all markers at
zero, replica ``i > 0`` has marker ``i-1`` set).

Prediction goes the other way: an unlabelled instance is expanded into its
``K-1`` replica rows, each row gets ``P(y > i)`` from the tree and the
ordinal answer is decoded from those probabilities.
"""
from __future__ import annotations

import logging

import numpy as np

from .dataset import Dataset, InsufficientDataError
from .distribution import Distribution

logger = logging.getLogger(__name__)


def frank_hall(data: Dataset, s: int = 0, cost_matrices=None) -> list[Dataset]:
    """Split ``data`` into its ``K-1`` binary replicas (not yet stacked).

    Parameters
    ----------
    data : Dataset
        Unreplicated dataset with ``K = data.n_classes`` ordered classes.
    s : int, default=0
        Window half-width.  When ``s > 0`` replica ``i`` only keeps instances
        whose rank lies in ``[i-s, i+s]``; 0 keeps everything.
    cost_matrices : array-like of shape (n_samples, K, K), optional
        Per-instance cost matrices.  Replica ``i`` then weighs an instance of
        rank ``c`` by ``(K-1) * |C[c, i] - C[c, i+1]|``.  An instance whose
        matrix cannot be read keeps its current weight.

    Returns
    -------
    list[Dataset]
        One binary dataset per replica, in rank order.
    """
    K = int(data.n_classes)
    if K < 2:
        raise InsufficientDataError("at least two class values are needed to replicate data")
    if data.n_markers:
        raise ValueError("data is already replicated")

    old = data.y
    replicas = []
    for i in range(K - 1):
        w = data.weights.copy()
        if cost_matrices is not None:
            failed = 0
            for j in range(len(data)):
                try:
                    cm = np.asarray(cost_matrices[j], dtype=float)
                    c = int(old[j])
                    w[j] = (K - 1) * abs(cm[c, i] - cm[c, i + 1])
                except (IndexError, TypeError, ValueError):
                    failed += 1
            if failed:
                logger.debug("replica %d: kept default weight for %d instance(s) "
                             "with an unusable cost matrix", i, failed)

        with np.errstate(invalid="ignore"):
            label = np.where(np.isnan(old), np.nan, (old > i).astype(float))
            keep = np.ones(len(data), dtype=bool)
            if s > 0:
                keep = ~((old < i - s) | (old > i + s))

        rows = np.flatnonzero(keep)
        replicas.append(Dataset(data.X[rows], label[rows], w[rows],
                                data.cardinalities, 2, 0,
                                data.feature_names, data.categories))
    return replicas


def replicate_data(data: Dataset, s: int = 0, cost_matrices=None) -> Dataset:
    """Replicate ``data`` and stack the replicas into one dataset with markers."""
    replicas = frank_hall(data, s, cost_matrices)
    n_markers = len(replicas) - 1
    blocks, labels, weights = [], [], []
    for i, replica in enumerate(replicas):
        markers = np.zeros((len(replica), n_markers), dtype=float)
        if i > 0:
            markers[:, i - 1] = 1.0
        blocks.append(np.hstack([replica.X, markers]))
        labels.append(replica.y)
        weights.append(replica.weights)
    X = np.vstack(blocks)
    logger.debug("replicated %d instances into %d replicas (%d rows)",
                 len(data), len(replicas), X.shape[0])
    return Dataset(X, np.concatenate(labels), np.concatenate(weights),
                   data.cardinalities, 2, n_markers,
                   data.feature_names, data.categories)


def is_data_replicated(data: Dataset) -> bool:
    """A binary class needs no replication."""
    return data.n_classes <= 2


def num_replicas(data: Dataset) -> int:
    return data.n_replicas


def split_replicas(data: Dataset) -> list[Dataset]:
    """One dataset per replica, recovered from the marker columns."""
    ids = data.replica_ids()
    return [data.subset(np.flatnonzero(ids == r)) for r in range(data.n_replicas)]


def project_instances(data: Dataset, att_index: int) -> Dataset:
    """Keep only attribute ``att_index`` plus the marker columns."""
    if not 0 <= att_index < data.n_features:
        raise IndexError(f"attribute index {att_index} out of range")
    cols = [att_index] + list(range(data.n_features, data.X.shape[1]))
    categories = {}
    if att_index in data.categories:
        categories[0] = data.categories[att_index]
    return Dataset(data.X[:, cols], data.y, data.weights,
                   data.cardinalities[[att_index]], data.n_classes,
                   data.n_markers, [data.feature_names[att_index]], categories)


def instance_replica(instance, n_features: int) -> int:
    """Replica index of a single replicated row."""
    markers = np.asarray(instance, dtype=float)[n_features:]
    hits = np.flatnonzero(markers == 1)
    return int(hits[0]) + 1 if hits.size else 0


def replicate_instances(X, n_classes: int, cardinalities=None) -> Dataset:
    """Expand unlabelled rows into their replica rows.

    Rows are laid out replica-major: the ``n`` rows of replica 0 first, then
    those of replica 1, and so on.
    """
    X = np.asarray(X, dtype=float)
    if X.ndim == 1:
        X = X.reshape(1, -1)
    n_reps = int(n_classes) - 1
    if n_reps < 1:
        raise InsufficientDataError("at least two class values are needed to replicate data")
    n, d = X.shape
    n_markers = n_reps - 1
    blocks = []
    for i in range(n_reps):
        markers = np.zeros((n, n_markers), dtype=float)
        if i > 0:
            markers[:, i - 1] = 1.0
        blocks.append(np.hstack([X, markers]))
    if cardinalities is None:
        cardinalities = np.zeros(d, dtype=int)
    return Dataset(np.vstack(blocks), np.full(n * n_reps, np.nan),
                   np.ones(n * n_reps), cardinalities, 2, n_markers)


def replicate_instance(instance, n_classes: int, cardinalities=None) -> Dataset:
    """The ``K-1`` replica rows of one unlabelled instance."""
    return replicate_instances(np.asarray(instance, dtype=float).reshape(1, -1),
                               n_classes, cardinalities)


def get_distributions(replicas: list[Dataset]) -> list[Distribution]:
    return [Distribution.from_data(r.y, r.weights, r.n_classes) for r in replicas]


def classification_frank_hall(prob) -> np.ndarray:
    """Turn ``P(y > i)`` for ``i = 0..K-2`` into a ``K``-length class vector.

    ``P(y = i) = P(y > i-1) - P(y > i)``.  Negative interior entries, which
    appear when the replica probabilities are not monotone, are clipped to
    zero; the vector is not renormalised.  Works row-wise on 2-d input.
    """
    p = np.asarray(prob, dtype=float)
    dist = np.empty(p.shape[:-1] + (p.shape[-1] + 1,), dtype=float)
    dist[..., 0] = 1 - p[..., 0]
    dist[..., -1] = p[..., -1]
    dist[..., 1:-1] = np.maximum(p[..., :-1] - p[..., 1:], 0.0)
    return dist


def classification_lin_li(prob):
    """Ordinal label = number of replicas voting ``P(y > i) >= 0.5``."""
    p = np.asarray(prob, dtype=float)
    votes = np.sum(p >= 0.5, axis=-1)
    return int(votes) if np.ndim(votes) == 0 else votes
