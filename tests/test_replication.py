import numpy as np
import pytest
from oc45py import InsufficientDataError
from oc45py.dataset import Dataset
from oc45py.replication import (
    classification_frank_hall,
    classification_lin_li,
    frank_hall,
    instance_replica,
    is_data_replicated,
    num_replicas,
    project_instances,
    replicate_data,
    replicate_instance,
    replicate_instances,
    split_replicas,
)


def _ordinal_dataset(y=(0, 1, 2, 3, 2, 1), n_classes=4):
    """One numeric feature equal to the rank, plus a nominal feature."""
    y = np.asarray(y, dtype=float)
    X = np.column_stack([y, np.arange(len(y)) % 2])
    return Dataset.from_arrays(X, y, n_classes, cardinalities=[0, 2])


def test_frank_hall_binary_labels():
    data = _ordinal_dataset()
    reps = frank_hall(data)
    assert len(reps) == 3
    for i, rep in enumerate(reps):
        assert len(rep) == len(data)
        assert rep.n_classes == 2
        assert np.array_equal(rep.y, (data.y > i).astype(float))


def test_stacked_replicas_carry_markers():
    data = _ordinal_dataset()
    rep = replicate_data(data)
    n = len(data)
    assert rep.n_markers == 2
    assert rep.n_features == 2
    assert len(rep) == 3 * n
    assert np.all(rep.markers[:n] == 0)
    assert np.all(rep.markers[n:2 * n] == [1, 0])
    assert np.all(rep.markers[2 * n:] == [0, 1])
    assert np.array_equal(rep.replica_ids(), np.repeat([0, 1, 2], n))
    assert is_data_replicated(rep)
    assert num_replicas(rep) == 3
    assert not is_data_replicated(data)


def test_split_replicas_recovers_each_replica():
    data = _ordinal_dataset()
    parts = split_replicas(replicate_data(data))
    assert [len(p) for p in parts] == [len(data)] * 3
    assert np.array_equal(parts[2].y, (data.y > 2).astype(float))


def test_window_keeps_neighbouring_ranks():
    data = _ordinal_dataset(y=(0, 1, 2, 3))
    reps = frank_hall(data, s=1)
    assert np.array_equal(reps[0].X[:, 0], [0, 1])
    assert np.array_equal(reps[1].X[:, 0], [0, 1, 2])
    assert np.array_equal(reps[2].X[:, 0], [1, 2, 3])


def test_window_can_leave_a_replica_empty():
    data = _ordinal_dataset(y=(0, 0, 0), n_classes=4)
    reps = frank_hall(data, s=1)
    assert len(reps[2]) == 0
    stacked = replicate_data(data, s=1)
    assert len(stacked) == 3 + 3


def test_cost_matrices_reweight_replicas():
    y = np.array([0.0, 2.0])
    data = Dataset.from_arrays(y.reshape(-1, 1), y, 3)
    costs = [np.array([[0, 5, 6], [1, 0, 1], [2, 1, 0]]),
             np.array([[0, 1, 2], [1, 0, 1], [4, 1, 0]])]
    reps = frank_hall(data, cost_matrices=costs)
    assert np.allclose(reps[0].weights, [10.0, 6.0])
    assert np.allclose(reps[1].weights, [2.0, 2.0])


def test_unusable_cost_matrix_keeps_weight():
    y = np.array([0.0, 1.0, 2.0])
    data = Dataset.from_arrays(y.reshape(-1, 1), y, 3, weights=[3.0, 1.0, 1.0])
    good = np.abs(np.subtract.outer(np.arange(3), np.arange(3)))
    reps = frank_hall(data, cost_matrices=[None, good, np.zeros((1, 1))])
    assert reps[0].weights[0] == 3.0
    assert reps[0].weights[1] == 2.0
    assert reps[0].weights[2] == 1.0


def test_replication_needs_two_classes():
    data = _ordinal_dataset(y=(0, 0), n_classes=1)
    with pytest.raises(InsufficientDataError):
        frank_hall(data)
    with pytest.raises(ValueError):
        frank_hall(replicate_data(_ordinal_dataset()))


def test_replicate_instances_is_replica_major():
    X = np.array([[0.5, 1.0], [2.5, 0.0]])
    rep = replicate_instances(X, 3, cardinalities=[0, 2])
    assert len(rep) == 4
    assert np.all(np.isnan(rep.y))
    assert np.array_equal(rep.replica_ids(), [0, 0, 1, 1])
    assert np.array_equal(rep.X[2, :2], X[0])
    single = replicate_instance(X[1], 3)
    assert len(single) == 2
    assert instance_replica(single.X[1], 2) == 1
    assert instance_replica(single.X[0], 2) == 0


def test_project_instances_keeps_markers():
    rep = replicate_data(_ordinal_dataset())
    view = project_instances(rep, 1)
    assert view.X.shape[1] == 3
    assert view.n_features == 1
    assert view.is_nominal(0)
    with pytest.raises(IndexError):
        project_instances(rep, 2)


def test_frank_hall_distribution():
    assert np.allclose(classification_frank_hall([0.8, 0.3]), [0.2, 0.5, 0.3])
    # non-monotone answers are clipped, not renormalised
    dist = classification_frank_hall([0.3, 0.8])
    assert np.allclose(dist, [0.7, 0.0, 0.8])
    rows = classification_frank_hall(np.array([[0.9, 0.6, 0.1], [0.2, 0.4, 0.9]]))
    assert rows.shape == (2, 4)
    assert np.all(rows >= 0)


def test_lin_li_counts_replicas_above_half():
    assert classification_lin_li([0.8, 0.3]) == 1
    assert classification_lin_li([0.5, 0.5]) == 2
    assert classification_lin_li([0.1, 0.9]) == 1
    assert list(classification_lin_li(np.array([[0.0, 0.0], [1.0, 1.0]]))) == [0, 2]
