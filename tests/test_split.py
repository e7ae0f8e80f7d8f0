import numpy as np
import pytest
from oc45py.dataset import Dataset
from oc45py.optimization import OptimizationCriterion
from oc45py.replication import replicate_data
from oc45py.split import BinarySplit, NoSplit


def _three_bands():
    """x in 0.05..2.95; class 0 below 1, class 1 below 2, class 2 above."""
    x = np.arange(0.05, 3.0, 0.1)
    y = (x >= 1).astype(int) + (x >= 2).astype(int)
    return replicate_data(Dataset.from_arrays(x.reshape(-1, 1), y, 3))


def _nominal_ordinal():
    """A nominal feature whose value is the class."""
    v = np.repeat([0, 1, 2], 4)
    data = Dataset.from_arrays(v.reshape(-1, 1), v, 3, cardinalities=[3],
                               feature_names=["grade"], categories={0: ["a", "b", "c"]})
    return replicate_data(data)


def _build(data, min_no_obj=2):
    return BinarySplit(0, min_no_obj, data.sum_of_weights(), True,
                       OptimizationCriterion.SUM).build(data)


def test_no_split_sends_everything_to_subset_zero():
    data = _three_bands()
    model = NoSplit.from_data(data)
    assert model.n_subsets == 1
    assert np.all(model.which_subset(data) == 0)
    assert len(model.distributions) == 2
    assert model.distributions[0].total() == 30


def test_numeric_split_has_one_threshold_per_replica():
    data = _three_bands()
    model = _build(data)
    assert model.check_model()
    assert model.active.all()
    assert np.allclose(model.split_point, [1.0, 2.0])
    assert model.info_gain() > 0
    assert model.gain_ratio() > 0
    model.set_split_point(data)
    assert np.allclose(model.split_point, [0.95, 1.95])


def test_numeric_routing_follows_the_replica_threshold():
    data = _three_bands()
    model = _build(data)
    sub = model.which_subset(data)
    # replica 0 cuts at 1, replica 1 at 2
    assert sub[:30].sum() == 20
    assert sub[30:].sum() == 10
    parts = model.split(data)
    assert [len(rows) for rows, _ in parts] == [30, 30]


def test_missing_values_are_shared_between_subsets():
    data = _three_bands()
    model = _build(data)
    X = data.X.copy()
    X[0, 0] = np.nan
    holed = Dataset(X, data.y, data.weights, data.cardinalities, 2, data.n_markers)
    sub = model.which_subset(holed)
    assert sub[0] == -1
    member = model.weights(holed)
    assert np.allclose(member[0], [1 / 3, 2 / 3])
    assert np.allclose(member[1], [1.0, 0.0])
    # the row with the missing value goes down both branches
    parts = model.split(holed)
    assert 0 in parts[0][0] and 0 in parts[1][0]
    assert parts[0][1][0] + parts[1][1][0] == pytest.approx(1.0)


def test_reset_distribution_spreads_unknowns():
    data = _three_bands()
    model = _build(data)
    y = data.y.copy()
    X = data.X.copy()
    X[0, 0] = np.nan
    holed = Dataset(X, y, data.weights, data.cardinalities, 2, data.n_markers)
    model.reset_distribution(holed)
    first = model.distributions[0]
    assert first.total() == pytest.approx(30)
    assert first.per_bag(0) == pytest.approx(9 + 9 / 29)


def test_nominal_split_is_value_against_rest():
    data = _nominal_ordinal()
    model = _build(data)
    assert model.nominal
    assert model.check_model()
    assert np.all(model.split_point == 0)
    assert model.left_side() == "grade"
    assert model.right_side(0) == " = a"
    assert model.right_side(1) == " != a"
    sub = model.which_subset(data)
    assert np.array_equal(sub[:12], np.repeat([0, 1, 1], 4))


def test_numeric_description_lists_every_replica():
    data = _three_bands()
    model = _build(data)
    model.set_split_point(data)
    assert model.left_side() == "f0"
    assert model.right_side(0) == " <= [0.95 1.95]"
    assert model.right_side(1) == " > [0.95 1.95]"


def test_constant_attribute_gives_no_split():
    X = np.ones((20, 1))
    y = np.tile([0, 1], 10)
    data = Dataset.from_arrays(X, y, 2)
    model = _build(data)
    assert not model.check_model()
    assert model.info_gain() == 0.0


def test_xor_hook_is_called_for_balanced_unsplittable_replica():
    calls = []
    X = np.ones((12, 1))
    y = np.tile([0, 1], 6)
    data = Dataset.from_arrays(X, y, 2)
    BinarySplit(0, 2, data.sum_of_weights(), True, OptimizationCriterion.SUM,
                xor_hook=lambda split, replica, rep: calls.append(replica)).build(data)
    assert calls == [0]


def test_class_probs_use_the_row_replica():
    data = _three_bands()
    model = NoSplit.from_data(data)
    probs = model.class_probs(data)
    assert probs.shape == (60, 2)
    assert np.allclose(probs[0], [1 / 3, 2 / 3])
    assert np.allclose(probs[-1], [2 / 3, 1 / 3])
    smooth = model.class_probs(data, laplace=True)
    assert np.allclose(smooth[0], [11 / 32, 21 / 32])
