import numpy as np
import pytest
from oc45py import InsufficientDataError
from oc45py.dataset import Dataset
from oc45py.induction import ClassifierTree, TreeNode
from oc45py.optimization import OptimizationCriterion
from oc45py.split import BinarySplit, NoSplit


def _three_bands():
    x = np.arange(0.05, 3.0, 0.1)
    y = (x >= 1).astype(int) + (x >= 2).astype(int)
    return Dataset.from_arrays(x.reshape(-1, 1), y, 3)


def _noisy(n=300, seed=0):
    rng = np.random.RandomState(seed)
    X = rng.rand(n, 3)
    y = np.digitize(X[:, 0] + 0.2 * rng.randn(n), [0.33, 0.66])
    return Dataset.from_arrays(X, y, 3)


def test_three_bands_are_learned_exactly():
    tree = ClassifierTree().build(_three_bands())
    assert tree.n_nodes() == 3
    assert tree.n_leaves() == 2
    assert tree.depth() == 1
    assert np.allclose(tree.nodes[0].model.split_point, [0.95, 1.95])
    assert [tree.classify([v]) for v in (0.5, 1.5, 2.5)] == [0, 1, 2]


def test_threshold_probabilities_per_replica():
    tree = ClassifierTree().build(_three_bands())
    p = tree.threshold_probabilities(np.array([[0.5], [1.5], [2.5]]))
    assert p.shape == (3, 2)
    assert np.allclose(p, [[0, 0], [1, 0], [1, 1]])
    assert np.allclose(tree.distribution_for_instance([1.5]), [0, 1, 0])
    assert np.allclose(tree.distribution_for_instance([2.5], frank_hall=False), [0, 0, 1])


def test_missing_value_is_routed_down_both_branches():
    tree = ClassifierTree().build(_three_bands())
    p = tree.threshold_probabilities(np.array([[np.nan]]))[0]
    # replica 0 sends 2/3 of its weight right, replica 1 1/3
    assert np.allclose(p, [2 / 3, 1 / 3])
    assert tree.classify([np.nan]) == 1


def test_max_depth_zero_gives_a_single_leaf():
    tree = ClassifierTree().build(_three_bands(), max_depth=0)
    assert tree.n_nodes() == 1
    assert tree.n_leaves() == 1
    assert isinstance(tree.nodes[0].model, NoSplit)
    assert tree.depth() == 0


def test_arena_is_compacted_after_build():
    tree = ClassifierTree().build(_noisy())
    assert len(tree.nodes) == tree.n_nodes()
    assert tree.root == 0
    for node in tree.nodes:
        assert node.rows is None and node.weights is None
        assert all(0 < c < len(tree.nodes) for c in node.children)
        assert node.is_leaf == (len(node.children) == 0)


def test_collapse_and_prune_never_grow_the_tree():
    data = _noisy()
    grown = ClassifierTree(pruning=None, collapse_tree=False).build(data)
    collapsed = ClassifierTree(pruning=None, collapse_tree=True).build(data)
    pruned = ClassifierTree(pruning="c45").build(data)
    assert grown.n_nodes() >= collapsed.n_nodes() >= pruned.n_nodes()
    no_raising = ClassifierTree(pruning="c45", subtree_raising=False).build(data)
    assert no_raising.n_nodes() <= collapsed.n_nodes()


def test_reduced_error_pruning_is_seeded():
    data = _noisy()
    a = ClassifierTree(pruning="reduced_error", random_state=0).build(data)
    b = ClassifierTree(pruning="reduced_error", random_state=0).build(data)
    assert a.n_nodes() == b.n_nodes()
    X = np.random.RandomState(1).rand(50, 3)
    assert np.array_equal([a.classify(x) for x in X], [b.classify(x) for x in X])


def test_reduced_error_pruning_prunes_noise():
    rng = np.random.RandomState(0)
    X = rng.rand(200, 2)
    y = rng.randint(0, 3, size=200)
    data = Dataset.from_arrays(X, y, 3)
    unpruned = ClassifierTree(pruning=None, collapse_tree=False,
                              use_mdl_correction=False).build(data)
    rep = ClassifierTree(pruning="reduced_error", use_mdl_correction=False,
                         random_state=0).build(data)
    assert rep.n_nodes() < unpruned.n_nodes()


def test_laplace_leaves_never_give_certainty():
    tree = ClassifierTree(use_laplace=True).build(_three_bands())
    p = tree.threshold_probabilities(np.array([[0.5], [2.5]]))
    assert np.all((p > 0) & (p < 1))
    assert [tree.classify([v]) for v in (0.5, 1.5, 2.5)] == [0, 1, 2]


def test_window_limits_replica_training_sets():
    x = np.arange(0.05, 4.0, 0.1)
    y = np.floor(x).astype(int)
    data = Dataset.from_arrays(x.reshape(-1, 1), y, 4)
    tree = ClassifierTree(window=1).build(data)
    assert [tree.classify([v]) for v in (0.5, 1.5, 2.5, 3.5)] == [0, 1, 2, 3]


def test_data_errors():
    with pytest.raises(InsufficientDataError):
        ClassifierTree().build(Dataset.from_arrays(np.empty((4, 0)), [0, 1, 2, 1], 3))
    with pytest.raises(InsufficientDataError):
        ClassifierTree().build(Dataset.from_arrays(np.ones((3, 1)), [np.nan] * 3, 3))
    with pytest.raises(InsufficientDataError):
        ClassifierTree().build(Dataset.from_arrays(np.ones((3, 1)), [0, 0, 0], 1))


def test_configuration_errors():
    with pytest.raises(ValueError):
        ClassifierTree(pruning="pessimistic")
    with pytest.raises(ValueError):
        ClassifierTree(cf=1.5)
    with pytest.raises(ValueError):
        ClassifierTree(num_folds=1)


def _tree_with_noise_root(**kwargs):
    """Root splits on a noise column; its larger branch splits column 1 cleanly.

    Rows 16..19 take the small branch and would also be classified correctly
    by the column-1 test, so raising that branch to the root pays off.
    """
    x1 = np.r_[np.arange(8.0), np.arange(10.0, 18.0), [3.5, 4.5, 13.5, 14.5]]
    x0 = np.r_[np.zeros(16), np.ones(4)]
    y = (x1 >= 10).astype(int)
    data = Dataset.from_arrays(np.column_stack([x0, x1]), y, 2, cardinalities=[2, 0])

    tree = ClassifierTree(**kwargs)
    tree._train = data

    def add(rows, att=None):
        sub = data.subset(rows)
        if att is None:
            model = NoSplit.from_data(sub)
        else:
            model = BinarySplit(att, 2, sub.sum_of_weights(), False,
                                OptimizationCriterion.SUM).build(sub)
        tree.nodes.append(TreeNode(model, is_leaf=att is None, rows=rows,
                                   weights=data.weights[rows]))
        return len(tree.nodes) - 1

    big = np.arange(16)
    root = add(np.arange(20), 0)
    branch = add(big, 1)
    tree.nodes[branch].children = [add(big[:8]), add(big[8:])]
    tree.nodes[root].children = [branch, add(np.arange(16, 20))]
    tree.root = root
    return tree


def test_subtree_raising_grafts_largest_branch():
    tree = _tree_with_noise_root()
    branch = tree.nodes[tree.root].children[0]
    branch_model = tree.nodes[branch].model
    assert tree.n_nodes() == 5

    tree.prune()
    root = tree.nodes[tree.root]
    assert root.model is branch_model
    assert root.model.att_index == 1
    # every root row is now routed through the raised test
    assert sum(d.total() for d in root.model.distributions) == pytest.approx(20.0)
    left, right = (tree.nodes[c] for c in root.children)
    assert left.model.distributions[0].total() == pytest.approx(10.0)
    assert right.model.distributions[0].total() == pytest.approx(10.0)
    assert left.model.distributions[0].num_incorrect() == 0
    assert tree.n_nodes() == 3

    kept = _tree_with_noise_root(subtree_raising=False)
    kept.prune()
    assert kept.n_nodes() == 5
    assert kept.nodes[kept.root].model.att_index == 0
