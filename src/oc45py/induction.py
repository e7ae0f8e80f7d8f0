"""
oc45py.induction
================

Growing, collapsing and pruning a single tree over replicated data.

Nodes live in an arena (``ClassifierTree.nodes``) and refer to their children
by index; node 0 is the root once the build has finished.  While the tree is
being built and pruned every node remembers which training rows reached it
(``rows``) and with what (possibly fractional) weight, so that pruning can
re-route the data when a subtree is raised.  That bookkeeping is dropped, and
the arena compacted, at the end of :meth:`ClassifierTree.build`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
from sklearn.utils import check_random_state

from .criteria import estimated_errors
from .dataset import Dataset, InsufficientDataError
from .replication import (
    classification_frank_hall,
    classification_lin_li,
    get_distributions,
    is_data_replicated,
    replicate_data,
    replicate_instances,
    split_replicas,
)
from .selection import BinaryModelSelection
from .split import NoSplit, SplitModel
from .utils import eq, sm_or_eq

logger = logging.getLogger(__name__)

PRUNING_MODES = ("c45", "reduced_error", None)


@dataclass
class TreeNode:
    """One node of the arena.

    Attributes
    ----------
    model : SplitModel
        ``NoSplit`` for leaves, the chosen ``BinarySplit`` otherwise.
    children : list[int]
        Arena indices of the children, one per subset of ``model``.
    is_leaf : bool
        True if this node is terminal.
    is_empty : bool
        True for a leaf that received no training weight.
    rows, weights : ndarray or None
        Training rows reaching the node and their weights (build time only).
    test : list[Distribution] or None
        Per-replica pruning-set distributions (reduced-error pruning only).
    """
    model: SplitModel
    children: list = field(default_factory=list)
    is_leaf: bool = True
    is_empty: bool = False
    rows: Optional[np.ndarray] = None
    weights: Optional[np.ndarray] = None
    test: Optional[list] = None


class ClassifierTree:
    """A C4.5 tree grown jointly over all replicas of an ordinal problem.

    Parameters
    ----------
    min_no_obj : int, default=2
        Minimum weight in each of at least two subsets of a split.
    use_mdl_correction : bool, default=True
        MDL penalty on numeric information gains.
    criterion : str, int or OptimizationCriterion, default="sum"
        Rule combining per-replica split scores.
    num_attributes : int or None, default=None
        Size of the random attribute subset drawn at each node.
    xor_hook : callable, optional
        Extension point called when a numeric replica looks like an XOR.
    pruning : {"c45", "reduced_error", None}, default="c45"
        Post-pruning method.
    cf : float, default=0.25
        Confidence factor for C4.5 pruning.
    subtree_raising : bool, default=True
        Consider replacing a node by its largest branch while pruning.
    collapse_tree : bool, default=True
        Collapse subtrees that do not reduce the training error.  Not applied
        with reduced-error pruning.
    num_folds : int, default=3
        Folds for reduced-error pruning; one fold is the pruning set.
    use_laplace : bool, default=False
        Laplace-smoothed leaf probabilities.
    window : int, default=0
        The ``s`` of the replication method (0 keeps every instance in every
        replica).
    random_state : int, RandomState or None
        Seeds the single random source used by one build.
    """

    def __init__(self, *, min_no_obj: int = 2, use_mdl_correction: bool = True,
                 criterion="sum", num_attributes: Optional[int] = None,
                 xor_hook: Optional[Callable] = None, pruning: Optional[str] = "c45",
                 cf: float = 0.25, subtree_raising: bool = True,
                 collapse_tree: bool = True, num_folds: int = 3,
                 use_laplace: bool = False, window: int = 0, random_state=None):
        if pruning not in PRUNING_MODES:
            raise ValueError(f"pruning must be one of {PRUNING_MODES}, got {pruning!r}")
        if not 0 < cf < 1:
            raise ValueError("Confidence has to be greater than zero and smaller than one!")
        if num_folds < 2:
            raise ValueError("num_folds must be at least 2")
        self.min_no_obj = int(min_no_obj)
        self.use_mdl_correction = bool(use_mdl_correction)
        self.criterion = criterion
        self.num_attributes = num_attributes
        self.xor_hook = xor_hook
        self.pruning = pruning
        self.cf = float(cf)
        self.subtree_raising = bool(subtree_raising)
        self.collapse_tree = bool(collapse_tree)
        self.num_folds = int(num_folds)
        self.use_laplace = bool(use_laplace)
        self.window = int(window)
        self.random_state = random_state

        self.nodes: list[TreeNode] = []
        self.root = 0

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------
    def build(self, data: Dataset, max_depth: Optional[int] = None,
              cost_matrices=None) -> "ClassifierTree":
        """Grow (and collapse/prune) the tree on ``data``.

        ``data`` may be a plain ordinal dataset, which is replicated first,
        or an already replicated/binary one.

        Raises
        ------
        InsufficientDataError
            No attributes, no labelled instance, or fewer than two classes.
        """
        if data.n_features == 0:
            raise InsufficientDataError("dataset has no attributes besides the class")
        if cost_matrices is not None:
            cost_matrices = [cost_matrices[i] for i in np.flatnonzero(~np.isnan(data.y))]
        data = data.delete_with_missing_class()
        if len(data) == 0:
            raise InsufficientDataError("all instances have a missing class value")
        if data.n_classes < 2:
            raise InsufficientDataError("at least two class values are needed")

        if is_data_replicated(data):
            train = data
        else:
            train = replicate_data(data, self.window, cost_matrices)
        self.n_classes_ = train.n_markers + 2
        self.n_features_ = train.n_features
        self.cardinalities_ = train.cardinalities.copy()

        self._rng = check_random_state(self.random_state)
        self._train = train
        self._selector = BinaryModelSelection(self.min_no_obj, train,
                                              self.use_mdl_correction, self.criterion,
                                              self.num_attributes, self.xor_hook)
        self.nodes = []
        depth = -1 if max_depth is None else int(max_depth)
        rows = np.arange(len(train))

        if self.pruning == "reduced_error":
            grow, hold = self._fold_split(train)
            self.root = self._build_node(grow, train.weights[grow], depth,
                                         hold, train.weights[hold])
        else:
            self.root = self._build_node(rows, train.weights, depth)
            if self.collapse_tree:
                self.collapse()

        if self.pruning == "c45":
            self.prune()
        elif self.pruning == "reduced_error":
            self.prune_reduced_error()

        self._selector.cleanup()
        self._cleanup()
        logger.info("built tree with %d nodes and %d leaves over %d replicas",
                    self.n_nodes(), self.n_leaves(), self.n_classes_ - 1)
        return self

    def _build_node(self, rows, weights, depth, test_rows=None, test_weights=None) -> int:
        data = self._train.subset(rows, weights)
        if depth == 0:
            model = NoSplit.from_data(data)
        else:
            model = self._selector.select_model(data, self._rng)

        node = TreeNode(model, rows=rows, weights=weights)
        idx = len(self.nodes)
        self.nodes.append(node)

        test_parts = None
        if test_rows is not None:
            test_data = self._train.subset(test_rows, test_weights)
            node.test = model.distribute(test_data)
            if model.n_subsets > 1:
                test_parts = model.split(test_data)

        if model.n_subsets > 1:
            node.is_leaf = False
            for i, (sub_rows, sub_w) in enumerate(model.split(data)):
                if test_parts is None:
                    child = self._build_node(rows[sub_rows], sub_w, depth - 1)
                else:
                    t_rows, t_w = test_parts[i]
                    child = self._build_node(rows[sub_rows], sub_w, depth - 1,
                                             test_rows[t_rows], t_w)
                node.children.append(child)
        else:
            node.is_empty = eq(float(np.sum(weights)), 0)
        return idx

    def _fold_split(self, data: Dataset):
        """Stratified folds over the replicated rows; the last fold prunes."""
        n = len(data)
        order = self._rng.permutation(n)
        order = order[np.argsort(data.y[order], kind="mergesort")]
        fold = np.empty(n, dtype=int)
        fold[order] = np.arange(n) % self.num_folds
        hold = fold == self.num_folds - 1
        return np.flatnonzero(~hold), np.flatnonzero(hold)

    def _make_leaf(self, node: TreeNode):
        node.model = NoSplit(node.model.distributions)
        node.children = []
        node.is_leaf = True

    def _cleanup(self):
        """Compact the arena to the reachable nodes and drop training rows."""
        order = []
        stack = [self.root]
        while stack:
            idx = stack.pop()
            order.append(idx)
            stack.extend(reversed(self.nodes[idx].children))
        remap = {old: new for new, old in enumerate(order)}
        nodes = []
        for old in order:
            node = self.nodes[old]
            node.children = [remap[c] for c in node.children]
            node.rows = node.weights = node.test = None
            nodes.append(node)
        self.nodes = nodes
        self.root = 0
        self._train = None
        self._selector = None

    # ------------------------------------------------------------------
    # Collapsing
    # ------------------------------------------------------------------
    def collapse(self, idx: Optional[int] = None):
        """Replace subtrees by leaves where they do not reduce training error."""
        idx = self.root if idx is None else idx
        node = self.nodes[idx]
        if node.is_leaf:
            return
        errors_subtree = self._training_errors(idx)
        errors_tree = sum(d.num_incorrect() for d in node.model.distributions)
        if errors_subtree >= errors_tree - 1e-3:
            self._make_leaf(node)
        else:
            for child in node.children:
                self.collapse(child)

    def _training_errors(self, idx: int) -> float:
        node = self.nodes[idx]
        if node.is_leaf:
            return sum(d.num_incorrect() for d in node.model.distributions)
        return sum(self._training_errors(c) for c in node.children)

    # ------------------------------------------------------------------
    # C4.5 pruning
    # ------------------------------------------------------------------
    def prune(self, idx: Optional[int] = None):
        """C4.5 pessimistic pruning with optional subtree raising."""
        idx = self.root if idx is None else idx
        node = self.nodes[idx]
        if node.is_leaf:
            return

        for child in list(node.children):
            self.prune(child)

        dists = node.model.distributions
        bags = np.sum([d.per_bag_ for d in dists], axis=0)
        # error if this node were a leaf
        errors_leaf = sum(estimated_errors(d, self.cf) for d in dists)
        largest = int(np.argmax(bags))
        if self.subtree_raising:
            errors_largest = self._estimated_errors_for_branch(
                node.children[largest], node.rows, node.weights)
        else:
            errors_largest = np.inf
        errors_tree = self._estimated_errors(idx)

        if (sm_or_eq(errors_leaf, errors_tree + 0.1)
                and sm_or_eq(errors_leaf, errors_largest + 0.1)):
            self._make_leaf(node)
            return

        if sm_or_eq(errors_largest, errors_tree + 0.1):
            branch = self.nodes[node.children[largest]]
            node.model = branch.model
            node.children = branch.children
            node.is_leaf = branch.is_leaf
            self._new_distribution(idx, node.rows, node.weights)
            self.prune(idx)

    def _estimated_errors(self, idx: int) -> float:
        node = self.nodes[idx]
        if node.is_leaf:
            return sum(estimated_errors(d, self.cf) for d in node.model.distributions)
        return sum(self._estimated_errors(c) for c in node.children)

    def _estimated_errors_for_branch(self, idx: int, rows, weights) -> float:
        """Estimated errors of subtree ``idx`` if ``rows`` were routed through it."""
        node = self.nodes[idx]
        data = self._train.subset(rows, weights)
        if node.is_leaf:
            return sum(estimated_errors(d, self.cf)
                       for d in get_distributions(split_replicas(data)))
        saved = node.model.distributions
        try:
            node.model.reset_distribution(data)
            parts = node.model.split(data)
        finally:
            node.model.distributions = saved
        return sum(self._estimated_errors_for_branch(c, rows[r], w)
                   for c, (r, w) in zip(node.children, parts))

    def _new_distribution(self, idx: int, rows, weights):
        """Re-route ``rows`` through subtree ``idx``, refreshing its distributions."""
        node = self.nodes[idx]
        data = self._train.subset(rows, weights)
        node.model.reset_distribution(data)
        node.rows = rows
        node.weights = weights
        if not node.is_leaf:
            for c, (r, w) in zip(node.children, node.model.split(data)):
                self._new_distribution(c, rows[r], w)
        elif not eq(float(np.sum(weights)), 0):
            node.is_empty = False

    # ------------------------------------------------------------------
    # Reduced-error pruning
    # ------------------------------------------------------------------
    def prune_reduced_error(self, idx: Optional[int] = None):
        """Prune bottom-up wherever a leaf does no worse on the pruning set."""
        idx = self.root if idx is None else idx
        node = self.nodes[idx]
        if node.is_leaf:
            return
        for child in node.children:
            self.prune_reduced_error(child)
        if sm_or_eq(self._errors_for_leaf(node), self._errors_for_tree(idx)):
            self._make_leaf(node)

    def _errors_for_leaf(self, node: TreeNode) -> float:
        errors = 0.0
        for train, test in zip(node.model.distributions, node.test):
            errors += test.total() - test.per_class(train.max_class())
        return errors

    def _errors_for_tree(self, idx: int) -> float:
        node = self.nodes[idx]
        if node.is_leaf:
            return self._errors_for_leaf(node)
        errors = 0.0
        dists = node.model.distributions
        for i, child in enumerate(node.children):
            if eq(sum(d.per_bag(i) for d in dists), 0):
                for train, test in zip(dists, node.test):
                    errors += test.per_bag(i) - test.per_class_per_bag(i, train.max_class())
            else:
                errors += self._errors_for_tree(child)
        return errors

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    def replica_probabilities(self, data: Dataset) -> np.ndarray:
        """Binary class probabilities, shape ``(n_rows, 2)``, of replicated rows."""
        return self._probs(self.root, data, np.ones(len(data)))

    def _probs(self, idx: int, data: Dataset, weight: np.ndarray) -> np.ndarray:
        node = self.nodes[idx]
        if node.is_leaf:
            return weight[:, None] * node.model.class_probs(data, None, self.use_laplace)
        sub = node.model.which_subset(data)
        member = node.model.weights(data)
        out = np.zeros((len(data), 2))
        for i, c in enumerate(node.children):
            if self.nodes[c].is_empty:
                # empty child: answer from this node's subset distribution
                rows = np.flatnonzero(sub == i)
                if rows.size:
                    out[rows] += weight[rows, None] * node.model.class_probs(
                        data.subset(rows), i, self.use_laplace)
                continue
            rows = np.flatnonzero((sub == i) | ((sub == -1) & (member[:, i] > 0)))
            if rows.size:
                out[rows] += self._probs(c, data.subset(rows), weight[rows] * member[rows, i])
        return out

    def threshold_probabilities(self, X) -> np.ndarray:
        """``P(y > i)`` for every row of ``X`` and every replica ``i``."""
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        n = X.shape[0]
        reps = replicate_instances(X, self.n_classes_, self.cardinalities_)
        p = self.replica_probabilities(reps)[:, 1]
        return p.reshape(self.n_classes_ - 1, n).T

    def classify(self, instance) -> int:
        """Ordinal label (0..K-1) of one unreplicated instance."""
        return classification_lin_li(self.threshold_probabilities(instance)[0])

    def distribution_for_instance(self, instance, frank_hall: bool = True) -> np.ndarray:
        """Class vector of one instance: Frank & Hall, or one-hot of :meth:`classify`."""
        if frank_hall:
            return classification_frank_hall(self.threshold_probabilities(instance)[0])
        out = np.zeros(self.n_classes_)
        out[self.classify(instance)] = 1.0
        return out

    # ------------------------------------------------------------------
    # Measures
    # ------------------------------------------------------------------
    def n_nodes(self, idx: Optional[int] = None) -> int:
        idx = self.root if idx is None else idx
        return 1 + sum(self.n_nodes(c) for c in self.nodes[idx].children)

    def n_leaves(self, idx: Optional[int] = None) -> int:
        idx = self.root if idx is None else idx
        node = self.nodes[idx]
        if node.is_leaf:
            return 1
        return sum(self.n_leaves(c) for c in node.children)

    def depth(self, idx: Optional[int] = None) -> int:
        idx = self.root if idx is None else idx
        node = self.nodes[idx]
        if node.is_leaf:
            return 0
        return 1 + max(self.depth(c) for c in node.children)
