"""
oc45py.tree
===========

This module implements an ordinal decision tree classifier.  The ``K``
ordered classes are rewritten as ``K-1`` binary problems with the data
replication method of Frank & Hall, and a single C4.5 tree is grown jointly
over all replicas: every node chooses one attribute, but numeric attributes
may be cut at a different threshold in each replica.  An unlabelled instance
is routed once per replica and the ``K-1`` answers ``P(y > i)`` are decoded
into the predicted rank.

The estimator follows scikit-learn conventions (``fit``/``predict``/
``predict_proba``/``score``) and supports numeric and categorical predictors,
missing values, instance weights and per-instance cost matrices, C4.5
confidence pruning with subtree raising, reduced-error pruning, and text and
Graphviz export of the learned tree.
"""

# -----------------------------------------------------------------------------

from __future__ import annotations

import logging

import numpy as np
from sklearn.base import BaseEstimator, ClassifierMixin

from .dataset import Dataset, InsufficientDataError
from .induction import ClassifierTree
from .optimization import OptimizationCriterion
from .replication import classification_frank_hall, classification_lin_li
from .utils import isnan_scalar

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _to_float_column(col) -> np.ndarray:
    if col.dtype.kind in "fiub":
        return col.astype(float)
    return np.array([np.nan if isnan_scalar(v) else float(v) for v in col], dtype=float)


def _sorted_categories(values) -> list:
    try:
        return sorted(set(values))
    except TypeError:
        # mixed types: order by their text
        return sorted(set(values), key=str)


class OrdinalC45Classifier(ClassifierMixin, BaseEstimator):
    """
    Ordinal classification tree (C4.5 over Frank & Hall replicated data).

    The class labels are taken to be ordered: either in the order given by
    ``classes`` or, by default, in sorted order.  Training replicates every
    instance into ``K-1`` binary instances ("is the class above rank i?"),
    tagged by marker attributes, and grows one C4.5 tree with binary splits
    on the result.  Prediction counts the replicas answering "above" with
    probability at least 0.5.

    Parameters
    ----------
    min_samples_leaf : int, default=2
        Minimum weight in each of at least two subsets of a split.
    pruning : bool, default=True
        Whether to post-prune the tree.
    cf : float or None, default=None
        Confidence factor for C4.5 pruning, in (0, 1).  ``None`` means 0.25.
        Smaller values prune more.  Values above 0.5 are accepted but make
        the pessimistic error estimate degenerate (a warning is logged).
    collapse_tree : bool, default=True
        Replace subtrees that do not reduce the training error by leaves
        before pruning.
    subtree_raising : bool, default=True
        Consider replacing a node by its largest branch while pruning.
    reduced_error_pruning : bool, default=False
        Prune on a held-out fold of the replicated data instead of with the
        C4.5 error estimate.
    num_folds : int or None, default=None
        Number of folds for reduced-error pruning (one of them is held out).
        ``None`` means 3.
    use_mdl_correction : bool, default=True
        Penalise the information gain of numeric splits by the cost of
        encoding the chosen threshold.
    use_laplace : bool, default=False
        Laplace-smooth the leaf probabilities.
    window : int, default=0
        Replication window ``s``.  When positive, replica ``i`` is only
        trained on instances whose rank lies in ``[i-s, i+s]``.
    optimization_criterion : str or int, default="sum"
        How per-replica split scores are combined: ``"sum"``, ``"average"``,
        ``"product"``, ``"geometric_mean"``, ``"min"``, ``"max"``,
        ``"euclidean_min"`` or ``"euclidean_max"``.
    frank_hall_distribution : bool, default=False
        If True :meth:`predict_proba` returns the Frank & Hall class
        distribution, otherwise a one-hot vector of the predicted class.
    max_features : int or None, default=None
        Size of the random attribute subset preferred at each node.  ``0``
        means ``int(log2(n_features + 1)) + 1``; ``None`` disables sampling.
    max_depth : int or None, default=None
        Maximum depth of the tree.  If ``None`` the depth is unbounded.
    xor_guard : callable or None, default=None
        Called as ``xor_guard(split, replica, replica_data)`` when a numeric
        attribute finds no threshold in a replica whose classes are nearly
        balanced.  Detection is always logged at DEBUG level.
    random_state : int, RandomState or None, default=None
        Seed for attribute sampling and the reduced-error pruning folds.
    classes : array-like or None, default=None
        Class labels in ordinal order.  Defaults to the sorted labels seen in
        ``fit``.
    feature_names : list[str] or None, default=None
        Names used in text and Graphviz exports.
    categorical_features : list[int|str] or None, default=None
        Indices or names of categorical input features.  If names are used
        ``feature_names`` must be provided.  All other features are numeric.

    Notes
    -----
    - Missing values may be given as ``None`` or ``numpy.nan``.  Rows with a
      missing label are ignored during training.
    - When the training data cannot support a tree (no usable attribute, no
      labelled row or a single class) a warning is logged and the estimator
      falls back to predicting the majority class.
    """

    def __init__(
        self,
        *,
        min_samples_leaf: int = 2,
        pruning: bool = True,
        cf: float | None = None,
        collapse_tree: bool = True,
        subtree_raising: bool = True,
        reduced_error_pruning: bool = False,
        num_folds: int | None = None,
        use_mdl_correction: bool = True,
        use_laplace: bool = False,
        window: int = 0,
        optimization_criterion="sum",
        frank_hall_distribution: bool = False,
        max_features: int | None = None,
        max_depth: int | None = None,
        xor_guard=None,
        random_state=None,
        classes=None,
        feature_names: list[str] | None = None,
        categorical_features: list[int | str] | None = None,
    ):
        self.min_samples_leaf = min_samples_leaf
        self.pruning = pruning
        self.cf = cf
        self.collapse_tree = collapse_tree
        self.subtree_raising = subtree_raising
        self.reduced_error_pruning = reduced_error_pruning
        self.num_folds = num_folds
        self.use_mdl_correction = use_mdl_correction
        self.use_laplace = use_laplace
        self.window = window
        self.optimization_criterion = optimization_criterion
        self.frank_hall_distribution = frank_hall_distribution
        self.max_features = max_features
        self.max_depth = max_depth
        self.xor_guard = xor_guard
        self.random_state = random_state
        self.classes = classes
        self.feature_names = feature_names
        self.categorical_features = categorical_features

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------
    def _check_params(self):
        if self.cf is not None:
            if not 0 < self.cf < 1:
                raise ValueError("Confidence has to be greater than zero and smaller than one!")
            if self.reduced_error_pruning:
                raise ValueError("Setting the confidence doesn't make sense "
                                 "for reduced error pruning.")
            if not self.pruning:
                raise ValueError("Doesn't make sense to change confidence for an unpruned tree!")
        if self.num_folds is not None:
            if not self.reduced_error_pruning:
                raise ValueError("Setting the number of folds only makes sense "
                                 "for reduced error pruning.")
            if self.num_folds < 2:
                raise ValueError("num_folds must be at least 2")
        if not self.pruning and self.reduced_error_pruning:
            raise ValueError("Unpruned tree and reduced error pruning can't be selected "
                             "simultaneously!")
        if not self.pruning and not self.subtree_raising:
            raise ValueError("Subtree raising doesn't need to be unset for an unpruned tree!")
        if self.min_samples_leaf < 1:
            raise ValueError("min_samples_leaf must be at least 1")
        if self.window < 0:
            raise ValueError("window must be non-negative")
        if self.max_depth is not None and self.max_depth < 0:
            raise ValueError("max_depth must be non-negative or None")
        if self.max_features is not None and self.max_features < 0:
            raise ValueError("max_features must be non-negative or None")
        if self.xor_guard is not None and not callable(self.xor_guard):
            raise ValueError("xor_guard must be callable or None")
        return OptimizationCriterion.parse(self.optimization_criterion)

    def _pruning_mode(self):
        if not self.pruning:
            return None
        return "reduced_error" if self.reduced_error_pruning else "c45"

    def _num_attributes(self, n_features: int):
        if self.max_features is None:
            return None
        if self.max_features == 0:
            return int(np.log2(n_features + 1)) + 1
        return int(self.max_features)

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------
    def _categorical_indices(self, n_features: int) -> set:
        cats = self.categorical_features
        if cats is None:
            return set()
        cats = list(cats)
        if len(cats) and isinstance(cats[0], str):
            if self.feature_names is None:
                raise ValueError("feature_names must be provided when using "
                                 "categorical_features by name")
            name_to_idx = {n: i for i, n in enumerate(self.feature_names)}
            try:
                cats = [name_to_idx[c] for c in cats]
            except KeyError as exc:
                raise ValueError(f"unknown categorical feature {exc.args[0]!r}") from None
        out = set(int(i) for i in cats)
        if any(i < 0 or i >= n_features for i in out):
            raise ValueError("categorical_features index out of range")
        return out

    def _encode_X(self, X, fitting: bool = False) -> np.ndarray:
        X = np.asarray(X)
        if X.ndim != 2:
            raise ValueError("X must be a 2-dimensional array")
        if fitting:
            self.n_features_in_ = X.shape[1]
            cats = self._categorical_indices(X.shape[1])
            self.is_cat_ = [i in cats for i in range(X.shape[1])]
            self.categories_ = {}
        elif X.shape[1] != self.n_features_in_:
            raise ValueError(f"X has {X.shape[1]} features, but the estimator was "
                             f"fitted with {self.n_features_in_}")

        out = np.empty(X.shape, dtype=float)
        for j in range(X.shape[1]):
            col = X[:, j]
            if not self.is_cat_[j]:
                out[:, j] = _to_float_column(col)
                continue
            values = col.tolist()
            if fitting:
                self.categories_[j] = _sorted_categories(v for v in values if not isnan_scalar(v))
            codes = {v: k for k, v in enumerate(self.categories_[j])}
            # unseen categories count as missing
            out[:, j] = [np.nan if isnan_scalar(v) else codes.get(v, np.nan) for v in values]
        return out

    def _encode_y(self, y) -> np.ndarray:
        y = np.asarray(y, dtype=object).reshape(-1)
        missing = np.array([isnan_scalar(v) for v in y], dtype=bool)
        if self.classes is not None:
            classes = list(self.classes)
            if len(set(classes)) != len(classes):
                raise ValueError("classes must not contain duplicates")
        else:
            known = y[~missing].tolist()
            if not known:
                raise ValueError("y has no labelled instance and no classes were given")
            classes = _sorted_categories(known)
        self.classes_ = np.asarray(classes)
        index = {c: i for i, c in enumerate(classes)}
        codes = np.full(len(y), np.nan)
        for i in np.flatnonzero(~missing):
            try:
                codes[i] = index[y[i]]
            except KeyError:
                raise ValueError(f"y contains label {y[i]!r} not in classes") from None
        return codes

    # -------------------------------------------------------------------------
    # Fitting
    # -------------------------------------------------------------------------
    def fit(self, X, y, sample_weight=None, cost_matrices=None):
        """
        Build the ordinal tree from the training set ``(X, y)``.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Training inputs.  Missing values may be ``None`` or ``numpy.nan``.
        y : array-like of shape (n_samples,)
            Ordinal labels; ``None``/``nan`` marks an unlabelled row.
        sample_weight : array-like of shape (n_samples,), optional
            Instance weights.  Defaults to 1.
        cost_matrices : array-like of shape (n_samples, K, K), optional
            Per-instance misclassification costs ``C[true, predicted]``, used
            to weigh each instance differently in every replica.

        Returns
        -------
        self
        """
        criterion = self._check_params()
        Xe = self._encode_X(X, fitting=True)
        y_codes = self._encode_y(y)
        if len(y_codes) != Xe.shape[0]:
            raise ValueError("X and y must have the same number of rows")
        if sample_weight is None:
            w = np.ones(len(y_codes), dtype=float)
        else:
            w = np.asarray(sample_weight, dtype=float)
            if len(w) != len(y_codes):
                raise ValueError("sample_weight must have the same length as y")
        if cost_matrices is not None and len(cost_matrices) != len(y_codes):
            raise ValueError("cost_matrices must have one matrix per instance")

        names = self.feature_names
        if names is not None:
            if len(names) != Xe.shape[1]:
                raise ValueError("feature_names length must match X.shape[1]")
            names = list(names)
        self.feature_names_ = names if names is not None else [f"X[{i}]" for i in range(Xe.shape[1])]

        cards = np.array([len(self.categories_[j]) if self.is_cat_[j] else 0
                          for j in range(Xe.shape[1])], dtype=int)
        data = Dataset(Xe, y_codes, w, cards, len(self.classes_),
                       feature_names=self.feature_names_,
                       categories={j: list(c) for j, c in self.categories_.items()})

        tree = ClassifierTree(
            min_no_obj=self.min_samples_leaf,
            use_mdl_correction=self.use_mdl_correction,
            criterion=criterion,
            num_attributes=self._num_attributes(Xe.shape[1]),
            xor_hook=self.xor_guard,
            pruning=self._pruning_mode(),
            cf=0.25 if self.cf is None else self.cf,
            subtree_raising=self.subtree_raising,
            collapse_tree=self.collapse_tree,
            num_folds=3 if self.num_folds is None else self.num_folds,
            use_laplace=self.use_laplace,
            window=self.window,
            random_state=self.random_state,
        )
        self.prior_ = None
        try:
            self.tree_ = tree.build(data, max_depth=self.max_depth,
                                    cost_matrices=cost_matrices)
        except InsufficientDataError as exc:
            logger.warning("cannot build an ordinal tree (%s); predicting the majority class",
                           exc)
            self.tree_ = None
            self.prior_ = self._class_prior(y_codes, w)
        return self

    def _class_prior(self, y_codes, w) -> np.ndarray:
        counts = np.zeros(len(self.classes_))
        known = ~np.isnan(y_codes)
        np.add.at(counts, y_codes[known].astype(int), w[known])
        if counts.sum() <= 0:
            return np.full(len(self.classes_), 1.0 / len(self.classes_))
        return counts / counts.sum()

    def _check_fitted(self):
        if getattr(self, 'tree_', None) is None and getattr(self, 'prior_', None) is None:
            raise ValueError("Estimator not fitted. Call fit(...) first.")

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------
    def _threshold_probabilities(self, X) -> np.ndarray:
        return self.tree_.threshold_probabilities(self._encode_X(X))

    def predict(self, X):
        """
        Predict ordinal class labels for the provided samples.

        The predicted rank is the number of replicas whose probability of
        "class above rank i" is at least 0.5.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.  Missing values may be represented by ``None`` or
            ``numpy.nan``.

        Returns
        -------
        ndarray of shape (n_samples,)
            Predicted class labels, taken from :attr:`classes_`.

        Raises
        ------
        ValueError
            If the estimator has not been fitted.
        """
        self._check_fitted()
        if self.tree_ is None:
            n = self._encode_X(X).shape[0]
            return np.repeat(self.classes_[int(np.argmax(self.prior_))], n)
        codes = classification_lin_li(self._threshold_probabilities(X))
        return self.classes_[np.asarray(codes, dtype=int)]

    def predict_proba(self, X):
        """
        Predict class probabilities for the provided samples.

        With ``frank_hall_distribution=True`` the Frank & Hall distribution
        ``P(y = i) = P(y > i-1) - P(y > i)`` is returned; negative values
        (from non-monotone replica answers) are clipped to 0 and rows are not
        renormalised.  Otherwise each row is the one-hot vector of
        :meth:`predict`.

        Parameters
        ----------
        X : array-like of shape (n_samples, n_features)
            Input samples.

        Returns
        -------
        ndarray of shape (n_samples, n_classes)
            Class probabilities, columns ordered like :attr:`classes_`.

        Raises
        ------
        ValueError
            If the estimator has not been fitted.
        """
        self._check_fitted()
        k = len(self.classes_)
        if self.tree_ is None:
            n = self._encode_X(X).shape[0]
            if self.frank_hall_distribution:
                return np.tile(self.prior_, (n, 1))
            out = np.zeros((n, k))
            out[:, int(np.argmax(self.prior_))] = 1.0
            return out
        p = self._threshold_probabilities(X)
        if self.frank_hall_distribution:
            return classification_frank_hall(p)
        codes = np.asarray(classification_lin_li(p), dtype=int)
        out = np.zeros((len(codes), k))
        out[np.arange(len(codes)), codes] = 1.0
        return out

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------
    def get_n_nodes(self) -> int:
        self._check_fitted()
        return 1 if self.tree_ is None else self.tree_.n_nodes()

    def get_n_leaves(self) -> int:
        self._check_fitted()
        return 1 if self.tree_ is None else self.tree_.n_leaves()

    def get_depth(self) -> int:
        self._check_fitted()
        return 0 if self.tree_ is None else self.tree_.depth()

    def export_text(self, feature_names=None, class_names=None) -> str:
        """
        Render the tree as indented text.

        Every line is a test on one attribute; numeric tests list one
        threshold per replica (``INF`` where the replica does not split).
        Leaves show the predicted class followed by
        ``(weight/errors)`` summed over the replicas.

        Parameters
        ----------
        feature_names : list[str], optional
            Alternative names for the features.
        class_names : list[str], optional
            Alternative names for the classes, ordered like ``classes_``.

        Returns
        -------
        str
        """
        self._check_fitted()
        if self.tree_ is None:
            return ": " + self._class_name(int(np.argmax(self.prior_)), class_names)
        root = self.tree_.nodes[self.tree_.root]
        if root.is_leaf:
            return ": " + self._leaf_label(root, class_names)
        lines = []
        self._text_node(self.tree_.root, 0, lines, feature_names, class_names)
        return "\n".join(lines)

    def print_tree(self, feature_names=None, class_names=None):
        """Pretty-print the tree to ``stdout`` (see :meth:`export_text`)."""
        print(self.export_text(feature_names=feature_names, class_names=class_names))

    def export_graphviz(self, filename: str | None = None, *, feature_names=None,
                        class_names=None, format: str = "png") -> str:
        """
        Export the tree structure in Graphviz format.

        When requesting a DOT file (``format='dot'``) no external Graphviz
        binary is required; the DOT source is written directly to disk.  For
        other formats this method attempts to invoke the system ``dot``
        command; if it is unavailable a ``.dot`` file is written instead.

        Parameters
        ----------
        filename : str or None, default=None
            Basename of the output file (the extension is determined by
            ``format``).  If None, the DOT source code is returned as a string
            and no file is written.
        feature_names : list[str], optional
            Custom names for the input features.
        class_names : list[str], optional
            Custom names for the classes, ordered like :attr:`classes_`.
        format : str, default="png"
            Desired output format, e.g. ``'png'``, ``'pdf'``, ``'svg'`` or
            ``'dot'``.

        Returns
        -------
        str
            Path to the written file, or the DOT source code if filename is None.

        Raises
        ------
        ValueError
            If the estimator is not fitted.
        RuntimeError
            If the ``graphviz`` package is not installed.
        """
        self._check_fitted()
        try:
            import graphviz
        except ImportError:
            raise RuntimeError("Graphviz is required for export_graphviz but not installed.")
        dot = graphviz.Digraph(format=format)
        if self.tree_ is None:
            dot.node("0", self._class_name(int(np.argmax(self.prior_)), class_names),
                     shape="box", style="filled", color="lightgrey")
        else:
            self._add_graph_nodes(dot, self.tree_.root, feature_names, class_names)

        if filename is None:
            return dot.source

        if format.lower() == "dot":
            path = f"{filename}.dot"
            dot.save(path)
            return path
        try:
            dot.render(filename, cleanup=True)
            return f"{filename}.{format}"
        except graphviz.ExecutableNotFound:
            logger.warning("Graphviz 'dot' executable not found; writing DOT source instead")
            fallback_path = f"{filename}.dot"
            dot.save(fallback_path)
            return fallback_path

    # -------------------------------------------------------------------------
    # Rendering helpers
    # -------------------------------------------------------------------------
    def _class_name(self, code: int, cn=None) -> str:
        return str(cn[code]) if cn is not None else str(self.classes_[code])

    def _leaf_label(self, node, cn=None) -> str:
        dists = node.model.distributions
        p = np.array([d.prob(1) for d in dists])
        total = sum(d.total() for d in dists)
        errors = sum(d.num_incorrect() for d in dists)
        label = f"{self._class_name(classification_lin_li(p), cn)} ({total:g}"
        if errors > 0:
            label += f"/{errors:g}"
        return label + ")"

    def _test_text(self, model, index: int, fn=None) -> str:
        name = model.left_side()
        if fn is not None and 0 <= model.att_index < len(fn):
            name = str(fn[model.att_index])
        return name + model.right_side(index)

    def _text_node(self, idx: int, depth: int, lines: list, fn=None, cn=None):
        node = self.tree_.nodes[idx]
        for i, child_idx in enumerate(node.children):
            child = self.tree_.nodes[child_idx]
            line = "|   " * depth + self._test_text(node.model, i, fn)
            if child.is_leaf:
                lines.append(line + ": " + self._leaf_label(child, cn))
            else:
                lines.append(line)
                self._text_node(child_idx, depth + 1, lines, fn, cn)

    def _add_graph_nodes(self, dot, idx: int, fn, cn):
        node = self.tree_.nodes[idx]
        name = str(idx)
        if node.is_leaf:
            dot.node(name, self._leaf_label(node, cn),
                     shape="box", style="filled", color="lightgrey")
            return
        label = node.model.left_side()
        if fn is not None and 0 <= node.model.att_index < len(fn):
            label = str(fn[node.model.att_index])
        dot.node(name, label, shape="ellipse", style="filled", color="lightblue")
        for i, child in enumerate(node.children):
            self._add_graph_nodes(dot, child, fn, cn)
            dot.edge(name, str(child), label=node.model.right_side(i).strip())
