"""
oc45py.selection
================

Chooses the split stored at a tree node.

Every predictor gets a :class:`~oc45py.split.BinarySplit` candidate.  As in
C4.5 only candidates whose (replica-combined) information gain reaches the
average gain are eligible, and among those the highest combined gain ratio
wins.  For random-forest style induction a random subset of the attributes
can be drawn at each node; a winner from that subset is preferred.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np
from sklearn.utils import check_random_state

from .dataset import Dataset
from .optimization import OptimizationCriterion
from .replication import get_distributions, split_replicas
from .split import BinarySplit, NoSplit, SplitModel
from .utils import eq, gr, gr_or_eq

logger = logging.getLogger(__name__)


class BinaryModelSelection:
    """Selects a binary split for the rows reaching a node.

    Parameters
    ----------
    min_no_obj : int
        Minimum weight per subset.
    all_data : Dataset
        The full replicated training set; used for the multi-valued
        attribute guard and to snap numeric thresholds to training values.
    use_mdl_correction : bool
        Apply the MDL penalty to numeric gains.
    criterion : OptimizationCriterion or str or int
        Rule combining per-replica scores.
    num_attributes : int or None
        Size of the random attribute subset drawn at each node; ``None`` or
        a value not below the number of attributes disables sampling.
    xor_hook : callable, optional
        Passed on to every :class:`~oc45py.split.BinarySplit`.
    """

    def __init__(self, min_no_obj: int, all_data: Dataset, use_mdl_correction: bool = True,
                 criterion="sum", num_attributes: Optional[int] = None,
                 xor_hook: Optional[Callable] = None):
        self.min_no_obj = int(min_no_obj)
        self.all_data = all_data
        self.use_mdl_correction = bool(use_mdl_correction)
        self.criterion = OptimizationCriterion.parse(criterion)
        self.num_attributes = num_attributes
        self.xor_hook = xor_hook

    def cleanup(self):
        """Drop the reference to the training data."""
        self.all_data = None

    def select_model(self, data: Dataset, rng=None) -> SplitModel:
        replicas = split_replicas(data)
        dists = get_distributions(replicas)
        no_split = NoSplit(dists)

        # Is any replica big enough and not pure?
        worthy = False
        for d in dists:
            if (gr_or_eq(d.total(), 2 * self.min_no_obj)
                    and not eq(d.total(), d.per_class(d.max_class()))):
                worthy = True
                break
        if not worthy:
            return no_split

        n_all = len(self.all_data)
        n_features = data.n_features

        # Are all attributes nominal with a lot of values?  Markers are numeric.
        multi_val = data.n_markers == 0
        for j in range(n_features):
            if not data.is_nominal(j) or data.cardinalities[j] < 0.3 * n_all:
                multi_val = False
                break

        sum_of_weights = data.sum_of_weights()
        models = []
        average_gain = 0.0
        valid_models = 0
        for i in range(n_features):
            model = BinarySplit(i, self.min_no_obj, sum_of_weights,
                                self.use_mdl_correction, self.criterion,
                                self.xor_hook).build(data)
            models.append(model)
            # skip nominal attributes with too many values
            if model.check_model() and (not data.is_nominal(i) or multi_val
                                        or data.cardinalities[i] < 0.3 * n_all):
                average_gain += model.info_gain()
                valid_models += 1

        if valid_models == 0:
            return no_split
        average_gain /= valid_models

        picked = self._pick_attributes(n_features, rng)

        best = best_rand = None
        min_result = min_rand_result = 0.0
        for i, model in enumerate(models):
            if not model.check_model():
                continue
            # 1e-3 keeps the choice close to C4.5's
            if model.info_gain() >= average_gain - 1e-3 and gr(model.gain_ratio(), min_result):
                best = model
                min_result = model.gain_ratio()
                if picked[i]:
                    best_rand = model
                    min_rand_result = min_result

        if gr(min_rand_result, 0):
            best = best_rand
            min_result = min_rand_result

        if best is None or eq(min_result, 0):
            return no_split

        # Store the complete distribution, unknowns included, with the model.
        best.reset_distribution(data)
        best.set_split_point(self.all_data)
        logger.debug("split on %s (gain ratio %.4f, %d/%d replicas active)",
                     best.feature_name, min_result, int(best.active.sum()),
                     len(best.active))
        return best

    def _pick_attributes(self, n_features: int, rng) -> np.ndarray:
        """Random attribute subset, Fisher-Yates from the end of the array."""
        m = self.num_attributes
        if m is None or m >= n_features:
            return np.ones(n_features, dtype=bool)
        rng = check_random_state(rng)
        picked = np.zeros(n_features, dtype=bool)
        bag = np.arange(n_features)
        for i in range(n_features - 1, n_features - 1 - m, -1):
            pick = rng.randint(i + 1)
            picked[bag[pick]] = True
            if pick != i:
                bag[pick] = bag[i]
        return picked
