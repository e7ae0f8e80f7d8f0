# oc45py/__init__.py
"""
oc45py: ordinal C4.5 decision trees over Frank & Hall replicated data
(scikit-learn style).

Exports:
    - OrdinalC45Classifier
    - ClassifierTree, BinaryModelSelection, NoSplit, BinarySplit
    - Dataset, Distribution, OptimizationCriterion, combine
    - the data replication functions
    - InsufficientDataError
"""
from .dataset import Dataset, InsufficientDataError
from .distribution import Distribution
from .induction import ClassifierTree
from .optimization import OptimizationCriterion, combine
from .replication import (
    classification_frank_hall,
    classification_lin_li,
    frank_hall,
    replicate_data,
    replicate_instances,
)
from .selection import BinaryModelSelection
from .split import BinarySplit, NoSplit
from .tree import OrdinalC45Classifier

__all__ = [
    "OrdinalC45Classifier",
    "ClassifierTree",
    "BinaryModelSelection",
    "NoSplit",
    "BinarySplit",
    "Dataset",
    "Distribution",
    "OptimizationCriterion",
    "combine",
    "frank_hall",
    "replicate_data",
    "replicate_instances",
    "classification_frank_hall",
    "classification_lin_li",
    "InsufficientDataError",
]
__version__ = "0.1.0"
