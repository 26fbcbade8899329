"""
edgebrain / classifier
======================

Classification on top of a circuit: feature encoding, softmax predictions
over output tallies, batch loss, greedy edge search and hidden-node
equivalence classes.

Example:
    >>> from edgebrain.classifier import Classifier
    >>>
    >>> clf = Classifier(input_count=784, label_count=10, hidden_count=1024)
    >>> clf.randomly_initialize(images[:100], reachable_frac=0.2)
    >>> result = clf.greedily_mutated_for_data(images, labels)
    >>> result.loss <= clf.batch_loss(images, labels)
    True
"""

from .classifier import Classifier, GreedyResult, InputPair
from .equivalence import hidden_equivalence_classes, transpose_bitsets
from .prediction import Prediction, log_softmax
from .search import SelectionRule, greedy_search

__all__ = [
    "Classifier",
    "GreedyResult",
    "InputPair",
    "Prediction",
    "SelectionRule",
    "greedy_search",
    "hidden_equivalence_classes",
    "log_softmax",
    "transpose_bitsets",
]
