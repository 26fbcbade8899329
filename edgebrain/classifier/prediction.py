"""
Converting output tallies into class log-probabilities.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..errors import PreconditionViolation


def log_softmax(logits: np.ndarray, axis: int = -1) -> np.ndarray:
    """
    Numerically stable log-softmax along ``axis``.

    Subtracts the maximum logit before exponentiating, so large tallies do
    not overflow.

    Raises:
        PreconditionViolation: If the reduced axis is empty
    """
    logits = np.asarray(logits, dtype=np.float64)
    if logits.shape[axis] == 0:
        raise PreconditionViolation("cannot take log_softmax of an empty count vector")
    shift = logits.max(axis=axis, keepdims=True)
    shifted = logits - shift
    normalizer = np.log(np.exp(shifted).sum(axis=axis, keepdims=True))
    return shifted - normalizer


@dataclass
class Prediction:
    """
    Per-label output tallies for one example.

    Attributes:
        counts: One tally per output label
        edge_weight: Temperature multiplied into the tallies before the softmax

    Example:
        >>> pred = Prediction(counts=[0, 3, 2], edge_weight=1.0)
        >>> [round(x, 3) for x in pred.log_probs]
        [-3.349, -0.349, -1.349]
    """
    counts: List[int]
    edge_weight: float = 1.0

    def __post_init__(self):
        self.counts = [int(c) for c in self.counts]
        if not self.counts:
            raise PreconditionViolation("Prediction needs at least one output count")

    @property
    def label_count(self) -> int:
        return len(self.counts)

    @property
    def logits(self) -> np.ndarray:
        return self.edge_weight * np.asarray(self.counts, dtype=np.float64)

    @property
    def log_probs(self) -> np.ndarray:
        return log_softmax(self.logits)

    def log_prob(self, label: int, change: int = 0, to_label: Optional[int] = None) -> float:
        """
        Log-probability of ``label``, optionally after adding ``change`` to one tally.

        Args:
            label: Label whose log-probability is returned
            change: Amount added to the tally of ``to_label``
            to_label: Label whose tally is perturbed (defaults to ``label``)
        """
        counts = np.asarray(self.counts, dtype=np.float64)
        if change:
            counts[label if to_label is None else to_label] += change
        return float(log_softmax(self.edge_weight * counts)[label])

    def top_labels(self) -> List[int]:
        """All labels that attain the maximum log-probability."""
        lp = self.log_probs
        return np.flatnonzero(lp == lp.max()).tolist()

    def accuracy_credit(self, label: int) -> float:
        """1/k if ``label`` is among the k tied best labels, otherwise 0."""
        top = self.top_labels()
        return 1.0 / len(top) if label in top else 0.0


def batch_log_probs(counts: np.ndarray, edge_weight: float) -> np.ndarray:
    """Row-wise log-probabilities for an ``(examples, labels)`` tally matrix."""
    return log_softmax(edge_weight * np.asarray(counts, dtype=np.float64), axis=-1)


def mean_nll(predictions: Sequence[Prediction], labels: Sequence[int]) -> float:
    """Mean negative log-probability of the true labels."""
    return -float(np.mean([p.log_prob(y) for p, y in zip(predictions, labels)]))
