"""
Classifier: a circuit with designated feature inputs and label outputs.
"""

import json
import random
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, NamedTuple, Optional, Sequence, Set, Tuple, Union

import numpy as np

from ..circuits.circuit import Circuit, RunResult
from ..circuits.mutation import Mutation
from ..circuits.node import NodeKind
from ..errors import PreconditionViolation
from ..parallel import parallel_map
from .equivalence import hidden_equivalence_classes
from .prediction import Prediction, mean_nll
from .search import SelectionRule, greedy_search

# Schema version for serialization compatibility
SCHEMA_VERSION = "1.0"

Features = Sequence[bool]


class InputPair(NamedTuple):
    """The two input nodes encoding one boolean feature."""
    off: int
    on: int


class GreedyResult(NamedTuple):
    """
    Outcome of a greedy search.

    Attributes:
        classifier: The mutated classifier
        mutations: Accepted mutations, in the order they were applied
        loss: Batch loss of ``classifier`` on the search batch
    """
    classifier: "Classifier"
    mutations: List[Mutation]
    loss: float


class Classifier:
    """
    Wraps a circuit with an input pair per feature and an output per label.

    Every feature gets an ``off`` and an ``on`` input node and exactly one of
    the two is activated. Output tallies are turned into a softmax with
    ``edge_weight`` as temperature.

    Example:
        >>> clf = Classifier(input_count=2, label_count=2, hidden_count=8)
        >>> clf.encode([True, False])
        [1, 2]
        >>> clf.predict([True, False]).counts
        [0, 0]
    """

    def __init__(
        self,
        input_count: int,
        label_count: int,
        hidden_count: int = 0,
        edge_weight: float = 1.0,
        num_workers: Optional[int] = None,
    ):
        if label_count < 1:
            raise PreconditionViolation("a classifier needs at least one output label")
        if input_count < 0 or hidden_count < 0:
            raise PreconditionViolation("input_count and hidden_count must be non-negative")

        self.edge_weight = float(edge_weight)
        self.num_workers = num_workers
        self.circuit = Circuit()
        self.input_ids: List[InputPair] = [
            InputPair(
                off=self.circuit.add_node(NodeKind.INPUT),
                on=self.circuit.add_node(NodeKind.INPUT),
            )
            for _ in range(input_count)
        ]
        self.output_ids: List[int] = [
            self.circuit.add_node(NodeKind.OUTPUT) for _ in range(label_count)
        ]
        for _ in range(hidden_count):
            self.circuit.add_node(NodeKind.HIDDEN)

    @classmethod
    def from_parts(
        cls,
        circuit: Circuit,
        input_ids: Sequence[Tuple[int, int]],
        output_ids: Sequence[int],
        edge_weight: float = 1.0,
        num_workers: Optional[int] = None,
    ) -> "Classifier":
        """Build a classifier around an existing circuit."""
        if not output_ids:
            raise PreconditionViolation("a classifier needs at least one output label")
        for node_id in [i for pair in input_ids for i in pair] + list(output_ids):
            if node_id not in circuit:
                raise PreconditionViolation(f"node {node_id} is not in the circuit")

        clf = cls.__new__(cls)
        clf.edge_weight = float(edge_weight)
        clf.num_workers = num_workers
        clf.circuit = circuit
        clf.input_ids = [InputPair(*pair) for pair in input_ids]
        clf.output_ids = list(output_ids)
        return clf

    def copy(self) -> "Classifier":
        return Classifier.from_parts(
            self.circuit.copy(),
            self.input_ids,
            self.output_ids,
            edge_weight=self.edge_weight,
            num_workers=self.num_workers,
        )

    @property
    def input_count(self) -> int:
        return len(self.input_ids)

    @property
    def label_count(self) -> int:
        return len(self.output_ids)

    # =========================================================================
    # Inference
    # =========================================================================

    def encode(self, features: Features) -> List[int]:
        """
        Input node ids to activate for a feature vector.

        Raises:
            PreconditionViolation: If the width does not match the classifier
        """
        if len(features) != len(self.input_ids):
            raise PreconditionViolation(
                f"expected {len(self.input_ids)} features, got {len(features)}"
            )
        return [pair.on if bit else pair.off for pair, bit in zip(self.input_ids, features)]

    def _prediction(self, result: RunResult) -> Prediction:
        return Prediction(
            counts=[result.outputs[out] for out in self.output_ids],
            edge_weight=self.edge_weight,
        )

    def predict(self, features: Features) -> Prediction:
        return self._prediction(self.circuit.run(self.encode(features)))

    def _check_batch(self, batch: Sequence[Features]) -> List[List[int]]:
        if len(batch) == 0:
            raise PreconditionViolation("batch must not be empty")
        return [self.encode(features) for features in batch]

    def _check_labels(self, batch: Sequence[Features], labels: Sequence[int]) -> None:
        if len(labels) != len(batch):
            raise PreconditionViolation(
                f"got {len(labels)} labels for a batch of {len(batch)} examples"
            )
        bad = [y for y in labels if not 0 <= y < self.label_count]
        if bad:
            raise PreconditionViolation(f"labels out of range [0, {self.label_count}): {bad[:5]}")

    def run(self, batch: Sequence[Features]) -> List[RunResult]:
        """Run every example of a batch in parallel."""
        encoded = self._check_batch(batch)
        return parallel_map(self.circuit.run, encoded, self.num_workers)

    def predictions(self, batch: Sequence[Features]) -> List[Prediction]:
        return [self._prediction(r) for r in self.run(batch)]

    def batch_loss(self, batch: Sequence[Features], labels: Sequence[int]) -> float:
        """Mean negative log-probability of the true labels."""
        self._check_labels(batch, labels)
        preds = self.predictions(batch)
        return mean_nll(preds, labels)

    def evaluate(self, batch: Sequence[Features], labels: Sequence[int]) -> Tuple[float, float]:
        """
        Accuracy and loss on a batch.

        An example whose true label ties with k - 1 other labels for the
        highest probability counts as 1/k correct.

        Returns:
            ``(accuracy, loss)``
        """
        self._check_labels(batch, labels)
        preds = self.predictions(batch)
        accuracy = float(np.mean([p.accuracy_credit(y) for p, y in zip(preds, labels)]))
        loss = mean_nll(preds, labels)
        return accuracy, loss

    # =========================================================================
    # Search and Analysis
    # =========================================================================

    def greedily_mutated_for_data(
        self,
        batch: Sequence[Features],
        labels: Sequence[int],
        selection_rule: Optional[SelectionRule] = None,
        exact_reranking: bool = False,
    ) -> GreedyResult:
        """
        Toggle hidden->output edges to reduce the loss on a batch.

        The batch is evaluated once; every candidate is then scored from the
        recorded tallies. See :func:`edgebrain.classifier.search.greedy_search`.

        Args:
            batch: Feature vectors
            labels: True labels
            selection_rule: Candidate ranking rule (mean by default)
            exact_reranking: Re-rank candidates after every attempt

        Returns:
            GreedyResult with the new classifier, the accepted mutations and
            the resulting batch loss

        Raises:
            PreconditionViolation: For a malformed batch, or if an output
                node owns or sources an edge
        """
        self._check_labels(batch, labels)
        results = self.run(batch)
        circuit, mutations, loss = greedy_search(
            self.circuit,
            self.output_ids,
            self.edge_weight,
            results,
            labels,
            rule=selection_rule,
            exact_reranking=exact_reranking,
            num_workers=self.num_workers,
        )
        clf = Classifier.from_parts(
            circuit,
            self.input_ids,
            self.output_ids,
            edge_weight=self.edge_weight,
            num_workers=self.num_workers,
        )
        return GreedyResult(clf, mutations, loss)

    def equivalent_hidden_nodes(self, batch: Sequence[Features]) -> Set[FrozenSet[int]]:
        """Hidden nodes grouped by identical activation across ``batch``."""
        results = self.run(batch)
        return hidden_equivalence_classes(self.circuit, [r.active for r in results])

    def randomly_initialize(
        self,
        batch: Sequence[Features],
        reachable_frac: float,
        hidden_groups: int = 1,
        rng: Optional[random.Random] = None,
    ) -> int:
        """
        Replace the circuit with a randomly connected one.

        Returns:
            Number of edges added
        """
        encoded = self._check_batch(batch)
        self.circuit, count = self.circuit.randomly_initialized(
            encoded,
            reachable_frac,
            hidden_groups=hidden_groups,
            rng=rng,
            num_workers=self.num_workers,
        )
        return count

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": SCHEMA_VERSION,
            "edge_weight": self.edge_weight,
            "input_ids": [list(pair) for pair in self.input_ids],
            "output_ids": list(self.output_ids),
            "circuit": self.circuit.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], num_workers: Optional[int] = None) -> "Classifier":
        """
        Deserialize a classifier from a dictionary.

        Raises:
            ValueError: If the data is from an unknown schema version
        """
        version = data.get("version", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported classifier schema version: {version}")
        return cls.from_parts(
            Circuit.from_dict(data["circuit"]),
            [tuple(pair) for pair in data["input_ids"]],
            [int(i) for i in data["output_ids"]],
            edge_weight=float(data.get("edge_weight", 1.0)),
            num_workers=num_workers,
        )

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f)

    @classmethod
    def load(cls, path: Union[str, Path], num_workers: Optional[int] = None) -> "Classifier":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f), num_workers=num_workers)

    def __repr__(self) -> str:
        return (
            f"Classifier(inputs={self.input_count}, labels={self.label_count}, "
            f"hidden={len(self.circuit.hidden_ids())}, edges={self.circuit.num_edges})"
        )
