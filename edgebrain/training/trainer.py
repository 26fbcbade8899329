"""
CircuitTrainer: the outer mutation/selection loop.

Every step perturbs a few copies of the current classifier with random
mutations, lets the greedy edge search repair each copy on a small batch,
re-runs the search on the full batch for the most promising copies (and for
the unperturbed classifier), and keeps the best result if it beats the
current loss.
"""

import json
import os
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from ..classifier.classifier import Classifier, GreedyResult
from ..probes.linear import LinearProbe
from .config import TrainingConfig
from .data import BinarizedSampler

# Schema version for checkpoint compatibility
CHECKPOINT_VERSION = "1.0"


@dataclass
class TrainerState:
    """Tracks the training step and metric history."""

    step: int = 0
    best_loss: float = float("inf")

    metrics: Dict[str, List[float]] = field(default_factory=lambda: {
        "loss": [],
        "acc": [],
        "test_loss": [],
        "test_acc": [],
        "greedy": [],
        "greedy_count": [],
        "min": [],
        "max": [],
        "linear_loss": [],
    })

    def update(self, metrics: Dict[str, float]):
        """Update metrics with new values."""
        for key, value in metrics.items():
            if key in self.metrics:
                self.metrics[key].append(value)

    def get_recent(self, key: str, n: int = 100) -> float:
        """Get average of recent n values for a metric."""
        if key not in self.metrics or not self.metrics[key]:
            return 0.0
        values = self.metrics[key][-n:]
        return sum(values) / len(values)


class CircuitTrainer:
    """
    Trains a :class:`Classifier` by mutation and greedy edge search.

    On construction the trainer resumes from ``config.model_path`` if a
    checkpoint exists there. Otherwise it builds a fresh classifier and
    randomly initializes it on ``config.init_batch_size`` examples.

    Attributes:
        config: Training configuration.
        classifier: The current classifier.
        state: Step counter and metric history.

    Example:
        >>> train, test = load_mnist()
        >>> trainer = CircuitTrainer(TrainingConfig(hidden_count=256), train, test)
        >>> trainer.train(n_steps=100)
    """

    def __init__(
        self,
        config: TrainingConfig,
        train_data: BinarizedSampler,
        test_data: Optional[BinarizedSampler] = None,
        label_count: Optional[int] = None,
        classifier: Optional[Classifier] = None,
    ):
        self.config = config
        self.train_data = train_data
        self.test_data = test_data
        self.label_count = label_count or int(np.max(train_data.labels)) + 1
        self.rng = random.Random(config.seed)
        self.state = TrainerState()

        if classifier is not None:
            self.classifier = classifier
        elif os.path.exists(config.model_path):
            print(f"loading from checkpoint: {config.model_path} ...")
            self.classifier, self.state.step = self.load_checkpoint(
                config.model_path, num_workers=config.num_workers
            )
        else:
            self.classifier = Classifier(
                input_count=train_data.width,
                label_count=self.label_count,
                hidden_count=config.hidden_count,
                edge_weight=config.edge_weight,
                num_workers=config.num_workers,
            )
            self.initialize()

    def initialize(self) -> int:
        """
        Randomly connect the classifier's hidden layer.

        Returns:
            Number of edges added
        """
        print("initializing model...")
        images, _ = self.train_data.sample(self.config.init_batch_size)
        count = self.classifier.randomly_initialize(
            images,
            self.config.init_reachable_frac,
            hidden_groups=self.config.init_hidden_groups,
            rng=self.rng,
        )
        equivalent = self.classifier.equivalent_hidden_nodes(images)
        print(f" => initialized with {count} insertions with {len(equivalent)} unique hidden nodes")
        return count

    # =========================================================================
    # Training
    # =========================================================================

    def _greedy(self, clf: Classifier, batch, labels) -> GreedyResult:
        return clf.greedily_mutated_for_data(
            batch,
            labels,
            selection_rule=self.config.selection_rule(),
            exact_reranking=self.config.exact_reranking,
        )

    def _perturbed(self) -> Classifier:
        variant = self.classifier.copy()
        for _ in range(self.config.mutation_size):
            mutation = variant.circuit.random_mutation(
                delete_prob=self.config.mutation_delete_prob, rng=self.rng
            )
            variant.circuit.mutate(mutation)
        return variant

    def _linear_loss(self, batch, labels, test_batch, test_labels) -> float:
        circuit = self.classifier.circuit
        probe = LinearProbe(
            feature_count=len(circuit.hidden_ids()),
            label_count=self.classifier.label_count,
            seed=self.config.seed,
        )
        probe.fit(circuit, [r.active for r in self.classifier.run(batch)], labels)
        return probe.loss(circuit, [r.active for r in self.classifier.run(test_batch)], test_labels)

    def train_step(self) -> Dict[str, float]:
        """
        Run one mutation/selection step.

        Returns:
            Dictionary of metrics for this step.
        """
        cfg = self.config
        batch, labels = self.train_data.sample(cfg.batch_size)
        metrics: Dict[str, float] = {}

        if self.test_data is not None:
            test_batch, test_labels = self.test_data.all()
            metrics["test_acc"], metrics["test_loss"] = self.classifier.evaluate(
                test_batch, test_labels
            )
        else:
            test_batch, test_labels = batch, labels
        acc, old_loss = self.classifier.evaluate(batch, labels)
        metrics["acc"], metrics["loss"] = acc, old_loss

        if cfg.evaluate_linear_loss:
            metrics["linear_loss"] = self._linear_loss(batch, labels, test_batch, test_labels)

        small = cfg.preliminary_mutation_batch_size
        preliminary = [
            self._greedy(self._perturbed(), batch[:small], labels[:small])
            for _ in range(cfg.preliminary_mutation_count)
        ]
        kept = sorted(preliminary, key=lambda r: r.loss)[:cfg.mutation_count]
        candidates = [self._greedy(r.classifier, batch, labels) for r in kept]

        # The unperturbed classifier is always a candidate.
        greedy = self._greedy(self.classifier, batch, labels)
        candidates.append(greedy)

        losses = [c.loss for c in candidates]
        min_loss = min(losses)
        if min_loss < old_loss:
            self.classifier = candidates[losses.index(min_loss)].classifier
            self.state.best_loss = min(self.state.best_loss, min_loss)

        self.state.step += 1
        metrics.update({
            "greedy": greedy.loss,
            "greedy_count": len(greedy.mutations),
            "min": min_loss,
            "max": max(losses),
        })
        self.state.update(metrics)
        return metrics

    def train(
        self,
        n_steps: Optional[int] = None,
        callback: Optional[Callable[[int, Dict[str, float]], None]] = None,
    ) -> Dict[str, Any]:
        """
        Run the training loop.

        Args:
            n_steps: Number of steps to run (None = until interrupted).
            callback: Optional callback(step, metrics) called after every step.

        Returns:
            Dictionary of final training statistics.
        """
        start_time = time.time()
        steps_run = 0

        while n_steps is None or steps_run < n_steps:
            metrics = self.train_step()
            steps_run += 1

            if self.state.step % self.config.log_every == 0:
                self._log_step(metrics)
            if callback:
                callback(self.state.step, metrics)
            if self.state.step % self.config.save_interval == 0:
                self.save_checkpoint()

        elapsed = max(time.time() - start_time, 1e-9)
        print(f"\nTraining completed: {steps_run} steps in {elapsed:.1f}s ({steps_run/elapsed:.2f} steps/s)")
        return self.get_stats()

    def _log_step(self, metrics: Dict[str, float]):
        """Print training metrics."""
        line = f"step {self.state.step}: loss={metrics['loss']:.6f} acc={metrics['acc']:.4f} "
        if "test_loss" in metrics:
            line += f"test_loss={metrics['test_loss']:.6f} test_acc={metrics['test_acc']:.4f} "
        line += (
            f"greedy={metrics['greedy']:.6f} greedy_count={int(metrics['greedy_count'])} "
            f"min={metrics['min']:.6f} max={metrics['max']:.6f}"
        )
        if "linear_loss" in metrics:
            line += f" linear_loss={metrics['linear_loss']:.6f}"
        print(line)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_steps": self.state.step,
            "best_loss": self.state.best_loss,
            "recent_loss": self.state.get_recent("loss", n=10),
            "num_edges": self.classifier.circuit.num_edges,
            "training_history": {k: v for k, v in self.state.metrics.items() if v},
        }

    # =========================================================================
    # Checkpointing
    # =========================================================================

    def save_checkpoint(self, path: Optional[str] = None) -> None:
        """Write ``{classifier, step}`` as JSON, replacing any previous file."""
        path = Path(path or self.config.model_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": CHECKPOINT_VERSION,
            "classifier": self.classifier.to_dict(),
            "step": self.state.step,
        }
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp_path, path)
        print(f"Saved checkpoint to {path}")

    @staticmethod
    def load_checkpoint(
        path: str, num_workers: Optional[int] = None
    ) -> Tuple[Classifier, int]:
        """
        Read a checkpoint written by :meth:`save_checkpoint`.

        Raises:
            ValueError: If the checkpoint is from an unknown schema version
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        version = data.get("version", CHECKPOINT_VERSION)
        if version != CHECKPOINT_VERSION:
            raise ValueError(f"Unsupported checkpoint version: {version}")
        classifier = Classifier.from_dict(data["classifier"], num_workers=num_workers)
        return classifier, int(data.get("step") or 0)
