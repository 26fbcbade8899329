"""
Linear probe over hidden-node activity.

Fits a softmax regression from the on/off state of every hidden node to the
labels. Comparing its loss with the circuit's own loss shows how much label
information the hidden layer carries that the output edges do not yet use.
The probe only reads the circuit; it never mutates it.
"""

import warnings
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
from sklearn.metrics import accuracy_score

from ..circuits.bitset import BitSet
from ..errors import PreconditionViolation

if TYPE_CHECKING:
    from ..circuits.circuit import Circuit


@dataclass
class ProbeResult:
    """Evaluation metrics of a fitted probe."""
    loss: float
    accuracy: float


def hidden_features(circuit: "Circuit", active_sets: Sequence[BitSet]) -> torch.Tensor:
    """
    Stack hidden-node activity into a float matrix.

    Args:
        circuit: Circuit whose ``hidden_ids()`` select the columns
        active_sets: Final active set of every example

    Returns:
        Tensor of shape ``(examples, hidden nodes)`` with 0/1 entries
    """
    hidden = np.asarray(circuit.hidden_ids(), dtype=np.int64)
    rows = np.stack([bits.to_numpy()[hidden] for bits in active_sets])
    return torch.from_numpy(rows.astype(np.float32))


class LinearProbe(nn.Module):
    """
    Softmax regression on hidden activity bits.

    Attributes:
        weight: ``(feature_count, label_count)`` weight matrix
        bias: ``(label_count,)`` bias

    Example:
        >>> results = clf.run(images)
        >>> probe = LinearProbe(len(clf.circuit.hidden_ids()), clf.label_count)
        >>> active = [r.active for r in results]
        >>> probe.fit(clf.circuit, active, labels, iters=1000)
        >>> probe.evaluate(clf.circuit, active, labels)
        ProbeResult(loss=..., accuracy=...)
    """

    def __init__(self, feature_count: int, label_count: int, seed: Optional[int] = None):
        super().__init__()
        if label_count < 1:
            raise PreconditionViolation("label_count must be at least 1")

        self.feature_count = feature_count
        self.label_count = label_count
        self._generator = torch.Generator()
        if seed is not None:
            self._generator.manual_seed(seed)

        scale = float(max(feature_count, 1)) ** 0.5
        self.weight = nn.Parameter(
            torch.randn(feature_count, label_count, generator=self._generator) / scale
        )
        self.bias = nn.Parameter(torch.zeros(label_count))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """Logits for a batch of activity rows."""
        return x @ self.weight + self.bias

    def _inputs(self, circuit, active_sets, labels):
        if len(active_sets) == 0:
            raise PreconditionViolation("probe needs at least one example")
        if len(active_sets) != len(labels):
            raise PreconditionViolation(
                f"got {len(labels)} labels for {len(active_sets)} examples"
            )
        x = hidden_features(circuit, active_sets)
        if x.shape[1] != self.feature_count:
            raise PreconditionViolation(
                f"probe expects {self.feature_count} hidden nodes, circuit has {x.shape[1]}"
            )
        y = torch.as_tensor(np.asarray(labels), dtype=torch.int64)
        return x, y

    def fit(
        self,
        circuit: "Circuit",
        active_sets: Sequence[BitSet],
        labels: Sequence[int],
        batch_size: int = 128,
        lr: float = 0.01,
        iters: int = 10000,
    ) -> "LinearProbe":
        """
        Train with Adam and a linearly decaying learning rate.

        Minibatches are drawn from reshuffled passes over the data.

        Args:
            circuit: Circuit the active sets came from
            active_sets: Final active set of every example
            labels: True labels
            batch_size: Examples per step
            lr: Initial learning rate
            iters: Number of optimizer steps

        Returns:
            self (fitted probe)
        """
        if iters < 1 or batch_size < 1:
            raise PreconditionViolation("iters and batch_size must be at least 1")
        x, y = self._inputs(circuit, active_sets, labels)
        optimizer = torch.optim.Adam(self.parameters(), lr=lr)
        scheduler = torch.optim.lr_scheduler.LambdaLR(
            optimizer, lambda step: max(iters - step, 0) / iters
        )

        self.train()
        queue = torch.empty(0, dtype=torch.int64)
        for _ in range(iters):
            while len(queue) < batch_size:
                queue = torch.cat([queue, torch.randperm(len(y), generator=self._generator)])
            idx, queue = queue[:batch_size], queue[batch_size:]

            loss = F.cross_entropy(self(x[idx]), y[idx])
            loss.backward()
            optimizer.step()
            optimizer.zero_grad()
            scheduler.step()

        return self

    @torch.no_grad()
    def loss(
        self,
        circuit: "Circuit",
        active_sets: Sequence[BitSet],
        labels: Sequence[int],
        batch_size: int = 128,
    ) -> float:
        """Mean negative log-likelihood of the labels."""
        x, y = self._inputs(circuit, active_sets, labels)
        self.eval()
        total = 0.0
        for start in range(0, len(y), batch_size):
            logits = self(x[start:start + batch_size])
            total += F.cross_entropy(logits, y[start:start + batch_size], reduction="sum").item()
        value = total / len(y)
        if not np.isfinite(value):
            warnings.warn(f"Linear probe loss is not finite: {value}", RuntimeWarning)
        return value

    @torch.no_grad()
    def evaluate(
        self,
        circuit: "Circuit",
        active_sets: Sequence[BitSet],
        labels: Sequence[int],
    ) -> ProbeResult:
        """Loss and accuracy on held-out examples."""
        x, y = self._inputs(circuit, active_sets, labels)
        self.eval()
        predicted = self(x).argmax(dim=-1).numpy()
        return ProbeResult(
            loss=self.loss(circuit, active_sets, labels),
            accuracy=float(accuracy_score(y.numpy(), predicted)),
        )
