"""
Greedy hidden->output edge search.

Only edges ``h -> out`` owned by the hidden node ``h`` are considered. Such
an edge can only change the tally of ``out`` on examples where ``h`` is
active, and, since output nodes neither own nor source edges, it never
changes any active set. All candidates can therefore be scored from a single
batch evaluation by shifting one tally by +/-1 per affected example.

Scoring is vectorized: for every example we build the loss change of adding
and of removing one count on each label, then aggregate those per-example
tables over the examples where each hidden node is active with a matrix
product. Per-chunk partial products are computed in parallel and summed.
"""

from dataclasses import dataclass
from statistics import NormalDist
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..circuits.circuit import Circuit, RunResult
from ..circuits.mutation import Mutation
from ..circuits.node import Edge
from ..errors import PreconditionViolation
from ..parallel import parallel_sum
from .prediction import batch_log_probs, log_softmax


@dataclass(frozen=True)
class SelectionRule:
    """
    How candidate mutations are ranked.

    With ``confidence=None`` candidates are ranked by their summed loss
    decrease. Otherwise they are ranked by a lower confidence bound on it,
    ``S - z * sqrt(max(Q - S^2 / n, 0))``, where ``S`` and ``Q`` are the sum
    and the sum of squares of the per-example decreases, ``n`` is the number
    of affected examples and ``z`` is the standard normal quantile of
    ``confidence``.
    """
    confidence: Optional[float] = None

    def __post_init__(self):
        if self.confidence is not None and not 0.0 < self.confidence < 1.0:
            raise PreconditionViolation(
                f"confidence must be in (0, 1), got {self.confidence}"
            )

    @classmethod
    def mean(cls) -> "SelectionRule":
        return cls()

    @classmethod
    def lower_bound(cls, confidence: float) -> "SelectionRule":
        return cls(confidence=confidence)

    @property
    def uses_confidence(self) -> bool:
        return self.confidence is not None

    def score(self, total: np.ndarray, sq_total: np.ndarray, n: np.ndarray) -> np.ndarray:
        if self.confidence is None:
            return total
        z = NormalDist().inv_cdf(self.confidence)
        safe_n = np.maximum(n, 1)
        spread = np.sqrt(np.maximum(sq_total - total ** 2 / safe_n, 0.0))
        return np.where(n > 0, total - z * spread, 0.0)

    def __repr__(self) -> str:
        if self.confidence is None:
            return "SelectionRule(mean)"
        return f"SelectionRule(confidence={self.confidence})"


def example_losses(counts: np.ndarray, labels: np.ndarray, edge_weight: float) -> np.ndarray:
    """Negative log-probability of each example's label."""
    log_probs = batch_log_probs(counts, edge_weight)
    return -log_probs[np.arange(len(labels)), labels]


def gain_tables(
    counts: np.ndarray, labels: np.ndarray, edge_weight: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-example loss decrease for a +1 and a -1 change on each label.

    Returns:
        ``(add, remove)``, each of shape ``(examples, labels)``; entry
        ``[e, j]`` is the old loss of example ``e`` minus its loss after
        its count for label ``j`` changes
    """
    n_examples, n_labels = counts.shape
    logits = edge_weight * counts.astype(np.float64)
    rows = np.arange(n_examples)
    base = -log_softmax(logits)[rows, labels]

    eye = np.eye(n_labels)
    tables = []
    for sign in (1.0, -1.0):
        shifted = logits[:, None, :] + sign * edge_weight * eye[None, :, :]
        new_lp = log_softmax(shifted, axis=-1)
        new_loss = -new_lp[rows[:, None], np.arange(n_labels)[None, :], labels[:, None]]
        tables.append(base[:, None] - new_loss)
    return tables[0], tables[1]


def check_outputs_inert(circuit: Circuit, output_ids: Sequence[int]) -> None:
    """
    Raise unless every output node is a pure sink.

    Raises:
        PreconditionViolation: If an output owns an edge or sources one
    """
    outputs = set(output_ids)
    for owner, edge in circuit.edges:
        if owner in outputs:
            raise PreconditionViolation(f"output node {owner} owns {edge!r}")
        if edge.source in outputs:
            raise PreconditionViolation(f"output node {edge.source} is the source of {edge!r}")


class _CandidateTable:
    """
    Scores for every ``(hidden index, label)`` toggle against given tallies.

    ``masks`` holds the affected examples of pairs whose edge is also held
    by some other owner; for all other pairs the affected examples are the
    ones where the hidden node is active.
    """

    def __init__(
        self,
        hidden_active: np.ndarray,
        masks: Dict[Tuple[int, int], np.ndarray],
        labels: np.ndarray,
        edge_weight: float,
        rule: SelectionRule,
        num_workers: Optional[int],
    ):
        self.hidden_active = hidden_active
        self.hidden_weights = hidden_active.astype(np.float64)
        self.masks = masks
        self.labels = labels
        self.edge_weight = edge_weight
        self.rule = rule
        self.num_workers = num_workers

    def rows(self, k: int, j: int) -> np.ndarray:
        mask = self.masks.get((k, j))
        if mask is None:
            mask = self.hidden_active[:, k]
        return np.flatnonzero(mask)

    def scores(self, counts: np.ndarray, present: np.ndarray) -> np.ndarray:
        add, remove = gain_tables(counts, self.labels, self.edge_weight)
        with_squares = self.rule.uses_confidence
        weights = self.hidden_weights

        def _partial(chunk: slice) -> np.ndarray:
            w = weights[chunk].T
            parts = [w @ add[chunk], w @ remove[chunk]]
            if with_squares:
                parts += [w @ add[chunk] ** 2, w @ remove[chunk] ** 2]
            return np.stack(parts)

        sums = parallel_sum(_partial, len(self.labels), self.num_workers)
        total = np.where(present, sums[1], sums[0])
        if with_squares:
            sq_total = np.where(present, sums[3], sums[2])
        else:
            sq_total = np.zeros_like(total)
        n = np.repeat(weights.sum(axis=0)[:, None], present.shape[1], axis=1)

        for (k, j), mask in self.masks.items():
            gains = (remove if present[k, j] else add)[mask, j]
            total[k, j] = gains.sum()
            sq_total[k, j] = (gains ** 2).sum()
            n[k, j] = len(gains)

        return self.rule.score(total, sq_total, n)


def greedy_search(
    circuit: Circuit,
    output_ids: Sequence[int],
    edge_weight: float,
    results: Sequence[RunResult],
    labels: Sequence[int],
    rule: Optional[SelectionRule] = None,
    exact_reranking: bool = False,
    num_workers: Optional[int] = None,
) -> Tuple[Circuit, List[Mutation], float]:
    """
    Greedily toggle hidden->output edges to lower the batch loss.

    By default candidates are ranked once against the unmutated tallies and
    visited in that order until the first non-positive score; each one is
    accepted only if it lowers the running loss. With ``exact_reranking``
    the table is recomputed from the running tallies after every attempt
    and the best untried candidate is taken next.

    Args:
        circuit: Circuit the results were computed with (left untouched)
        output_ids: Output node id for each label
        edge_weight: Softmax temperature
        results: ``circuit.run`` result for every example
        labels: True label of every example
        rule: Candidate ranking rule (defaults to the mean rule)
        exact_reranking: Re-rank after every attempted candidate
        num_workers: Worker count for scoring

    Returns:
        ``(mutated_circuit, accepted_mutations, final_mean_loss)``
    """
    if len(results) == 0:
        raise PreconditionViolation("greedy search needs a non-empty batch")
    check_outputs_inert(circuit, output_ids)
    rule = rule or SelectionRule.mean()

    labels = np.asarray(labels, dtype=np.int64)
    counts = np.array(
        [[r.outputs[out] for out in output_ids] for r in results], dtype=np.int64
    )
    losses = example_losses(counts, labels, edge_weight)

    mutated = circuit.copy()
    mutations: List[Mutation] = []
    hidden = circuit.hidden_ids()
    if not hidden:
        return mutated, mutations, float(losses.mean())

    active = np.stack([r.active.to_numpy() for r in results])
    hidden_active = active[:, hidden]
    hidden_index = {node_id: k for k, node_id in enumerate(hidden)}
    label_of = {out: j for j, out in enumerate(output_ids)}

    n_labels = len(output_ids)
    present = np.zeros((len(hidden), n_labels), dtype=bool)
    other_holders: Dict[Tuple[int, int], List[int]] = {}
    for owner, edge in circuit.edges:
        k = hidden_index.get(edge.source)
        j = label_of.get(edge.target)
        if k is None or j is None:
            continue
        if owner == edge.source:
            present[k, j] = True
        else:
            other_holders.setdefault((k, j), []).append(owner)

    masks = {
        (k, j): hidden_active[:, k] & ~active[:, owners].any(axis=1)
        for (k, j), owners in other_holders.items()
    }
    table = _CandidateTable(hidden_active, masks, labels, edge_weight, rule, num_workers)

    def attempt(k: int, j: int) -> None:
        rows = table.rows(k, j)
        if len(rows) == 0:
            return
        sign = -1 if present[k, j] else 1
        new_counts = counts[rows].copy()
        new_counts[:, j] += sign
        new_losses = example_losses(new_counts, labels[rows], edge_weight)
        if new_losses.sum() - losses[rows].sum() >= 0:
            return

        counts[rows] = new_counts
        losses[rows] = new_losses
        present[k, j] = not present[k, j]
        node_id = hidden[k]
        edge = Edge(node_id, output_ids[j])
        if sign > 0:
            mutation = Mutation.add_edge(node_id, edge)
        else:
            mutation = Mutation.remove_edge(node_id, edge)
        mutated.mutate(mutation)
        mutations.append(mutation)

    if exact_reranking:
        tried = np.zeros_like(present)
        while True:
            scores = table.scores(counts, present)
            scores[tried] = -np.inf
            best = int(np.argmax(scores))
            if not scores.flat[best] > 0:
                break
            tried.flat[best] = True
            attempt(*divmod(best, n_labels))
    else:
        scores = table.scores(counts, present)
        order = np.argsort(-scores, axis=None, kind="stable")
        for flat in order:
            if scores.flat[flat] <= 0:
                break
            attempt(*divmod(int(flat), n_labels))

    return mutated, mutations, float(losses.mean())
