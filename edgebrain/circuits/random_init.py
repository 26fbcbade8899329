"""
Random initialization of circuit connectivity.

Adds random hidden-destined edges until, on average over a batch, a target
fraction of hidden nodes is active. The number of edges is found by
exponential probing followed by a binary search over the recorded edit
sequence; this relies on the fraction never decreasing as edges are added.
"""

import random
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationExhausted, PreconditionViolation
from ..parallel import parallel_map
from .mutation import Mutation, random_addition
from .node import Edge, NodeKind

if TYPE_CHECKING:
    from .circuit import Circuit


def reachable_hidden_fraction(
    circuit: "Circuit",
    batch_inputs: Sequence[Sequence[int]],
    num_workers: Optional[int] = None,
) -> float:
    """
    Mean, over the batch, of the fraction of hidden nodes that end up active.

    Args:
        circuit: Circuit to evaluate
        batch_inputs: One collection of active input ids per example
        num_workers: Worker count for the per-example fan-out

    Raises:
        PreconditionViolation: If the batch is empty or there are no hidden nodes
    """
    if len(batch_inputs) == 0:
        raise PreconditionViolation("reachable_hidden_fraction needs a non-empty batch")
    hidden = np.asarray(circuit.hidden_ids(), dtype=np.int64)
    if len(hidden) == 0:
        raise PreconditionViolation("circuit has no hidden nodes")

    def _count(inputs: Sequence[int]) -> int:
        return int(circuit.run(inputs).active.to_numpy()[hidden].sum())

    counts = parallel_map(_count, batch_inputs, num_workers)
    return float(sum(counts)) / (len(batch_inputs) * len(hidden))


def initialization_mutations(
    circuit: "Circuit",
    batch_inputs: Sequence[Sequence[int]],
    target_fraction: float,
    hidden_groups: int = 1,
    rng: Optional[random.Random] = None,
    num_workers: Optional[int] = None,
) -> Tuple[List[Mutation], int]:
    """
    Record random hidden-destined additions and find the shortest useful prefix.

    Hidden ids are assigned round-robin (in sorted order) to
    ``hidden_groups`` buckets and no added edge joins two hidden nodes from
    different buckets, which yields independent sub-circuits.

    Args:
        circuit: Starting circuit (left untouched)
        batch_inputs: One collection of active input ids per example
        target_fraction: Desired average fraction of active hidden nodes
        hidden_groups: Number of independent hidden buckets
        rng: Random source
        num_workers: Worker count for evaluation

    Returns:
        ``(mutations, n)``: every recorded addition, and the length of the
        shortest prefix of them that meets the target

    Raises:
        PreconditionViolation: For a fraction outside ``[0, 1]`` or fewer
            than one group
        ConfigurationExhausted: If the target is still unmet when no more
            edges can be added
    """
    if not 0.0 <= target_fraction <= 1.0:
        raise PreconditionViolation(f"target_fraction must be in [0, 1], got {target_fraction}")
    if hidden_groups < 1:
        raise PreconditionViolation(f"hidden_groups must be at least 1, got {hidden_groups}")
    rng = rng or random.Random()

    hidden_to_group: Dict[int, int] = {
        node_id: i % hidden_groups for i, node_id in enumerate(circuit.hidden_ids())
    }

    def same_group(_owner: int, edge: Edge) -> bool:
        g1 = hidden_to_group.get(edge.source)
        g2 = hidden_to_group.get(edge.target)
        return g1 is None or g2 is None or g1 == g2

    def fraction(c: "Circuit") -> float:
        return reachable_hidden_fraction(c, batch_inputs, num_workers)

    # Double the number of additions until the target is met.
    all_mutations: List[Mutation] = []
    end = circuit.copy()
    while fraction(end) < target_fraction:
        add_count = max(1, len(all_mutations))
        added = 0
        for _ in range(add_count):
            found = random_addition(
                end, dest_kinds=[NodeKind.HIDDEN], edge_filter=same_group, rng=rng
            )
            if found is None:
                break
            m = Mutation.add_edge(*found)
            all_mutations.append(m)
            end.mutate(m)
            added += 1
        if added == 0:
            raise ConfigurationExhausted(
                f"no more hidden edges can be added; reached {fraction(end):.4f} "
                f"of target {target_fraction:.4f}"
            )

    if not all_mutations:
        return all_mutations, 0

    # Invariant: prefix start_idx is below target, prefix end_idx meets it.
    start = circuit.copy()
    start_idx, end_idx = 0, len(all_mutations)
    while start_idx + 1 < end_idx:
        mid_idx = (start_idx + end_idx) // 2
        mid = start.copy().apply(all_mutations[start_idx:mid_idx])
        if fraction(mid) < target_fraction:
            start_idx, start = mid_idx, mid
        else:
            end_idx = mid_idx

    return all_mutations, end_idx


def randomly_initialized(
    circuit: "Circuit",
    batch_inputs: Sequence[Sequence[int]],
    target_fraction: float,
    hidden_groups: int = 1,
    rng: Optional[random.Random] = None,
    num_workers: Optional[int] = None,
) -> Tuple["Circuit", int]:
    """
    Randomly add edges until ``target_fraction`` of hidden nodes are reachable.

    See :func:`initialization_mutations` for the search itself.

    Returns:
        ``(new_circuit, n)``: the circuit after the shortest prefix of the
        recorded additions that meets the target, and that prefix length
    """
    mutations, count = initialization_mutations(
        circuit,
        batch_inputs,
        target_fraction,
        hidden_groups=hidden_groups,
        rng=rng,
        num_workers=num_workers,
    )
    return circuit.copy().apply(mutations[:count]), count
