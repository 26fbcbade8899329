"""
Hidden-node equivalence classes.

Two hidden nodes are equivalent on a batch when they are active on exactly
the same examples. Equivalent nodes are behaviourally redundant there.
"""

from collections import defaultdict
from typing import TYPE_CHECKING, Dict, FrozenSet, List, Sequence, Set

import numpy as np

from ..circuits.bitset import BitSet
from ..errors import PreconditionViolation

if TYPE_CHECKING:
    from ..circuits.circuit import Circuit


def transpose_bitsets(bitsets: Sequence[BitSet]) -> List[BitSet]:
    """
    Transpose per-example node masks into per-node example masks.

    Bit ``j`` of result ``n`` is bit ``n`` of ``bitsets[j]``.

    Raises:
        PreconditionViolation: If ``bitsets`` is empty or lengths differ
    """
    if len(bitsets) == 0:
        raise PreconditionViolation("cannot transpose an empty list of bitsets")
    width = bitsets[0].count
    if any(b.count != width for b in bitsets):
        raise PreconditionViolation("all bitsets must have the same length")

    matrix = np.stack([b.to_numpy() for b in bitsets])
    return [BitSet.from_bools(column) for column in matrix.T]


def hidden_equivalence_classes(
    circuit: "Circuit",
    active_sets: Sequence[BitSet],
) -> Set[FrozenSet[int]]:
    """
    Group hidden node ids by their activation pattern across a batch.

    Args:
        circuit: The circuit the active sets came from
        active_sets: Final active set of every example

    Returns:
        Set of classes, each a frozenset of hidden node ids
    """
    per_node = transpose_bitsets(active_sets)
    groups: Dict[BitSet, Set[int]] = defaultdict(set)
    for node_id in circuit.hidden_ids():
        groups[per_node[node_id]].add(node_id)
    return {frozenset(ids) for ids in groups.values()}
