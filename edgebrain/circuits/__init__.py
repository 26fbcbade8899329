"""
edgebrain / circuits
====================

Gated circuits whose connectivity, not numeric weights, is the learned
parameter.

A circuit is a set of input, hidden and output nodes. Each node *owns* a set
of directed edges, and an edge only propagates activity while its owner is
active. Running a circuit finds the fixed point of active nodes and live
edges, and reports how many live edges from active nodes enter each output.

Example:
    >>> from edgebrain.circuits import Circuit, Edge, Mutation
    >>>
    >>> c = Circuit()
    >>> a_off, a_on, b_off, b_on = (c.add_node("input") for _ in range(4))
    >>> out = c.add_node("output")
    >>> c.mutate(Mutation.add_edge(a_off, Edge(b_on, out)))
    >>> c.mutate(Mutation.add_edge(b_off, Edge(a_on, out)))
    >>> c.run([a_on, b_off]).outputs[out]   # XOR(1, 0)
    1
"""

from .bitset import BitSet
from .circuit import SCHEMA_VERSION, Circuit, RunResult
from .digraph import DirectedGraph
from .mutation import (
    Mutation,
    MutationKind,
    random_addition,
    random_deletion,
    random_mutation,
)
from .node import Edge, Node, NodeKind
from .random_init import (
    initialization_mutations,
    randomly_initialized,
    reachable_hidden_fraction,
)

__all__ = [
    "BitSet",
    "Circuit",
    "RunResult",
    "SCHEMA_VERSION",
    "DirectedGraph",
    "Edge",
    "Node",
    "NodeKind",
    "Mutation",
    "MutationKind",
    "random_addition",
    "random_deletion",
    "random_mutation",
    "initialization_mutations",
    "randomly_initialized",
    "reachable_hidden_fraction",
]
