"""
Circuit: a gated directed graph whose connectivity is the learned parameter.

Every node owns a set of edges. An owned edge is *live* (takes part in
propagation) only while its owner is active, and the owner need not be an
endpoint of the edge. Running a circuit computes the least fixed point of
"active nodes" and "live edges" starting from a set of active inputs, and
reports, for every output node, how many live edges from active nodes enter
it. That tally is used directly as a softmax logit by the classifier.
"""

import json
import random
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

import numpy as np

from ..errors import PreconditionViolation
from . import mutation as _mutation
from . import random_init as _random_init
from .bitset import BitSet
from .digraph import DirectedGraph
from .mutation import Mutation, MutationKind
from .node import Edge, Node, NodeKind, as_kind_set


# Schema version for serialization compatibility
SCHEMA_VERSION = "1.0"


class RunResult(NamedTuple):
    """
    Result of evaluating a circuit on one set of active inputs.

    Attributes:
        outputs: Output node id -> number of live edges into it from active nodes
        active: Bit ``i`` is set iff node ``i`` ended up active
    """
    outputs: Dict[int, int]
    active: BitSet


class Circuit:
    """
    A node/edge store with gated, owner-keyed edges.

    Node ids are assigned monotonically and are never reused. Copies share
    unchanged nodes, so trial variants are cheap to make.

    Example:
        >>> c = Circuit()
        >>> a_off, a_on = c.add_node("input"), c.add_node("input")
        >>> b_off, b_on = c.add_node("input"), c.add_node("input")
        >>> out = c.add_node("output")
        >>> c.mutate(Mutation.add_edge(a_off, Edge(b_on, out)))
        >>> c.mutate(Mutation.add_edge(b_off, Edge(a_on, out)))
        >>> c.run([a_on, b_off]).outputs[out]
        1
    """

    def __init__(self):
        self._nodes: Dict[int, Node] = {}
        self._next_id = 0
        self._output_ids: Set[int] = set()

    # =========================================================================
    # Node Operations
    # =========================================================================

    def add_node(self, kind: Union[str, NodeKind]) -> int:
        """
        Append a node with a fresh id.

        Args:
            kind: "input", "hidden" or "output" (or a NodeKind)

        Returns:
            The id of the new node
        """
        if isinstance(kind, str):
            kind = NodeKind.from_string(kind)
        node_id = self._next_id
        self._next_id += 1
        self._nodes[node_id] = Node(id=node_id, kind=kind)
        if kind is NodeKind.OUTPUT:
            self._output_ids.add(node_id)
        return node_id

    def get_node(self, node_id: int) -> Optional[Node]:
        """Get a node by id, or None if not found."""
        return self._nodes.get(node_id)

    def kind_of(self, node_id: int) -> NodeKind:
        return self._nodes[node_id].kind

    @property
    def nodes(self) -> List[Node]:
        """All nodes in id order."""
        return [self._nodes[i] for i in sorted(self._nodes)]

    @property
    def node_ids(self) -> List[int]:
        return sorted(self._nodes)

    @property
    def max_id(self) -> int:
        """The largest id ever assigned (-1 for an empty circuit)."""
        return self._next_id - 1

    @property
    def id_count(self) -> int:
        """Length of the active-set bitmaps returned by run()."""
        return self._next_id

    def ids_of_kind(self, kinds: Iterable[Union[str, NodeKind]]) -> List[int]:
        """Sorted ids of all nodes whose kind is in ``kinds``."""
        wanted = as_kind_set(kinds)
        return sorted(i for i, n in self._nodes.items() if n.kind in wanted)

    def input_ids(self) -> List[int]:
        return self.ids_of_kind([NodeKind.INPUT])

    def hidden_ids(self) -> List[int]:
        return self.ids_of_kind([NodeKind.HIDDEN])

    def output_ids(self) -> List[int]:
        return sorted(self._output_ids)

    # =========================================================================
    # Edge Operations
    # =========================================================================

    @property
    def edges(self) -> List[Tuple[int, Edge]]:
        """Every stored edge as an ``(owner, edge)`` pair, in a stable order."""
        return [
            (node_id, edge)
            for node_id in sorted(self._nodes)
            for edge in sorted(self._nodes[node_id].edges)
        ]

    @property
    def num_edges(self) -> int:
        return sum(len(n.edges) for n in self._nodes.values())

    def has_edge(self, owner: int, edge: Edge) -> bool:
        node = self._nodes.get(owner)
        return node is not None and edge in node.edges

    def mutate(self, mutation: Mutation) -> None:
        """
        Apply a single edit to one owner's edge set.

        Raises:
            ValueError: If the owner or an endpoint is unknown, if the edge is
                already present (for additions), or absent (for removals)
        """
        owner = self._nodes.get(mutation.owner)
        if owner is None:
            raise ValueError(f"Owner node {mutation.owner} does not exist")
        edge = mutation.edge

        if mutation.kind is MutationKind.ADD_EDGE:
            if edge.source not in self._nodes:
                raise ValueError(f"Source node {edge.source} does not exist")
            if edge.target not in self._nodes:
                raise ValueError(f"Target node {edge.target} does not exist")
            if edge in owner.edges:
                raise ValueError(f"{edge!r} is already owned by node {owner.id}")
            self._nodes[owner.id] = owner.with_edges(owner.edges | {edge})
        else:
            if edge not in owner.edges:
                raise ValueError(f"{edge!r} is not owned by node {owner.id}")
            self._nodes[owner.id] = owner.with_edges(owner.edges - {edge})

    def apply(self, mutations: Iterable[Mutation]) -> "Circuit":
        """Apply mutations in order. Returns self (for chaining)."""
        for m in mutations:
            self.mutate(m)
        return self

    def copy(self) -> "Circuit":
        """
        Copy the circuit.

        Nodes are immutable, so only the id -> node mapping is duplicated.
        """
        other = Circuit()
        other._nodes = dict(self._nodes)
        other._next_id = self._next_id
        other._output_ids = set(self._output_ids)
        return other

    # =========================================================================
    # Execution
    # =========================================================================

    def _check_inputs(self, inputs: Iterable[int]) -> Set[int]:
        active = set(inputs)
        unknown = [i for i in active if i not in self._nodes]
        if unknown:
            raise PreconditionViolation(f"Active inputs reference unknown node ids: {sorted(unknown)}")
        return active

    def run(self, inputs: Iterable[int]) -> RunResult:
        """
        Run the circuit for a set of initially active nodes.

        Edges are processed from a work queue as their owners become active.
        The live subgraph only ever grows, so each newly activated node is
        expanded with a BFS over what is already live instead of recomputing
        reachability from scratch.

        Args:
            inputs: Ids of the nodes that start out active

        Returns:
            RunResult with per-output tallies and the final active set
        """
        active = self._check_inputs(inputs)
        nodes = self._nodes
        outputs = self._output_ids
        live: DirectedGraph[int] = DirectedGraph(vertices=nodes)

        pending: List[Edge] = [e for n in active for e in nodes[n].edges]
        while pending:
            edge = pending.pop()
            source_active = edge.source in active
            target_active = edge.target in active

            # Output in-edges must stay countable; edges between two inactive
            # nodes may matter once either end activates.
            if edge.target in outputs or not (source_active or target_active):
                live.insert_edge(edge.source, edge.target)

            if source_active and not target_active:
                active.add(edge.target)
                frontier = [edge.target]
                while frontier:
                    newly_active = frontier.pop()
                    pending.extend(nodes[newly_active].edges)
                    for neighbor in live.neighbors_from(newly_active):
                        if neighbor not in active:
                            active.add(neighbor)
                            frontier.append(neighbor)

        return self._result(live, active)

    def _live_graph(self, active: Iterable[int]) -> DirectedGraph[int]:
        """The subgraph of edges whose owner is in ``active``."""
        live: DirectedGraph[int] = DirectedGraph(vertices=self._nodes)
        for owner in active:
            for edge in self._nodes[owner].edges:
                live.insert_edge(edge.source, edge.target)
        return live

    def propagation_rounds(self, inputs: Iterable[int]) -> Iterator[FrozenSet[int]]:
        """
        Yield the active set after every round of the naive fixed point.

        The first item is the initial active set. Each later round rebuilds
        the live subgraph from the currently active owners and takes
        everything reachable from the active set. Iteration stops once a
        round adds nothing.
        """
        active = self._check_inputs(inputs)
        yield frozenset(active)
        while True:
            reached = self._live_graph(active).reachable(active)
            if len(reached) == len(active):
                return
            active = reached
            yield frozenset(active)

    def run_reference(self, inputs: Iterable[int]) -> RunResult:
        """
        Run the circuit by whole-graph recomputation until a fixed point.

        Slower than run() but straightforward; both must always agree.
        """
        final: FrozenSet[int] = frozenset()
        for final in self.propagation_rounds(inputs):
            pass
        return self._result(self._live_graph(final), set(final))

    def _result(self, live: DirectedGraph[int], active: Set[int]) -> RunResult:
        tallies = {
            out: len(live.neighbors_to(out) & active)
            for out in sorted(self._output_ids)
        }
        flags = np.zeros(self._next_id, dtype=bool)
        if active:
            flags[list(active)] = True
        return RunResult(outputs=tallies, active=BitSet.from_bools(flags))

    # =========================================================================
    # Random Edits
    # =========================================================================

    def random_addition(
        self,
        owner_kinds: Iterable[Union[str, NodeKind]] = (NodeKind.INPUT, NodeKind.HIDDEN),
        source_kinds: Iterable[Union[str, NodeKind]] = (NodeKind.INPUT, NodeKind.HIDDEN),
        dest_kinds: Iterable[Union[str, NodeKind]] = (NodeKind.HIDDEN, NodeKind.OUTPUT),
        edge_filter: Optional[Callable[[int, Edge], bool]] = None,
        rng: Optional[random.Random] = None,
    ) -> Optional[Tuple[int, Edge]]:
        """See :func:`edgebrain.circuits.mutation.random_addition`."""
        return _mutation.random_addition(
            self,
            owner_kinds=owner_kinds,
            source_kinds=source_kinds,
            dest_kinds=dest_kinds,
            edge_filter=edge_filter,
            rng=rng,
        )

    def random_deletion(self, rng: Optional[random.Random] = None) -> Optional[Tuple[int, Edge]]:
        """See :func:`edgebrain.circuits.mutation.random_deletion`."""
        return _mutation.random_deletion(self, rng=rng)

    def random_mutation(
        self, delete_prob: float = 0.25, rng: Optional[random.Random] = None
    ) -> Mutation:
        """See :func:`edgebrain.circuits.mutation.random_mutation`."""
        return _mutation.random_mutation(self, delete_prob=delete_prob, rng=rng)

    def randomly_initialized(
        self,
        batch_inputs: Sequence[Sequence[int]],
        target_fraction: float,
        hidden_groups: int = 1,
        rng: Optional[random.Random] = None,
        num_workers: Optional[int] = None,
    ) -> Tuple["Circuit", int]:
        """See :func:`edgebrain.circuits.random_init.randomly_initialized`."""
        return _random_init.randomly_initialized(
            self,
            batch_inputs,
            target_fraction,
            hidden_groups=hidden_groups,
            rng=rng,
            num_workers=num_workers,
        )

    def reachable_hidden_fraction(
        self,
        batch_inputs: Sequence[Sequence[int]],
        num_workers: Optional[int] = None,
    ) -> float:
        """See :func:`edgebrain.circuits.random_init.reachable_hidden_fraction`."""
        return _random_init.reachable_hidden_fraction(self, batch_inputs, num_workers)

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the circuit to a dictionary.

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        return {
            "version": SCHEMA_VERSION,
            "next_id": self._next_id,
            "nodes": [node.to_dict() for node in self.nodes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Circuit":
        """
        Deserialize a circuit from a dictionary.

        Raises:
            ValueError: If the data is from an unknown schema version, reuses
                an id, or stores an edge that references a missing node
        """
        version = data.get("version", SCHEMA_VERSION)
        if version != SCHEMA_VERSION:
            raise ValueError(f"Unsupported circuit schema version: {version}")

        circuit = cls()
        for node_data in data.get("nodes", []):
            node = Node.from_dict(node_data)
            if node.id in circuit._nodes:
                raise ValueError(f"Duplicate node id {node.id}")
            circuit._nodes[node.id] = node
            if node.kind is NodeKind.OUTPUT:
                circuit._output_ids.add(node.id)

        highest = max(circuit._nodes, default=-1)
        circuit._next_id = max(int(data.get("next_id", highest + 1)), highest + 1)

        for node in circuit._nodes.values():
            for edge in node.edges:
                if edge.source not in circuit._nodes or edge.target not in circuit._nodes:
                    raise ValueError(f"Node {node.id} owns {edge!r} with a missing endpoint")
        return circuit

    def save(self, path: Union[str, Path], indent: Optional[int] = None) -> None:
        """Save the circuit to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=indent)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Circuit":
        """Load a circuit from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dict(data)

    # =========================================================================
    # Python Magic Methods
    # =========================================================================

    def __len__(self) -> int:
        """Return the number of nodes in the circuit."""
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[Node]:
        """Iterate over nodes in id order."""
        return iter(self.nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Circuit):
            return NotImplemented
        return self._next_id == other._next_id and self._nodes == other._nodes

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Circuit(nodes={len(self._nodes)}, edges={self.num_edges})"

    # =========================================================================
    # Statistics
    # =========================================================================

    def summary(self) -> Dict[str, Any]:
        """
        Get a summary of the circuit structure.

        Returns:
            Dictionary with node counts per kind and edge counts per owner kind
        """
        node_kinds = {k.value: 0 for k in NodeKind}
        owned_edges = {k.value: 0 for k in NodeKind}
        for node in self._nodes.values():
            node_kinds[node.kind.value] += 1
            owned_edges[node.kind.value] += len(node.edges)
        return {
            "num_nodes": len(self._nodes),
            "num_edges": self.num_edges,
            "node_kinds": node_kinds,
            "edges_by_owner_kind": owned_edges,
        }


__all__ = ["Circuit", "RunResult", "SCHEMA_VERSION"]
