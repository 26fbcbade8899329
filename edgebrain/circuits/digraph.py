"""
DirectedGraph: a small adjacency-set digraph over hashable vertices.

Used by the circuit execution engine to hold the live (ungated) subgraph of
a single evaluation. All mutating operations are O(1) amortized; reachability
is a frontier expansion that visits each vertex at most once.
"""

from collections import defaultdict
from typing import Dict, Generic, Hashable, Iterable, Iterator, List, Set, Tuple, TypeVar

V = TypeVar("V", bound=Hashable)


class DirectedGraph(Generic[V]):
    """
    A directed graph with constant-time insertion and removal of edges.

    Example:
        >>> g = DirectedGraph(vertices=range(4))
        >>> g.insert_edge(0, 1)
        >>> g.insert_edge(1, 2)
        >>> sorted(g.reachable([0]))
        [0, 1, 2]
    """

    def __init__(
        self,
        vertices: Iterable[V] = (),
        edges: Iterable[Tuple[V, V]] = (),
    ):
        self._vertices: Set[V] = set(vertices)

        # Adjacency sets for traversal in either direction
        self._outgoing: Dict[V, Set[V]] = defaultdict(set)
        self._incoming: Dict[V, Set[V]] = defaultdict(set)

        for source, target in edges:
            self.insert_edge(source, target)

    # =========================================================================
    # Vertex Operations
    # =========================================================================

    def insert_vertex(self, vertex: V) -> None:
        self._vertices.add(vertex)

    def remove_vertex(self, vertex: V) -> None:
        """Remove a vertex together with every edge incident to it."""
        for neighbor in self._outgoing.pop(vertex, set()):
            self._incoming[neighbor].discard(vertex)
        for neighbor in self._incoming.pop(vertex, set()):
            self._outgoing[neighbor].discard(vertex)
        self._vertices.discard(vertex)

    def has_vertex(self, vertex: V) -> bool:
        return vertex in self._vertices

    @property
    def vertices(self) -> Set[V]:
        return set(self._vertices)

    # =========================================================================
    # Edge Operations
    # =========================================================================

    def insert_edge(self, source: V, target: V) -> None:
        """
        Insert the edge ``source -> target``. Inserting an existing edge is a no-op.

        Raises:
            ValueError: If either endpoint is not a vertex of the graph
        """
        if source not in self._vertices:
            raise ValueError(f"Source vertex {source!r} does not exist")
        if target not in self._vertices:
            raise ValueError(f"Target vertex {target!r} does not exist")
        self._outgoing[source].add(target)
        self._incoming[target].add(source)

    def remove_edge(self, source: V, target: V) -> None:
        """Remove the edge ``source -> target`` if present."""
        out = self._outgoing.get(source)
        if out is not None:
            out.discard(target)
        inc = self._incoming.get(target)
        if inc is not None:
            inc.discard(source)

    def has_edge(self, source: V, target: V) -> bool:
        out = self._outgoing.get(source)
        return out is not None and target in out

    @property
    def edges(self) -> List[Tuple[V, V]]:
        """All edges as ``(source, target)`` pairs."""
        return [(s, t) for s, targets in self._outgoing.items() for t in targets]

    def neighbors_from(self, vertex: V) -> Set[V]:
        """Targets of edges leaving ``vertex``."""
        return self._outgoing.get(vertex, set())

    def neighbors_to(self, vertex: V) -> Set[V]:
        """Sources of edges entering ``vertex``."""
        return self._incoming.get(vertex, set())

    # =========================================================================
    # Traversal
    # =========================================================================

    def reachable(self, start: Iterable[V]) -> Set[V]:
        """
        Find every vertex reachable from any vertex in ``start``.

        The starting vertices are always part of the result.
        """
        seen = set(start)
        queue = list(seen)
        while queue:
            item = queue.pop()
            for neighbor in self._outgoing.get(item, ()):
                if neighbor not in seen:
                    seen.add(neighbor)
                    queue.append(neighbor)
        return seen

    # =========================================================================
    # Python Magic Methods
    # =========================================================================

    def __len__(self) -> int:
        return len(self._vertices)

    def __contains__(self, vertex: object) -> bool:
        return vertex in self._vertices

    def __iter__(self) -> Iterator[V]:
        return iter(self._vertices)

    def __repr__(self) -> str:
        n_edges = sum(len(t) for t in self._outgoing.values())
        return f"DirectedGraph(vertices={len(self._vertices)}, edges={n_edges})"
