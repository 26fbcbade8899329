"""
Node and Edge abstractions for gated circuits.

Defines the structural components of a circuit:
- NodeKind: Input, hidden or output
- Edge: A directed (source, target) pair with no identity beyond its endpoints
- Node: A node together with the set of edges it owns
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Any, Dict, FrozenSet, Iterable, NamedTuple


class NodeKind(Enum):
    """
    Supported kinds of circuit nodes.

    The kind of a node is fixed when it is created.
    """
    INPUT = "input"
    HIDDEN = "hidden"
    OUTPUT = "output"

    @classmethod
    def from_string(cls, s: str) -> "NodeKind":
        """Convert string to NodeKind, case-insensitive."""
        normalized = s.lower().strip()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown node kind: {s}. Valid kinds: {[m.value for m in cls]}")


ALL_KINDS: FrozenSet[NodeKind] = frozenset(NodeKind)


def as_kind_set(kinds: Iterable[Any]) -> FrozenSet[NodeKind]:
    """Normalize a collection of NodeKind members or kind names to a frozenset."""
    if isinstance(kinds, (NodeKind, str)):
        kinds = [kinds]
    return frozenset(k if isinstance(k, NodeKind) else NodeKind.from_string(k) for k in kinds)


class Edge(NamedTuple):
    """
    A directed connection between two node ids.

    An edge is stored under an *owner* node, which need not be either
    endpoint. The edge only takes part in propagation while its owner is
    active.
    """
    source: int
    target: int

    def to_dict(self) -> Dict[str, int]:
        return {"source": self.source, "target": self.target}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(source=int(data["source"]), target=int(data["target"]))

    def __repr__(self) -> str:
        return f"Edge({self.source} -> {self.target})"


@dataclass(frozen=True)
class Node:
    """
    A single node of a circuit.

    Nodes are immutable: editing the edge set produces a new Node, so copies
    of a circuit can share untouched nodes.

    Attributes:
        id: Integer id, assigned by the circuit and never reused
        kind: Input, hidden or output
        edges: The gated edges this node owns
    """
    id: int
    kind: NodeKind
    edges: FrozenSet[Edge] = field(default_factory=frozenset)

    def __post_init__(self):
        # Convert string kind to enum if necessary
        if isinstance(self.kind, str):
            object.__setattr__(self, "kind", NodeKind.from_string(self.kind))
        if not isinstance(self.edges, frozenset):
            object.__setattr__(self, "edges", frozenset(Edge(*e) for e in self.edges))

    def with_edges(self, edges: AbstractSet[Edge]) -> "Node":
        """Return a copy of this node owning ``edges`` instead."""
        return Node(id=self.id, kind=self.kind, edges=frozenset(edges))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize node to dictionary."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "edges": [e.to_dict() for e in sorted(self.edges)],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Deserialize node from dictionary."""
        return cls(
            id=int(data["id"]),
            kind=NodeKind.from_string(data["kind"]),
            edges=frozenset(Edge.from_dict(e) for e in data.get("edges", [])),
        )

    def __repr__(self) -> str:
        return f"Node(id={self.id}, kind={self.kind.value}, edges={len(self.edges)})"
