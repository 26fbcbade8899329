"""
Edge mutations and randomized edit generators.

A Mutation adds or removes one edge from one owner's edge set. The random
generators are used for exploration and for random initialization; the greedy
search in :mod:`edgebrain.classifier` builds its mutations directly.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Optional, Tuple, Union

from ..errors import ConfigurationExhausted
from .node import Edge, NodeKind, as_kind_set

if TYPE_CHECKING:
    from .circuit import Circuit


EdgeFilter = Callable[[int, Edge], bool]


class MutationKind(Enum):
    ADD_EDGE = "add_edge"
    REMOVE_EDGE = "remove_edge"


@dataclass(frozen=True)
class Mutation:
    """
    A single reversible edit to one owner's edge set.

    Attributes:
        kind: Whether the edge is added or removed
        owner: Id of the node whose edge set is edited
        edge: The edge being added or removed
    """
    kind: MutationKind
    owner: int
    edge: Edge

    def __post_init__(self):
        if isinstance(self.kind, str):
            object.__setattr__(self, "kind", MutationKind(self.kind))
        if not isinstance(self.edge, Edge):
            object.__setattr__(self, "edge", Edge(*self.edge))

    @classmethod
    def add_edge(cls, owner: int, edge: Edge) -> "Mutation":
        return cls(MutationKind.ADD_EDGE, owner, edge)

    @classmethod
    def remove_edge(cls, owner: int, edge: Edge) -> "Mutation":
        return cls(MutationKind.REMOVE_EDGE, owner, edge)

    @property
    def is_addition(self) -> bool:
        return self.kind is MutationKind.ADD_EDGE

    def inverse(self) -> "Mutation":
        """The mutation that undoes this one."""
        kind = MutationKind.REMOVE_EDGE if self.is_addition else MutationKind.ADD_EDGE
        return Mutation(kind, self.owner, self.edge)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "owner": self.owner, "edge": self.edge.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Mutation":
        return cls(
            kind=MutationKind(data["kind"]),
            owner=int(data["owner"]),
            edge=Edge.from_dict(data["edge"]),
        )

    def __repr__(self) -> str:
        sign = "+" if self.is_addition else "-"
        return f"Mutation({sign}{self.edge!r} @ {self.owner})"


def random_addition(
    circuit: "Circuit",
    owner_kinds: Iterable[Union[str, NodeKind]] = (NodeKind.INPUT, NodeKind.HIDDEN),
    source_kinds: Iterable[Union[str, NodeKind]] = (NodeKind.INPUT, NodeKind.HIDDEN),
    dest_kinds: Iterable[Union[str, NodeKind]] = (NodeKind.HIDDEN, NodeKind.OUTPUT),
    edge_filter: Optional[EdgeFilter] = None,
    rng: Optional[random.Random] = None,
) -> Optional[Tuple[int, Edge]]:
    """
    Pick a random edge that some owner could add.

    Owners, sources and destinations are each scanned in an independently
    shuffled order and the first admissible ``(owner, edge)`` is returned.
    An edge never connects a node to itself, and the owner is never one of
    the edge's own endpoints.

    Args:
        circuit: Circuit to draw from
        owner_kinds: Kinds of node allowed to own the new edge
        source_kinds: Kinds allowed as the edge source
        dest_kinds: Kinds allowed as the edge destination
        edge_filter: Optional predicate ``(owner, edge) -> bool``
        rng: Random source (a fresh unseeded one if omitted)

    Returns:
        ``(owner, edge)``, or None if no admissible addition exists
    """
    rng = rng or random.Random()
    owners = circuit.ids_of_kind(as_kind_set(owner_kinds))
    sources = circuit.ids_of_kind(as_kind_set(source_kinds))
    dests = circuit.ids_of_kind(as_kind_set(dest_kinds))
    rng.shuffle(owners)
    rng.shuffle(sources)
    rng.shuffle(dests)

    for owner in owners:
        owned = circuit.get_node(owner).edges
        for source in sources:
            if source == owner:
                continue
            for dest in dests:
                if dest == owner or dest == source:
                    continue
                edge = Edge(source, dest)
                if edge in owned:
                    continue
                if edge_filter is not None and not edge_filter(owner, edge):
                    continue
                return owner, edge
    return None


def random_deletion(
    circuit: "Circuit", rng: Optional[random.Random] = None
) -> Optional[Tuple[int, Edge]]:
    """
    Pick a uniformly random stored ``(owner, edge)`` pair.

    Returns:
        ``(owner, edge)``, or None if the circuit has no edges
    """
    rng = rng or random.Random()
    candidates = circuit.edges
    if not candidates:
        return None
    return rng.choice(candidates)


def random_mutation(
    circuit: "Circuit",
    delete_prob: float = 0.25,
    rng: Optional[random.Random] = None,
) -> Mutation:
    """
    Draw a random addition or deletion.

    With probability ``1 - delete_prob`` an addition is attempted first. If
    that is skipped or impossible a deletion is attempted, and failing that
    an addition once more.

    Raises:
        ValueError: If ``delete_prob`` is outside ``[0, 1]``
        ConfigurationExhausted: If the circuit admits neither an addition
            nor a deletion
    """
    if not 0.0 <= delete_prob <= 1.0:
        raise ValueError(f"delete_prob must be in [0, 1], got {delete_prob}")
    rng = rng or random.Random()

    if rng.random() >= delete_prob:
        found = random_addition(circuit, rng=rng)
        if found is not None:
            return Mutation.add_edge(*found)

    found = random_deletion(circuit, rng=rng)
    if found is not None:
        return Mutation.remove_edge(*found)

    found = random_addition(circuit, rng=rng)
    if found is None:
        raise ConfigurationExhausted("cannot add or delete an edge; not enough nodes")
    return Mutation.add_edge(*found)
