"""
Unit tests for mutations and the random edit generators.
"""

import random

import pytest

from edgebrain.circuits import (
    Circuit,
    Edge,
    Mutation,
    MutationKind,
    NodeKind,
    random_addition,
    random_deletion,
    random_mutation,
)
from edgebrain.errors import ConfigurationExhausted


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def small_circuit():
    c = Circuit()
    for _ in range(4):
        c.add_node("input")
    for _ in range(3):
        c.add_node("hidden")
    for _ in range(2):
        c.add_node("output")
    return c


@pytest.fixture
def tiny_circuit():
    """One input and one output: no owner can add anything."""
    c = Circuit()
    c.add_node("input")
    c.add_node("output")
    return c


# =============================================================================
# Mutation Value Tests
# =============================================================================

class TestMutation:

    def test_constructors(self):
        add = Mutation.add_edge(1, Edge(2, 3))
        assert add.kind is MutationKind.ADD_EDGE
        assert add.is_addition
        remove = Mutation.remove_edge(1, Edge(2, 3))
        assert remove.kind is MutationKind.REMOVE_EDGE
        assert not remove.is_addition

    def test_inverse(self):
        m = Mutation.add_edge(1, Edge(2, 3))
        assert m.inverse() == Mutation.remove_edge(1, Edge(2, 3))
        assert m.inverse().inverse() == m

    def test_string_kind_and_tuple_edge(self):
        m = Mutation("add_edge", 0, (1, 2))
        assert m.kind is MutationKind.ADD_EDGE
        assert m.edge == Edge(1, 2)

    def test_dict_round_trip(self):
        m = Mutation.remove_edge(4, Edge(5, 6))
        assert Mutation.from_dict(m.to_dict()) == m

    def test_repr(self):
        assert repr(Mutation.add_edge(1, Edge(2, 3))) == "Mutation(+Edge(2 -> 3) @ 1)"
        assert repr(Mutation.remove_edge(1, Edge(2, 3))) == "Mutation(-Edge(2 -> 3) @ 1)"

    def test_hashable(self):
        assert len({Mutation.add_edge(1, Edge(2, 3)), Mutation.add_edge(1, Edge(2, 3))}) == 1


# =============================================================================
# Random Generator Tests
# =============================================================================

class TestRandomAddition:

    def test_respects_kinds_and_endpoints(self, small_circuit):
        rng = random.Random(0)
        for _ in range(50):
            owner, edge = random_addition(small_circuit, rng=rng)
            assert small_circuit.kind_of(owner) in (NodeKind.INPUT, NodeKind.HIDDEN)
            assert small_circuit.kind_of(edge.source) in (NodeKind.INPUT, NodeKind.HIDDEN)
            assert small_circuit.kind_of(edge.target) in (NodeKind.HIDDEN, NodeKind.OUTPUT)
            assert edge.source != edge.target
            assert owner not in edge
            assert not small_circuit.has_edge(owner, edge)

    def test_custom_kinds(self, small_circuit):
        rng = random.Random(1)
        owner, edge = random_addition(
            small_circuit,
            owner_kinds=["hidden"],
            source_kinds=["hidden"],
            dest_kinds=["output"],
            rng=rng,
        )
        assert small_circuit.kind_of(owner) is NodeKind.HIDDEN
        assert small_circuit.kind_of(edge.source) is NodeKind.HIDDEN
        assert small_circuit.kind_of(edge.target) is NodeKind.OUTPUT

    def test_filter_is_applied(self, small_circuit):
        rng = random.Random(2)
        owner, edge = random_addition(
            small_circuit, edge_filter=lambda o, e: e.target == 8, rng=rng
        )
        assert edge.target == 8

    def test_none_when_everything_is_present(self):
        c = Circuit()
        owner = c.add_node("input")
        src = c.add_node("input")
        dst = c.add_node("output")
        c.mutate(Mutation.add_edge(owner, Edge(src, dst)))
        # The only remaining choice would need src to own src->dst.
        assert random_addition(c, source_kinds=["input"], rng=random.Random(0)) == (
            src, Edge(owner, dst)
        )
        c.mutate(Mutation.add_edge(src, Edge(owner, dst)))
        assert random_addition(c, rng=random.Random(0)) is None

    def test_seeded_rng_is_deterministic(self, small_circuit):
        a = random_addition(small_circuit, rng=random.Random(42))
        b = random_addition(small_circuit, rng=random.Random(42))
        assert a == b

    def test_circuit_method_delegates(self, small_circuit):
        assert small_circuit.random_addition(rng=random.Random(3)) == random_addition(
            small_circuit, rng=random.Random(3)
        )


class TestRandomDeletion:

    def test_none_without_edges(self, small_circuit):
        assert random_deletion(small_circuit, rng=random.Random(0)) is None

    def test_picks_a_stored_edge(self, small_circuit):
        small_circuit.mutate(Mutation.add_edge(0, Edge(1, 4)))
        small_circuit.mutate(Mutation.add_edge(4, Edge(2, 7)))
        rng = random.Random(0)
        seen = {random_deletion(small_circuit, rng=rng) for _ in range(50)}
        assert seen == {(0, Edge(1, 4)), (4, Edge(2, 7))}


class TestRandomMutation:

    def test_always_adds_when_delete_prob_is_zero(self, small_circuit):
        small_circuit.mutate(Mutation.add_edge(0, Edge(1, 4)))
        rng = random.Random(0)
        for _ in range(20):
            assert random_mutation(small_circuit, delete_prob=0.0, rng=rng).is_addition

    def test_always_deletes_when_delete_prob_is_one(self, small_circuit):
        small_circuit.mutate(Mutation.add_edge(0, Edge(1, 4)))
        rng = random.Random(0)
        for _ in range(20):
            m = random_mutation(small_circuit, delete_prob=1.0, rng=rng)
            assert m == Mutation.remove_edge(0, Edge(1, 4))

    def test_falls_back_to_addition_without_edges(self, small_circuit):
        m = random_mutation(small_circuit, delete_prob=1.0, rng=random.Random(0))
        assert m.is_addition
        small_circuit.mutate(m)

    def test_falls_back_to_deletion_when_full(self, tiny_circuit):
        # Give the output an edge so a deletion exists even though no
        # addition is possible.
        tiny_circuit.mutate(Mutation.add_edge(1, Edge(0, 1)))
        m = random_mutation(tiny_circuit, delete_prob=0.0, rng=random.Random(0))
        assert m == Mutation.remove_edge(1, Edge(0, 1))

    def test_exhausted_circuit_raises(self, tiny_circuit):
        with pytest.raises(ConfigurationExhausted, match="not enough nodes"):
            random_mutation(tiny_circuit, rng=random.Random(0))

    @pytest.mark.parametrize("prob", [-0.1, 1.5])
    def test_invalid_probability_raises(self, small_circuit, prob):
        with pytest.raises(ValueError, match="delete_prob"):
            random_mutation(small_circuit, delete_prob=prob)

    def test_generated_mutations_apply_cleanly(self, small_circuit):
        rng = random.Random(5)
        for _ in range(100):
            small_circuit.mutate(small_circuit.random_mutation(delete_prob=0.3, rng=rng))
