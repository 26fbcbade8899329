"""
Unit tests for BitSet.

Tests cover:
- Set/get round-trip across word boundaries
- Iteration order
- Bounds checking
- numpy conversion, indices and popcount
- Equality, hashing and copies
"""

import random

import numpy as np
import pytest

from edgebrain.circuits import BitSet


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def sample_bits():
    """A BitSet with a few bits set on both sides of a word boundary."""
    bits = BitSet(130)
    for i in (0, 5, 63, 64, 129):
        bits[i] = True
    return bits


# =============================================================================
# Read/Write Tests
# =============================================================================

class TestReadWrite:

    def test_new_bitset_is_clear(self):
        bits = BitSet(70)
        assert len(bits) == 70
        assert not any(bits)

    def test_round_trip_random_ops(self):
        """Reading every index returns the last value written to it."""
        rng = random.Random(0)
        bits = BitSet(1000)
        expected = [False] * 1000
        for _ in range(10):
            for i in range(1000):
                op = rng.randrange(3)
                if op == 0:
                    bits[i] = True
                    expected[i] = True
                elif op == 1:
                    bits[i] = False
                    expected[i] = False

        for i in range(1000):
            assert bits[i] == expected[i]
        assert list(bits) == expected

    def test_iteration_is_in_index_order(self, sample_bits):
        values = list(sample_bits)
        assert len(values) == 130
        assert [i for i, v in enumerate(values) if v] == [0, 5, 63, 64, 129]

    def test_iteration_can_restart(self, sample_bits):
        assert list(sample_bits) == list(sample_bits)

    def test_clearing_high_bit(self):
        bits = BitSet(64)
        bits[63] = True
        bits[63] = False
        assert bits.popcount() == 0

    @pytest.mark.parametrize("index", [-1, 130, 1000])
    def test_out_of_range_get_raises(self, sample_bits, index):
        with pytest.raises(IndexError, match="out of range"):
            sample_bits[index]

    def test_out_of_range_set_raises(self, sample_bits):
        with pytest.raises(IndexError):
            sample_bits[130] = True

    def test_negative_count_raises(self):
        with pytest.raises(ValueError):
            BitSet(-1)


# =============================================================================
# Conversion Tests
# =============================================================================

class TestConversion:

    def test_from_bools_list(self):
        bits = BitSet.from_bools([True, False, True, True])
        assert list(bits) == [True, False, True, True]

    def test_from_bools_numpy(self):
        flags = np.zeros(200, dtype=bool)
        flags[[3, 150, 199]] = True
        bits = BitSet.from_bools(flags)
        assert bits.indices() == [3, 150, 199]

    def test_from_indices(self):
        bits = BitSet.from_indices(10, [1, 4])
        assert bits.indices() == [1, 4]

    def test_to_numpy(self, sample_bits):
        arr = sample_bits.to_numpy()
        assert arr.dtype == bool
        assert arr.shape == (130,)
        assert np.flatnonzero(arr).tolist() == [0, 5, 63, 64, 129]

    def test_popcount(self, sample_bits):
        assert sample_bits.popcount() == 5

    def test_empty_bitset(self):
        bits = BitSet(0)
        assert list(bits) == []
        assert bits.to_numpy().shape == (0,)
        assert bits.popcount() == 0


# =============================================================================
# Equality Tests
# =============================================================================

class TestEquality:

    def test_equal_contents_are_equal(self, sample_bits):
        other = BitSet.from_indices(130, [0, 5, 63, 64, 129])
        assert other == sample_bits
        assert hash(other) == hash(sample_bits)

    def test_different_lengths_differ(self):
        assert BitSet(10) != BitSet(11)

    def test_copy_is_independent(self, sample_bits):
        clone = sample_bits.copy()
        clone[1] = True
        assert not sample_bits[1]
        assert clone != sample_bits

    def test_usable_as_dict_key(self):
        a = BitSet.from_indices(8, [1])
        b = BitSet.from_indices(8, [1])
        assert {a: "x"}[b] == "x"
