"""
Packed boolean vectors.

A BitSet stores ``count`` booleans in little-endian 64-bit words. It is used
for reachable-node masks returned by circuit evaluation and for per-node
activation patterns across a batch.
"""

from typing import Any, Iterable, Iterator, Sequence

import numpy as np

WORD_BITS = 64
_WORD_DTYPE = np.dtype("<u8")


class BitSet:
    """
    Fixed-length bit vector backed by a numpy word array.

    Attributes:
        count: Number of addressable bits. Never changes after construction.

    Example:
        >>> bits = BitSet(100)
        >>> bits[3] = True
        >>> bits[3], bits[4]
        (True, False)
        >>> list(BitSet.from_bools([True, False, True]))
        [True, False, True]
    """

    __slots__ = ("count", "_words")

    def __init__(self, count: int):
        if count < 0:
            raise ValueError(f"BitSet count must be non-negative, got {count}")
        self.count = count
        self._words = np.zeros((count + WORD_BITS - 1) // WORD_BITS, dtype=_WORD_DTYPE)

    @classmethod
    def from_bools(cls, values: Iterable[bool]) -> "BitSet":
        """Build a BitSet whose bit ``i`` is ``values[i]``."""
        if isinstance(values, np.ndarray):
            flags = values.astype(bool)
        else:
            flags = np.fromiter(values, dtype=bool)
        result = cls(len(flags))
        result._load_flags(flags)
        return result

    @classmethod
    def from_indices(cls, count: int, indices: Iterable[int]) -> "BitSet":
        """Build a BitSet of length ``count`` with the given indices set."""
        result = cls(count)
        for i in indices:
            result[i] = True
        return result

    def _load_flags(self, flags: np.ndarray) -> None:
        padded = np.zeros(len(self._words) * WORD_BITS, dtype=bool)
        padded[: len(flags)] = flags
        packed = np.packbits(padded, bitorder="little")
        self._words = packed.view(_WORD_DTYPE).copy()

    def _check_index(self, i: int) -> None:
        if not 0 <= i < self.count:
            raise IndexError(f"Bit index {i} out of range [0, {self.count})")

    def __getitem__(self, i: int) -> bool:
        self._check_index(i)
        word, bit = divmod(i, WORD_BITS)
        return bool((int(self._words[word]) >> bit) & 1)

    def __setitem__(self, i: int, value: bool) -> None:
        self._check_index(i)
        word, bit = divmod(i, WORD_BITS)
        current = int(self._words[word])
        if value:
            current |= 1 << bit
        else:
            current &= ~(1 << bit)
        self._words[word] = current

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[bool]:
        # A fresh generator per call, so iteration can be restarted.
        for i in range(self.count):
            word, bit = divmod(i, WORD_BITS)
            yield bool((int(self._words[word]) >> bit) & 1)

    def to_numpy(self) -> np.ndarray:
        """Return the bits as a boolean numpy array of length ``count``."""
        unpacked = np.unpackbits(self._words.view(np.uint8), bitorder="little")
        return unpacked[: self.count].astype(bool)

    def indices(self) -> Sequence[int]:
        """Indices of the set bits in increasing order."""
        return np.flatnonzero(self.to_numpy()).tolist()

    def popcount(self) -> int:
        """Number of set bits."""
        return int(np.unpackbits(self._words.view(np.uint8)).sum())

    def copy(self) -> "BitSet":
        result = BitSet(self.count)
        result._words = self._words.copy()
        return result

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, BitSet):
            return NotImplemented
        return self.count == other.count and np.array_equal(self._words, other._words)

    def __hash__(self) -> int:
        return hash((self.count, self._words.tobytes()))

    def __repr__(self) -> str:
        return f"BitSet(count={self.count}, set={self.popcount()})"
