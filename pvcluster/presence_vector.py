"""
Presence vectors: fixed-width bit vectors flagging which k-mers occur in a sequence.

Bits live in a numpy array of little-endian 64-bit words; bit ``i`` is bit
``i % 64`` of word ``i // 64``. Population counts go through a 256-entry
byte lookup table so distance computations never loop over single bits.
"""

import struct
from typing import BinaryIO, Iterator, Optional

import numpy as np

from .errors import IncompatibleVectorError

WORD_BITS = 64
WORD_DTYPE = np.dtype("<u8")

# Serialized form is big-endian: id (int64), word count (int32), words (uint64).
_HEADER = struct.Struct(">qi")
_WIRE_DTYPE = np.dtype(">u8")

NO_ID = -1

POPCOUNT_TABLE = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)


def popcount(words: np.ndarray) -> int:
    """Count set bits in an array of words."""
    return int(POPCOUNT_TABLE[words.view(np.uint8)].sum(dtype=np.int64))


def popcount_rows(matrix: np.ndarray) -> np.ndarray:
    """Count set bits per row of a 2-D word matrix."""
    as_bytes = np.ascontiguousarray(matrix).view(np.uint8)
    return POPCOUNT_TABLE[as_bytes].sum(axis=1, dtype=np.int64)


def num_words(kmer_length: int, alphabet_size: int) -> int:
    """Number of words needed to hold alphabet_size ** kmer_length bits."""
    num_bits = alphabet_size ** kmer_length
    return -(-num_bits // WORD_BITS)


class PresenceVector:
    """A bit vector in which each index records the presence of one k-mer."""

    __slots__ = ("kmer_length", "alphabet_size", "bits", "id")

    def __init__(self, kmer_length: int, alphabet_size: int, id: int = NO_ID):
        if kmer_length < 1 or alphabet_size < 1:
            raise ValueError(
                f"kmer_length and alphabet_size must be positive, got {kmer_length} and {alphabet_size}"
            )
        self.kmer_length = kmer_length
        self.alphabet_size = alphabet_size
        self.bits = np.zeros(num_words(kmer_length, alphabet_size), dtype=WORD_DTYPE)
        self.id = id

    @classmethod
    def from_words(cls, words, id: int = NO_ID, kmer_length: Optional[int] = None,
                   alphabet_size: Optional[int] = None) -> "PresenceVector":
        """
        Wrap an existing word array.

        The k-mer parameters are not part of the serialized form, so vectors
        read back from storage may leave them as None; compatibility is
        decided by word count alone.
        """
        vector = cls.__new__(cls)
        vector.kmer_length = kmer_length
        vector.alphabet_size = alphabet_size
        vector.bits = np.array(words, dtype=WORD_DTYPE)
        vector.id = id
        return vector

    @property
    def num_bits(self) -> int:
        return len(self.bits) * WORD_BITS

    @property
    def has_id(self) -> bool:
        return self.id is not None and self.id >= 0

    def copy(self) -> "PresenceVector":
        return PresenceVector.from_words(
            self.bits.copy(), id=self.id, kmer_length=self.kmer_length, alphabet_size=self.alphabet_size
        )

    def _locate(self, index: int):
        if not 0 <= index < self.num_bits:
            raise IndexError(f"K-mer index {index} out of range [0, {self.num_bits})")
        return index // WORD_BITS, np.uint64(1 << (index % WORD_BITS))

    def set_kmer(self, index: int, present: bool = True) -> "PresenceVector":
        """Set or clear the bit of one k-mer."""
        word, mask = self._locate(index)
        if present:
            self.bits[word] |= mask
        else:
            self.bits[word] &= ~mask
        return self

    def contains_kmer(self, index: int) -> bool:
        word, mask = self._locate(index)
        return bool(self.bits[word] & mask)

    def compatible_with(self, other: "PresenceVector") -> bool:
        return other is not None and len(self.bits) == len(other.bits)

    def _check_compatible(self, other: "PresenceVector"):
        if other is None:
            raise IncompatibleVectorError("Cannot combine a presence vector with None")
        if not self.compatible_with(other):
            raise IncompatibleVectorError(
                f"Presence vectors have different word counts: {len(self.bits)} != {len(other.bits)}"
            )

    def union_equals(self, other: "PresenceVector") -> "PresenceVector":
        """In-place union (|=)."""
        self._check_compatible(other)
        np.bitwise_or(self.bits, other.bits, out=self.bits)
        return self

    def intersect_equals(self, other: "PresenceVector") -> "PresenceVector":
        """In-place intersection (&=)."""
        self._check_compatible(other)
        np.bitwise_and(self.bits, other.bits, out=self.bits)
        return self

    def union(self, other: "PresenceVector") -> "PresenceVector":
        return self.copy().union_equals(other)

    def intersect(self, other: "PresenceVector") -> "PresenceVector":
        return self.copy().intersect_equals(other)

    __or__ = union
    __and__ = intersect
    __ior__ = union_equals
    __iand__ = intersect_equals

    def hamming_distance(self, other: "PresenceVector") -> int:
        """Number of k-mers present in exactly one of the two vectors."""
        self._check_compatible(other)
        return popcount(np.bitwise_xor(self.bits, other.bits))

    def intersection_count(self, other: "PresenceVector") -> int:
        """Number of k-mers present in both vectors."""
        self._check_compatible(other)
        return popcount(np.bitwise_and(self.bits, other.bits))

    def cardinality(self) -> int:
        """Number of k-mers present."""
        return popcount(self.bits)

    def all_present_indices(self) -> Iterator[int]:
        """Yield every set bit position in ascending order."""
        unpacked = np.unpackbits(self.bits.view(np.uint8), bitorder="little")
        for index in np.flatnonzero(unpacked):
            yield int(index)

    def same_bits(self, other: "PresenceVector") -> bool:
        """Bitwise equality, ignoring ids."""
        return self.compatible_with(other) and bool(np.array_equal(self.bits, other.bits))

    def __eq__(self, other):
        if not isinstance(other, PresenceVector):
            return NotImplemented
        return self.id == other.id and self.same_bits(other)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    # Vectors are mutable, so they must not be used as dict keys.
    __hash__ = None

    def __repr__(self):
        return (
            f"PresenceVector(id={self.id}, words={len(self.bits)}, "
            f"present={self.cardinality()})"
        )

    def to_bytes(self) -> bytes:
        """Serialize as id, word count and words, all big-endian."""
        return _HEADER.pack(self.id, len(self.bits)) + self.bits.astype(_WIRE_DTYPE).tobytes()

    @classmethod
    def from_bytes(cls, data: bytes, kmer_length: Optional[int] = None,
                   alphabet_size: Optional[int] = None) -> "PresenceVector":
        """Inverse of to_bytes."""
        vector, consumed = cls._decode(data, 0, kmer_length, alphabet_size)
        if consumed != len(data):
            raise ValueError(f"{len(data) - consumed} trailing bytes after presence vector")
        return vector

    @classmethod
    def _decode(cls, data, offset: int, kmer_length=None, alphabet_size=None):
        if len(data) - offset < _HEADER.size:
            raise ValueError("Truncated presence vector header")
        vector_id, word_count = _HEADER.unpack_from(data, offset)
        if word_count < 0:
            raise ValueError(f"Negative word count {word_count} in presence vector")
        offset += _HEADER.size

        end = offset + word_count * _WIRE_DTYPE.itemsize
        if end > len(data):
            raise ValueError(
                f"Truncated presence vector: expected {word_count} words, got {(len(data) - offset) // 8}"
            )
        words = np.frombuffer(data, dtype=_WIRE_DTYPE, count=word_count, offset=offset)
        vector = cls.from_words(words, id=vector_id, kmer_length=kmer_length, alphabet_size=alphabet_size)
        return vector, end

    def write_to(self, stream: BinaryIO):
        stream.write(self.to_bytes())

    @classmethod
    def read_from(cls, stream: BinaryIO, kmer_length: Optional[int] = None,
                  alphabet_size: Optional[int] = None) -> Optional["PresenceVector"]:
        """Read one vector from a binary stream; returns None at a clean end of stream."""
        header = stream.read(_HEADER.size)
        if not header:
            return None
        if len(header) < _HEADER.size:
            raise ValueError("Truncated presence vector header")
        _, word_count = _HEADER.unpack(header)
        if word_count < 0:
            raise ValueError(f"Negative word count {word_count} in presence vector")
        body = stream.read(word_count * _WIRE_DTYPE.itemsize)
        vector, _ = cls._decode(header + body, 0, kmer_length, alphabet_size)
        return vector
