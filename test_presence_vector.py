#!/usr/bin/env python3
"""
Tests for presence vectors: bit access, set algebra, distances and the
binary record format.
"""

import io
import unittest
import os
import sys

import numpy as np

# Add the current directory to the path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from pvcluster.errors import IncompatibleVectorError
from pvcluster.kmer import KmerIndex
from pvcluster.presence_vector import NO_ID, PresenceVector, num_words, popcount


def random_vector(rng, kmer_length=3, alphabet_size=21, density=0.05, id=NO_ID):
    vector = PresenceVector(kmer_length, alphabet_size, id=id)
    for index in np.flatnonzero(rng.random(alphabet_size ** kmer_length) < density):
        vector.set_kmer(int(index))
    return vector


class TestPresenceVectorBits(unittest.TestCase):
    """Test bit access on presence vectors."""

    def setUp(self):
        """Set up a k=2 index over {A, B, C}."""
        self.index = KmerIndex(2, "ABC")

    def test_capacity(self):
        """Vectors are sized in whole words."""
        self.assertEqual(num_words(2, 3), 1)
        self.assertEqual(num_words(3, 21), 145)
        self.assertEqual(num_words(1, 64), 1)
        self.assertEqual(num_words(1, 65), 2)

        vector = self.index.new_vector()
        self.assertEqual(vector.num_bits, 64)
        self.assertEqual(vector.cardinality(), 0)
        self.assertEqual(vector.id, NO_ID)
        self.assertFalse(vector.has_id)

    def test_set_and_clear(self):
        """Setting and clearing a bit is visible through contains_kmer."""
        vector = self.index.new_vector()
        vector.set_kmer(4)
        self.assertTrue(vector.contains_kmer(4))
        self.assertFalse(vector.contains_kmer(3))

        vector.set_kmer(4, present=False)
        self.assertFalse(vector.contains_kmer(4))
        self.assertEqual(vector.cardinality(), 0)

    def test_highest_bit_in_word(self):
        """Bit 63 is addressable and counted."""
        vector = self.index.new_vector()
        vector.set_kmer(63)
        self.assertTrue(vector.contains_kmer(63))
        self.assertEqual(vector.cardinality(), 1)
        self.assertEqual(list(vector.all_present_indices()), [63])

    def test_word_boundary(self):
        """Bits on either side of a word boundary land in different words."""
        vector = PresenceVector(1, 100)
        vector.set_kmer(63)
        vector.set_kmer(64)
        self.assertEqual(len(vector.bits), 2)
        self.assertEqual(int(vector.bits[0]), 1 << 63)
        self.assertEqual(int(vector.bits[1]), 1)

    def test_out_of_range(self):
        """Indices outside the vector raise IndexError."""
        vector = self.index.new_vector()
        with self.assertRaises(IndexError):
            vector.contains_kmer(64)
        with self.assertRaises(IndexError):
            vector.set_kmer(-1)

    def test_copy_is_independent(self):
        """Changing a copy leaves the original alone."""
        vector = self.index.vectorize("AB", id=3)
        duplicate = vector.copy()
        duplicate.set_kmer(8)

        self.assertEqual(duplicate.id, 3)
        self.assertFalse(vector.contains_kmer(8))
        self.assertTrue(duplicate.contains_kmer(8))

    def test_all_present_indices(self):
        """Set positions come back ascending, and the iteration can be repeated."""
        vector = self.index.new_vector()
        for index in [8, 0, 5]:
            vector.set_kmer(index)

        self.assertEqual(list(vector.all_present_indices()), [0, 5, 8])
        self.assertEqual(list(vector.all_present_indices()), [0, 5, 8])

    def test_invalid_parameters(self):
        """Non-positive k-mer length or alphabet size is rejected."""
        with self.assertRaises(ValueError):
            PresenceVector(0, 3)
        with self.assertRaises(ValueError):
            PresenceVector(2, 0)


class TestPresenceVectorAlgebra(unittest.TestCase):
    """Test set operations and distances."""

    def setUp(self):
        """Two vectors sharing one k-mer: {0, 4} and {4, 8}."""
        self.v1 = PresenceVector(2, 3).set_kmer(0).set_kmer(4)
        self.v2 = PresenceVector(2, 3).set_kmer(4).set_kmer(8)

    def test_distance_and_intersection(self):
        """Hamming distance and intersection count of the two vectors."""
        self.assertEqual(self.v1.intersection_count(self.v2), 1)
        self.assertEqual(self.v1.hamming_distance(self.v2), 2)
        self.assertEqual(self.v1.hamming_distance(self.v1), 0)

    def test_union(self):
        """Union holds every k-mer of either vector and leaves the inputs alone."""
        union = self.v1.union(self.v2)
        self.assertEqual(list(union.all_present_indices()), [0, 4, 8])
        self.assertEqual(list(self.v1.all_present_indices()), [0, 4])

        operator_union = self.v1 | self.v2
        self.assertTrue(operator_union.same_bits(union))

    def test_intersect(self):
        """Intersection holds the shared k-mers only."""
        shared = self.v1 & self.v2
        self.assertEqual(list(shared.all_present_indices()), [4])

    def test_in_place(self):
        """In-place operations modify the receiver."""
        target = self.v1.copy()
        target |= self.v2
        self.assertEqual(list(target.all_present_indices()), [0, 4, 8])

        target &= self.v2
        self.assertEqual(list(target.all_present_indices()), [4, 8])

    def test_union_laws(self):
        """Union is commutative and idempotent on the bits."""
        self.assertTrue(self.v1.union(self.v2).same_bits(self.v2.union(self.v1)))
        self.assertTrue(self.v1.union(self.v1).same_bits(self.v1))
        self.assertTrue(self.v1.intersect(self.v1).same_bits(self.v1))

    def test_incompatible_vectors(self):
        """Combining vectors of different widths raises IncompatibleVectorError."""
        wide = PresenceVector(3, 21)
        for operation in (self.v1.union, self.v1.intersect, self.v1.hamming_distance,
                          self.v1.intersection_count, self.v1.union_equals):
            with self.assertRaises(IncompatibleVectorError):
                operation(wide)
        with self.assertRaises(IncompatibleVectorError):
            self.v1.union(None)
        self.assertFalse(self.v1.same_bits(wide))

    def test_hamming_metric(self):
        """Hamming distance is a metric and matches a per-bit count."""
        rng = np.random.default_rng(42)
        vectors = [random_vector(rng) for _ in range(6)]

        for a in vectors:
            self.assertEqual(a.hamming_distance(a), 0)
            for b in vectors:
                d_ab = a.hamming_distance(b)
                self.assertEqual(d_ab, b.hamming_distance(a))
                expected = len(set(a.all_present_indices()) ^ set(b.all_present_indices()))
                self.assertEqual(d_ab, expected)
                for c in vectors:
                    self.assertLessEqual(a.hamming_distance(c), d_ab + b.hamming_distance(c))

    def test_popcount(self):
        """Popcount over raw words."""
        words = np.array([0, 1, 0xFFFFFFFFFFFFFFFF, 0b1011], dtype="<u8")
        self.assertEqual(popcount(words), 0 + 1 + 64 + 3)


class TestPresenceVectorEquality(unittest.TestCase):
    """Test equality semantics."""

    def test_equality_includes_id(self):
        """Equal bits with different ids are not equal vectors."""
        a = PresenceVector(2, 3, id=1).set_kmer(2)
        b = PresenceVector(2, 3, id=2).set_kmer(2)

        self.assertTrue(a.same_bits(b))
        self.assertNotEqual(a, b)

        b.id = 1
        self.assertEqual(a, b)

    def test_not_hashable(self):
        """Mutable vectors cannot be dictionary keys."""
        with self.assertRaises(TypeError):
            hash(PresenceVector(2, 3))


class TestPresenceVectorSerialization(unittest.TestCase):
    """Test the binary record layout."""

    def test_round_trip(self):
        """Serialized vectors read back equal, id included."""
        rng = np.random.default_rng(7)
        for id in (NO_ID, 0, 123456789012):
            vector = random_vector(rng, id=id)
            restored = PresenceVector.from_bytes(vector.to_bytes())
            self.assertEqual(restored, vector)
            self.assertEqual(restored.id, id)

    def test_layout(self):
        """id (int64), word count (int32) and words (uint64), all big-endian."""
        vector = PresenceVector(2, 3, id=5).set_kmer(0)
        data = vector.to_bytes()

        self.assertEqual(len(data), 8 + 4 + 8)
        self.assertEqual(data[:8], (5).to_bytes(8, "big"))
        self.assertEqual(data[8:12], (1).to_bytes(4, "big"))
        self.assertEqual(data[12:], (1).to_bytes(8, "big"))

    def test_negative_id_layout(self):
        """A missing id is written as -1."""
        data = PresenceVector(2, 3).to_bytes()
        self.assertEqual(data[:8], b"\xff" * 8)

    def test_truncated(self):
        """Truncated or padded input is rejected."""
        data = PresenceVector(3, 21, id=1).set_kmer(100).to_bytes()
        with self.assertRaises(ValueError):
            PresenceVector.from_bytes(data[:5])
        with self.assertRaises(ValueError):
            PresenceVector.from_bytes(data[:-3])
        with self.assertRaises(ValueError):
            PresenceVector.from_bytes(data + b"\x00")

    def test_stream(self):
        """Several vectors written to one stream read back in order."""
        vectors = [PresenceVector(2, 3, id=i).set_kmer(i) for i in range(3)]
        stream = io.BytesIO()
        for vector in vectors:
            vector.write_to(stream)
        stream.seek(0)

        restored = []
        while True:
            vector = PresenceVector.read_from(stream)
            if vector is None:
                break
            restored.append(vector)
        self.assertEqual(restored, vectors)


if __name__ == "__main__":
    unittest.main()
