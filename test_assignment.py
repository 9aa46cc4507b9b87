#!/usr/bin/env python3
"""
Tests for nearest-center assignment.
"""

import unittest
import os
import sys

import numpy as np

# Add the current directory to the path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from pvcluster.assignment import AssignmentStep, assign_chunk_worker, assign_population
from pvcluster.errors import IncompatibleVectorError, UninitializedCentersError
from pvcluster.presence_vector import PresenceVector


def make_vector(indices, id=-1):
    vector = PresenceVector(2, 3, id=id)
    for index in indices:
        vector.set_kmer(index)
    return vector


class TestAssignmentStep(unittest.TestCase):
    """Test assignment of single vectors."""

    def test_nearest(self):
        """A vector joins the center at the smallest Hamming distance."""
        centers = [make_vector([0, 1]), make_vector([6, 7, 8])]
        step = AssignmentStep(centers, rng=np.random.default_rng(0))

        self.assertEqual(step.assign(make_vector([0])), 0)
        self.assertEqual(step.assign(make_vector([7, 8])), 1)
        self.assertEqual(list(step.distances(make_vector([0]))), [1, 4])

    def test_self_assignment(self):
        """A sequence that is a center joins its own center, whatever the distances."""
        centers = [make_vector([0, 1, 2], id=10), make_vector([6, 7, 8], id=3)]
        step = AssignmentStep(centers, rng=np.random.default_rng(0))

        vector = make_vector([0, 1, 2], id=3)
        self.assertEqual(step.assign(vector), 1)
        self.assertEqual(step.nearest_centers(vector), (0, [1]))

    def test_no_id_is_not_self(self):
        """Vectors without ids are never matched to id-less centers by id."""
        centers = [make_vector([0, 1, 2]), make_vector([6, 7, 8])]
        step = AssignmentStep(centers, rng=np.random.default_rng(0))
        self.assertEqual(step.assign(make_vector([7, 8])), 1)

    def test_ties(self):
        """Equidistant centers are chosen at random, reproducibly for a seed."""
        centers = [make_vector([0]), make_vector([8])]
        vector = make_vector([4])

        distance, closest = AssignmentStep(centers).nearest_centers(vector)
        self.assertEqual(distance, 2)
        self.assertEqual(closest, [0, 1])

        first = AssignmentStep(centers, rng=np.random.default_rng(5))
        second = AssignmentStep(centers, rng=np.random.default_rng(5))
        picks = [first.assign(vector) for _ in range(50)]
        self.assertEqual(picks, [second.assign(vector) for _ in range(50)])
        self.assertEqual(set(picks), {0, 1})

    def test_call(self):
        """Calling the step returns the index with the vector itself."""
        centers = [make_vector([0]), make_vector([8])]
        vector = make_vector([0, 1], id=4)
        index, same = AssignmentStep(centers)(vector)
        self.assertEqual(index, 0)
        self.assertIs(same, vector)

    def test_uninitialized_centers(self):
        """Empty or partially missing center lists fail."""
        with self.assertRaises(UninitializedCentersError):
            AssignmentStep([])
        with self.assertRaises(UninitializedCentersError):
            AssignmentStep(None)
        with self.assertRaises(UninitializedCentersError):
            AssignmentStep([make_vector([0]), None])

    def test_incompatible(self):
        """Centers and vectors must share a width."""
        with self.assertRaises(IncompatibleVectorError):
            AssignmentStep([make_vector([0]), PresenceVector(3, 21)])

        step = AssignmentStep([make_vector([0])])
        with self.assertRaises(IncompatibleVectorError):
            step.assign(PresenceVector(3, 21))


class TestAssignPopulation(unittest.TestCase):
    """Test assignment of whole populations."""

    def setUp(self):
        """Random population over k=3, 21 residues."""
        rng = np.random.default_rng(1)
        self.population = []
        for i in range(40):
            vector = PresenceVector(3, 21, id=i)
            for index in rng.choice(21 ** 3, size=30, replace=False):
                vector.set_kmer(int(index))
            self.population.append(vector)
        self.centers = [vector.copy() for vector in self.population[:4]]

    def test_labels(self):
        """Every vector receives a label in range; centers keep their own sequences."""
        labels = assign_population(self.population, self.centers, rng=np.random.default_rng(0))
        self.assertEqual(len(labels), 40)
        self.assertTrue(all(0 <= label < 4 for label in labels))
        self.assertEqual(list(labels[:4]), [0, 1, 2, 3])

    def test_chunking_matches_step(self):
        """Chunked assignment agrees with nearest-center distances."""
        labels = assign_population(self.population, self.centers,
                                   rng=np.random.default_rng(0), chunk_size=7)
        step = AssignmentStep(self.centers)
        for vector, label in zip(self.population, labels):
            _, closest = step.nearest_centers(vector)
            self.assertIn(label, closest)

    def test_parallel_matches_sequential(self):
        """A seeded run gives the same labels with or without worker processes."""
        sequential = assign_population(self.population, self.centers,
                                       rng=np.random.default_rng(9), chunk_size=10)
        parallel = assign_population(self.population, self.centers,
                                     rng=np.random.default_rng(9), n_processes=2, chunk_size=10)
        self.assertEqual(list(sequential), list(parallel))

    def test_worker(self):
        """The worker assigns one chunk."""
        labels = assign_chunk_worker((self.centers, self.population[:4], 0))
        self.assertEqual(labels, [0, 1, 2, 3])

    def test_empty_centers(self):
        """Assignment without centers fails before any work starts."""
        with self.assertRaises(UninitializedCentersError):
            assign_population(self.population, [])

    def test_bad_chunk_size(self):
        with self.assertRaises(ValueError):
            assign_population(self.population, self.centers, chunk_size=0)


if __name__ == "__main__":
    unittest.main()
