"""
Assignment of presence vectors to their nearest cluster center.

Every vector is assigned independently against a frozen center list, so the
population can be split into chunks and processed by a pool of workers.
Ties are broken at random with an injected generator; each chunk receives
its own generator seeded from the caller's, which keeps a seeded run
reproducible regardless of how many processes execute the chunks.
"""

import logging
import multiprocessing as mp
from multiprocessing import Pool
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import IncompatibleVectorError, UninitializedCentersError
from .presence_vector import PresenceVector, popcount_rows

DEFAULT_CHUNK_SIZE = 5000


class AssignmentStep:
    """Find the nearest center of a presence vector by Hamming distance."""

    def __init__(self, centers: Sequence[Optional[PresenceVector]],
                 rng: Optional[np.random.Generator] = None):
        if centers is None or len(centers) == 0:
            raise UninitializedCentersError("Centers are uninitialized: the center list is empty")
        for i, center in enumerate(centers):
            if center is None:
                raise UninitializedCentersError(f"Center '{i}' was uninitialized")

        width = len(centers[0].bits)
        for i, center in enumerate(centers):
            if len(center.bits) != width:
                raise IncompatibleVectorError(
                    f"Center {i} has {len(center.bits)} words, center 0 has {width}"
                )

        self.centers = tuple(centers)
        self.rng = rng if rng is not None else np.random.default_rng()
        self._center_words = np.vstack([center.bits for center in self.centers])
        self._center_ids = np.array([center.id for center in self.centers], dtype=np.int64)

    @property
    def num_centers(self) -> int:
        return len(self.centers)

    def distances(self, vector: PresenceVector) -> np.ndarray:
        """Hamming distance from vector to every center."""
        if len(vector.bits) != self._center_words.shape[1]:
            raise IncompatibleVectorError(
                f"Vector {vector.id} has {len(vector.bits)} words, centers have {self._center_words.shape[1]}"
            )
        return popcount_rows(np.bitwise_xor(self._center_words, vector.bits))

    def nearest_centers(self, vector: PresenceVector) -> Tuple[int, List[int]]:
        """
        Return the minimum distance and every center index attaining it.

        A vector whose id matches a center's id is that center's own
        sequence and belongs to it alone.
        """
        if vector.has_id:
            own = np.flatnonzero(self._center_ids == vector.id)
            if len(own) > 0:
                return 0, [int(own[0])]

        distances = self.distances(vector)
        min_distance = int(distances.min())
        return min_distance, [int(i) for i in np.flatnonzero(distances == min_distance)]

    def assign(self, vector: PresenceVector) -> int:
        """Return the index of the center the vector joins."""
        _, closest = self.nearest_centers(vector)
        if len(closest) == 1:
            return closest[0]
        return closest[int(self.rng.integers(len(closest)))]

    def __call__(self, vector: PresenceVector) -> Tuple[int, PresenceVector]:
        return self.assign(vector), vector

    def assign_all(self, vectors: Sequence[PresenceVector]) -> List[int]:
        return [self.assign(vector) for vector in vectors]


def assign_chunk_worker(args):
    """
    Worker function for multiprocessing assignment.

    Args:
        args: Tuple containing (centers, vectors, seed)

    Returns:
        List of center indices, one per vector
    """
    centers, vectors, seed = args
    step = AssignmentStep(centers, rng=np.random.default_rng(seed))
    return step.assign_all(vectors)


def assign_population(population: Sequence[PresenceVector], centers: Sequence[PresenceVector],
                      rng: Optional[np.random.Generator] = None, n_processes: Optional[int] = None,
                      chunk_size: int = DEFAULT_CHUNK_SIZE) -> np.ndarray:
    """
    Assign every vector of the population to a center.

    Args:
        population: Presence vectors to assign
        centers: Frozen center list for this round
        rng: Source of the per-chunk seeds
        n_processes: Worker processes; None or 1 runs in this process
        chunk_size: Vectors per task

    Returns:
        Array of center indices aligned with the population
    """
    if rng is None:
        rng = np.random.default_rng()
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    # Validates the centers once before any work is handed out.
    AssignmentStep(centers)

    chunks = [population[i:i + chunk_size] for i in range(0, len(population), chunk_size)]
    seeds = rng.integers(0, np.iinfo(np.int64).max, size=len(chunks))
    worker_args = [(list(centers), list(chunk), int(seed)) for chunk, seed in zip(chunks, seeds)]

    if n_processes is not None and n_processes > 1 and len(chunks) > 1:
        n_processes = min(n_processes, len(chunks), mp.cpu_count())
        logging.debug(f"Assigning {len(population)} vectors in {len(chunks)} chunks using {n_processes} processes")
        with Pool(processes=n_processes) as pool:
            results = pool.map(assign_chunk_worker, worker_args)
    else:
        results = [assign_chunk_worker(args) for args in worker_args]

    labels = np.empty(len(population), dtype=np.int64)
    offset = 0
    for chunk_labels in results:
        labels[offset:offset + len(chunk_labels)] = chunk_labels
        offset += len(chunk_labels)
    return labels
