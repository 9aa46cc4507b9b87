"""
Initial center selection for round 0.

Positions are chosen by walking the population with a large prime stride
from a random offset, which yields K distinct positions in O(K) steps
without shuffling the whole population.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from .errors import InsufficientPopulationError, UninitializedCentersError
from .presence_vector import PresenceVector

LARGE_PRIME1 = 27277
LARGE_PRIME2 = 30707


class CenterSampler:
    """Select K initial centers from a population without replacement."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    @staticmethod
    def stride_for(population_size: int) -> int:
        # Avoid the degenerate stride equal to the population size.
        return LARGE_PRIME2 if population_size == LARGE_PRIME1 else LARGE_PRIME1

    def sample_positions(self, population_size: int, num_centers: int) -> List[int]:
        """
        Return num_centers distinct positions in [0, population_size).

        Positions are returned in the order the walk visited them.

        Raises:
            InsufficientPopulationError: If num_centers > population_size
            ValueError: If num_centers < 1
        """
        if num_centers < 1:
            raise ValueError(f"num_centers must be positive, got {num_centers}")
        if num_centers > population_size:
            raise InsufficientPopulationError(population_size, num_centers)

        stride = self.stride_for(population_size)
        position = int(self.rng.integers(0, population_size))
        cycle_start = position

        seen = set()
        positions = []
        while len(positions) < num_centers:
            if position in seen:
                # The stride shares a factor with the population size and the
                # walk closed a cycle; continue from the next unvisited offset.
                position = (cycle_start + 1) % population_size
                while position in seen:
                    position = (position + 1) % population_size
                cycle_start = position
                logging.debug(f"Stride walk cycled, restarting at position {position}")

            seen.add(position)
            positions.append(position)
            position = (position + stride) % population_size

        return positions

    def sample(self, population: Sequence[PresenceVector], num_centers: int) -> List[PresenceVector]:
        """Copy the vectors at the sampled positions; these become round-0 centers."""
        positions = self.sample_positions(len(population), num_centers)
        centers = []
        for position in positions:
            vector = population[position]
            if vector is None:
                raise UninitializedCentersError(f"Population entry {position} is missing")
            centers.append(vector.copy())

        logging.info(f"Sampled {len(centers)} initial centers from {len(population)} sequences")
        return centers
