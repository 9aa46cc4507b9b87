"""
Round control for presence vector clustering.

The coordinator bootstraps round-0 centers, then repeats (assign, update)
rounds until the centers stop changing or the round cap is reached, and
finishes with one assignment pass against the last centers. Each round's
centers are written to the store and read back before the round runs, so a
round only ever sees a complete center set.

State machine::

    BOOTSTRAPPING -> ROUND_RUNNING -> {ROUND_RUNNING, CONVERGED, FORCED_FINAL}
                  -> FINALIZING -> DONE
    any state -> FAILED
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .assignment import DEFAULT_CHUNK_SIZE, assign_population
from .errors import ClusteringRunError, DuplicateSequenceKeyError, UninitializedCentersError
from .presence_vector import PresenceVector
from .sampler import CenterSampler
from .store import FINAL_DIR, MemoryVectorStore
from .update import UpdateStrategy, update_centers

DEFAULT_MAX_ROUNDS = 5


class CoordinatorState(Enum):
    BOOTSTRAPPING = "bootstrapping"
    ROUND_RUNNING = "round_running"
    CONVERGED = "converged"
    FORCED_FINAL = "forced_final"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RoundState:
    """Centers and assignments of one round."""

    round_index: int
    centers: List[PresenceVector]
    assignments: Dict[int, int] = field(default_factory=dict)


@dataclass
class RoundSummary:
    """What happened in one update round."""

    round_index: int
    num_centers: int
    cluster_sizes: List[int]
    centers_moved: int
    elapsed: float = 0.0


@dataclass
class ClusteringResult:
    """Final cluster membership and centers of a run."""

    assignments: Dict[int, int]
    centers: List[PresenceVector]
    state: CoordinatorState
    rounds_run: int
    converged: bool
    history: List[RoundSummary] = field(default_factory=list)

    @property
    def num_clusters(self) -> int:
        return len(self.centers)

    def cluster_sizes(self) -> List[int]:
        sizes = [0] * len(self.centers)
        for center_index in self.assignments.values():
            sizes[center_index] += 1
        return sizes

    def members(self, center_index: int) -> List[int]:
        """Sequence ids assigned to one cluster, ascending."""
        return sorted(seq_id for seq_id, index in self.assignments.items() if index == center_index)

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(
            sorted(self.assignments.items()), columns=["sequence_id", "cluster_id"]
        )
        return df.astype({"sequence_id": "int64", "cluster_id": "int64"})

    def history_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "round": summary.round_index,
                    "num_centers": summary.num_centers,
                    "centers_moved": summary.centers_moved,
                    "largest_cluster": max(summary.cluster_sizes, default=0),
                    "smallest_cluster": min(summary.cluster_sizes, default=0),
                    "elapsed_s": summary.elapsed,
                }
                for summary in self.history
            ]
        )


def sequence_key(vector: PresenceVector, position: int) -> int:
    """Key a sequence by its id, or by its population position when it has none."""
    return vector.id if vector.has_id else position


def check_sequence_keys(population: Sequence[PresenceVector]):
    """
    Ensure every sequence has its own key.

    An id-less sequence is keyed by position, which may equal another
    sequence's id; ids may also repeat.

    Raises:
        DuplicateSequenceKeyError: On the first shared key
    """
    seen = {}
    for position, vector in enumerate(population):
        key = sequence_key(vector, position)
        if key in seen:
            raise DuplicateSequenceKeyError(key, seen[key], position)
        seen[key] = position


class ClusteringCoordinator:
    """Drive clustering rounds until convergence or the round cap."""

    def __init__(self, target_center_count: int, max_rounds: int = DEFAULT_MAX_ROUNDS,
                 update_strategy=UpdateStrategy.MAJORITY_CENTROID,
                 rng: Optional[np.random.Generator] = None, store=None,
                 n_processes: Optional[int] = None, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize the coordinator.

        Args:
            target_center_count: Number of centers sampled for round 0
            max_rounds: Maximum number of update rounds
            update_strategy: UpdateStrategy or its name
            rng: Random source for sampling and tie-breaking
            store: Round storage (MemoryVectorStore or FileVectorStore)
            n_processes: Worker processes for assignment and update
            chunk_size: Vectors per assignment task
        """
        if target_center_count < 1:
            raise ValueError(f"target_center_count must be positive, got {target_center_count}")
        if max_rounds < 1:
            raise ValueError(f"max_rounds must be positive, got {max_rounds}")

        self.target_center_count = target_center_count
        self.max_rounds = max_rounds
        self.update_strategy = UpdateStrategy.from_name(update_strategy)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.store = store if store is not None else MemoryVectorStore()
        self.n_processes = n_processes
        self.chunk_size = chunk_size
        self.sampler = CenterSampler(self.rng)

        self.state: Optional[CoordinatorState] = None
        self.round_state: Optional[RoundState] = None
        self.history: List[RoundSummary] = []

    def _transition(self, state: CoordinatorState):
        logging.debug(f"Coordinator state: {self.state.value if self.state else None} -> {state.value}")
        self.state = state

    def _load_centers(self, round_index: int, expected: int) -> List[PresenceVector]:
        centers = self.store.read_round(round_index)
        if len(centers) < expected:
            raise UninitializedCentersError(
                f"Round {round_index}: loaded {len(centers)} of {expected} centers"
            )
        return centers

    def _assign(self, population: Sequence[PresenceVector], centers: List[PresenceVector]) -> np.ndarray:
        return assign_population(
            population, centers, rng=self.rng, n_processes=self.n_processes, chunk_size=self.chunk_size
        )

    @staticmethod
    def _assignment_map(population: Sequence[PresenceVector], labels: np.ndarray) -> Dict[int, int]:
        return {sequence_key(vector, i): int(label) for i, (vector, label) in enumerate(zip(population, labels))}

    @staticmethod
    def centers_unchanged(old: List[PresenceVector], new: List[PresenceVector]) -> bool:
        """True when both center lists are bitwise identical, position by position."""
        return len(old) == len(new) and all(a.same_bits(b) for a, b in zip(old, new))

    def _run_round(self, population: Sequence[PresenceVector], round_state: RoundState) -> List[PresenceVector]:
        start_time = time.time()
        centers = round_state.centers

        labels = self._assign(population, centers)
        round_state.assignments = self._assignment_map(population, labels)

        groups = defaultdict(list)
        for vector, label in zip(population, labels):
            groups[int(label)].append(vector)

        updated = update_centers(groups, self.update_strategy, n_processes=self.n_processes)
        new_centers = [center for _, center in updated]
        moved = sum(1 for index, center in updated if not centers[index].same_bits(center))

        if len(new_centers) < len(centers):
            logging.warning(
                f"Round {round_state.round_index}: {len(centers) - len(new_centers)} centers received "
                f"no members, continuing with {len(new_centers)}"
            )

        summary = RoundSummary(
            round_index=round_state.round_index,
            num_centers=len(new_centers),
            cluster_sizes=[len(groups[index]) for index, _ in updated],
            centers_moved=moved,
            elapsed=time.time() - start_time,
        )
        self.history.append(summary)
        logging.info(
            f"Round {round_state.round_index} completed in {summary.elapsed:.1f}s: "
            f"{summary.num_centers} centers, {moved} moved"
        )
        return new_centers

    def run(self, population: Sequence[PresenceVector]) -> ClusteringResult:
        """
        Cluster a population of presence vectors.

        Raises:
            ClusteringRunError: If any round fails; carries the round index,
                the state and the original error
        """
        population = list(population)
        self.history = []
        self.round_state = None
        round_index = 0
        converged = False

        try:
            self._transition(CoordinatorState.BOOTSTRAPPING)
            check_sequence_keys(population)
            logging.info(
                f"Clustering {len(population)} sequences into {self.target_center_count} clusters "
                f"({self.update_strategy.value}, max {self.max_rounds} rounds)"
            )
            centers = self.sampler.sample(population, self.target_center_count)
            self.store.write_round(0, centers)
            expected = len(centers)
            self._transition(CoordinatorState.ROUND_RUNNING)

            while self.state is CoordinatorState.ROUND_RUNNING:
                centers = self._load_centers(round_index, expected)
                self.round_state = RoundState(round_index, centers)
                new_centers = self._run_round(population, self.round_state)

                # The next round starts only once its centers are fully written.
                self.store.write_round(round_index + 1, new_centers)
                expected = len(new_centers)

                if self.centers_unchanged(centers, new_centers):
                    logging.info(f"Centers converged after round {round_index}")
                    converged = True
                    self._transition(CoordinatorState.CONVERGED)
                elif round_index + 1 >= self.max_rounds:
                    logging.warning(f"Reached the maximum of {self.max_rounds} rounds without converging")
                    self._transition(CoordinatorState.FORCED_FINAL)
                round_index += 1

            self._transition(CoordinatorState.FINALIZING)
            centers = self._load_centers(round_index, expected)
            labels = self._assign(population, centers)
            assignments = self._assignment_map(population, labels)
            self.round_state = RoundState(round_index, centers, assignments)
            self.store.write_vectors(FINAL_DIR, enumerate(centers))
            self._transition(CoordinatorState.DONE)

        except KeyboardInterrupt:
            logging.warning(f"Clustering interrupted in round {round_index}")
            self._transition(CoordinatorState.FAILED)
            raise
        except Exception as e:
            failed_state = self.state.value if self.state else "unstarted"
            logging.error(f"Clustering failed in round {round_index} ({failed_state}): {type(e).__name__}: {e}")
            self._transition(CoordinatorState.FAILED)
            raise ClusteringRunError(round_index, failed_state, e) from e

        result = ClusteringResult(
            assignments=assignments,
            centers=centers,
            state=self.state,
            rounds_run=len(self.history),
            converged=converged,
            history=list(self.history),
        )
        logging.info(
            f"Clustering finished after {result.rounds_run} rounds with {result.num_clusters} clusters"
            f"{' (converged)' if converged else ''}"
        )
        return result
