"""
Center update strategies.

Given every vector assigned to one center in a round, compute the center
that replaces it in the next round:

* majority centroid (K-means): a synthetic vector holding each k-mer present
  in at least half of the members;
* medoid (K-medoid): the member with the smallest summed Hamming distance to
  all other members, kept verbatim with its sequence id.
"""

import logging
import multiprocessing as mp
from enum import Enum
from multiprocessing import Pool
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from sklearn.utils import gen_batches

from .errors import IncompatibleVectorError
from .presence_vector import NO_ID, WORD_DTYPE, PresenceVector, popcount_rows

# Upper bound on XORed words held in memory while computing one medoid.
MEDOID_BLOCK_WORDS = 1 << 22


class UpdateStrategy(Enum):
    """How a cluster's new center is computed."""

    MAJORITY_CENTROID = "majority-centroid"
    MEDOID = "medoid"

    @classmethod
    def from_name(cls, name) -> "UpdateStrategy":
        if isinstance(name, cls):
            return name
        normalized = str(name).strip().lower().replace("_", "-")
        aliases = {"kmeans": cls.MAJORITY_CENTROID, "k-means": cls.MAJORITY_CENTROID,
                   "centroid": cls.MAJORITY_CENTROID, "kmedoid": cls.MEDOID, "k-medoid": cls.MEDOID}
        if normalized in aliases:
            return aliases[normalized]
        for strategy in cls:
            if strategy.value == normalized:
                return strategy
        raise ValueError(f"Unknown update strategy '{name}', expected one of {[s.value for s in cls]}")


def _stack_words(members: Sequence[PresenceVector]) -> np.ndarray:
    width = len(members[0].bits)
    for member in members:
        if len(member.bits) != width:
            raise IncompatibleVectorError(
                f"Cluster member {member.id} has {len(member.bits)} words, expected {width}"
            )
    return np.vstack([member.bits for member in members])


def majority_centroid(members: Sequence[PresenceVector]) -> PresenceVector:
    """
    Build a synthetic center from bitwise majority vote.

    A k-mer is kept when count / n rounds to 1; exactly half rounds up.
    """
    if not members:
        raise ValueError("Cannot compute a centroid of an empty cluster")

    template = members[0]
    _stack_words(members)
    counts = np.zeros(template.num_bits, dtype=np.int64)
    for member in members:
        present = np.fromiter(member.all_present_indices(), dtype=np.int64)
        counts[present] += 1

    keep = 2 * counts >= len(members)
    words = np.packbits(keep, bitorder="little").view(WORD_DTYPE)
    return PresenceVector.from_words(
        words, id=NO_ID, kmer_length=template.kmer_length, alphabet_size=template.alphabet_size
    )


def medoid(members: Sequence[PresenceVector], block_words: int = MEDOID_BLOCK_WORDS) -> PresenceVector:
    """
    Return a copy of the member minimizing total Hamming distance to the cluster.

    Distances are popcounts of XORed packed words, computed for a batch of
    rows at a time so at most about block_words words are held at once.
    """
    if not members:
        raise ValueError("Cannot compute a medoid of an empty cluster")
    if len(members) == 1:
        return members[0].copy()

    words = _stack_words(members)
    num_members, width = words.shape
    batch_size = max(1, block_words // (num_members * width))

    totals = np.empty(num_members, dtype=np.int64)
    for batch in gen_batches(num_members, batch_size):
        xor = np.bitwise_xor(words[batch, np.newaxis, :], words[np.newaxis, :, :])
        rows = xor.shape[0]
        totals[batch] = popcount_rows(xor.reshape(rows * num_members, width)).reshape(rows, num_members).sum(axis=1)

    best = int(np.argmin(totals))
    logging.debug(f"Medoid is member {best} (id {members[best].id}) with total distance {totals[best]}")
    return members[best].copy()


def update_cluster(members: Sequence[PresenceVector], strategy: UpdateStrategy) -> PresenceVector:
    if strategy is UpdateStrategy.MEDOID:
        return medoid(members)
    return majority_centroid(members)


def update_cluster_worker(args):
    """Worker function for multiprocessing center updates."""
    center_index, members, strategy = args
    return center_index, update_cluster(members, strategy)


def update_centers(groups: Dict[int, List[PresenceVector]], strategy: UpdateStrategy,
                   n_processes: Optional[int] = None) -> List[Tuple[int, PresenceVector]]:
    """
    Update every non-empty cluster.

    Args:
        groups: Members keyed by the center index they were assigned to
        strategy: Update strategy for the whole run
        n_processes: Worker processes; None or 1 runs in this process

    Returns:
        (old center index, new center) pairs ordered by old center index
    """
    strategy = UpdateStrategy.from_name(strategy)
    worker_args = [(index, members, strategy) for index, members in sorted(groups.items()) if members]

    if n_processes is not None and n_processes > 1 and len(worker_args) > 1:
        n_processes = min(n_processes, len(worker_args), mp.cpu_count())
        with Pool(processes=n_processes) as pool:
            results = pool.map(update_cluster_worker, worker_args)
    else:
        results = [update_cluster_worker(args) for args in worker_args]

    return sorted(results, key=lambda pair: pair[0])
