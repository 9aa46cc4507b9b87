"""
Query routing against a partitioned database.

Each cluster is summarized by the union of its members' presence vectors. A
query is routed to every cluster whose union shares at least one k-mer with
it, so a similarity search only needs to scan those partitions.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

import numpy as np
import pandas as pd

from .errors import IncompatibleVectorError
from .kmer import KmerIndex
from .presence_vector import PresenceVector, popcount_rows
from .store import read_records


def load_cluster_unions(path: Union[str, Path]) -> Dict[int, PresenceVector]:
    """Load cluster union vectors written by save_results, keyed by cluster id."""
    path = Path(path)
    if path.is_dir():
        path = path / "cluster_unions.bin"
    unions = dict(read_records(path))
    logging.info(f"Loaded {len(unions)} cluster unions from {path}")
    return unions


class QueryRouter:
    """Find the clusters that share k-mers with a query sequence."""

    def __init__(self, unions: Dict[int, PresenceVector], kmer_index: KmerIndex,
                 skip_unknown: bool = False):
        if not unions:
            raise ValueError("Cannot route queries without cluster unions")

        self.kmer_index = kmer_index
        self.skip_unknown = skip_unknown
        self.cluster_ids = np.array(sorted(unions), dtype=np.int64)
        self._union_words = np.vstack([unions[cluster_id].bits for cluster_id in self.cluster_ids])

        expected = len(kmer_index.new_vector().bits)
        if self._union_words.shape[1] != expected:
            raise IncompatibleVectorError(
                f"Cluster unions have {self._union_words.shape[1]} words, "
                f"the k-mer index produces {expected}"
            )

    def cluster_hits(self, sequence: str) -> Dict[int, int]:
        """Shared k-mer count for every cluster the query overlaps."""
        query = self.kmer_index.vectorize(sequence, skip_unknown=self.skip_unknown)
        shared = popcount_rows(np.bitwise_and(self._union_words, query.bits))
        hit = np.flatnonzero(shared)
        return {int(self.cluster_ids[i]): int(shared[i]) for i in hit}

    def route(self, sequence: str) -> List[int]:
        """Cluster ids the query should be searched against, ascending."""
        return sorted(self.cluster_hits(sequence))

    def route_all(self, queries: Iterable[Tuple[int, str]]) -> pd.DataFrame:
        """
        Route every (id, sequence) query.

        Returns:
            One row per (query, cluster) overlap with columns query_id,
            cluster_id and shared_kmers
        """
        rows = []
        num_queries = 0
        for query_id, sequence in queries:
            num_queries += 1
            for cluster_id, shared in sorted(self.cluster_hits(sequence).items()):
                rows.append({"query_id": query_id, "cluster_id": cluster_id, "shared_kmers": shared})

        logging.info(f"Routed {num_queries} queries to {len(rows)} cluster partitions")
        return pd.DataFrame(rows, columns=["query_id", "cluster_id", "shared_kmers"])


def route_query(sequence: str, kmer_index: KmerIndex, unions: Dict[int, PresenceVector],
                skip_unknown: bool = False) -> List[int]:
    """Cluster ids whose union contains any k-mer of the sequence."""
    return QueryRouter(unions, kmer_index, skip_unknown=skip_unknown).route(sequence)


def count_query_maps(routes: pd.DataFrame, query_ids: Iterable[int]) -> pd.DataFrame:
    """Number of clusters each query maps to, zero for queries with no overlap."""
    counts = routes.groupby("query_id").size() if not routes.empty else pd.Series(dtype="int64")
    ids = list(query_ids)
    return pd.DataFrame({
        "query_id": ids,
        "num_clusters": [int(counts.get(query_id, 0)) for query_id in ids],
    })


def count_cluster_hits(routes: pd.DataFrame, cluster_ids: Iterable[int]) -> pd.DataFrame:
    """Number of queries routed to each cluster."""
    counts = routes.groupby("cluster_id").size() if not routes.empty else pd.Series(dtype="int64")
    ids = sorted(cluster_ids)
    return pd.DataFrame({
        "cluster_id": ids,
        "queries": [int(counts.get(cluster_id, 0)) for cluster_id in ids],
    })


def save_routes(routes: pd.DataFrame, query_ids: Iterable[int], cluster_ids: Iterable[int],
                output_dir: str):
    """Write query_routes.csv, query_counts.csv and cluster_hits.csv."""
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    routes.to_csv(output_path / "query_routes.csv", index=False)
    count_query_maps(routes, query_ids).to_csv(output_path / "query_counts.csv", index=False)
    count_cluster_hits(routes, cluster_ids).to_csv(output_path / "cluster_hits.csv", index=False)

    logging.info(f"Query routes saved to {output_dir}")
