"""
Utility functions for pvcluster.

This module contains shared helpers for logging setup, reading sequences,
building presence vectors, summarizing clusters and saving results.
"""

import sys
import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from .coordinator import sequence_key
from .kmer import KmerIndex
from .presence_vector import NO_ID, PresenceVector
from .store import write_records, read_records


def setup_logging(verbose: bool = False, log_file: Optional[str] = "pvcluster.log"):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def read_simple_fasta(filepath: str) -> Iterator[Tuple[int, str]]:
    """
    Read sequences stored one per line as '>ID SEQUENCE'.

    Blank lines are skipped.

    Raises:
        ValueError: On a malformed line or a non-integer id
    """
    with open(filepath, "r") as f:
        for line_num, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            if not line.startswith(">") or " " not in line:
                raise ValueError(f"Malformed sequence line {line_num} in {filepath}: {line[:50]}")

            header, sequence = line[1:].split(" ", 1)
            try:
                seq_id = int(header)
            except ValueError:
                raise ValueError(f"Sequence id '{header}' at line {line_num} in {filepath} is not an integer")
            yield seq_id, sequence.strip()


def vectorize_sequences(sequences, kmer_index: KmerIndex, skip_unknown: bool = False) -> List[PresenceVector]:
    """Build one presence vector per (id, sequence) pair."""
    vectors = []
    for seq_id, sequence in sequences:
        vectors.append(kmer_index.vectorize(sequence, id=seq_id, skip_unknown=skip_unknown))
    logging.info(f"Built {len(vectors)} presence vectors (k={kmer_index.kmer_length})")
    return vectors


def union_cluster_vectors(assignments: Dict[int, int],
                          population: Sequence[PresenceVector]) -> Dict[int, PresenceVector]:
    """
    Union the presence vectors of every cluster's members.

    The result is a compact summary of all k-mers present in a cluster.
    Sequences are matched to assignments by id, or by position when they
    have none.
    """
    unions = {}
    for position, vector in enumerate(population):
        key = sequence_key(vector, position)
        if key not in assignments:
            continue
        cluster_id = assignments[key]
        if cluster_id in unions:
            unions[cluster_id].union_equals(vector)
        else:
            union = vector.copy()
            union.id = NO_ID
            unions[cluster_id] = union
    return dict(sorted(unions.items()))


def cluster_summary(assignments: Dict[int, int], centers: Sequence[PresenceVector],
                    unions: Optional[Dict[int, PresenceVector]] = None) -> pd.DataFrame:
    """One row per cluster: size, center id, k-mers in the center and in the union."""
    sizes = defaultdict(int)
    for cluster_id in assignments.values():
        sizes[cluster_id] += 1

    rows = []
    for cluster_id, center in enumerate(centers):
        row = {
            "cluster_id": cluster_id,
            "size": sizes.get(cluster_id, 0),
            "center_id": center.id,
            "center_kmers": center.cardinality(),
        }
        if unions is not None:
            union = unions.get(cluster_id)
            row["union_kmers"] = union.cardinality() if union is not None else 0
        rows.append(row)
    return pd.DataFrame(rows)


def save_results(result, population: Sequence[PresenceVector], output_dir: str):
    """Save clustering results to files."""
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    # Sequence to cluster mapping
    result.to_dataframe().to_csv(output_path / "assignments.csv", index=False)

    # Per-cluster summary, with the union of member vectors
    unions = union_cluster_vectors(result.assignments, population)
    cluster_summary(result.assignments, result.centers, unions).to_csv(
        output_path / "clusters.csv", index=False
    )

    # Binary centers and union summaries
    write_records(output_path / "centers.bin", enumerate(result.centers))
    write_records(output_path / "cluster_unions.bin", unions.items())

    # Round history
    result.history_dataframe().to_csv(output_path / "rounds.csv", index=False)

    with open(output_path / "run_summary.json", "w") as f:
        json.dump(
            {
                "state": result.state.value,
                "converged": result.converged,
                "rounds_run": result.rounds_run,
                "num_clusters": result.num_clusters,
                "num_sequences": len(result.assignments),
                "cluster_sizes": result.cluster_sizes(),
            },
            f,
            indent=2,
        )

    logging.info(f"Results saved to {output_dir}")


def load_results(results_dir: str) -> Tuple[pd.DataFrame, List[PresenceVector], Dict]:
    """Load previously saved assignments, centers and run summary."""
    results_path = Path(results_dir)

    assignments = pd.read_csv(results_path / "assignments.csv")
    centers = [vector for _, vector in read_records(results_path / "centers.bin")]
    with open(results_path / "run_summary.json", "r") as f:
        summary = json.load(f)

    logging.info(f"Results loaded from {results_dir}")
    return assignments, centers, summary
