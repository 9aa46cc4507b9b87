#!/usr/bin/env python3
"""
pvcluster: command-line entry point.

Reads sequences in the one-line '>ID SEQUENCE' format, builds k-mer presence
vectors, clusters them and saves the cluster membership.
"""

import sys
import argparse
import logging
import time
from pathlib import Path
from typing import Optional

import numpy as np

from .config import PVClusterConfig, load_config_from_env
from .coordinator import ClusteringCoordinator
from .errors import PVClusterError
from .kmer import KmerIndex
from .routing import QueryRouter, load_cluster_unions, save_routes
from .store import FileVectorStore, MemoryVectorStore
from .update import UpdateStrategy
from .utils import read_simple_fasta, save_results, setup_logging, vectorize_sequences


def create_parser():
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        description="pvcluster: partition a sequence database by k-mer presence vector clustering",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Partition a protein database into 50 clusters
  pvcluster sequences.txt --clusters 50 -o partitions/

  # K-medoid centers, reproducible run
  pvcluster sequences.txt --clusters 50 --strategy medoid --seed 7

  # Keep every round's centers on disk
  pvcluster sequences.txt --clusters 50 --work-dir partitions/rounds

  # Route queries to the partitions sharing their k-mers
  pvcluster sequences.txt --clusters 50 --queries queries.txt
        """
    )

    # Required arguments
    parser.add_argument("input", help="Sequence file with one '>ID SEQUENCE' record per line")
    parser.add_argument("-o", "--output", help="Output directory (default: pvcluster_output)")
    parser.add_argument("--config", help="JSON or YAML configuration file")

    # K-mer arguments
    parser.add_argument("-k", "--kmer-length", type=int,
                        help="K-mer length (default: 3)")
    parser.add_argument("--alphabet", help="Residue alphabet in rank order (default: amino acids and '*')")
    parser.add_argument("--alphabet-classes",
                        help="Compressed alphabet, e.g. '(A S T) (C) (D E N Q) ...'")
    parser.add_argument("--skip-unknown", action="store_true",
                        help="Skip k-mers containing residues outside the alphabet")

    # Clustering arguments
    parser.add_argument("-c", "--clusters", type=int, help="Number of clusters")
    parser.add_argument("--max-rounds", type=int, help="Maximum clustering rounds (default: 5)")
    parser.add_argument("--strategy", choices=[s.value for s in UpdateStrategy],
                        help="Center update strategy (default: majority-centroid)")
    parser.add_argument("--seed", type=int, help="Random seed for sampling and tie-breaking")

    # Processing arguments
    parser.add_argument("--processes", type=int,
                        help="Number of parallel processes (default: CPU count)")
    parser.add_argument("--sequential", action="store_true",
                        help="Use sequential processing")

    # Output arguments
    parser.add_argument("--queries",
                        help="Query sequences ('>ID SEQUENCE' lines) to route to clusters after clustering")
    parser.add_argument("--work-dir", help="Directory for per-round centers (default: in memory)")
    parser.add_argument("--no-plots", action="store_true", help="Skip plots")
    parser.add_argument("--log-file", help="Log file (default: pvcluster.log)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    return parser


def build_config(args) -> PVClusterConfig:
    config = PVClusterConfig(args.config) if args.config else PVClusterConfig()
    config = load_config_from_env(config)
    config.update_from_args(args)
    config.validate()
    return config


def build_kmer_index(config: PVClusterConfig) -> KmerIndex:
    if config.kmer.alphabet_classes:
        return KmerIndex.from_classes(config.kmer.kmer_length, config.kmer.alphabet_classes)
    return KmerIndex(config.kmer.kmer_length, config.kmer.alphabet)


def run_clustering(config: PVClusterConfig, input_path: str, queries_path: Optional[str] = None) -> bool:
    """Run the clustering workflow."""
    print("pvcluster")
    print("=" * 50)
    print(config.get_summary())

    if not Path(input_path).exists():
        logging.error(f"Input file not found: {input_path}")
        return False
    if queries_path and not Path(queries_path).exists():
        logging.error(f"Query file not found: {queries_path}")
        return False

    kmer_index = build_kmer_index(config)

    start_time = time.time()
    population = vectorize_sequences(read_simple_fasta(input_path), kmer_index,
                                     skip_unknown=config.kmer.skip_unknown)
    print(f"\nBuilt {len(population)} presence vectors in {time.time() - start_time:.1f}s")

    if config.output.work_dir:
        store = FileVectorStore(config.output.work_dir)
    else:
        store = MemoryVectorStore()

    coordinator = ClusteringCoordinator(
        target_center_count=config.clustering.target_center_count,
        max_rounds=config.clustering.max_rounds,
        update_strategy=config.clustering.update_strategy,
        rng=np.random.default_rng(config.clustering.seed),
        store=store,
        n_processes=config.processing.effective_processes,
        chunk_size=config.processing.chunk_size,
    )

    start_time = time.time()
    result = coordinator.run(population)
    clustering_time = time.time() - start_time

    save_results(result, population, config.output.output_dir)

    if config.output.save_plots:
        try:
            from .visualizer import Visualizer
            visualizer = Visualizer(result)
            output_path = Path(config.output.output_dir)
            visualizer.plot_cluster_sizes(str(output_path / "cluster_sizes.png"))
            visualizer.plot_round_history(str(output_path / "rounds.png"))
        except Exception as e:
            logging.warning(f"Visualization failed: {e}")

    if queries_path:
        route_queries(config, kmer_index, queries_path)

    sizes = result.cluster_sizes()
    print(f"\nClustering complete in {clustering_time:.1f}s")
    print(f"   Rounds: {result.rounds_run} ({'converged' if result.converged else 'round cap reached'})")
    print(f"   Clusters: {result.num_clusters}")
    print(f"   Largest cluster: {max(sizes)} sequences, smallest: {min(sizes)}")
    print(f"   Results saved to: {config.output.output_dir}")

    return True


def route_queries(config: PVClusterConfig, kmer_index: KmerIndex, queries_path: str):
    """Route query sequences to the clusters sharing their k-mers."""
    unions = load_cluster_unions(config.output.output_dir)
    router = QueryRouter(unions, kmer_index, skip_unknown=config.kmer.skip_unknown)

    queries = list(read_simple_fasta(queries_path))
    routes = router.route_all(queries)
    save_routes(routes, [query_id for query_id, _ in queries], unions, config.output.output_dir)

    if queries:
        print(f"\nRouted {len(queries)} queries: {len(routes) / len(queries):.1f} of "
              f"{len(unions)} clusters searched per query on average")


def main(argv=None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except (ValueError, FileNotFoundError) as e:
        parser.error(str(e))

    setup_logging(config.output.verbose, config.output.log_file)

    try:
        success = run_clustering(config, args.input, args.queries)
    except PVClusterError as e:
        logging.error(str(e))
        return 1
    except (OSError, ValueError) as e:
        logging.error(f"Failed to read input: {e}")
        return 1

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
