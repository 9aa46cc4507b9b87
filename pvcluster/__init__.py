"""
pvcluster: K-mer presence vector clustering for sequence database partitioning

Clusters sequences by the k-mers they contain so that similarity search can
be restricted to a few partitions of a large database.
"""

from .kmer import KmerIndex, AMINO_ACIDS
from .presence_vector import PresenceVector
from .sampler import CenterSampler
from .assignment import AssignmentStep, assign_population
from .update import UpdateStrategy, majority_centroid, medoid, update_centers
from .coordinator import ClusteringCoordinator, ClusteringResult, CoordinatorState, RoundState
from .store import MemoryVectorStore, FileVectorStore
from .config import PVClusterConfig
from .utils import setup_logging, save_results, union_cluster_vectors
from .routing import QueryRouter, route_query, load_cluster_unions
from .errors import (
    PVClusterError,
    UnknownResidueError,
    InvalidLengthError,
    IncompatibleVectorError,
    UninitializedCentersError,
    InsufficientPopulationError,
    ClusteringRunError,
    DuplicateSequenceKeyError,
)

__version__ = "1.0.0"
__author__ = "pvcluster Development Team"

__all__ = [
    "KmerIndex",
    "AMINO_ACIDS",
    "PresenceVector",
    "CenterSampler",
    "AssignmentStep",
    "assign_population",
    "UpdateStrategy",
    "majority_centroid",
    "medoid",
    "update_centers",
    "ClusteringCoordinator",
    "ClusteringResult",
    "CoordinatorState",
    "RoundState",
    "MemoryVectorStore",
    "FileVectorStore",
    "PVClusterConfig",
    "setup_logging",
    "save_results",
    "union_cluster_vectors",
    "QueryRouter",
    "route_query",
    "load_cluster_unions",
    "PVClusterError",
    "UnknownResidueError",
    "InvalidLengthError",
    "IncompatibleVectorError",
    "UninitializedCentersError",
    "InsufficientPopulationError",
    "ClusteringRunError",
    "DuplicateSequenceKeyError",
]
