"""
Configuration management for pvcluster.

This module provides configuration classes and functions for managing
clustering settings, defaults, and parameter validation.
"""

import os
import json
import logging
import multiprocessing
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Optional, Dict, Any

import yaml

from .kmer import AMINO_ACIDS, DEFAULT_KMER_LENGTH, KmerIndex
from .coordinator import DEFAULT_MAX_ROUNDS
from .update import UpdateStrategy


@dataclass
class KmerConfig:
    """Configuration for k-mer indexing."""
    kmer_length: int = DEFAULT_KMER_LENGTH
    alphabet: str = AMINO_ACIDS
    alphabet_classes: Optional[str] = None  # Compressed alphabet, e.g. "(A S T) (C) ..."
    skip_unknown: bool = False

    def __post_init__(self):
        if self.kmer_length < 1 or self.kmer_length > 8:
            raise ValueError(f"kmer_length must be between 1 and 8, got {self.kmer_length}")
        if not self.alphabet:
            raise ValueError("alphabet must not be empty")
        if self.alphabet_classes:
            KmerIndex.from_classes(self.kmer_length, self.alphabet_classes)


@dataclass
class ClusteringConfig:
    """Configuration for the clustering rounds."""
    target_center_count: int = 10
    max_rounds: int = DEFAULT_MAX_ROUNDS
    update_strategy: str = UpdateStrategy.MAJORITY_CENTROID.value
    seed: Optional[int] = None

    valid_strategies = [strategy.value for strategy in UpdateStrategy]

    def __post_init__(self):
        if self.target_center_count < 1:
            raise ValueError(f"target_center_count must be positive, got {self.target_center_count}")
        if self.max_rounds < 1:
            raise ValueError(f"max_rounds must be positive, got {self.max_rounds}")
        if self.update_strategy not in self.valid_strategies:
            raise ValueError(f"update_strategy must be one of {self.valid_strategies}, got {self.update_strategy}")


@dataclass
class ProcessingConfig:
    """Configuration for processing parameters."""
    n_processes: Optional[int] = None
    sequential: bool = False
    chunk_size: int = 5000

    def __post_init__(self):
        if self.n_processes is None:
            self.n_processes = multiprocessing.cpu_count()
        elif self.n_processes < 1:
            raise ValueError(f"n_processes must be positive, got {self.n_processes}")
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    @property
    def effective_processes(self) -> int:
        return 1 if self.sequential else self.n_processes


@dataclass
class OutputConfig:
    """Configuration for output settings."""
    output_dir: str = "pvcluster_output"
    work_dir: Optional[str] = None  # Round centers; kept in memory when unset
    save_plots: bool = True
    log_file: Optional[str] = "pvcluster.log"
    verbose: bool = False


class PVClusterConfig:
    """Main configuration class for pvcluster."""

    sections = {
        'kmer': KmerConfig,
        'clustering': ClusteringConfig,
        'processing': ProcessingConfig,
        'output': OutputConfig,
    }

    def __init__(self, config_file: Optional[str] = None):
        # Initialize with defaults
        self.kmer = KmerConfig()
        self.clustering = ClusteringConfig()
        self.processing = ProcessingConfig()
        self.output = OutputConfig()

        # Load from file if provided
        if config_file:
            self.load_from_file(config_file)

    def load_from_file(self, config_file: str):
        """Load configuration from a JSON or YAML file."""
        config_path = Path(config_file)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        try:
            with open(config_path, 'r') as f:
                if config_path.suffix in ('.yml', '.yaml'):
                    config_data = yaml.safe_load(f) or {}
                else:
                    config_data = json.load(f)

            for name, section_cls in self.sections.items():
                if name in config_data:
                    setattr(self, name, section_cls(**config_data[name]))

            logging.info(f"Configuration loaded from {config_file}")

        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {e}")
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in configuration file: {e}")
        except TypeError as e:
            raise ValueError(f"Invalid configuration parameters: {e}")

    def save_to_file(self, config_file: str):
        """Save current configuration to a JSON or YAML file."""
        config_path = Path(config_file)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w') as f:
            if config_path.suffix in ('.yml', '.yaml'):
                yaml.safe_dump(self.to_dict(), f, indent=2, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)

        logging.info(f"Configuration saved to {config_file}")

    def update_from_args(self, args):
        """Update configuration from command-line arguments."""
        # K-mer parameters
        if getattr(args, 'kmer_length', None) is not None:
            self.kmer.kmer_length = args.kmer_length
        if getattr(args, 'alphabet', None):
            self.kmer.alphabet = args.alphabet
        if getattr(args, 'alphabet_classes', None):
            self.kmer.alphabet_classes = args.alphabet_classes
        if getattr(args, 'skip_unknown', False):
            self.kmer.skip_unknown = True

        # Clustering parameters
        if getattr(args, 'clusters', None) is not None:
            self.clustering.target_center_count = args.clusters
        if getattr(args, 'max_rounds', None) is not None:
            self.clustering.max_rounds = args.max_rounds
        if getattr(args, 'strategy', None):
            self.clustering.update_strategy = args.strategy
        if getattr(args, 'seed', None) is not None:
            self.clustering.seed = args.seed

        # Processing parameters
        if getattr(args, 'processes', None) is not None:
            self.processing.n_processes = args.processes
        if getattr(args, 'sequential', False):
            self.processing.sequential = True

        # Output parameters
        if getattr(args, 'output', None):
            self.output.output_dir = args.output
        if getattr(args, 'work_dir', None):
            self.output.work_dir = args.work_dir
        if getattr(args, 'no_plots', False):
            self.output.save_plots = False
        if getattr(args, 'log_file', None):
            self.output.log_file = args.log_file
        if getattr(args, 'verbose', False):
            self.output.verbose = True

    def validate(self):
        """Validate all configuration parameters."""
        try:
            # This will trigger __post_init__ validation
            KmerConfig(**asdict(self.kmer))
            ClusteringConfig(**asdict(self.clustering))
            ProcessingConfig(**asdict(self.processing))
        except ValueError as e:
            raise ValueError(f"Configuration validation failed: {e}")

        if self.processing.sequential and self.processing.n_processes > 1:
            logging.warning("Sequential mode enabled but n_processes > 1. Will use sequential processing.")

    def get_summary(self) -> str:
        """Get a human-readable summary of the configuration."""
        summary = []
        summary.append("pvcluster Configuration Summary:")
        summary.append("=" * 40)

        summary.append("K-mers:")
        summary.append(f"  K-mer length: {self.kmer.kmer_length}")
        if self.kmer.alphabet_classes:
            summary.append(f"  Alphabet classes: {self.kmer.alphabet_classes}")
        else:
            summary.append(f"  Alphabet: {self.kmer.alphabet}")

        summary.append("Clustering:")
        summary.append(f"  Target centers: {self.clustering.target_center_count}")
        summary.append(f"  Max rounds: {self.clustering.max_rounds}")
        summary.append(f"  Update strategy: {self.clustering.update_strategy}")
        summary.append(f"  Seed: {self.clustering.seed if self.clustering.seed is not None else 'random'}")

        summary.append("Processing:")
        summary.append(f"  Processes: {self.processing.n_processes}")
        summary.append(f"  Sequential mode: {self.processing.sequential}")

        summary.append("Output:")
        summary.append(f"  Output directory: {self.output.output_dir}")
        summary.append(f"  Work directory: {self.output.work_dir or 'in memory'}")
        summary.append(f"  Verbose logging: {self.output.verbose}")

        return "\n".join(summary)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {name: asdict(getattr(self, name)) for name in self.sections}


def load_config_from_env(config: Optional[PVClusterConfig] = None) -> PVClusterConfig:
    """Load configuration from PVCLUSTER_* environment variables."""
    config = config or PVClusterConfig()

    if 'PVCLUSTER_KMER_LENGTH' in os.environ:
        config.kmer.kmer_length = int(os.environ['PVCLUSTER_KMER_LENGTH'])
    if 'PVCLUSTER_ALPHABET' in os.environ:
        config.kmer.alphabet = os.environ['PVCLUSTER_ALPHABET']

    if 'PVCLUSTER_CLUSTERS' in os.environ:
        config.clustering.target_center_count = int(os.environ['PVCLUSTER_CLUSTERS'])
    if 'PVCLUSTER_MAX_ROUNDS' in os.environ:
        config.clustering.max_rounds = int(os.environ['PVCLUSTER_MAX_ROUNDS'])
    if 'PVCLUSTER_STRATEGY' in os.environ:
        config.clustering.update_strategy = os.environ['PVCLUSTER_STRATEGY']
    if 'PVCLUSTER_SEED' in os.environ:
        config.clustering.seed = int(os.environ['PVCLUSTER_SEED'])

    if 'PVCLUSTER_PROCESSES' in os.environ:
        config.processing.n_processes = int(os.environ['PVCLUSTER_PROCESSES'])
    if 'PVCLUSTER_SEQUENTIAL' in os.environ:
        config.processing.sequential = os.environ['PVCLUSTER_SEQUENTIAL'].lower() == 'true'

    if 'PVCLUSTER_OUTPUT_DIR' in os.environ:
        config.output.output_dir = os.environ['PVCLUSTER_OUTPUT_DIR']
    if 'PVCLUSTER_WORK_DIR' in os.environ:
        config.output.work_dir = os.environ['PVCLUSTER_WORK_DIR']
    if 'PVCLUSTER_VERBOSE' in os.environ:
        config.output.verbose = os.environ['PVCLUSTER_VERBOSE'].lower() == 'true'

    return config


def create_default_config(output_file: str = "pvcluster_config.json") -> PVClusterConfig:
    """Create a default configuration file."""
    config = PVClusterConfig()
    config.save_to_file(output_file)
    return config
