"""
Error types raised by the clustering engine.

None of these are retried: they describe bad input data or a mismatch
between pipeline stages, neither of which heals by running the same round
again.
"""


class PVClusterError(Exception):
    """Base class for all clustering errors."""


class UnknownResidueError(PVClusterError, KeyError):
    """A residue is not part of the k-mer alphabet."""

    def __init__(self, residue: str, alphabet: str):
        self.residue = residue
        self.alphabet = alphabet
        super().__init__(f"Residue '{residue}' is not in the alphabet '{alphabet}'")

    def __reduce__(self):
        return type(self), (self.residue, self.alphabet)

    def __str__(self):
        return self.args[0]


class InvalidLengthError(PVClusterError, ValueError):
    """A k-mer does not have the configured length."""

    def __init__(self, kmer: str, kmer_length: int):
        self.kmer = kmer
        self.kmer_length = kmer_length
        super().__init__(f"K-mer '{kmer}' has length {len(kmer)}, expected {kmer_length}")

    def __reduce__(self):
        return type(self), (self.kmer, self.kmer_length)


class IncompatibleVectorError(PVClusterError, ValueError):
    """Two presence vectors with different word counts were combined."""


class UninitializedCentersError(PVClusterError):
    """A round started without a fully populated center list."""


class InsufficientPopulationError(PVClusterError):
    """Fewer sequences than requested centers."""

    def __init__(self, population_size: int, num_centers: int):
        self.population_size = population_size
        self.num_centers = num_centers
        super().__init__(
            f"Cannot sample {num_centers} centers from a population of {population_size} sequences"
        )

    def __reduce__(self):
        return type(self), (self.population_size, self.num_centers)


class ClusteringRunError(PVClusterError):
    """A clustering run terminated in the FAILED state."""

    def __init__(self, round_index: int, state: str, cause: BaseException):
        self.round_index = round_index
        self.state = state
        self.cause = cause
        self.kind = type(cause).__name__
        super().__init__(
            f"Clustering failed in round {round_index} ({state}): {self.kind}: {cause}"
        )

    def __reduce__(self):
        return type(self), (self.round_index, self.state, self.cause)


class DuplicateSequenceKeyError(PVClusterError):
    """Two sequences of a population share a key, so one would be lost from the assignments."""

    def __init__(self, key: int, first_position: int, second_position: int):
        self.key = key
        self.first_position = first_position
        self.second_position = second_position
        super().__init__(
            f"Sequences at positions {first_position} and {second_position} share the key {key}"
        )

    def __reduce__(self):
        return type(self), (self.key, self.first_position, self.second_position)
