"""
K-mer indexing for presence vectors.

This module maps fixed-length residue k-mers onto bit positions of a
PresenceVector. A k-mer is read as a base-B number whose digits are the
residue ranks, least significant digit first, with B equal to the alphabet
size so every k-mer lands inside the vector's capacity.
"""

import logging
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import InvalidLengthError, UnknownResidueError
from .presence_vector import PresenceVector

# Standard amino acids followed by the stop codon terminator.
AMINO_ACIDS = "ARNDCEQGHILKMFPSTWYV*"
TERMINATOR = "*"

# The A20 alphabet: one class per amino acid.
ALPHABET_A20 = "(A) (R) (N) (D) (C) (E) (Q) (G) (H) (I) (L) (K) (M) (F) (P) (S) (T) (W) (Y) (V)"

DEFAULT_KMER_LENGTH = 3


def parse_alphabet_classes(class_str: str) -> List[List[str]]:
    """
    Parse a compressed alphabet written as '(A B C) (D E) (F)'.

    Each parenthesised group is one class; its residues share a rank.

    Raises:
        ValueError: If the parentheses are unbalanced or a token is not a
            single character.
    """
    classes = []
    remaining = class_str
    while "(" in remaining:
        start = remaining.index("(")
        end = remaining.find(")")
        if end < start:
            raise ValueError(f"Invalid alphabet syntax at '{remaining}'")

        group = []
        for token in remaining[start + 1:end].split():
            if len(token) != 1:
                raise ValueError(f"Syntax error at '{token}': residues must be single characters")
            group.append(token)
        classes.append(group)
        remaining = remaining[end + 1:]

    if ")" in remaining:
        raise ValueError(f"Invalid alphabet syntax at '{remaining}'")
    if not classes:
        raise ValueError(f"No residue classes found in '{class_str}'")
    return classes


class KmerIndex:
    """Bijection between k-mers over a residue alphabet and bit positions."""

    def __init__(self, kmer_length: int = DEFAULT_KMER_LENGTH, alphabet: str = AMINO_ACIDS):
        """
        Initialize a k-mer index.

        Args:
            kmer_length: Number of residues per k-mer
            alphabet: Residues in rank order; lookups are case-insensitive
        """
        if kmer_length < 1:
            raise ValueError(f"kmer_length must be positive, got {kmer_length}")
        if not alphabet:
            raise ValueError("alphabet must contain at least one residue")

        self.kmer_length = kmer_length
        self.alphabet = alphabet
        self.residue_to_rank = self._build_rank_table([[residue] for residue in alphabet])
        self.alphabet_size = len(alphabet)

        logging.debug(f"KmerIndex initialized for k={kmer_length}, alphabet size {self.alphabet_size}")

    @classmethod
    def from_classes(cls, kmer_length: int, class_str: str, include_terminator: bool = True) -> "KmerIndex":
        """
        Build an index over a compressed alphabet.

        Every residue in a class maps to the class rank. The terminator, when
        included and not already listed, gets a class of its own.
        """
        classes = parse_alphabet_classes(class_str)
        if include_terminator and not any(TERMINATOR in group for group in classes):
            classes.append([TERMINATOR])

        index = cls(kmer_length, alphabet="".join(group[0] for group in classes))
        index.residue_to_rank = cls._build_rank_table(classes)
        return index

    @staticmethod
    def _build_rank_table(classes: List[List[str]]) -> Dict[str, int]:
        table = {}
        for rank, group in enumerate(classes):
            for residue in group:
                for key in {residue.upper(), residue.lower()}:
                    if key in table:
                        raise ValueError(f"Residue '{residue}' appears more than once in the alphabet")
                    table[key] = rank
        return table

    @property
    def num_kmers(self) -> int:
        """Number of distinct k-mers, i.e. bit positions used."""
        return self.alphabet_size ** self.kmer_length

    def rank(self, residue: str) -> int:
        """Return the rank of a residue, ignoring case."""
        try:
            return self.residue_to_rank[residue]
        except KeyError:
            raise UnknownResidueError(residue, self.alphabet) from None

    def kmer_index(self, kmer: str) -> int:
        """Convert a k-mer string to its bit position."""
        if len(kmer) != self.kmer_length:
            raise InvalidLengthError(kmer, self.kmer_length)

        index = 0
        position_value = 1
        for residue in kmer:
            index += self.rank(residue) * position_value
            position_value *= self.alphabet_size
        return index

    def index_to_kmer(self, index: int) -> str:
        """Convert a bit position back to a k-mer (class representatives for compressed alphabets)."""
        if not 0 <= index < self.num_kmers:
            raise IndexError(f"K-mer index {index} out of range [0, {self.num_kmers})")

        residues = []
        for _ in range(self.kmer_length):
            index, rank = divmod(index, self.alphabet_size)
            residues.append(self.alphabet[rank])
        return "".join(residues)

    def new_vector(self, id: int = -1) -> PresenceVector:
        """Create an empty presence vector sized for this index."""
        return PresenceVector(self.kmer_length, self.alphabet_size, id=id)

    def iter_kmers(self, sequence: str, step: int = 1,
                   skip_unknown: bool = False) -> Iterator[Tuple[int, int]]:
        """
        Yield (position, k-mer index) for the k-mers of a sequence.

        Args:
            sequence: Residue string
            step: Distance between window starts; 1 gives overlapping k-mers
            skip_unknown: Skip windows containing residues outside the
                alphabet instead of raising UnknownResidueError
        """
        if step < 1:
            raise ValueError(f"step must be positive, got {step}")

        for i in range(0, len(sequence) - self.kmer_length + 1, step):
            kmer = sequence[i:i + self.kmer_length]
            try:
                yield i, self.kmer_index(kmer)
            except UnknownResidueError:
                if not skip_unknown:
                    raise

    def vectorize(self, sequence: str, id: int = -1, step: int = 1,
                  skip_unknown: bool = False, vector: Optional[PresenceVector] = None) -> PresenceVector:
        """
        Build the presence vector of a sequence.

        Sequences shorter than the k-mer length produce an empty vector.
        """
        if vector is None:
            vector = self.new_vector(id)
        for _, index in self.iter_kmers(sequence, step=step, skip_unknown=skip_unknown):
            vector.set_kmer(index)
        return vector
