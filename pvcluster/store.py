"""
Key-addressed storage for presence vector records.

Round ``i``'s centers live under a location derived from the round index.
The file store writes each round to ``round-<i>/part-00000`` as a sequence
of records (big-endian int64 key followed by a serialized PresenceVector).
A round is written to a temporary file and renamed into place, so readers
never observe a partially written round.
"""

import logging
import os
import shutil
import struct
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Tuple, Union

from .presence_vector import PresenceVector

_KEY = struct.Struct(">q")

ROUND_DIR_PREFIX = "round-"
PART_FILE = "part-00000"
FINAL_DIR = "final"

Record = Tuple[int, PresenceVector]


def write_records(path: Union[str, Path], records: Iterable[Record]) -> int:
    """Write (key, vector) records to a part file atomically; returns the record count."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")

    count = 0
    with open(tmp_path, "wb") as f:
        for key, vector in records:
            f.write(_KEY.pack(key))
            vector.write_to(f)
            count += 1
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, path)
    return count


def read_records(path: Union[str, Path]) -> Iterator[Record]:
    """Yield (key, vector) records from a part file."""
    with open(path, "rb") as f:
        while True:
            key_bytes = f.read(_KEY.size)
            if not key_bytes:
                break
            if len(key_bytes) < _KEY.size:
                raise ValueError(f"Truncated record key in {path}")
            vector = PresenceVector.read_from(f)
            if vector is None:
                raise ValueError(f"Record key without a vector in {path}")
            yield _KEY.unpack(key_bytes)[0], vector


class MemoryVectorStore:
    """Keeps every round's centers in memory as copies."""

    def __init__(self):
        self._rounds: Dict[int, List[PresenceVector]] = {}
        self._collections: Dict[str, List[Record]] = {}

    def write_round(self, round_index: int, centers: List[PresenceVector]):
        self._rounds[round_index] = [center.copy() for center in centers]

    def read_round(self, round_index: int) -> List[PresenceVector]:
        if round_index not in self._rounds:
            return []
        return [center.copy() for center in self._rounds[round_index]]

    def rounds(self) -> List[int]:
        return sorted(self._rounds)

    def write_vectors(self, name: str, records: Iterable[Record]):
        self._collections[name] = [(key, vector.copy()) for key, vector in records]

    def read_vectors(self, name: str) -> List[Record]:
        return [(key, vector.copy()) for key, vector in self._collections.get(name, [])]


class FileVectorStore:
    """Stores round centers and other vector collections as binary part files."""

    def __init__(self, base_dir: Union[str, Path], overwrite: bool = True):
        self.base_dir = Path(base_dir)
        if overwrite and self.base_dir.exists():
            logging.info(f"Removing previous clustering state in {self.base_dir}")
            shutil.rmtree(self.base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def round_path(self, round_index: int) -> Path:
        return self.base_dir / f"{ROUND_DIR_PREFIX}{round_index}" / PART_FILE

    def write_round(self, round_index: int, centers: List[PresenceVector]):
        path = self.round_path(round_index)
        count = write_records(path, enumerate(centers))
        logging.debug(f"Wrote {count} centers to {path}")

    def read_round(self, round_index: int) -> List[PresenceVector]:
        round_dir = self.round_path(round_index).parent
        if not round_dir.is_dir():
            return []

        centers = []
        for part in sorted(round_dir.glob("part-*")):
            if part.suffix == ".tmp":
                continue
            centers.extend(vector for _, vector in read_records(part))
        logging.debug(f"Loaded {len(centers)} centers from {round_dir}")
        return centers

    def rounds(self) -> List[int]:
        indices = []
        for path in self.base_dir.glob(f"{ROUND_DIR_PREFIX}*"):
            suffix = path.name[len(ROUND_DIR_PREFIX):]
            if suffix.isdigit():
                indices.append(int(suffix))
        return sorted(indices)

    def write_vectors(self, name: str, records: Iterable[Record]):
        write_records(self.base_dir / name / PART_FILE, records)

    def read_vectors(self, name: str) -> List[Record]:
        path = self.base_dir / name / PART_FILE
        if not path.exists():
            return []
        return list(read_records(path))
