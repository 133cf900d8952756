"""
Module: index
Purpose: Sharded multi-index over perceptual hashes for radius queries.

Every hash is split into `max_radius + 1` disjoint bit bands. Two hashes
within `max_radius` bits of each other cannot differ in every band, so an
exact match on at least one band is a complete candidate filter; candidates
are then verified by popcount. Shards are keyed by the leading hash bits and
each carries its own lock.
"""

import threading
from typing import Dict, List, Set, Tuple

from .exceptions import SimilarityIndexError
from .hashing import HASH_BITS, hamming_distance
from .utils import log_warning


def band_layout(bits: int, bands: int) -> List[Tuple[int, int]]:
    """Return (shift, mask) pairs splitting `bits` into `bands` near-equal bands."""
    layout = []
    base, extra = divmod(bits, bands)
    offset = 0
    for band in range(bands):
        width = base + (1 if band < extra else 0)
        layout.append((bits - offset - width, (1 << width) - 1))
        offset += width
    return layout


class ExactHashMap:
    """Thread-safe exact_hash -> ids mapping for O(1) byte-identical lookups."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids: Dict[str, Set[int]] = {}

    def add(self, exact_hash: str, record_id: int) -> None:
        with self._lock:
            self._ids.setdefault(exact_hash, set()).add(record_id)

    def lookup(self, exact_hash: str) -> Set[int]:
        with self._lock:
            return set(self._ids.get(exact_hash, ()))

    def groups(self) -> List[List[int]]:
        with self._lock:
            return [sorted(ids) for ids in self._ids.values() if len(ids) > 1]


class _Shard:
    def __init__(self, layout: List[Tuple[int, int]]):
        self.lock = threading.Lock()
        self.layout = layout
        self.hashes: Dict[int, int] = {}
        self.bands: List[Dict[int, Set[int]]] = [{} for _ in layout]

    def add(self, record_id: int, value: int) -> None:
        self.hashes[record_id] = value
        for table, (shift, mask) in zip(self.bands, self.layout):
            table.setdefault((value >> shift) & mask, set()).add(record_id)

    def candidates(self, value: int) -> Set[int]:
        found: Set[int] = set()
        for table, (shift, mask) in zip(self.bands, self.layout):
            bucket = table.get((value >> shift) & mask)
            if bucket:
                found |= bucket
        return found


class SimilarityIndex:
    """
    Queryable structure over perceptual hashes.

    Args:
        max_radius: Largest query radius answered through the band tables.
            Wider queries fall back to a full scan.
        shards: Number of independently locked shards.
        bits: Hash width.
    """

    def __init__(self, max_radius: int = 10, shards: int = 16, bits: int = HASH_BITS):
        if not 0 <= max_radius < bits:
            raise SimilarityIndexError(f"max_radius must be in [0, {bits}), got {max_radius}")
        if shards < 1:
            raise SimilarityIndexError("shards must be at least 1")
        self.bits = bits
        self.max_radius = max_radius
        self._layout = band_layout(bits, max_radius + 1)
        self._shard_bits = max(0, (shards - 1).bit_length())
        self._shards = [_Shard(self._layout) for _ in range(1 << self._shard_bits)]
        self._registry_lock = threading.Lock()
        self._owners: Dict[int, int] = {}
        self._by_hash: Dict[int, Set[int]] = {}
        self.exact = ExactHashMap()
        self._warned_scan = False

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._owners)

    def _shard_for(self, value: int) -> _Shard:
        if not self._shard_bits:
            return self._shards[0]
        return self._shards[value >> (self.bits - self._shard_bits)]

    def _check_width(self, value: int) -> None:
        if value < 0 or value >> self.bits:
            raise SimilarityIndexError(f"Hash {value:#x} does not fit in {self.bits} bits")

    def insert(self, record_id: int, value: int, exact_hash: str | None = None) -> bool:
        """
        Add a record. Re-inserting the same id with the same hash is a no-op.

        Returns:
            True when the record was added, False for a repeated insert.

        Raises:
            SimilarityIndexError: If the id is already bound to another hash.
        """
        self._check_width(value)
        with self._registry_lock:
            known = self._owners.get(record_id)
            if known is not None:
                if known != value:
                    raise SimilarityIndexError(
                        f"Record {record_id} already indexed with a different hash"
                    )
                return False
            self._owners[record_id] = value
            self._by_hash.setdefault(value, set()).add(record_id)
        shard = self._shard_for(value)
        with shard.lock:
            shard.add(record_id, value)
        if exact_hash:
            self.exact.add(exact_hash, record_id)
        return True

    def lookup_exact(self, exact_hash: str) -> Set[int]:
        return self.exact.lookup(exact_hash)

    def query(self, value: int, max_distance: int) -> Set[Tuple[int, int]]:
        """
        Return every inserted (id, distance) with distance <= max_distance.
        """
        self._check_width(value)
        if max_distance < 0:
            raise SimilarityIndexError("max_distance must not be negative")
        if max_distance == 0:
            with self._registry_lock:
                return {(record_id, 0) for record_id in self._by_hash.get(value, ())}

        results: Set[Tuple[int, int]] = set()
        if max_distance > self.max_radius:
            if not self._warned_scan:
                log_warning(
                    f"Query radius {max_distance} exceeds index radius {self.max_radius}; "
                    "falling back to a full scan."
                )
                self._warned_scan = True
            for shard in self._shards:
                with shard.lock:
                    snapshot = list(shard.hashes.items())
                for record_id, stored in snapshot:
                    distance = hamming_distance(value, stored)
                    if distance <= max_distance:
                        results.add((record_id, distance))
            return results

        for shard in self._shards:
            with shard.lock:
                candidates = [(record_id, shard.hashes[record_id]) for record_id in shard.candidates(value)]
            for record_id, stored in candidates:
                distance = hamming_distance(value, stored)
                if distance <= max_distance:
                    results.add((record_id, distance))
        return results
