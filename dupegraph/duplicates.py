"""
Module: duplicates
Purpose: Collapse the evidence graph into duplicate clusters.
"""

import os
from typing import Callable, Dict, List, Sequence, Set

from .evidence import EvidenceGraph, PairEvidence
from .exceptions import DuplicateDetectionError
from .models.cluster import Cluster
from .models.record import ImageRecord
from .utils import log_error, log_info

VerboseReporter = Callable[[str], None]

DEFAULT_MERGE_THRESHOLD = 0.5
SINGLETON_CONFIDENCE = 1.0


class UnionFind:
    """
    A Union-Find data structure over dense arena indices.
    Each root also tracks the weakest merge weight of its set.
    """
    def __init__(self, size: int):
        self.parent: List[int] = list(range(size))
        self.rank: List[int] = [0] * size
        self.weakest: List[float] = [SINGLETON_CONFIDENCE] * size

    def find(self, element: int) -> int:
        """Finds the representative (root) of the set containing element."""
        root = element
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[element] != root:  # Path compression
            self.parent[element], element = root, self.parent[element]
        return root

    def union(self, element1: int, element2: int, weight: float = SINGLETON_CONFIDENCE) -> bool:
        """Merges the sets containing element1 and element2. Returns False if already joined."""
        root1 = self.find(element1)
        root2 = self.find(element2)
        if root1 == root2:
            return False

        weakest = min(self.weakest[root1], self.weakest[root2], weight)
        # Union by rank
        if self.rank[root1] < self.rank[root2]:
            root1, root2 = root2, root1
        self.parent[root2] = root1
        if self.rank[root1] == self.rank[root2]:
            self.rank[root1] += 1
        self.weakest[root1] = weakest
        return True


def _merge_order(pair: PairEvidence) -> tuple[float, int, int]:
    return (-pair.weight, pair.id_a, pair.id_b)


def build_clusters(
    records: Sequence[ImageRecord],
    graph: EvidenceGraph,
    merge_threshold: float = DEFAULT_MERGE_THRESHOLD,
    reporter: VerboseReporter | None = None,
) -> List[Cluster]:
    """
    Group records into clusters with union-find under bounded transitivity.

    Pairs are applied strongest first. Only a pair whose combined weight
    exceeds the merge threshold may join two clusters; weaker pairs are kept
    as contributing signals when both ends end up in the same cluster.

    Args:
        records: Every record of the run; each ends up in exactly one cluster.
        graph: Evidence graph over those records.
        merge_threshold: Combined weight a pair must exceed to merge.
        reporter: Optional callback for verbose merge tracing.

    Returns:
        Clusters (singletons included) ordered by their smallest member path.

    Raises:
        DuplicateDetectionError: If the graph references unknown records.
    """
    try:
        arena: Dict[int, int] = {}
        for position, record in enumerate(records):
            if record.id in arena:
                raise DuplicateDetectionError(f"Duplicate record id {record.id}")
            arena[record.id] = position

        uf = UnionFind(len(records))
        pairs = sorted(graph.pair_evidence(), key=_merge_order)
        for pair in pairs:
            if pair.id_a not in arena or pair.id_b not in arena:
                raise DuplicateDetectionError(
                    f"Edge ({pair.id_a}, {pair.id_b}) references an unknown record"
                )
            if pair.weight <= merge_threshold:
                continue
            merged = uf.union(arena[pair.id_a], arena[pair.id_b], pair.weight)
            if merged and reporter:
                reporter(
                    f"merge {pair.id_a}<->{pair.id_b} weight={pair.weight:.2f} "
                    f"via {'+'.join(pair.methods)}"
                )

        groups: Dict[int, List[int]] = {}
        for position in range(len(records)):
            groups.setdefault(uf.find(position), []).append(position)

        signals: Dict[int, Set[str]] = {}
        for pair in pairs:
            root = uf.find(arena[pair.id_a])
            if root == uf.find(arena[pair.id_b]):
                signals.setdefault(root, set()).update(pair.methods)

        ordered = sorted(
            groups.items(),
            key=lambda item: min((os.path.abspath(records[p].path), records[p].id) for p in item[1]),
        )
        clusters: List[Cluster] = []
        for cluster_index, (root, members) in enumerate(ordered, start=1):
            clusters.append(
                Cluster(
                    cluster_id=f"cluster_{cluster_index:04d}",
                    member_ids=frozenset(records[p].id for p in members),
                    canonical_id=None,
                    confidence=round(uf.weakest[root], 6),
                    signals=tuple(sorted(signals.get(root, ()))),
                )
            )
        duplicates = sum(1 for cluster in clusters if not cluster.is_singleton)
        log_info(f"Built {len(clusters)} clusters ({duplicates} with duplicates)")
        return clusters
    except DuplicateDetectionError:
        raise
    except Exception as exc:
        log_error(f"Failed to build clusters: {exc}")
        raise DuplicateDetectionError("Failed to build clusters") from exc
