"""
Module: evidence
Purpose: Accumulate weighted similarity edges between records from all signals.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from .config import EngineConfig
from .hashing import hash_rotations, parse_hash
from .index import SimilarityIndex
from .metadata import cameras_match, filename_overlap, timestamps_close
from .models.edge import MAX_PAIR_WEIGHT, PRIMARY_METHODS, EvidenceMethod, SimilarityEdge, make_edge
from .models.record import ImageRecord
from .utils import log_info


@dataclass(frozen=True)
class PairEvidence:
    """Combined evidence for one record pair."""
    id_a: int
    id_b: int
    weight: float
    methods: Tuple[str, ...]


class EvidenceGraph:
    """
    Deduplicated, undirected edge set. At most one edge per (pair, method).
    """

    def __init__(self, edges: Iterable[SimilarityEdge] = ()):
        self._edges: Dict[Tuple[int, int, EvidenceMethod], SimilarityEdge] = {}
        for edge in edges:
            self.add(edge)

    def __len__(self) -> int:
        return len(self._edges)

    def add(self, edge: SimilarityEdge) -> bool:
        if edge.key in self._edges:
            return False
        self._edges[edge.key] = edge
        return True

    def edges(self) -> List[SimilarityEdge]:
        return sorted(self._edges.values(), key=lambda edge: (edge.id_a, edge.id_b, edge.method.value))

    def pair_evidence(self) -> List[PairEvidence]:
        """Per-pair combined weight (sum of method weights, capped)."""
        grouped: Dict[Tuple[int, int], List[SimilarityEdge]] = {}
        for edge in self._edges.values():
            grouped.setdefault(edge.pair, []).append(edge)
        pairs = []
        for (id_a, id_b), edges in grouped.items():
            weight = min(MAX_PAIR_WEIGHT, sum(edge.weight for edge in edges))
            methods = tuple(sorted(edge.method.value for edge in edges))
            pairs.append(PairEvidence(id_a, id_b, round(weight, 6), methods))
        pairs.sort(key=lambda pair: (pair.id_a, pair.id_b))
        return pairs


def _corroborating_edges(
    a: ImageRecord,
    b: ImageRecord,
    config: EngineConfig,
) -> List[SimilarityEdge]:
    edges: List[SimilarityEdge] = []
    if config.uses("exif"):
        delta = timestamps_close(a.exif, b.exif, config.timestamp_tolerance_seconds)
        if delta is not None:
            edges.append(make_edge(a.id, b.id, EvidenceMethod.EXIF_TIMESTAMP, delta))
        if cameras_match(a.exif, b.exif):
            edges.append(make_edge(a.id, b.id, EvidenceMethod.EXIF_CAMERA))
    if config.uses("filename"):
        overlap = filename_overlap(a.path, b.path)
        if overlap >= config.filename_overlap:
            edges.append(make_edge(a.id, b.id, EvidenceMethod.FILENAME, round(overlap, 4)))
    return edges


def pair_edges(a: ImageRecord, b: ImageRecord, distance: int | None, config: EngineConfig) -> List[SimilarityEdge]:
    """
    Edges for one candidate pair surfaced by the exact map or the index.

    Filename and EXIF agreement only add weight to a pair that already has a
    perceptual edge; a loose-band perceptual edge without corroboration is
    dropped.
    """
    if config.uses("exact") and a.exact_hash == b.exact_hash:
        return [make_edge(a.id, b.id, EvidenceMethod.EXACT)]
    if distance is None or not config.uses("perceptual"):
        return []
    if distance <= config.tight_distance:
        primary = make_edge(a.id, b.id, EvidenceMethod.PERCEPTUAL_TIGHT, distance)
    elif distance <= config.loose_distance:
        primary = make_edge(a.id, b.id, EvidenceMethod.PERCEPTUAL_LOOSE, distance)
    else:
        return []
    corroborating = _corroborating_edges(a, b, config)
    if primary.method is EvidenceMethod.PERCEPTUAL_LOOSE and not corroborating:
        return []
    return [primary] + corroborating


def _record_edges(
    record: ImageRecord,
    by_id: Dict[int, ImageRecord],
    index: SimilarityIndex,
    config: EngineConfig,
) -> List[SimilarityEdge]:
    edges: List[SimilarityEdge] = []

    if config.uses("exact"):
        group = {other_id for other_id in index.lookup_exact(record.exact_hash) if other_id in by_id}
        group.add(record.id)
        anchor = min(group)
        if anchor != record.id:
            edges.append(make_edge(anchor, record.id, EvidenceMethod.EXACT))

    if not config.uses("perceptual"):
        return edges

    best: Dict[int, int] = {}
    for rotated in hash_rotations(parse_hash(record.perceptual_hash)):
        for other_id, distance in index.query(rotated, config.loose_distance):
            if other_id <= record.id:
                continue
            if distance < best.get(other_id, config.loose_distance + 1):
                best[other_id] = distance

    for other_id in sorted(best):
        other = by_id.get(other_id)
        if other is None:
            continue
        if config.uses("exact") and other.exact_hash == record.exact_hash:
            continue
        edges.extend(pair_edges(record, other, best[other_id], config))
    return edges


def _chunked(items: Sequence[ImageRecord], size: int) -> List[Sequence[ImageRecord]]:
    return [items[start:start + size] for start in range(0, len(items), size)]


def build_evidence(
    records: Sequence[ImageRecord],
    index: SimilarityIndex,
    config: EngineConfig,
) -> EvidenceGraph:
    """
    Insert every record into the index, then query it for each record and
    collect edges. Workers fill private buffers that are merged in order.

    Args:
        records: Fingerprinted records with unique ids.
        index: Explicitly constructed similarity index (may be pre-populated).
        config: Validated engine configuration.

    Returns:
        EvidenceGraph with all retained edges.
    """
    by_id = {record.id: record for record in records}
    for record in records:
        index.insert(record.id, parse_hash(record.perceptual_hash), record.exact_hash)

    def work(chunk: Sequence[ImageRecord]) -> List[SimilarityEdge]:
        buffer: List[SimilarityEdge] = []
        for record in chunk:
            buffer.extend(_record_edges(record, by_id, index, config))
        return buffer

    chunks = _chunked(list(records), max(1, config.batch_size))
    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        buffers = list(executor.map(work, chunks))

    graph = EvidenceGraph()
    for buffer in buffers:
        for edge in buffer:
            graph.add(edge)

    primary_pairs = {edge.pair for edge in graph.edges() if edge.method in PRIMARY_METHODS}
    exact_groups = index.exact.groups()
    log_info(
        f"Evidence graph: {len(graph)} edges across {len(primary_pairs)} candidate pairs, "
        f"{len(exact_groups)} exact-copy groups"
    )
    return graph
