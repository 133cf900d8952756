"""
Module: canonical
Purpose: Deterministic canonical selection per cluster.
"""

from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Tuple

from .exceptions import DuplicateDetectionError
from .models.cluster import Cluster
from .models.record import ImageRecord
from .utils import log_error

VerboseReporter = Callable[[str], None]

LOSSLESS_FORMATS = {"png", "tiff", "tif", "bmp", "gif", "ppm", "pgm", "pbm", "tga", "ico", "qoi"}


def is_lossless(record: ImageRecord) -> bool:
    return (record.format or "").lower() in LOSSLESS_FORMATS


def _describe_record(record: ImageRecord) -> str:
    fmt = (record.format or "unknown").upper()
    kind = "LOSSLESS" if is_lossless(record) else "LOSSY"
    return f"{fmt} {kind} {record.width}x{record.height} {record.byte_size}B"


def is_better(candidate: ImageRecord, current: ImageRecord) -> Tuple[bool, str]:
    """
    Compare two records by the canonical rules. Total and strict: exactly
    one of is_better(a, b) / is_better(b, a) holds for distinct records.
    """
    if candidate.area != current.area:
        return candidate.area > current.area, "HIGHER_RESOLUTION_WINS"

    if candidate.byte_size != current.byte_size:
        return candidate.byte_size > current.byte_size, "LARGER_FILESIZE_WINS"

    candidate_lossless = is_lossless(candidate)
    current_lossless = is_lossless(current)
    if candidate_lossless != current_lossless:
        return candidate_lossless, "LOSSLESS_BEATS_LOSSY"

    candidate_ts: datetime | None = candidate.captured_at
    current_ts: datetime | None = current.captured_at
    if candidate_ts is not None or current_ts is not None:
        if candidate_ts is None:
            return False, "OLDEST_CAPTURE_WINS"
        if current_ts is None:
            return True, "OLDEST_CAPTURE_WINS"
        if candidate_ts != current_ts:
            return candidate_ts < current_ts, "OLDEST_CAPTURE_WINS"

    if candidate.path != current.path:
        return candidate.path < current.path, "PATH_TIEBREAK"
    return candidate.id < current.id, "ID_TIEBREAK"


def select_canonical(
    cluster: Cluster,
    records: Mapping[int, ImageRecord],
    reporter: VerboseReporter | None = None,
) -> Tuple[str, int, str | None]:
    """
    Choose the canonical member of a cluster.

    Args:
        cluster: Cluster whose members are looked up in `records`.
        records: Mapping of record id to record.
        reporter: Optional callback for verbose rule evaluation logging.

    Returns:
        Tuple of (cluster_id, canonical_id, deciding rule or None for singletons).

    Raises:
        DuplicateDetectionError: If the cluster is empty or references unknown ids.
    """
    canonical: ImageRecord | None = None
    reason: str | None = None
    for member_id in sorted(cluster.member_ids):
        record = records.get(member_id)
        if record is None:
            log_error(f"Cluster {cluster.cluster_id} references unknown record {member_id}")
            raise DuplicateDetectionError(f"Unknown record {member_id} in {cluster.cluster_id}")
        if canonical is None:
            canonical = record
            if reporter:
                reporter(f"[{cluster.cluster_id}] INITIAL_CANONICAL → {_describe_record(record)}")
            continue
        better, rule = is_better(record, canonical)
        if reporter:
            winner, loser = (record, canonical) if better else (canonical, record)
            reporter(
                f"[{cluster.cluster_id}] kept because {rule} → "
                f"{_describe_record(winner)} over {_describe_record(loser)}"
            )
        if better:
            canonical = record
            reason = rule
        elif reason is None:
            reason = rule

    if canonical is None:
        log_error("Unable to select canonical record for empty cluster")
        raise DuplicateDetectionError(f"Cluster {cluster.cluster_id} has no members")
    return cluster.cluster_id, canonical.id, reason


def assign_canonicals(
    clusters: List[Cluster],
    records: Mapping[int, ImageRecord],
    reporter: VerboseReporter | None = None,
) -> List[Cluster]:
    """Return new clusters with canonical_id and selection_reason filled in."""
    selected: Dict[str, Tuple[int, str | None]] = {}
    for cluster in clusters:
        cluster_id, canonical_id, reason = select_canonical(cluster, records, reporter=reporter)
        selected[cluster_id] = (canonical_id, reason)
    return [
        replace(
            cluster,
            canonical_id=selected[cluster.cluster_id][0],
            selection_reason=selected[cluster.cluster_id][1],
        )
        for cluster in clusters
    ]
