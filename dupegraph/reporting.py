"""
Module: reporting
Purpose: Logging and report generation utilities.
"""

import csv
import json
import os
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence

from .models.actions import Action, Disposition
from .models.cluster import Cluster
from .models.plan import ActionPlan
from .models.record import ImageRecord
from .review import describe_reason

ARTIFACTS_DIR = "artifacts"
LOG_FILE_NAME = os.path.join(ARTIFACTS_DIR, "dupegraph.log")
CSV_FIELDS = [
    "cluster_id",
    "confidence",
    "needs_review",
    "signals",
    "canonical_path",
    "path",
    "disposition",
    "reason",
]


def artifact_path(filename: str) -> str:
    return os.path.abspath(os.path.join(ARTIFACTS_DIR, filename))


def ensure_log_initialized() -> str:
    """Ensure the dupegraph log file exists and return its absolute path."""
    path = os.path.abspath(LOG_FILE_NAME)
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    with open(path, "a", encoding="utf-8"):
        pass
    return path


def write_log(entries: List[str], outfile: str = LOG_FILE_NAME):
    """
    Append entries to logfile.
    """
    directory = os.path.dirname(os.path.abspath(outfile)) or "."
    os.makedirs(directory, exist_ok=True)
    timestamp = datetime.now(timezone.utc).isoformat()
    with open(outfile, "a", encoding="utf-8") as handle:
        for entry in entries:
            normalized = entry if entry.startswith("[") else f"[INFO] {entry}"
            handle.write(f"[{timestamp}] {normalized}\n")


class EnhancedJSONEncoder(json.JSONEncoder):
    def default(self, o: Any) -> Any:
        if is_dataclass(o) and not isinstance(o, type):
            return asdict(o)
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, (set, frozenset)):
            return sorted(o)
        return super().default(o)


def build_report(
    clusters: Sequence[Cluster],
    records: Mapping[int, ImageRecord],
    plan: ActionPlan,
) -> Dict[str, Any]:
    """
    Structured report: one entry per cluster with member paths, canonical
    path, per-member disposition, confidence and contributing signals.
    """
    by_target: Dict[int, Action] = {action.target_id: action for action in plan.actions}
    entries: List[Dict[str, Any]] = []
    for cluster in clusters:
        canonical = records[cluster.canonical_id] if cluster.canonical_id is not None else None
        members = []
        for member_id in sorted(cluster.member_ids, key=lambda mid: (records[mid].path, mid)):
            action = by_target.get(member_id)
            members.append(
                {
                    "id": member_id,
                    "path": os.path.abspath(records[member_id].path),
                    "disposition": action.disposition.value if action else None,
                    "reason": action.reason if action else None,
                    "reason_text": describe_reason(action.reason) if action else None,
                }
            )
        entries.append(
            {
                "cluster_id": cluster.cluster_id,
                "confidence": cluster.confidence,
                "needs_review": any(m["disposition"] == Disposition.MOVE_TO_REVIEW.value for m in members),
                "signals": list(cluster.signals),
                "canonical_path": os.path.abspath(canonical.path) if canonical else None,
                "selection_reason": cluster.selection_reason,
                "member_paths": [m["path"] for m in members],
                "members": members,
            }
        )
    summary = plan.summary
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": plan.dry_run,
        "cluster_count": plan.cluster_count,
        "duplicate_cluster_count": plan.duplicate_cluster_count,
        "review_cluster_count": plan.review_cluster_count,
        "disposition_counts": dict(plan.disposition_counts),
        "summary": asdict(summary) if summary is not None else None,
        "clusters": entries,
    }


def write_json_report(report: Any, outfile: str):
    """
    Write a report or plan as JSON. Dataclasses and enums are encoded inline.
    """
    directory = os.path.dirname(os.path.abspath(outfile)) or "."
    os.makedirs(directory, exist_ok=True)
    with open(outfile, "w", encoding="utf-8") as handle:
        json.dump(report, handle, cls=EnhancedJSONEncoder, indent=2, sort_keys=False)
    write_log([f"[INFO] JSON report written to {os.path.abspath(outfile)}"])


def write_csv_report(report: Dict[str, Any], outfile: str):
    """
    Write one CSV row per cluster member.
    """
    directory = os.path.dirname(os.path.abspath(outfile)) or "."
    os.makedirs(directory, exist_ok=True)
    with open(outfile, "w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for cluster in report["clusters"]:
            for member in cluster["members"]:
                writer.writerow(
                    {
                        "cluster_id": cluster["cluster_id"],
                        "confidence": f"{cluster['confidence']:.3f}",
                        "needs_review": "yes" if cluster["needs_review"] else "no",
                        "signals": "+".join(cluster["signals"]),
                        "canonical_path": cluster["canonical_path"],
                        "path": member["path"],
                        "disposition": member["disposition"],
                        "reason": member["reason"],
                    }
                )
    write_log([f"[INFO] CSV report written to {os.path.abspath(outfile)}"])
