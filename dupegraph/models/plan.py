"""
Module: plan
Purpose: Action plan and run summary dataclasses.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .actions import Action


@dataclass(frozen=True)
class SkippedFile:
    path: str
    reason: str
    detail: str = ""


@dataclass
class RunSummary:
    """
    Counters for one pipeline run. Every skipped file is listed.
    """

    files_seen: int = 0
    records: int = 0
    checkpoint_hits: int = 0
    metadata_warnings: int = 0
    checkpoint_corrupt: bool = False
    skipped: List[SkippedFile] = field(default_factory=list)

    def skip(self, path: str, reason: str, detail: str = "") -> None:
        self.skipped.append(SkippedFile(path=path, reason=reason, detail=detail))

    def skipped_by_reason(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for item in self.skipped:
            counts[item.reason] = counts.get(item.reason, 0) + 1
        return counts


@dataclass(frozen=True)
class ActionPlan:
    """
    Represents the full reviewable plan. Never executed in-process.
    """

    actions: List[Action]
    disposition_counts: Dict[str, int]
    cluster_count: int
    duplicate_cluster_count: int
    review_cluster_count: int
    dry_run: bool = True
    summary: Optional[RunSummary] = None
