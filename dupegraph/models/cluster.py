"""
Module: cluster
Purpose: Duplicate cluster dataclass.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple


@dataclass(frozen=True)
class Cluster:
    """
    Group of records treated as the same picture.
    """

    cluster_id: str
    member_ids: FrozenSet[int]
    canonical_id: Optional[int]
    confidence: float
    signals: Tuple[str, ...] = field(default_factory=tuple)
    selection_reason: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.member_ids)

    @property
    def is_singleton(self) -> bool:
        return len(self.member_ids) == 1
