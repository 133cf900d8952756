"""
Module: actions
Purpose: Defines the data structures for planned actions.
"""

from dataclasses import dataclass
from enum import Enum


class Disposition(str, Enum):
    KEEP = "keep"
    MOVE_TO_REVIEW = "move-to-review"
    DELETE = "delete"
    LINK = "link"


@dataclass(frozen=True)
class Action:
    """Planned disposition for one record."""
    target_id: int
    disposition: Disposition
    reason: str
    path: str
    cluster_id: str
    canonical_id: int
