"""
Module: review
Purpose: Shared constants and helpers for action reasons and review routing.
"""

from __future__ import annotations

REASON_CANONICAL = "canonical"
REASON_UNIQUE = "unique"
REASON_LOW_CONFIDENCE = "low_confidence"
REASON_POLICY_REVIEW = "policy_review"
REASON_DELETE_BELOW_FLOOR = "delete_below_confidence_floor"
REASON_EXACT_DUPLICATE = "exact_duplicate"
REASON_CORROBORATED_DUPLICATE = "corroborated_duplicate"
REASON_LINK_TO_CANONICAL = "link_to_canonical"

_REASON_LABELS = {
    REASON_CANONICAL: "Chosen as the cluster's canonical copy",
    REASON_UNIQUE: "No duplicate found",
    REASON_LOW_CONFIDENCE: "Weak evidence (confidence below auto-action threshold)",
    REASON_POLICY_REVIEW: "Set aside for review (default policy)",
    REASON_DELETE_BELOW_FLOOR: "Delete requested but confidence below the delete floor",
    REASON_EXACT_DUPLICATE: "Byte-identical copy of the canonical copy",
    REASON_CORROBORATED_DUPLICATE: "Visual match fully corroborated by metadata and filename",
    REASON_LINK_TO_CANONICAL: "Replace with a link to the canonical copy",
}


def describe_reason(reason: str | None) -> str:
    """
    Return a human-readable description for an action reason.
    """
    if not reason:
        return "Set aside for review (needs confirmation)"
    return _REASON_LABELS.get(reason, reason)
