"""
Module: planner
Purpose: Convert clusters and canonical choices into a reviewable action plan.
"""

import os
from typing import List, Mapping, Sequence

from .config import EngineConfig
from .exceptions import ActionPlanError
from .models.actions import Action, Disposition
from .models.cluster import Cluster
from .models.plan import ActionPlan, RunSummary
from .models.record import ImageRecord
from .review import (
    REASON_CANONICAL,
    REASON_CORROBORATED_DUPLICATE,
    REASON_DELETE_BELOW_FLOOR,
    REASON_EXACT_DUPLICATE,
    REASON_LINK_TO_CANONICAL,
    REASON_LOW_CONFIDENCE,
    REASON_POLICY_REVIEW,
    REASON_UNIQUE,
    describe_reason,
)
from .reporting import write_log
from .utils import log_error


def redundant_disposition(cluster: Cluster, config: EngineConfig) -> tuple[Disposition, str]:
    """
    Disposition for a non-canonical member of `cluster`.

    Low-confidence clusters are always routed to review, whatever the policy.
    """
    if cluster.confidence < config.auto_confidence:
        return Disposition.MOVE_TO_REVIEW, REASON_LOW_CONFIDENCE
    if config.redundant_policy == "delete":
        if cluster.confidence >= config.delete_confidence:
            if set(cluster.signals) == {"exact"}:
                return Disposition.DELETE, REASON_EXACT_DUPLICATE
            return Disposition.DELETE, REASON_CORROBORATED_DUPLICATE
        return Disposition.MOVE_TO_REVIEW, REASON_DELETE_BELOW_FLOOR
    if config.redundant_policy == "link":
        return Disposition.LINK, REASON_LINK_TO_CANONICAL
    return Disposition.MOVE_TO_REVIEW, REASON_POLICY_REVIEW


def _cluster_actions(cluster: Cluster, records: Mapping[int, ImageRecord], config: EngineConfig) -> List[Action]:
    if cluster.canonical_id is None:
        raise ActionPlanError(f"Cluster {cluster.cluster_id} has no canonical record")
    if cluster.canonical_id not in cluster.member_ids:
        raise ActionPlanError(f"Canonical of {cluster.cluster_id} is not a member")

    actions: List[Action] = []
    redundant_disp, redundant_reason = redundant_disposition(cluster, config)
    for member_id in cluster.member_ids:
        record = records[member_id]
        if member_id == cluster.canonical_id:
            disposition = Disposition.KEEP
            reason = REASON_UNIQUE if cluster.is_singleton else REASON_CANONICAL
        else:
            disposition, reason = redundant_disp, redundant_reason
        actions.append(
            Action(
                target_id=member_id,
                disposition=disposition,
                reason=reason,
                path=os.path.abspath(record.path),
                cluster_id=cluster.cluster_id,
                canonical_id=cluster.canonical_id,
            )
        )
    actions.sort(key=lambda action: (action.disposition is not Disposition.KEEP, action.path, action.target_id))
    return actions


def build_action_plan(
    clusters: Sequence[Cluster],
    records: Mapping[int, ImageRecord],
    config: EngineConfig,
    summary: RunSummary | None = None,
) -> ActionPlan:
    """
    Map every cluster member to a disposition. Never touches the filesystem.

    Args:
        clusters: Clusters with canonical ids assigned.
        records: Mapping of record id to record.
        config: Validated configuration (policy, confidence floors, dry-run).
        summary: Optional run summary carried along for reporting.

    Returns:
        ActionPlan ordered by cluster, canonical first, then path.

    Raises:
        ActionPlanError: When a cluster lacks a valid canonical record.
    """
    try:
        actions: List[Action] = []
        review_clusters = 0
        for cluster in clusters:
            cluster_actions = _cluster_actions(cluster, records, config)
            if any(action.disposition is Disposition.MOVE_TO_REVIEW for action in cluster_actions):
                review_clusters += 1
            actions.extend(cluster_actions)
    except ActionPlanError:
        raise
    except Exception as exc:
        log_error(f"Failed to build action plan: {exc}")
        raise ActionPlanError("Failed to build action plan") from exc

    counts = {disposition.value: 0 for disposition in Disposition}
    for action in actions:
        counts[action.disposition.value] += 1
    plan = ActionPlan(
        actions=actions,
        disposition_counts=counts,
        cluster_count=len(clusters),
        duplicate_cluster_count=sum(1 for cluster in clusters if not cluster.is_singleton),
        review_cluster_count=review_clusters,
        dry_run=config.dry_run,
        summary=summary,
    )
    log_plan_counts(plan)
    return plan


def log_plan_counts(plan: ActionPlan) -> dict[str, int]:
    """
    Log per-disposition counts; no filesystem changes or console output.

    Args:
        plan: ActionPlan to summarize.

    Returns:
        Dictionary mapping dispositions to planned counts.
    """
    entries = [f"[INFO] Plan - action count: {len(plan.actions)}"]
    action_summary: dict[str, int] = {}
    for action in plan.actions:
        action_summary[action.disposition.value] = action_summary.get(action.disposition.value, 0) + 1

    for disposition, count in action_summary.items():
        entries.append(f"[INFO] {disposition}: {count}")
    write_log(entries)
    return action_summary


def describe_plan(plan: ActionPlan) -> str:
    """
    Human-readable summary of a plan and the files skipped during the run.
    """
    mode = "DRY RUN (plan only)" if plan.dry_run else "PLAN FOR EXECUTION"
    lines = [
        f"{mode}: {len(plan.actions)} files in {plan.cluster_count} clusters",
        f"  duplicate clusters: {plan.duplicate_cluster_count}",
        f"  clusters needing review: {plan.review_cluster_count}",
    ]
    for disposition in Disposition:
        lines.append(f"  {disposition.value}: {plan.disposition_counts.get(disposition.value, 0)}")
    reasons: dict[str, int] = {}
    for action in plan.actions:
        if action.disposition is not Disposition.KEEP:
            reasons[action.reason] = reasons.get(action.reason, 0) + 1
    for reason in sorted(reasons):
        lines.append(f"    {describe_reason(reason)}: {reasons[reason]}")
    summary = plan.summary
    if summary is not None:
        lines.append(
            f"  files seen: {summary.files_seen}, fingerprinted: {summary.records}, "
            f"from checkpoint: {summary.checkpoint_hits}"
        )
        if summary.metadata_warnings:
            lines.append(f"  unreadable EXIF (kept without metadata): {summary.metadata_warnings}")
        if summary.checkpoint_corrupt:
            lines.append("  checkpoint was unreadable and has been rebuilt")
        skipped = summary.skipped_by_reason()
        lines.append(f"  skipped: {len(summary.skipped)}")
        for reason in sorted(skipped):
            lines.append(f"    {reason}: {skipped[reason]}")
    return "\n".join(lines)
