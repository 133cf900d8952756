"""
Module: engine
Purpose: Run the full pipeline from source files to an action plan.
"""

from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from .canonical import VerboseReporter, assign_canonicals
from .checkpoint import CheckpointStore
from .config import EngineConfig
from .decoder import decode_image
from .duplicates import build_clusters
from .evidence import EvidenceGraph, build_evidence
from .exceptions import RunAborted
from .fingerprint import Decoder, ExtractionResult, fingerprint_task
from .index import SimilarityIndex
from .models.cluster import Cluster
from .models.plan import ActionPlan, RunSummary
from .models.record import ImageRecord, SourceFile
from .planner import build_action_plan
from .utils import log_info, log_warning

StopCheck = Callable[[], bool]


@dataclass(frozen=True)
class RunResult:
    records: List[ImageRecord]
    graph: EvidenceGraph
    clusters: List[Cluster]
    plan: ActionPlan
    summary: RunSummary


def _open_executor(mode: str, max_workers: int | None) -> Executor:
    """
    Worker pool for fingerprinting. "auto" and "process" try a process pool
    and fall back to threads where the platform cannot start one.
    """
    if mode != "thread":
        try:
            pool = ProcessPoolExecutor(max_workers=max_workers)
        except (NotImplementedError, PermissionError, OSError) as exc:
            log_warning(f"ProcessPool unavailable, falling back to ThreadPool for fingerprinting: {exc}")
        else:
            log_info(f"Fingerprinting on a process pool (executor={mode})")
            return pool
    log_info(f"Fingerprinting on a thread pool (executor={mode})")
    return ThreadPoolExecutor(max_workers=max_workers)


def _collect(result: ExtractionResult, records: List[ImageRecord], summary: RunSummary, store: CheckpointStore | None) -> None:
    if result.record is None:
        summary.skip(result.source.path, result.skip_reason or "unknown", result.detail)
        return
    records.append(result.record)
    if result.metadata_warning:
        summary.metadata_warnings += 1
    if store is not None:
        store.put(result.source, result.record)


def fingerprint_sources(
    sources: Iterable[SourceFile],
    config: EngineConfig,
    summary: RunSummary,
    *,
    decoder: Decoder = decode_image,
    store: CheckpointStore | None = None,
    should_stop: StopCheck | None = None,
) -> List[ImageRecord]:
    """
    Fingerprint every source on a bounded worker pool.

    Ids are positions in path order, so they are stable for unchanged input.
    Work is submitted in batches of `config.batch_size`; only records are
    retained between batches.

    Raises:
        RunAborted: When `should_stop` returns True between batches. Records
            completed so far are saved to the checkpoint first.
    """
    ordered = sorted(sources, key=lambda source: source.path)
    summary.files_seen = len(ordered)
    records: List[ImageRecord] = []
    pending: List[tuple] = []

    for record_id, source in enumerate(ordered):
        cached = store.get(source, record_id) if store is not None else None
        if cached is not None:
            records.append(cached)
            summary.checkpoint_hits += 1
            store.put(source, cached)
            continue
        pending.append((record_id, source, decoder, config.read_attempts, config.read_backoff_seconds))

    if pending:
        with _open_executor(config.executor, config.max_workers) as pool:
            for start in range(0, len(pending), config.batch_size):
                if should_stop is not None and should_stop():
                    if store is not None:
                        store.save(prune=False)
                    log_warning(f"Run aborted after {len(records)} fingerprints")
                    raise RunAborted("Run aborted between files", completed=len(records))
                batch = pending[start:start + config.batch_size]
                for result in pool.map(fingerprint_task, batch):
                    _collect(result, records, summary, store)

    records.sort(key=lambda record: record.id)
    summary.records = len(records)
    return records


def run_pipeline(
    sources: Iterable[SourceFile],
    config: Optional[EngineConfig] = None,
    *,
    checkpoint_path: str | None = None,
    decoder: Decoder = decode_image,
    should_stop: StopCheck | None = None,
    reporter: VerboseReporter | None = None,
) -> RunResult:
    """
    Fingerprint, index, link, cluster, select canonicals and plan.

    Args:
        sources: Files to consider (typically from the directory walker).
        config: Engine configuration; validated before any file is touched.
        checkpoint_path: Optional resumable fingerprint store.
        decoder: Callable turning raw bytes into a Pillow image.
        should_stop: Polled between batches to abort the run.
        reporter: Optional callback for verbose clustering/selection tracing.

    Returns:
        RunResult with records, evidence, clusters, plan and summary.

    Raises:
        ConfigError: If the configuration is invalid.
        CheckpointError: If the checkpoint location is unwritable.
        RunAborted: If the run is cancelled.
    """
    config = (config or EngineConfig()).validate()
    store = CheckpointStore(checkpoint_path).load() if checkpoint_path else None
    summary = RunSummary(checkpoint_corrupt=store is not None and store.corrupt)

    records = fingerprint_sources(
        sources,
        config,
        summary,
        decoder=decoder,
        store=store,
        should_stop=should_stop,
    )
    log_info(
        f"Fingerprinted {summary.records}/{summary.files_seen} files "
        f"({summary.checkpoint_hits} from checkpoint, {len(summary.skipped)} skipped)"
    )
    for skipped in summary.skipped:
        log_warning(f"Skipped {skipped.path} ({skipped.reason}): {skipped.detail}")

    index = SimilarityIndex(max_radius=config.loose_distance, shards=config.index_shards)
    graph = build_evidence(records, index, config)
    clusters = build_clusters(records, graph, config.merge_threshold, reporter=reporter)
    by_id = {record.id: record for record in records}
    clusters = assign_canonicals(clusters, by_id, reporter=reporter)
    plan = build_action_plan(clusters, by_id, config, summary)

    if store is not None:
        store.save()
    return RunResult(records=records, graph=graph, clusters=clusters, plan=plan, summary=summary)
