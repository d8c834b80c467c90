from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from automediarename.commit import apply_times, commit, write_candidate
from automediarename.config import RunConfig, load_config
from automediarename.errors import (
    AttributeCopyError,
    CodecError,
    CommitError,
    ConfigurationError,
    RunLockedError,
    StorageUnavailableError,
)
from automediarename.jsonl_logger import JsonlLogger
from automediarename.lock import RunLock
from automediarename.models import (
    MIME_JPEG,
    DocumentNode,
    Failed,
    FileTimes,
    ProcessingOutcome,
    Recompressed,
    Renamed,
    Skipped,
    TimeWindow,
    outcome_record,
)
from automediarename.paths import (
    default_config_path,
    get_state_root,
    lock_path,
    outcomes_path,
    status_path,
    watermark_path,
)
from automediarename.recompress import recompress_jpeg
from automediarename.reporter import ActivityLog, write_summary
from automediarename.selection import Selection, SelectionSkip, select
from automediarename.storage import LocalStorage, StorageAdapter, read_bytes
from automediarename.time_utils import local_timestamp_str, ms_to_iso
from automediarename.walker import TreeWalker
from automediarename.watermark import WatermarkStore, advance, compute_window

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_DEGRADED = 1
EXIT_ERROR = 2


@dataclass
class RunReport:
    run_ts: str
    dry_run: bool
    media_root: str
    window: TimeWindow
    counts: Counter = field(default_factory=Counter)
    skip_reasons: Counter = field(default_factory=Counter)
    failures_by_reason: dict[str, int] = field(default_factory=dict)
    traversal_failures: list[str] = field(default_factory=list)
    files_seen: int = 0
    processed: int = 0
    cancelled: bool = False
    watermark_before: int | None = None
    watermark_after: int | None = None


class OutcomeRecorder:
    """Counts outcomes and forwards them to the JSONL outcome stream."""

    def __init__(self, sink: JsonlLogger | None, run_ts: str) -> None:
        self.sink = sink
        self.run_ts = run_ts
        self.counts: Counter[str] = Counter()
        self.failures_by_reason: Counter[str] = Counter()

    def append(self, outcome: ProcessingOutcome) -> None:
        self.counts[outcome.kind] += 1
        if isinstance(outcome, Failed):
            self.failures_by_reason[outcome.reason.split(":", 1)[0]] += 1
        if self.sink is not None:
            self.sink.append({"time": self.run_ts, **outcome_record(outcome)})


class Pipeline:
    """Walk, select, recompress and commit, one file at a time."""

    def __init__(
        self,
        storage: StorageAdapter,
        config: RunConfig,
        *,
        activity: ActivityLog,
        recorder: OutcomeRecorder,
        should_cancel: Callable[[], bool] | None = None,
    ) -> None:
        self.storage = storage
        self.config = config
        self.activity = activity
        self.recorder = recorder
        self.should_cancel = should_cancel

    def _prepare_candidate(self, node: DocumentNode) -> tuple[str | None, float | None, FileTimes | None]:
        """Recompress a JPEG and stage it under the temp name.

        Returns ``(candidate_id, ratio, original_times)``. Any failure here
        falls back to a plain rename with ``(None, None, None)``.
        """
        try:
            data = read_bytes(self.storage, node.id)
            result = recompress_jpeg(
                data,
                quality=self.config.jpeg_quality,
                overwrite_ratio=self.config.overwrite_ratio,
            )
        except (CodecError, OSError) as exc:
            self.activity.add_line(f'Error compressing "{node.name}": {exc}', level=logging.ERROR)
            return None, None, None

        verdict = "keep" if result.kept else "discard"
        self.activity.add_line(f'Compressing "{node.name}": {round(100 * result.ratio)}% → {verdict}')
        if result.data is None:
            return None, None, None

        times: FileTimes | None = None
        if self.config.copy_timestamps:
            try:
                times = self.storage.get_attributes(node.id)
            except Exception as exc:  # noqa: BLE001
                self.activity.add_line(
                    f'Could not read dates of "{node.name}": {exc}',
                    level=logging.WARNING,
                )

        try:
            candidate_id = write_candidate(self.storage, node, result.data)
        except CommitError as exc:
            self.activity.add_line(f'Could not stage "{node.name}": {exc}', level=logging.ERROR)
            return None, None, None
        return candidate_id, result.ratio, times

    def _copy_times(self, node: DocumentNode, new_id: str, times: FileTimes) -> None:
        try:
            apply_times(self.storage, new_id, times)
        except AttributeCopyError as exc:
            self.activity.add_line(
                f'Could not set file creation and last modification dates for "{node.name}": {exc}',
                level=logging.WARNING,
            )

    def process_file(self, node: DocumentNode, selection: Selection) -> ProcessingOutcome:
        candidate_id: str | None = None
        ratio: float | None = None
        times: FileTimes | None = None
        if node.mime_type == MIME_JPEG:
            candidate_id, ratio, times = self._prepare_candidate(node)

        if candidate_id is None and selection.new_name != node.name:
            self.activity.add_line(f'Renaming "{node.name}"…')

        try:
            result = commit(
                self.storage,
                node,
                selection.new_name,
                candidate_id,
                keep_backup=self.config.keep_backup,
            )
        except CommitError as exc:
            self.activity.add_line(f'Failed to commit "{node.name}": {exc}', level=logging.ERROR)
            return Failed(node.id, node.name, f"COMMIT_{exc.stage.upper()}: {exc}")

        if result is None:
            return Skipped(node.id, node.name, "name unchanged")

        if candidate_id is not None and ratio is not None:
            if times is not None:
                self._copy_times(node, result.new_id, times)
            return Recompressed(node.id, node.name, selection.new_name, ratio)
        return Renamed(node.id, node.name, selection.new_name)

    def run(self, root_id: str, window: TimeWindow, report: RunReport) -> None:
        walker = TreeWalker(self.storage, should_cancel=self.should_cancel)
        for node in walker.walk(root_id):
            report.files_seen += 1
            decision = select(node, window, self.config.selection_rules)
            if isinstance(decision, SelectionSkip):
                report.skip_reasons[decision.reason] += 1
                LOGGER.debug("Skipping %s: %s", node.id, decision.reason)
                continue

            report.processed += 1
            self.activity.add_line(f'Found "{node.name}" → "{decision.new_name}"')
            if self.config.dry_run:
                outcome: ProcessingOutcome = Skipped(node.id, node.name, "dry run")
            else:
                try:
                    outcome = self.process_file(node, decision)
                except Exception as exc:  # noqa: BLE001
                    self.activity.add_line(f'Unexpected error on "{node.name}": {exc}', level=logging.ERROR)
                    outcome = Failed(node.id, node.name, f"UNEXPECTED: {type(exc).__name__}: {exc}")
            self.recorder.append(outcome)

        report.cancelled = walker.cancelled
        report.traversal_failures = [str(exc) for exc in walker.failures]
        for exc in walker.failures:
            self.activity.add_line(f"Could not list {exc.dir_id}: {exc.detail}", level=logging.WARNING)


def run_once(
    config: RunConfig,
    state_root: Path | None,
    *,
    storage: StorageAdapter | None = None,
    should_cancel: Callable[[], bool] | None = None,
    now: int | None = None,
) -> RunReport:
    """One full pass over the media tree.

    ``state_root`` holds the watermark, outcome stream and logs; ``None``
    keeps the run in memory (watermark handling is then skipped).
    """
    if storage is None:
        storage = LocalStorage(config.media_root)

    run_ts = local_timestamp_str()
    store = WatermarkStore(watermark_path(state_root)) if state_root is not None else None
    previous = store.read_minimum_timestamp() if store is not None else None
    window = compute_window(previous, now=now, lag_minutes=config.lag_minutes)

    activity = ActivityLog(state_root)
    sink = JsonlLogger(outcomes_path(state_root)) if state_root is not None else None
    recorder = OutcomeRecorder(sink, run_ts)
    report = RunReport(
        run_ts=run_ts,
        dry_run=config.dry_run,
        media_root=str(config.media_root),
        window=window,
        watermark_before=window.minimum_timestamp,
    )

    activity.add_line(
        f"Starting run on {config.media_root} "
        f"(files modified {ms_to_iso(window.minimum_timestamp)} .. {ms_to_iso(window.maximum_timestamp)})"
    )
    if window.minimum_timestamp >= window.maximum_timestamp:
        activity.add_line("Time window is empty; no file can be selected.", level=logging.WARNING)

    pipeline = Pipeline(storage, config, activity=activity, recorder=recorder, should_cancel=should_cancel)
    pipeline.run(storage.root_id(), window, report)

    report.counts = recorder.counts
    report.failures_by_reason = dict(sorted(recorder.failures_by_reason.items()))
    activity.add_line(f"Run found {report.processed} files to process.")

    if report.cancelled:
        activity.add_line("Run cancelled; watermark left unchanged.", level=logging.WARNING)
    elif config.dry_run:
        LOGGER.info("Dry run; watermark left unchanged")
    elif store is not None:
        report.watermark_after = advance(store, window.minimum_timestamp, now=now)
    return report


def build_summary(report: RunReport) -> list[str]:
    lines = [
        f"--- Run Summary [{report.run_ts}] ---",
        f"dry_run: {report.dry_run}",
        f"media_root: {report.media_root}",
        f"window: {ms_to_iso(report.window.minimum_timestamp)} .. {ms_to_iso(report.window.maximum_timestamp)}",
        f"files_seen: {report.files_seen}",
        f"processed: {report.processed}",
        f"RENAMED: {report.counts[Renamed.kind]}",
        f"RECOMPRESSED: {report.counts[Recompressed.kind]}",
        f"SKIPPED: {report.counts[Skipped.kind]}",
        f"FAILED: {report.counts[Failed.kind]}",
        f"cancelled: {report.cancelled}",
        "skipped_by_filter:",
    ]
    if report.skip_reasons:
        for reason, value in sorted(report.skip_reasons.items()):
            lines.append(f"  {reason}: {value}")
    else:
        lines.append("  (none)")

    lines.append("failures_by_reason:")
    if report.failures_by_reason:
        for reason, value in report.failures_by_reason.items():
            lines.append(f"  {reason}: {value}")
    else:
        lines.append("  (none)")

    lines.append("traversal_failures:")
    lines.extend(f"  {item}" for item in report.traversal_failures or ["(none)"])
    if report.watermark_after is not None:
        lines.append(f"watermark: {ms_to_iso(report.watermark_after)}")
    return lines


def evaluate_exit_code(report: RunReport) -> int:
    """Exit code policy.

    Per-file failures are reported individually and do not degrade the run.
    A run is degraded when part of the tree could not be listed or when it
    was cancelled before the watermark could move.
    """
    if report.cancelled or report.traversal_failures:
        return EXIT_DEGRADED
    return EXIT_OK


def read_status(root: Path | None = None) -> dict[str, Any] | None:
    root = root or get_state_root()
    path = status_path(root)
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None


def _write_status(root: Path, payload: dict[str, Any], exit_code: int) -> dict[str, Any]:
    prev = read_status(root) or {}
    prev_err = int(prev.get("consecutive_error", 0) or 0)
    prev_deg = int(prev.get("consecutive_degraded", 0) or 0)

    payload = {
        **payload,
        "last_exit_code": exit_code,
        "consecutive_error": prev_err + 1 if exit_code == EXIT_ERROR else 0,
        "consecutive_degraded": prev_deg + 1 if exit_code == EXIT_DEGRADED else 0,
    }
    status_path(root).write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    return payload


def _report_status(report: RunReport) -> dict[str, Any]:
    return {
        "last_run": report.run_ts,
        "dry_run": report.dry_run,
        "media_root": report.media_root,
        "files_seen": report.files_seen,
        "processed": report.processed,
        "counts": dict(report.counts),
        "failures_by_reason": report.failures_by_reason,
        "traversal_failures": report.traversal_failures,
        "cancelled": report.cancelled,
        "watermark_ms": report.watermark_after or report.watermark_before,
    }


def _notify_if_needed(exit_code: int, status: dict[str, Any]) -> None:
    try:
        from automediarename.notify import notify

        if exit_code == EXIT_ERROR:
            notify(f"[AutoMediaRename] ERROR (exit=2) at {status.get('last_run')}: {status.get('error', '')}")
        elif exit_code == EXIT_DEGRADED and int(status.get("consecutive_degraded", 0) or 0) >= 3:
            notify(f"[AutoMediaRename] DEGRADED x{status.get('consecutive_degraded')}\nlast_run={status.get('last_run')}")
    except Exception as exc:  # noqa: BLE001
        LOGGER.warning("Notification failed: %s", exc)


def run_sync(
    config_path: Path | None = None,
    *,
    media_root: str | None = None,
    dry_run: bool = False,
    should_cancel: Callable[[], bool] | None = None,
) -> int:
    root = get_state_root()
    config_path = config_path or default_config_path(root)
    try:
        config = load_config(config_path, media_root=media_root, dry_run=dry_run)
        with RunLock(lock_path(root)):
            report = run_once(config, root, should_cancel=should_cancel)
    except (ConfigurationError, StorageUnavailableError, RunLockedError) as exc:
        return _fail(root, exc)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Fatal error during run")
        return _fail(root, exc)

    summary = build_summary(report)
    print("\n".join(summary))
    write_summary(root, summary)

    exit_code = evaluate_exit_code(report)
    try:
        status = _write_status(root, _report_status(report), exit_code)
    except OSError as exc:
        LOGGER.warning("Failed to write status: %s", exc)
        status = _report_status(report)
    _notify_if_needed(exit_code, status)
    print(f"[AutoMediaRename] Run finished with exit={exit_code}.")
    return exit_code


def _fail(root: Path, exc: Exception) -> int:
    print(f"[AutoMediaRename] Fatal error: {type(exc).__name__}: {exc}")
    fallback = {
        "last_run": local_timestamp_str(),
        "processed": 0,
        "error": f"{type(exc).__name__}: {exc}",
    }
    try:
        status = _write_status(root, fallback, EXIT_ERROR)
    except OSError:
        status = fallback
    _notify_if_needed(EXIT_ERROR, status)
    return EXIT_ERROR
