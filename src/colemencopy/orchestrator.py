from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path, PurePath
import threading
from typing import Callable

from colemencopy.config import RunOptions
from colemencopy.eraser import SecureEraser
from colemencopy.executor import RetryExecutor
from colemencopy.ignore_engine import build_exclude_engine
from colemencopy.models import PassResult, ProgressEvent, RunStatus, Statistics
from colemencopy.planner import DiffPlanner
from colemencopy.pool import WorkerPool


EventCallback = Callable[[ProgressEvent], None]
ProgressCallback = Callable[[int], None]

_sizing_log = logging.getLogger("colemencopy.plan.sizing")
_sizing_log.addHandler(logging.NullHandler())
_sizing_log.propagate = False


def _prune_moved_dirs(directories: list[Path], log: logging.Logger) -> None:
    for directory in reversed(directories):
        try:
            if any(directory.iterdir()):
                continue
            directory.rmdir()
        except OSError as exc:
            log.warning("Cannot remove moved directory %s: %s", directory, exc)
            continue
        log.info("Removed moved directory: %s", directory)


def run_pair(
    source_root: Path,
    destination_root: Path,
    options: RunOptions,
    statistics: Statistics | None = None,
    cancel_event: threading.Event | None = None,
    on_event: EventCallback | None = None,
    on_progress: ProgressCallback | None = None,
    logger: logging.Logger | None = None,
) -> PassResult:
    log = logger or logging.getLogger("colemencopy.run")
    statistics = statistics if statistics is not None else Statistics()
    cancel_event = cancel_event or threading.Event()

    if not destination_root.exists():
        if options.list_only:
            log.info("Would create directory: %s", destination_root)
        else:
            log.info("Creating directory: %s", destination_root)
            destination_root.mkdir(parents=True, exist_ok=True)
        statistics.add(dirs=1)

    def make_planner(planner_log: logging.Logger | None = None) -> DiffPlanner:
        return DiffPlanner(
            source_root,
            destination_root,
            options.policy,
            exclude_engine=build_exclude_engine(options.policy.exclude_patterns, options.exclude_file),
            case_sensitive=options.case_sensitive,
            logger=planner_log,
        )

    if options.no_progress:
        on_progress = None
    total_bytes = 0
    if on_progress is not None:
        # Percentages are relative to the byte total of the whole plan.
        sizing = make_planner(_sizing_log)
        for _ in sizing:
            pass
        total_bytes = sizing.planned_bytes

    planner = make_planner()
    eraser = SecureEraser() if options.secure_delete else None
    executor = RetryExecutor(
        options.retry,
        list_only=options.list_only,
        source_remover=eraser.erase_file if eraser is not None else None,
        cancel_event=cancel_event,
    )
    pool = WorkerPool(
        executor,
        statistics,
        concurrency=options.concurrency,
        eraser=eraser,
        cancel_event=cancel_event,
        on_event=on_event,
        on_progress=on_progress,
        total_bytes=total_bytes,
    )

    outcome = pool.run(planner)
    if outcome.dropped:
        log.warning("Run cancelled: %s queued action(s) dropped", outcome.dropped)

    if planner.moved_source_dirs and outcome.status is not RunStatus.CANCELLED and not options.list_only:
        _prune_moved_dirs(planner.moved_source_dirs, log)

    return PassResult(
        source=source_root,
        destination=destination_root,
        statistics=statistics,
        status=outcome.status,
        failures=outcome.failures,
    )


def _prefixed(on_event: EventCallback | None, prefix: PurePath) -> EventCallback | None:
    if on_event is None:
        return None

    def forward(event: ProgressEvent) -> None:
        on_event(replace(event, path=prefix / event.path))

    return forward


class ChildOnlyOrchestrator:
    def __init__(
        self,
        options: RunOptions,
        pass_runner: Callable[..., PassResult] = run_pair,
        cancel_event: threading.Event | None = None,
        on_event: EventCallback | None = None,
        on_progress: ProgressCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options
        self._pass_runner = pass_runner
        self._cancel_event = cancel_event or threading.Event()
        self._on_event = on_event
        self._on_progress = on_progress
        self._log = logger or logging.getLogger("colemencopy.run")

    def children(self) -> list[Path]:
        children: list[Path] = []
        for item in sorted(self.options.source.iterdir(), key=lambda path: path.name):
            if item.is_symlink():
                continue
            if item.is_dir():
                children.append(item)
            else:
                self._log.info("Skipping top-level file in child-only mode: %s", item)
        return children

    def run(self) -> list[PassResult]:
        results: list[PassResult] = []
        for child in self.children():
            if self._cancel_event.is_set():
                break

            child_destination = self.options.destination / child.name
            self._log.info("\nProcessing child directory: %s", child.name)
            try:
                result = self._pass_runner(
                    child,
                    child_destination,
                    self.options,
                    statistics=Statistics(),
                    cancel_event=self._cancel_event,
                    on_event=_prefixed(self._on_event, PurePath(child.name)),
                    on_progress=self._on_progress,
                    logger=self._log,
                )
            except Exception as exc:
                self._log.error("Child directory %s failed: %s", child.name, exc)
                result = PassResult(
                    source=child,
                    destination=child_destination,
                    statistics=Statistics(),
                    status=RunStatus.COMPLETED_WITH_FAILURES,
                    error=str(exc),
                )

            self._log.info(
                "Child %s: status=%s files=%s failed=%s",
                child.name,
                result.status.value,
                result.statistics.files,
                result.statistics.files_failed,
            )
            results.append(result)
        return results


def aggregate(results: list[PassResult]) -> Statistics:
    total = Statistics()
    for result in results:
        total.absorb(result.statistics)
    return total
