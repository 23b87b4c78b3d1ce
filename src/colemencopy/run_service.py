from __future__ import annotations

from datetime import datetime
from pathlib import Path
import logging
import threading
import time
from typing import Callable

from colemencopy.config import RunOptions, load_job, validate_options
from colemencopy.errors import ArgumentError, SyncError
from colemencopy.models import RunResult, RunStatus, Statistics, combine_status
from colemencopy.orchestrator import ChildOnlyOrchestrator, EventCallback, ProgressCallback, aggregate, run_pair
from colemencopy.reporting import EventLogger, format_header, format_summary


def run_sync(
    options: RunOptions,
    cancel_event: threading.Event | None = None,
    on_event: EventCallback | None = None,
    on_progress: ProgressCallback | None = None,
    logger: logging.Logger | None = None,
) -> RunResult:
    log = logger or logging.getLogger("colemencopy.run")
    cancel_event = cancel_event or threading.Event()

    try:
        validate_options(options)
    except ArgumentError as exc:
        log.error("ERROR: %s", exc)
        return RunResult(status=RunStatus.INVALID_POLICY, statistics=Statistics(), error=str(exc))

    if on_event is None:
        on_event = EventLogger(
            list_only=options.list_only,
            no_file_list=options.no_file_list,
            secure_delete=options.secure_delete,
        )

    started = time.monotonic()
    log.info("%s", format_header(options, datetime.now()))

    statistics = Statistics()
    error: str | None = None
    if options.policy.child_only:
        orchestrator = ChildOnlyOrchestrator(
            options,
            cancel_event=cancel_event,
            on_event=on_event,
            on_progress=on_progress,
            logger=log,
        )
        passes = orchestrator.run()
        statistics = aggregate(passes)
        status = combine_status([result.status for result in passes])
    else:
        try:
            result = run_pair(
                options.source,
                options.destination,
                options,
                statistics=statistics,
                cancel_event=cancel_event,
                on_event=on_event,
                on_progress=on_progress,
                logger=log,
            )
            passes = [result]
            status = result.status
        except (OSError, SyncError) as exc:
            log.error("ERROR: run aborted: %s", exc)
            passes = []
            status = RunStatus.CANCELLED
            error = str(exc)

    if cancel_event.is_set():
        status = RunStatus.CANCELLED

    elapsed = time.monotonic() - started
    snapshot = statistics.snapshot()
    log.info("%s", format_summary(options.source, options.destination, snapshot, elapsed, datetime.now()))

    return RunResult(status=status, statistics=snapshot, passes=passes, elapsed_seconds=elapsed, error=error)


def run_job_file(
    config_path: Path,
    list_only: bool | None = None,
    cancel_event: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
    on_loaded: Callable[[RunOptions], None] | None = None,
    logger: logging.Logger | None = None,
) -> RunResult:
    log = logger or logging.getLogger("colemencopy.run")

    try:
        options = load_job(config_path)
    except ArgumentError as exc:
        log.error("Invalid job file %s: %s", config_path, exc)
        return RunResult(status=RunStatus.INVALID_POLICY, statistics=Statistics(), error=str(exc))

    if list_only is not None:
        options.list_only = list_only
    if on_loaded is not None:
        on_loaded(options)
    return run_sync(options, cancel_event=cancel_event, on_progress=on_progress, logger=log)
