from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import PurePath
import queue
import threading
from typing import Callable, Iterable

from colemencopy.config import DEFAULT_CONCURRENCY
from colemencopy.eraser import SecureEraser
from colemencopy.errors import AccessError, FailureKind
from colemencopy.executor import RetryExecutor
from colemencopy.models import (
    MUTATING_ACTIONS,
    ActionResult,
    CopyFile,
    CreateDir,
    CreateEmptyFile,
    DeleteDir,
    DeleteFile,
    MoveFile,
    Outcome,
    ProgressEvent,
    RunStatus,
    Skip,
    Statistics,
    SyncAction,
    action_bytes,
)


_STOP = object()


@dataclass(slots=True)
class PoolOutcome:
    status: RunStatus
    failures: list[ActionResult] = field(default_factory=list)
    dropped: int = 0
    processed_bytes: int = 0


def _counters_for(result: ActionResult) -> dict[str, int]:
    action = result.action
    if result.outcome is Outcome.SKIPPED:
        return {"dirs_skipped": 1} if isinstance(action, Skip) and action.is_dir else {"files_skipped": 1}
    if result.outcome is Outcome.FAILED:
        return {"files_failed": 1}
    if result.outcome is not Outcome.SUCCEEDED:
        return {}

    if isinstance(action, CreateDir):
        return {"dirs": 1}
    if isinstance(action, (CopyFile, MoveFile)):
        return {"files": 1, "bytes": action.size}
    if isinstance(action, CreateEmptyFile):
        return {"files": 1}
    if isinstance(action, DeleteFile):
        return {"files_removed": 1}
    if isinstance(action, DeleteDir):
        return {"dirs_removed": 1}
    return {}


class WorkerPool:
    def __init__(
        self,
        executor: RetryExecutor,
        statistics: Statistics,
        concurrency: int = DEFAULT_CONCURRENCY,
        eraser: SecureEraser | None = None,
        cancel_event: threading.Event | None = None,
        on_event: Callable[[ProgressEvent], None] | None = None,
        on_progress: Callable[[int], None] | None = None,
        total_bytes: int = 0,
        logger: logging.Logger | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.executor = executor
        self.statistics = statistics
        self.concurrency = concurrency
        self._eraser = eraser
        self._cancel_event = cancel_event or threading.Event()
        self._on_event = on_event
        self._on_progress = on_progress
        self.total_bytes = total_bytes
        self._log = logger or logging.getLogger("colemencopy.pool")

        self._cond = threading.Condition()
        self._open_dirs: set[PurePath] = set()
        self._failed_dirs: set[PurePath] = set()

        self._lock = threading.Lock()
        self._failures: list[ActionResult] = []
        self._dropped = 0
        self._processed_bytes = 0
        self._last_percent = -1
        self._queue: queue.Queue = queue.Queue(maxsize=concurrency * 4)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()
        with self._cond:
            self._cond.notify_all()

    def run(self, actions: Iterable[SyncAction]) -> PoolOutcome:
        workers = [
            threading.Thread(target=self._worker_loop, name=f"colemencopy-worker-{index}", daemon=True)
            for index in range(self.concurrency)
        ]
        for worker in workers:
            worker.start()

        try:
            for action in actions:
                if self._cancel_event.is_set():
                    break
                self._dispatch(action)
        finally:
            for _ in workers:
                self._queue.put(_STOP)
            for worker in workers:
                worker.join()

        if self._cancel_event.is_set():
            status = RunStatus.CANCELLED
        elif self._failures:
            status = RunStatus.COMPLETED_WITH_FAILURES
        else:
            status = RunStatus.SUCCESS

        return PoolOutcome(
            status=status,
            failures=list(self._failures),
            dropped=self._dropped,
            processed_bytes=self._processed_bytes,
        )

    def _dispatch(self, action: SyncAction) -> None:
        if isinstance(action, MUTATING_ACTIONS):
            parents = set(action.rel_path.parents)
            with self._cond:
                self._cond.wait_for(lambda: self._cancel_event.is_set() or not self._open_dirs & parents)
                if self._cancel_event.is_set():
                    return
                failed_parents = parents & self._failed_dirs
                if not failed_parents and isinstance(action, CreateDir):
                    self._open_dirs.add(action.rel_path)

            if failed_parents:
                parent = min(failed_parents, key=lambda item: len(item.parts))
                error = AccessError(f"Parent directory was not created: {parent}", retryable=False)
                self._record(ActionResult(action, Outcome.FAILED, 0, FailureKind.DEPENDENCY, error))
                return

        self._queue.put(action)

    def _worker_loop(self) -> None:
        while True:
            action = self._queue.get()
            try:
                if action is _STOP:
                    return
                if self._cancel_event.is_set():
                    self._drop(action)
                    continue
                try:
                    result = self._execute(action)
                except Exception as exc:
                    self._log.exception("Unexpected error while applying %s", action.rel_path)
                    result = ActionResult(action, Outcome.FAILED, 1, FailureKind.INTERNAL, exc)
                self._record(result)
            finally:
                self._queue.task_done()

    def _execute(self, action: SyncAction) -> ActionResult:
        if self._eraser is not None and isinstance(action, (DeleteFile, DeleteDir)):
            return self.executor.apply(action, operation=lambda: self._eraser.erase(action.destination))
        return self.executor.apply(action)

    def _drop(self, action: SyncAction) -> None:
        with self._lock:
            self._dropped += 1
        if isinstance(action, CreateDir):
            self._finish_dir(action.rel_path, succeeded=False)

    def _finish_dir(self, rel_path: PurePath, succeeded: bool) -> None:
        with self._cond:
            self._open_dirs.discard(rel_path)
            if not succeeded:
                self._failed_dirs.add(rel_path)
            self._cond.notify_all()

    def _record(self, result: ActionResult) -> None:
        action = result.action
        counters = _counters_for(result)
        if counters:
            self.statistics.add(**counters)

        if isinstance(action, CreateDir):
            self._finish_dir(action.rel_path, succeeded=result.outcome is Outcome.SUCCEEDED)

        if result.outcome is Outcome.FAILED:
            with self._lock:
                self._failures.append(result)

        if self._on_event is not None:
            reason = action.reason.value if isinstance(action, Skip) else (str(result.error) if result.error else None)
            self._on_event(
                ProgressEvent(
                    path=action.rel_path,
                    action_kind=action.kind,
                    outcome=result.outcome,
                    reason=reason,
                    attempts=result.attempts,
                )
            )

        self._report_progress(action_bytes(action))

    def _report_progress(self, processed: int) -> None:
        if not processed:
            return
        with self._lock:
            self._processed_bytes += processed
            if self._on_progress is None:
                return
            total = max(self.total_bytes, self._processed_bytes)
            percent = self._processed_bytes * 100 // total
            if percent == self._last_percent:
                return
            self._last_percent = percent
        self._on_progress(percent)
