from __future__ import annotations

from enum import Enum
import logging
import os
from pathlib import Path
import shutil
import tempfile
import threading
from typing import Callable

from colemencopy.config import RetryPolicy
from colemencopy.errors import AccessError, SyncError, classify_os_error
from colemencopy.models import (
    ActionResult,
    CopyFile,
    CreateDir,
    CreateEmptyFile,
    DeleteDir,
    DeleteFile,
    MoveFile,
    Outcome,
    Skip,
    SyncAction,
)


COPY_CHUNK_SIZE = 1024 * 1024
PARTIAL_SUFFIX = ".partial"


class AttemptState(Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    WAITING_TO_RETRY = "waiting-to-retry"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _fsync_directory(directory: Path) -> None:
    if os.name == "nt":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _make_writable(path: Path) -> None:
    try:
        mode = path.stat().st_mode
    except FileNotFoundError:
        return
    if not mode & 0o200:
        os.chmod(path, mode | 0o200)


def _finish_copy(source_file: Path, written: Path, destination_file: Path, mtime: float) -> None:
    shutil.copymode(source_file, written)
    os.utime(written, (mtime, mtime))
    _make_writable(destination_file)
    written.replace(destination_file)
    _fsync_directory(destination_file.parent)


def _safe_copy(source_file: Path, destination_file: Path, mtime: float) -> None:
    with tempfile.NamedTemporaryFile(delete=False, dir=str(destination_file.parent)) as tmp:
        tmp_path = Path(tmp.name)
    try:
        with source_file.open("rb") as reader, tmp_path.open("wb") as writer:
            shutil.copyfileobj(reader, writer, COPY_CHUNK_SIZE)
            writer.flush()
            os.fsync(writer.fileno())
        _finish_copy(source_file, tmp_path, destination_file, mtime)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def partial_path_for(destination_file: Path, size: int, mtime: float) -> Path:
    return destination_file.with_name(f".{destination_file.name}.{size:x}-{int(mtime):x}{PARTIAL_SUFFIX}")


def _restartable_copy(source_file: Path, destination_file: Path, size: int, mtime: float) -> None:
    partial = partial_path_for(destination_file, size, mtime)
    offset = partial.stat().st_size if partial.exists() else 0
    if offset > size:
        partial.unlink()
        offset = 0

    with source_file.open("rb") as reader, partial.open("ab") as writer:
        reader.seek(offset)
        for chunk in iter(lambda: reader.read(COPY_CHUNK_SIZE), b""):
            writer.write(chunk)
            writer.flush()
        os.fsync(writer.fileno())
    _finish_copy(source_file, partial, destination_file, mtime)


class RetryExecutor:
    def __init__(
        self,
        retry_policy: RetryPolicy,
        list_only: bool = False,
        source_remover: Callable[[Path], None] | None = None,
        cancel_event: threading.Event | None = None,
        sleep: Callable[[float], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.retry_policy = retry_policy
        self.list_only = list_only
        self._remove_source = source_remover or (lambda path: path.unlink())
        self._cancel_event = cancel_event or threading.Event()
        self._sleep = sleep
        self._log = logger or logging.getLogger("colemencopy.execute")

    def apply(self, action: SyncAction, operation: Callable[[], None] | None = None) -> ActionResult:
        if isinstance(action, Skip):
            return ActionResult(action, Outcome.SKIPPED)

        if self.list_only:
            return self._list(action)

        perform = operation or (lambda: self._perform(action))
        max_attempts = self.retry_policy.max_retries + 1
        state = AttemptState.PENDING
        attempts = 0
        error: SyncError | None = None

        while True:
            if state in (AttemptState.PENDING, AttemptState.WAITING_TO_RETRY):
                state = AttemptState.ATTEMPTING

            elif state is AttemptState.ATTEMPTING:
                attempts += 1
                try:
                    perform()
                    state = AttemptState.SUCCEEDED
                except OSError as exc:
                    error = classify_os_error(exc, getattr(action, "destination", None))
                except SyncError as exc:
                    error = exc
                if state is AttemptState.ATTEMPTING:
                    if error.retryable and attempts < max_attempts:
                        state = AttemptState.WAITING_TO_RETRY
                    else:
                        state = AttemptState.FAILED

                if state is AttemptState.WAITING_TO_RETRY:
                    self._log.warning(
                        "Retry %s of %s: %s, Error: %s",
                        attempts,
                        self.retry_policy.max_retries,
                        action.rel_path,
                        error,
                    )
                    if not self._wait(self.retry_policy.wait_seconds):
                        return ActionResult(action, Outcome.CANCELLED, attempts, error.failure_kind, error)

            elif state is AttemptState.SUCCEEDED:
                return ActionResult(action, Outcome.SUCCEEDED, attempts)

            else:
                if error.retryable:
                    self._log.error(
                        "Failed after %s retries: %s, Error: %s",
                        self.retry_policy.max_retries,
                        action.rel_path,
                        error,
                    )
                return ActionResult(action, Outcome.FAILED, attempts, error.failure_kind, error)

    def _wait(self, seconds: float) -> bool:
        if self._sleep is not None:
            self._sleep(seconds)
            return not self._cancel_event.is_set()
        return not self._cancel_event.wait(seconds)

    def _list(self, action: SyncAction) -> ActionResult:
        try:
            if isinstance(action, (CopyFile, MoveFile)):
                if not action.source.is_file() or not os.access(action.source, os.R_OK):
                    raise AccessError("Source file is missing or unreadable", action.source, retryable=False)
            elif isinstance(action, (DeleteFile, DeleteDir)):
                if not os.path.lexists(action.destination):
                    raise AccessError("Deletion target no longer exists", action.destination, retryable=False)
        except SyncError as exc:
            return ActionResult(action, Outcome.FAILED, 1, exc.failure_kind, exc)
        return ActionResult(action, Outcome.SUCCEEDED, 1)

    def _perform(self, action: SyncAction) -> None:
        if isinstance(action, CreateDir):
            action.destination.mkdir(exist_ok=True)
            if action.attributes is not None:
                action.attributes.apply_to_path(action.destination)

        elif isinstance(action, (CopyFile, MoveFile)):
            if self.retry_policy.restartable:
                _restartable_copy(action.source, action.destination, action.size, action.mtime)
            else:
                _safe_copy(action.source, action.destination, action.mtime)
            if action.attributes is not None:
                action.attributes.apply_to_path(action.destination)
            if isinstance(action, MoveFile):
                self._remove_source(action.source)

        elif isinstance(action, CreateEmptyFile):
            _make_writable(action.destination)
            with action.destination.open("wb") as handle:
                handle.flush()
                os.fsync(handle.fileno())
            os.utime(action.destination, (action.mtime, action.mtime))
            if action.attributes is not None:
                action.attributes.apply_to_path(action.destination)

        elif isinstance(action, DeleteFile):
            _make_writable(action.destination)
            action.destination.unlink()

        elif isinstance(action, DeleteDir):
            shutil.rmtree(action.destination)

        else:
            raise TypeError(f"Unsupported action: {action!r}")

