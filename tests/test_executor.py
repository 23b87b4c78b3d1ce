import errno
import os
from pathlib import Path, PurePath
import threading

import pytest

from colemencopy.attributes import AttributePatch
from colemencopy.config import RetryPolicy
from colemencopy.errors import FailureKind, TransientError
from colemencopy.executor import RetryExecutor, partial_path_for
from colemencopy.models import (
    CopyFile,
    CreateDir,
    CreateEmptyFile,
    DeleteDir,
    DeleteFile,
    MoveFile,
    Outcome,
    Skip,
    SkipReason,
)


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _copy_action(source: Path, destination: Path, cls=CopyFile):
    st = source.stat()
    return cls(PurePath(source.name), source, destination, st.st_size, st.st_mtime)


def _executor(max_retries: int = 3, **kwargs) -> RetryExecutor:
    return RetryExecutor(RetryPolicy(max_retries=max_retries, wait_seconds=0), sleep=lambda seconds: None, **kwargs)


def test_copy_preserves_content_and_mtime(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    _write(source, "payload")
    os.utime(source, (1_600_000_000, 1_600_000_000))
    destination = tmp_path / "out" / "a.txt"
    destination.parent.mkdir()

    result = _executor().apply(_copy_action(source, destination))

    assert result.outcome is Outcome.SUCCEEDED
    assert result.attempts == 1
    assert destination.read_text(encoding="utf-8") == "payload"
    assert int(destination.stat().st_mtime) == 1_600_000_000
    assert [item.name for item in destination.parent.iterdir()] == ["a.txt"]


def test_copy_overwrites_existing_destination(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    destination = tmp_path / "out" / "a.txt"
    _write(source, "new")
    _write(destination, "old and longer")

    result = _executor().apply(_copy_action(source, destination))

    assert result.succeeded
    assert destination.read_text(encoding="utf-8") == "new"


def test_transient_failure_is_attempted_max_retries_plus_one_times(tmp_path: Path) -> None:
    calls = []
    waits = []

    def always_busy() -> None:
        calls.append(1)
        raise OSError(errno.EBUSY, "Device or resource busy")

    executor = RetryExecutor(RetryPolicy(max_retries=3, wait_seconds=7), sleep=waits.append)
    action = CreateDir(PurePath("d"), tmp_path / "d")

    result = executor.apply(action, operation=always_busy)

    assert result.outcome is Outcome.FAILED
    assert result.attempts == 4
    assert len(calls) == 4
    assert waits == [7, 7, 7]
    assert result.failure_kind is FailureKind.TRANSIENT


def test_zero_retries_means_single_attempt(tmp_path: Path) -> None:
    calls = []

    def fail() -> None:
        calls.append(1)
        raise TransientError("locked")

    result = _executor(max_retries=0).apply(CreateDir(PurePath("d"), tmp_path / "d"), operation=fail)

    assert result.outcome is Outcome.FAILED
    assert len(calls) == 1


def test_retry_succeeds_after_transient_errors(tmp_path: Path) -> None:
    calls = []

    def flaky() -> None:
        calls.append(1)
        if len(calls) < 3:
            raise OSError(errno.EAGAIN, "Try again")

    result = _executor(max_retries=5).apply(CreateDir(PurePath("d"), tmp_path / "d"), operation=flaky)

    assert result.outcome is Outcome.SUCCEEDED
    assert result.attempts == 3


def test_permanent_error_is_not_retried(tmp_path: Path) -> None:
    calls = []

    def missing() -> None:
        calls.append(1)
        raise FileNotFoundError(errno.ENOENT, "No such file or directory", str(tmp_path / "gone"))

    result = _executor(max_retries=5).apply(CreateDir(PurePath("d"), tmp_path / "d"), operation=missing)

    assert result.outcome is Outcome.FAILED
    assert len(calls) == 1
    assert result.failure_kind is FailureKind.ACCESS
    assert result.error.path == tmp_path / "gone"


def test_cancel_during_retry_wait_stops_the_action(tmp_path: Path) -> None:
    cancel = threading.Event()
    calls = []

    def busy() -> None:
        calls.append(1)
        raise OSError(errno.EBUSY, "busy")

    executor = RetryExecutor(
        RetryPolicy(max_retries=10, wait_seconds=0),
        cancel_event=cancel,
        sleep=lambda seconds: cancel.set(),
    )

    result = executor.apply(CreateDir(PurePath("d"), tmp_path / "d"), operation=busy)

    assert result.outcome is Outcome.CANCELLED
    assert len(calls) == 1


def test_skip_is_not_executed() -> None:
    result = _executor().apply(Skip(PurePath("x"), SkipReason.UP_TO_DATE))

    assert result.outcome is Outcome.SKIPPED
    assert result.attempts == 0


def test_restartable_copy_resumes_from_partial_file(tmp_path: Path) -> None:
    source = tmp_path / "big.bin"
    source.write_bytes(b"0123456789")
    destination = tmp_path / "out" / "big.bin"
    destination.parent.mkdir()
    action = _copy_action(source, destination)

    partial = partial_path_for(destination, action.size, action.mtime)
    partial.write_bytes(b"01234")

    executor = RetryExecutor(RetryPolicy(max_retries=0, wait_seconds=0, restartable=True))
    result = executor.apply(action)

    assert result.outcome is Outcome.SUCCEEDED
    assert destination.read_bytes() == b"0123456789"
    assert not partial.exists()


def test_move_removes_source_after_copy(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    _write(source, "move me")
    destination = tmp_path / "out" / "a.txt"
    destination.parent.mkdir()

    result = _executor().apply(_copy_action(source, destination, cls=MoveFile))

    assert result.outcome is Outcome.SUCCEEDED
    assert destination.read_text(encoding="utf-8") == "move me"
    assert not source.exists()


def test_move_uses_injected_source_remover(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    _write(source, "move me")
    destination = tmp_path / "out" / "a.txt"
    destination.parent.mkdir()
    removed = []

    executor = _executor(source_remover=removed.append)
    executor.apply(_copy_action(source, destination, cls=MoveFile))

    assert removed == [source]
    assert source.exists()


def test_create_empty_file_keeps_mtime(tmp_path: Path) -> None:
    destination = tmp_path / "empty.bin"

    result = _executor().apply(CreateEmptyFile(PurePath("empty.bin"), destination, 1_500_000_000.0))

    assert result.succeeded
    assert destination.stat().st_size == 0
    assert int(destination.stat().st_mtime) == 1_500_000_000


def test_delete_actions_remove_targets(tmp_path: Path) -> None:
    _write(tmp_path / "f.txt", "x")
    _write(tmp_path / "d" / "inner" / "g.txt", "y")
    executor = _executor()

    assert executor.apply(DeleteFile(PurePath("f.txt"), tmp_path / "f.txt")).succeeded
    assert executor.apply(DeleteDir(PurePath("d"), tmp_path / "d")).succeeded
    assert list(tmp_path.iterdir()) == []


def test_list_only_validates_without_touching_filesystem(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    _write(source, "x")
    destination = tmp_path / "out" / "a.txt"
    executor = _executor(list_only=True)

    listed = executor.apply(_copy_action(source, destination))
    missing = executor.apply(DeleteFile(PurePath("gone.txt"), tmp_path / "gone.txt"))

    assert listed.outcome is Outcome.SUCCEEDED
    assert missing.outcome is Outcome.FAILED
    assert not destination.parent.exists()


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_attribute_patch_is_applied_to_copied_file(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    _write(source, "x")
    destination = tmp_path / "out" / "a.txt"
    destination.parent.mkdir()
    st = source.stat()
    action = CopyFile(
        PurePath("a.txt"), source, destination, st.st_size, st.st_mtime, AttributePatch.from_letters("R", "")
    )

    _executor().apply(action)

    assert not destination.stat().st_mode & 0o200
