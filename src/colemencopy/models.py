from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path, PurePath
import threading
from typing import ClassVar, Union

from colemencopy.attributes import AttributePatch, FileAttribute
from colemencopy.errors import FailureKind


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"


class ActionKind(Enum):
    COPY_FILE = "copy-file"
    CREATE_DIR = "create-dir"
    CREATE_EMPTY_FILE = "create-empty-file"
    DELETE_FILE = "delete-file"
    DELETE_DIR = "delete-dir"
    MOVE_FILE = "move-file"
    SKIP = "skip"


class SkipReason(Enum):
    UP_TO_DATE = "up-to-date"
    FILTERED = "filtered"
    EXCLUDED = "excluded"
    EXTRA = "extra"
    EMPTY_DIR = "empty-dir"
    NOT_RECURSED = "not-recursed"
    UNREADABLE = "unreadable"
    MISMATCH = "kind-mismatch"


class Outcome(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class RunStatus(Enum):
    SUCCESS = "success"
    COMPLETED_WITH_FAILURES = "completed-with-failures"
    CANCELLED = "cancelled"
    INVALID_POLICY = "invalid-policy"


@dataclass(frozen=True, slots=True)
class Entry:
    rel_path: PurePath
    kind: EntryKind
    size: int = 0
    mtime: float = 0.0
    attributes: FileAttribute = FileAttribute(0)

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def name(self) -> str:
        return self.rel_path.name


@dataclass(frozen=True, slots=True)
class CopyFile:
    rel_path: PurePath
    source: Path
    destination: Path
    size: int
    mtime: float
    attributes: AttributePatch | None = None
    kind: ClassVar[ActionKind] = ActionKind.COPY_FILE


@dataclass(frozen=True, slots=True)
class CreateDir:
    rel_path: PurePath
    destination: Path
    attributes: AttributePatch | None = None
    kind: ClassVar[ActionKind] = ActionKind.CREATE_DIR


@dataclass(frozen=True, slots=True)
class CreateEmptyFile:
    rel_path: PurePath
    destination: Path
    mtime: float
    attributes: AttributePatch | None = None
    kind: ClassVar[ActionKind] = ActionKind.CREATE_EMPTY_FILE


@dataclass(frozen=True, slots=True)
class DeleteFile:
    rel_path: PurePath
    destination: Path
    kind: ClassVar[ActionKind] = ActionKind.DELETE_FILE


@dataclass(frozen=True, slots=True)
class DeleteDir:
    rel_path: PurePath
    destination: Path
    kind: ClassVar[ActionKind] = ActionKind.DELETE_DIR


@dataclass(frozen=True, slots=True)
class MoveFile:
    rel_path: PurePath
    source: Path
    destination: Path
    size: int
    mtime: float
    attributes: AttributePatch | None = None
    kind: ClassVar[ActionKind] = ActionKind.MOVE_FILE


@dataclass(frozen=True, slots=True)
class Skip:
    rel_path: PurePath
    reason: SkipReason
    is_dir: bool = False
    kind: ClassVar[ActionKind] = ActionKind.SKIP


SyncAction = Union[CopyFile, CreateDir, CreateEmptyFile, DeleteFile, DeleteDir, MoveFile, Skip]

MUTATING_ACTIONS = (CopyFile, CreateDir, CreateEmptyFile, DeleteFile, DeleteDir, MoveFile)


def action_bytes(action: SyncAction) -> int:
    if isinstance(action, (CopyFile, MoveFile)):
        return action.size
    return 0


@dataclass(slots=True)
class Statistics:
    dirs: int = 0
    files: int = 0
    bytes: int = 0
    dirs_skipped: int = 0
    files_skipped: int = 0
    files_failed: int = 0
    dirs_removed: int = 0
    files_removed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, **deltas: int) -> None:
        with self._lock:
            for name, value in deltas.items():
                setattr(self, name, getattr(self, name) + value)

    def absorb(self, other: Statistics) -> None:
        self.add(**other.as_dict())

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            return {item.name: getattr(self, item.name) for item in fields(self) if not item.name.startswith("_")}

    def snapshot(self) -> Statistics:
        return Statistics(**self.as_dict())


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    path: PurePath
    action_kind: ActionKind
    outcome: Outcome
    reason: str | None = None
    attempts: int = 0


@dataclass(frozen=True, slots=True)
class ActionResult:
    action: SyncAction
    outcome: Outcome
    attempts: int = 0
    failure_kind: FailureKind | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (Outcome.SUCCEEDED, Outcome.SKIPPED)


@dataclass(slots=True)
class PassResult:
    source: Path
    destination: Path
    statistics: Statistics
    status: RunStatus = RunStatus.SUCCESS
    failures: list[ActionResult] = field(default_factory=list)
    error: str | None = None


@dataclass(slots=True)
class RunResult:
    status: RunStatus
    statistics: Statistics
    passes: list[PassResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    error: str | None = None


def combine_status(statuses: list[RunStatus]) -> RunStatus:
    if RunStatus.INVALID_POLICY in statuses:
        return RunStatus.INVALID_POLICY
    if RunStatus.CANCELLED in statuses:
        return RunStatus.CANCELLED
    if RunStatus.COMPLETED_WITH_FAILURES in statuses:
        return RunStatus.COMPLETED_WITH_FAILURES
    return RunStatus.SUCCESS
