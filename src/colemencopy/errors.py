from __future__ import annotations

from enum import Enum
import errno
from pathlib import Path


class FailureKind(Enum):
    ACCESS = "access"
    TRANSIENT = "transient"
    CAPACITY = "capacity"
    SECURE_DELETE = "secure-delete"
    DEPENDENCY = "dependency"
    INTERNAL = "internal"


class SyncError(Exception):
    failure_kind = FailureKind.INTERNAL
    retryable = False

    def __init__(self, message: str, path: Path | None = None, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.path = path
        if retryable is not None:
            self.retryable = retryable


class AccessError(SyncError):
    failure_kind = FailureKind.ACCESS
    retryable = True


class TransientError(SyncError):
    failure_kind = FailureKind.TRANSIENT
    retryable = True


class SecureDeleteError(SyncError):
    failure_kind = FailureKind.SECURE_DELETE


class CapacityError(SyncError):
    failure_kind = FailureKind.CAPACITY


class ArgumentError(SyncError, ValueError):
    pass


_CAPACITY_ERRNOS = {
    code for code in (
        getattr(errno, "ENOSPC", None),
        getattr(errno, "EDQUOT", None),
        getattr(errno, "EFBIG", None),
    ) if code is not None
}

_TRANSIENT_ERRNOS = {
    code for code in (
        getattr(errno, "EBUSY", None),
        getattr(errno, "EAGAIN", None),
        getattr(errno, "ETIMEDOUT", None),
        getattr(errno, "EINTR", None),
        getattr(errno, "ETXTBSY", None),
        getattr(errno, "EDEADLK", None),
    ) if code is not None
}

_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}

# ERROR_SHARING_VIOLATION, ERROR_LOCK_VIOLATION
_WINDOWS_LOCK_ERRORS = {32, 33}
# ERROR_HANDLE_DISK_FULL, ERROR_DISK_FULL
_WINDOWS_CAPACITY_ERRORS = {39, 112}


def classify_os_error(exc: OSError, path: Path | None = None) -> SyncError:
    target = Path(exc.filename) if exc.filename else path
    message = f"{exc.strerror or exc} ({target})" if target else str(exc)
    winerror = getattr(exc, "winerror", None)

    if exc.errno in _CAPACITY_ERRNOS or winerror in _WINDOWS_CAPACITY_ERRORS:
        return CapacityError(message, target)
    if exc.errno in _TRANSIENT_ERRNOS or winerror in _WINDOWS_LOCK_ERRORS or isinstance(exc, TimeoutError):
        return TransientError(message, target)
    if exc.errno in _PERMISSION_ERRNOS:
        return AccessError(message, target)
    return AccessError(message, target, retryable=False)
