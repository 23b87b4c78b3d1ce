from __future__ import annotations

import logging
import os
from pathlib import Path
import secrets
import stat
from typing import Sequence

from colemencopy.errors import SecureDeleteError


ERASE_CHUNK_SIZE = 64 * 1024

# None means a fresh cryptographically random fill.
DEFAULT_PASSES: tuple[int | None, ...] = (0x00, 0xFF, None)


class SecureEraser:
    def __init__(
        self,
        passes: Sequence[int | None] = DEFAULT_PASSES,
        logger: logging.Logger | None = None,
    ) -> None:
        if len(passes) < 3:
            raise ValueError("Secure erase needs at least 3 overwrite passes")
        self.passes = tuple(passes)
        self._log = logger or logging.getLogger("colemencopy.erase")

    def erase(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            self._erase_tree(path)
        else:
            self.erase_file(path)

    def erase_file(self, path: Path) -> None:
        if path.is_symlink():
            path.unlink()
            return

        try:
            size = path.stat().st_size
            if not os.access(path, os.W_OK):
                os.chmod(path, stat.S_IMODE(path.stat().st_mode) | stat.S_IWUSR)
            with path.open("r+b", buffering=0) as handle:
                for pattern in self.passes:
                    self._overwrite(handle, size, pattern)
                handle.truncate(0)
                os.fsync(handle.fileno())
        except OSError as exc:
            raise SecureDeleteError(f"Overwrite failed, file left in place: {exc}", path) from exc

        path.unlink()
        self._log.debug("Securely deleted file: %s", path)

    def _overwrite(self, handle, size: int, pattern: int | None) -> None:
        handle.seek(0)
        block = None if pattern is None else bytes([pattern]) * ERASE_CHUNK_SIZE
        remaining = size
        while remaining > 0:
            length = min(remaining, ERASE_CHUNK_SIZE)
            handle.write(secrets.token_bytes(length) if block is None else block[:length])
            remaining -= length
        handle.flush()
        os.fsync(handle.fileno())

    def _erase_tree(self, root: Path) -> None:
        for current, dir_names, file_names in os.walk(root, topdown=False):
            current_path = Path(current)
            for file_name in file_names:
                self.erase_file(current_path / file_name)
            for dir_name in dir_names:
                child = current_path / dir_name
                if child.is_symlink():
                    child.unlink()
                else:
                    child.rmdir()
        root.rmdir()
        self._log.debug("Removed directory after secure file deletion: %s", root)
