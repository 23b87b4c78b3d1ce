from __future__ import annotations

import logging
import os
from pathlib import Path, PurePath
from typing import Iterator

from colemencopy.attributes import attributes_from_stat
from colemencopy.errors import AccessError
from colemencopy.models import Entry, EntryKind
from colemencopy.patterns import default_case_sensitive


def name_key(name: str, case_sensitive: bool) -> tuple[str, str]:
    # Ties between names that only differ in case stay deterministic.
    return (name, name) if case_sensitive else (name.casefold(), name)


def path_key(rel_path: PurePath, case_sensitive: bool) -> tuple[str, ...]:
    if case_sensitive:
        return rel_path.parts
    return tuple(part.casefold() for part in rel_path.parts)


class TreeScanner:
    def __init__(
        self,
        root: Path,
        recursive: bool = True,
        case_sensitive: bool | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.root = root
        self.recursive = recursive
        self.case_sensitive = default_case_sensitive() if case_sensitive is None else case_sensitive
        self.errors: list[AccessError] = []
        self.failed_dirs: set[tuple[str, ...]] = set()
        self._prune_next = False
        self._log = logger or logging.getLogger("colemencopy.scan")

    def __iter__(self) -> Iterator[Entry]:
        return self.scan()

    def prune(self) -> None:
        self._prune_next = True

    def scan(self) -> Iterator[Entry]:
        if not self.root.is_dir():
            return

        stack = [iter(self._list_dir(PurePath()))]
        while stack:
            entry = next(stack[-1], None)
            if entry is None:
                stack.pop()
                continue
            yield entry
            pruned, self._prune_next = self._prune_next, False
            if entry.is_dir and self.recursive and not pruned:
                stack.append(iter(self._list_dir(entry.rel_path)))

    def _list_dir(self, rel_dir: PurePath) -> list[Entry]:
        directory = self.root / rel_dir
        try:
            with os.scandir(directory) as iterator:
                dir_entries = list(iterator)
        except OSError as exc:
            error = AccessError(f"Cannot list directory: {exc.strerror or exc}", directory, retryable=False)
            self.errors.append(error)
            self.failed_dirs.add(path_key(rel_dir, self.case_sensitive))
            self._log.warning("Skipping unreadable directory %s: %s", directory, exc)
            return []

        entries: list[Entry] = []
        for dir_entry in sorted(dir_entries, key=lambda item: name_key(item.name, self.case_sensitive)):
            try:
                if dir_entry.is_symlink():
                    self._log.debug("Not following symbolic link %s", dir_entry.path)
                    continue
                is_dir = dir_entry.is_dir(follow_symlinks=False)
                st = dir_entry.stat(follow_symlinks=False)
            except OSError as exc:
                self._log.debug("Entry vanished while scanning %s: %s", dir_entry.path, exc)
                continue

            entries.append(
                Entry(
                    rel_path=rel_dir / dir_entry.name,
                    kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                    size=0 if is_dir else st.st_size,
                    mtime=st.st_mtime,
                    attributes=attributes_from_stat(st, dir_entry.name),
                )
            )
        return entries


def scan(root: Path, recursive: bool = True, case_sensitive: bool | None = None) -> Iterator[Entry]:
    return TreeScanner(root, recursive=recursive, case_sensitive=case_sensitive).scan()
