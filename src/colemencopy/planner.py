from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path, PurePath
from typing import Iterable, Iterator

from colemencopy.attributes import AttributePatch, same_mtime
from colemencopy.config import MoveMode, SyncPolicy
from colemencopy.ignore_engine import ExcludeEngine
from colemencopy.models import (
    CopyFile,
    CreateDir,
    CreateEmptyFile,
    DeleteDir,
    DeleteFile,
    Entry,
    MoveFile,
    Skip,
    SkipReason,
    SyncAction,
)
from colemencopy.patterns import PatternMatcher, default_case_sensitive
from colemencopy.scanner import TreeScanner, path_key


Key = tuple[str, ...]


def _is_under(key: Key, prefix: Key) -> bool:
    return len(key) > len(prefix) and key[: len(prefix)] == prefix


@dataclass(slots=True)
class _PendingDir:
    key: Key
    entry: Entry
    emitted: bool = False


class DiffPlanner:
    def __init__(
        self,
        source_root: Path,
        destination_root: Path,
        policy: SyncPolicy,
        source_scan: Iterable[Entry] | None = None,
        destination_scan: Iterable[Entry] | None = None,
        exclude_engine: ExcludeEngine | None = None,
        case_sensitive: bool | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.source_root = source_root
        self.destination_root = destination_root
        self.policy = policy.normalized()
        self.case_sensitive = default_case_sensitive() if case_sensitive is None else case_sensitive
        self._log = logger or logging.getLogger("colemencopy.plan")

        self._matcher = PatternMatcher(self.policy.include_patterns, case_sensitive=self.case_sensitive)
        self._excludes = exclude_engine if exclude_engine is not None else ExcludeEngine(self.policy.exclude_patterns)
        self._patch = AttributePatch.from_letters(self.policy.attr_add, self.policy.attr_remove)

        recursive = self.policy.recurses
        self.source_scan = source_scan if source_scan is not None else TreeScanner(
            source_root, recursive=recursive, case_sensitive=self.case_sensitive, logger=logger
        )
        self.destination_scan = destination_scan if destination_scan is not None else TreeScanner(
            destination_root, recursive=recursive, case_sensitive=self.case_sensitive, logger=logger
        )

        self.planned_bytes = 0
        self.moved_source_dirs: list[Path] = []
        self._pending: list[_PendingDir] = []
        self._reported_errors = {id(self.source_scan): 0, id(self.destination_scan): 0}

    def __iter__(self) -> Iterator[SyncAction]:
        return self.plan()

    def plan(self) -> Iterator[SyncAction]:
        sources = iter(self.source_scan)
        destinations = iter(self.destination_scan)
        src = next(sources, None)
        dst = next(destinations, None)

        while src is not None or dst is not None:
            yield from self._drain_scan_errors()
            src_key = self._key(src) if src is not None else None
            dst_key = self._key(dst) if dst is not None else None

            if dst is None or (src is not None and src_key < dst_key):
                yield from self._close_pending(src_key)
                descend = yield from self._source_only(src, src_key)
                src = self._advance(self.source_scan, sources, src, src_key, descend)
            elif src is None or dst_key < src_key:
                yield from self._close_pending(dst_key)
                yield from self._destination_only(dst, dst_key)
                dst = self._advance(self.destination_scan, destinations, dst, dst_key, descend=False)
            else:
                yield from self._close_pending(src_key)
                descend = yield from self._both(src, dst, src_key)
                src = self._advance(self.source_scan, sources, src, src_key, descend)
                dst = self._advance(self.destination_scan, destinations, dst, dst_key, descend)

        yield from self._close_pending(())
        yield from self._drain_scan_errors()

    def _source_only(self, entry: Entry, key: Key):
        if self._blocked(key, self.destination_scan):
            yield Skip(entry.rel_path, SkipReason.UNREADABLE, is_dir=entry.is_dir)
            return False
        if self._excludes.is_excluded(entry.rel_path, is_dir=entry.is_dir):
            yield Skip(entry.rel_path, SkipReason.EXCLUDED, is_dir=entry.is_dir)
            return False

        if entry.is_dir:
            if not self.policy.recurses:
                yield Skip(entry.rel_path, SkipReason.NOT_RECURSED, is_dir=True)
                return False
            self._note_source_dir(entry)
            pending = _PendingDir(key, entry)
            self._pending.append(pending)
            if self.policy.recurse_empty:
                yield from self._flush_pending()
            return True

        if not self._matcher.match(entry.name):
            yield Skip(entry.rel_path, SkipReason.FILTERED)
            return False
        yield from self._flush_pending()
        yield self._file_action(entry)
        return False

    def _destination_only(self, entry: Entry, key: Key):
        if self._blocked(key, self.source_scan):
            yield Skip(entry.rel_path, SkipReason.UNREADABLE, is_dir=entry.is_dir)
            return
        if self._excludes.is_excluded(entry.rel_path, is_dir=entry.is_dir):
            yield Skip(entry.rel_path, SkipReason.EXCLUDED, is_dir=entry.is_dir)
            return
        if not self.policy.purge:
            yield Skip(entry.rel_path, SkipReason.EXTRA, is_dir=entry.is_dir)
            return

        target = self.destination_root / entry.rel_path
        if entry.is_dir:
            yield DeleteDir(entry.rel_path, target)
        else:
            yield DeleteFile(entry.rel_path, target)

    def _both(self, src: Entry, dst: Entry, key: Key):
        if self._excludes.is_excluded(src.rel_path, is_dir=src.is_dir):
            yield Skip(src.rel_path, SkipReason.EXCLUDED, is_dir=src.is_dir)
            return False

        if src.is_dir != dst.is_dir:
            self._log.warning(
                "Skipping %s: %s in source but %s in destination",
                src.rel_path,
                src.kind.value,
                dst.kind.value,
            )
            yield Skip(src.rel_path, SkipReason.MISMATCH, is_dir=src.is_dir)
            return False

        if src.is_dir:
            if not self.policy.recurses:
                yield Skip(src.rel_path, SkipReason.NOT_RECURSED, is_dir=True)
                return False
            self._note_source_dir(src)
            return True

        if not self._matcher.match(src.name):
            yield Skip(src.rel_path, SkipReason.FILTERED)
            return False
        if self._up_to_date(src, dst):
            yield Skip(src.rel_path, SkipReason.UP_TO_DATE)
            return False
        yield self._file_action(src)
        return False

    def _up_to_date(self, src: Entry, dst: Entry) -> bool:
        if self.policy.empty_mode:
            return dst.size == 0 and same_mtime(src.mtime, dst.mtime)
        return src.size == dst.size and same_mtime(src.mtime, dst.mtime)

    def _file_action(self, entry: Entry) -> SyncAction:
        destination = self.destination_root / entry.rel_path
        if self.policy.empty_mode:
            return CreateEmptyFile(entry.rel_path, destination, entry.mtime, self._patch)

        source = self.source_root / entry.rel_path
        self.planned_bytes += entry.size
        if self.policy.move is not MoveMode.NONE:
            return MoveFile(entry.rel_path, source, destination, entry.size, entry.mtime, self._patch)
        return CopyFile(entry.rel_path, source, destination, entry.size, entry.mtime, self._patch)

    def _flush_pending(self) -> Iterator[SyncAction]:
        # Pending directories are all ancestors of the current entry, outermost first.
        for pending in self._pending:
            if not pending.emitted:
                pending.emitted = True
                yield CreateDir(
                    pending.entry.rel_path,
                    self.destination_root / pending.entry.rel_path,
                    self._patch,
                )

    def _close_pending(self, key: Key) -> Iterator[SyncAction]:
        while self._pending and not _is_under(key, self._pending[-1].key):
            pending = self._pending.pop()
            if not pending.emitted:
                yield Skip(pending.entry.rel_path, SkipReason.EMPTY_DIR, is_dir=True)

    def _note_source_dir(self, entry: Entry) -> None:
        if self.policy.move is MoveMode.FILES_AND_DIRS:
            self.moved_source_dirs.append(self.source_root / entry.rel_path)

    def _key(self, entry: Entry) -> Key:
        return path_key(entry.rel_path, self.case_sensitive)

    def _blocked(self, key: Key, other_scan: Iterable[Entry]) -> bool:
        failed = getattr(other_scan, "failed_dirs", None)
        if not failed:
            return False
        return any(key[:length] in failed for length in range(len(key)))

    def _advance(self, scan, iterator: Iterator[Entry], current: Entry, key: Key, descend: bool) -> Entry | None:
        if not current.is_dir or descend:
            return next(iterator, None)

        prune = getattr(scan, "prune", None)
        if prune is not None:
            prune()
        following = next(iterator, None)
        while following is not None and _is_under(self._key(following), key):
            following = next(iterator, None)
        return following

    def _drain_scan_errors(self) -> Iterator[SyncAction]:
        for scan in (self.source_scan, self.destination_scan):
            errors = getattr(scan, "errors", None)
            if not errors:
                continue
            reported = self._reported_errors[id(scan)]
            for error in errors[reported:]:
                rel_path = PurePath(Path(error.path).relative_to(scan.root)) if error.path else PurePath()
                yield Skip(rel_path, SkipReason.UNREADABLE, is_dir=True)
            self._reported_errors[id(scan)] = len(errors)
