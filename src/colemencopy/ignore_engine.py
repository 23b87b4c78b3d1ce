from __future__ import annotations

from pathlib import Path, PurePath
from typing import Iterable

import pathspec


def _read_exclude_lines(path: Path) -> list[str]:
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []


def _clean_patterns(lines: Iterable[str]) -> list[str]:
    patterns: list[str] = []
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        patterns.append(stripped)
    return patterns


class ExcludeEngine:
    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = _clean_patterns(patterns)
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", self.patterns)

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def is_excluded(self, relative_path: PurePath, is_dir: bool = False) -> bool:
        if not self.patterns:
            return False
        unix_path = relative_path.as_posix()
        candidate = f"{unix_path}/" if is_dir and not unix_path.endswith("/") else unix_path
        return self._spec.match_file(candidate)


def build_exclude_engine(patterns: Iterable[str], exclude_file: Path | None = None) -> ExcludeEngine:
    collected = list(patterns)
    if exclude_file is not None:
        collected.extend(_read_exclude_lines(exclude_file))
    return ExcludeEngine(collected)
