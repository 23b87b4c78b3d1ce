from __future__ import annotations

from dataclasses import dataclass
import os
import sys
from typing import Iterable

from colemencopy.errors import ArgumentError


MATCH_ALL_PATTERNS = {"*", "*.*"}


def default_case_sensitive() -> bool:
    return os.name != "nt" and sys.platform != "darwin"


@dataclass(frozen=True, slots=True)
class WildcardPattern:
    text: str
    head: str
    middle: tuple[str, ...]
    tail: str
    has_wildcard: bool
    case_sensitive: bool

    @classmethod
    def compile(cls, text: str, case_sensitive: bool = True) -> WildcardPattern:
        if not text:
            raise ArgumentError("Inclusion pattern must not be empty")
        if "/" in text or "\\" in text:
            raise ArgumentError(f"Inclusion pattern matches names only, not paths: {text}")

        folded = text if case_sensitive else text.casefold()
        if text in MATCH_ALL_PATTERNS:
            return cls(text=text, head="", middle=(), tail="", has_wildcard=True, case_sensitive=case_sensitive)

        parts = folded.split("*")
        if len(parts) == 1:
            return cls(text=text, head=folded, middle=(), tail="", has_wildcard=False, case_sensitive=case_sensitive)

        return cls(
            text=text,
            head=parts[0],
            middle=tuple(part for part in parts[1:-1] if part),
            tail=parts[-1],
            has_wildcard=True,
            case_sensitive=case_sensitive,
        )

    def matches(self, name: str) -> bool:
        candidate = name if self.case_sensitive else name.casefold()
        if not self.has_wildcard:
            return candidate == self.head

        if len(candidate) < len(self.head) + len(self.tail):
            return False
        if not candidate.startswith(self.head) or not candidate.endswith(self.tail):
            return False

        position = len(self.head)
        limit = len(candidate) - len(self.tail)
        for fragment in self.middle:
            found = candidate.find(fragment, position, limit)
            if found < 0:
                return False
            position = found + len(fragment)
        return True


class PatternMatcher:
    def __init__(self, patterns: Iterable[str] = (), case_sensitive: bool | None = None) -> None:
        if case_sensitive is None:
            case_sensitive = default_case_sensitive()
        self.case_sensitive = case_sensitive
        self._patterns = tuple(WildcardPattern.compile(text, case_sensitive) for text in patterns)

    @property
    def patterns(self) -> tuple[str, ...]:
        return tuple(pattern.text for pattern in self._patterns)

    def match(self, name: str) -> bool:
        if not self._patterns:
            return True
        return any(pattern.matches(name) for pattern in self._patterns)


def match(name: str, patterns: Iterable[str], case_sensitive: bool | None = None) -> bool:
    return PatternMatcher(patterns, case_sensitive=case_sensitive).match(name)
