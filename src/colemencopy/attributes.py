from __future__ import annotations

from dataclasses import dataclass
from enum import IntFlag
import os
from pathlib import Path
import stat

from colemencopy.errors import ArgumentError


class FileAttribute(IntFlag):
    READONLY = 0x1
    HIDDEN = 0x2
    SYSTEM = 0x4
    ARCHIVE = 0x20
    TEMPORARY = 0x100
    COMPRESSED = 0x800
    OFFLINE = 0x1000
    NOT_CONTENT_INDEXED = 0x2000
    ENCRYPTED = 0x4000


ATTRIBUTE_LETTERS = {
    "R": FileAttribute.READONLY,
    "A": FileAttribute.ARCHIVE,
    "S": FileAttribute.SYSTEM,
    "H": FileAttribute.HIDDEN,
    "C": FileAttribute.COMPRESSED,
    "N": FileAttribute.NOT_CONTENT_INDEXED,
    "E": FileAttribute.ENCRYPTED,
    "T": FileAttribute.TEMPORARY,
    "O": FileAttribute.OFFLINE,
}

# SetFileAttributesW accepts only these; the others are managed by the filesystem.
_SETTABLE = (
    FileAttribute.READONLY
    | FileAttribute.HIDDEN
    | FileAttribute.SYSTEM
    | FileAttribute.ARCHIVE
    | FileAttribute.TEMPORARY
    | FileAttribute.OFFLINE
    | FileAttribute.NOT_CONTENT_INDEXED
)

_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


def parse_attribute_letters(text: str) -> FileAttribute:
    result = FileAttribute(0)
    for letter in text.upper():
        flag = ATTRIBUTE_LETTERS.get(letter)
        if flag is None:
            raise ArgumentError(f"Unknown attribute letter '{letter}' (expected any of RASHCNETO)")
        result |= flag
    return result


def format_attribute_letters(attributes: FileAttribute) -> str:
    return "".join(letter for letter, flag in ATTRIBUTE_LETTERS.items() if attributes & flag)


def attributes_from_stat(st: os.stat_result, name: str) -> FileAttribute:
    native = getattr(st, "st_file_attributes", None)
    if native is not None:
        return FileAttribute(native & sum(ATTRIBUTE_LETTERS.values()))

    attributes = FileAttribute(0)
    if not st.st_mode & stat.S_IWUSR:
        attributes |= FileAttribute.READONLY
    if name.startswith("."):
        attributes |= FileAttribute.HIDDEN
    return attributes


def same_mtime(first: float, second: float) -> bool:
    return int(first) == int(second)


@dataclass(frozen=True, slots=True)
class AttributePatch:
    add: FileAttribute = FileAttribute(0)
    remove: FileAttribute = FileAttribute(0)

    @classmethod
    def from_letters(cls, add: str = "", remove: str = "") -> AttributePatch | None:
        patch = cls(add=parse_attribute_letters(add), remove=parse_attribute_letters(remove))
        return None if patch.is_empty else patch

    @property
    def is_empty(self) -> bool:
        return not self.add and not self.remove

    def apply(self, current: FileAttribute) -> FileAttribute:
        return (current | self.add) & ~self.remove

    def apply_to_path(self, path: Path) -> None:
        st = path.stat()
        current = attributes_from_stat(st, path.name)
        updated = self.apply(current)
        if updated == current:
            return

        if os.name == "nt":
            _set_windows_attributes(path, updated)
            return

        # Without write bits a directory cannot receive its children.
        if stat.S_ISDIR(st.st_mode):
            return
        if updated & FileAttribute.READONLY:
            os.chmod(path, stat.S_IMODE(st.st_mode) & ~_WRITE_BITS)
        else:
            os.chmod(path, stat.S_IMODE(st.st_mode) | stat.S_IWUSR)


def _set_windows_attributes(path: Path, attributes: FileAttribute) -> None:
    import ctypes

    value = int(attributes & _SETTABLE) or 0x80  # FILE_ATTRIBUTE_NORMAL
    if not ctypes.windll.kernel32.SetFileAttributesW(str(path), value):
        raise ctypes.WinError()
