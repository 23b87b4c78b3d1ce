import os
from pathlib import Path

import pytest

from colemencopy import eraser as eraser_module
from colemencopy.eraser import SecureEraser
from colemencopy.errors import SecureDeleteError


def test_erase_overwrites_each_pass_before_unlinking(tmp_path: Path, monkeypatch) -> None:
    target = tmp_path / "secret.bin"
    target.write_bytes(b"top secret data")
    snapshots: list[bytes] = []
    real_fsync = os.fsync

    def recording_fsync(fd: int) -> None:
        real_fsync(fd)
        snapshots.append(target.read_bytes())

    monkeypatch.setattr(eraser_module.os, "fsync", recording_fsync)

    SecureEraser().erase(target)

    assert not target.exists()
    assert snapshots[0] == b"\x00" * 15
    assert snapshots[1] == b"\xff" * 15
    assert len(snapshots[2]) == 15
    assert snapshots[2] != b"top secret data"
    assert snapshots[-1] == b""


def test_overwrite_failure_leaves_file_in_place(tmp_path: Path, monkeypatch) -> None:
    target = tmp_path / "secret.bin"
    target.write_bytes(b"top secret data")

    def failing_fsync(fd: int) -> None:
        raise OSError(5, "Input/output error")

    monkeypatch.setattr(eraser_module.os, "fsync", failing_fsync)

    with pytest.raises(SecureDeleteError):
        SecureEraser().erase(target)

    assert target.exists()
    assert target.stat().st_size > 0


def test_erase_directory_removes_whole_tree(tmp_path: Path) -> None:
    root = tmp_path / "tree"
    (root / "a" / "b").mkdir(parents=True)
    (root / "a" / "b" / "x.bin").write_bytes(b"x" * 100_000)
    (root / "y.bin").write_bytes(b"y")

    SecureEraser().erase(root)

    assert not root.exists()


@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_erase_readonly_file(tmp_path: Path) -> None:
    target = tmp_path / "ro.bin"
    target.write_bytes(b"data")
    os.chmod(target, 0o444)

    SecureEraser().erase(target)

    assert not target.exists()


def test_fewer_than_three_passes_is_rejected() -> None:
    with pytest.raises(ValueError):
        SecureEraser(passes=(0x00, None))
