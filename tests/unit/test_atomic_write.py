"""Unit tests for crash-safe file writes."""

import os
from pathlib import Path

import pytest

from edu_cms.app.articles import atomic
from edu_cms.app.articles.atomic import atomic_write, temp_path_for


def test_atomic_write_creates_file(tmp_path: Path) -> None:
    """Test writing a new file."""
    target = tmp_path / "doc.json"

    atomic_write(target, b'{"a": 1}')

    assert target.read_bytes() == b'{"a": 1}'
    assert list(tmp_path.iterdir()) == [target]


def test_atomic_write_replaces_existing_file(tmp_path: Path) -> None:
    """Test overwriting keeps only the new content."""
    target = tmp_path / "doc.json"
    target.write_bytes(b"old")

    atomic_write(target, b"new")

    assert target.read_bytes() == b"new"


def test_failed_rename_keeps_old_content_and_removes_temp(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test a crash before the rename leaves the destination untouched."""
    target = tmp_path / "doc.json"
    target.write_bytes(b"old")

    def failing_replace(src: str, dst: str) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(atomic.os, "replace", failing_replace)

    with pytest.raises(OSError, match="disk full"):
        atomic_write(target, b"new")

    assert target.read_bytes() == b"old"
    assert [p.name for p in tmp_path.iterdir()] == ["doc.json"]


def test_failed_write_never_creates_destination(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test a crash mid-write on a new file leaves no file at all."""
    target = tmp_path / "new.json"

    def failing_fsync(fd: int) -> None:
        raise OSError("io error")

    monkeypatch.setattr(atomic.os, "fsync", failing_fsync)

    with pytest.raises(OSError):
        atomic_write(target, b"data")

    assert not target.exists()
    assert list(tmp_path.iterdir()) == []


def test_missing_directory_raises(tmp_path: Path) -> None:
    """Test the destination directory must exist."""
    with pytest.raises(OSError):
        atomic_write(tmp_path / "missing" / "doc.json", b"x")


def test_temp_paths_are_unique_siblings(tmp_path: Path) -> None:
    """Test temporary names are distinct and live next to the target."""
    target = tmp_path / "doc.json"

    first = temp_path_for(target)
    second = temp_path_for(target)

    assert first != second
    assert first.parent == target.parent
    assert first.name.startswith("doc.json.")
    assert first.suffix == ".tmp"
    assert os.path.dirname(first) == os.path.dirname(target)
