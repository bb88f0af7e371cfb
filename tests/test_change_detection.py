"""Tests for MD5 based file comparison."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from replica_sync import files_are_equal, md5_file


def test_md5_file_matches_hashlib(tmp_path: Path) -> None:
    data = os.urandom(3 * 1024 + 17)
    path = tmp_path / "blob.bin"
    path.write_bytes(data)

    assert md5_file(path, chunk_size=1024) == hashlib.md5(data).hexdigest()


def test_md5_file_of_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "empty"
    path.write_bytes(b"")

    assert md5_file(path) == hashlib.md5(b"").hexdigest()


def test_identical_content_is_equal(tmp_path: Path) -> None:
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("hello")
    b.write_text("hello")

    assert files_are_equal(a, b)


def test_same_size_different_bytes_is_not_equal(tmp_path: Path) -> None:
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("hello")
    b.write_text("hellp")

    assert not files_are_equal(a, b)


def test_different_size_is_not_equal(tmp_path: Path) -> None:
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("hello")
    b.write_text("hello world")

    assert not files_are_equal(a, b)


def test_timestamps_are_ignored(tmp_path: Path) -> None:
    a = tmp_path / "a.txt"
    b = tmp_path / "b.txt"
    a.write_text("same")
    b.write_text("same")
    os.utime(a, (1_000_000, 1_000_000))
    os.utime(b, (2_000_000, 2_000_000))

    assert files_are_equal(a, b)


def test_missing_file_propagates(tmp_path: Path) -> None:
    a = tmp_path / "a.txt"
    a.write_text("hello")

    with pytest.raises(FileNotFoundError):
        files_are_equal(a, tmp_path / "gone.txt")
