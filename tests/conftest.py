"""Shared fixtures for the replica sync tests."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Union

import pytest

DIR = "<dir>"


def write_tree(root: Path, files: Dict[str, Union[str, bytes, None]]) -> None:
    """Create files under root. A value of None makes an empty directory."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        if content is None:
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)


def snapshot(root: Path) -> Dict[str, Union[str, bytes]]:
    """Map every relative path under root to its bytes, or DIR for folders."""
    result: Dict[str, Union[str, bytes]] = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        result[rel] = DIR if path.is_dir() else path.read_bytes()
    return result


@pytest.fixture
def source(tmp_path: Path) -> Path:
    path = tmp_path / "source"
    path.mkdir()
    return path


@pytest.fixture
def replica(tmp_path: Path) -> Path:
    path = tmp_path / "replica"
    path.mkdir()
    return path


@pytest.fixture
def stop_event() -> threading.Event:
    return threading.Event()
