"""Property-based tests for tree synchronization.

For arbitrary source and pre-existing replica trees, one pass makes the
replica an exact mirror, and a second pass finds nothing to do.
"""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path
from typing import Any

from hypothesis import given, settings
from hypothesis import strategies as st

from replica_sync import IN_SYNC, files_are_equal, sync_folders

from .conftest import snapshot

names = st.text(alphabet="abcde", min_size=1, max_size=3)

subtrees = st.recursive(
    st.binary(max_size=64),
    lambda children: st.dictionaries(names, children, max_size=4),
    max_leaves=12,
)

trees = st.dictionaries(names, subtrees, max_size=5)


def materialize(root: Path, tree: dict[str, Any]) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for name, value in tree.items():
        path = root / name
        if isinstance(value, bytes):
            path.write_bytes(value)
        else:
            materialize(path, value)


@given(source_tree=trees, replica_tree=trees)
@settings(max_examples=60, deadline=None)
def test_pass_produces_mirror_and_is_idempotent(source_tree: dict, replica_tree: dict) -> None:
    with tempfile.TemporaryDirectory() as tmp_dir:
        source = Path(tmp_dir) / "source"
        replica = Path(tmp_dir) / "replica"
        materialize(source, source_tree)
        materialize(replica, replica_tree)
        stop_event = threading.Event()

        sync_folders(source, replica, stop_event)

        assert snapshot(replica) == snapshot(source)
        for path in source.rglob("*"):
            if path.is_file():
                assert files_are_equal(path, replica / path.relative_to(source))

        second = sync_folders(source, replica, stop_event)
        assert [e.action for e in second] == [IN_SYNC]


@given(before=trees, after=trees)
@settings(max_examples=40, deadline=None)
def test_replica_follows_source_across_edits(before: dict, after: dict) -> None:
    with tempfile.TemporaryDirectory() as tmp_dir:
        source = Path(tmp_dir) / "source"
        replica = Path(tmp_dir) / "replica"
        stop_event = threading.Event()

        materialize(source, before)
        sync_folders(source, replica, stop_event)

        # swap the source for a completely different tree
        source.rename(Path(tmp_dir) / "old-source")
        materialize(source, after)
        sync_folders(source, replica, stop_event)

        assert snapshot(replica) == snapshot(source)
