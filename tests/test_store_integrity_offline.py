"""Offline tests for maintenance and diagnostics on TreeBase.

Covers explicit reindexing of raw loaded data, integrity reports for cyclic,
dangling, over-deep and unordered collections, and plain-dict snapshots.
"""

from __future__ import annotations

import logging

import pytest
from conftest import make_reference_collection, sibling_order
from treebase import TreeBase, ValidationError


def test_reindex_compacts_raw_indices() -> None:
    """Gapped and duplicate indices become 0..n-1 in stable order."""

    store = TreeBase(
        {
            "p": {"index": 0},
            "x": {"pid": "p", "index": 7},
            "y": {"pid": "p", "index": 3},
            "z": {"pid": "p"},
            "w": {"pid": "p", "index": 3},
        }
    )

    ordered = store.reindex("p")

    assert [i["id"] for i in ordered] == ["y", "w", "x", "z"]
    assert [i["index"] for i in ordered] == [0, 1, 2, 3]
    assert store.check_integrity().is_consistent


def test_reindex_is_idempotent(store: TreeBase) -> None:
    before = store.get_collection()

    store.reindex("2")
    first = store.get_collection()
    store.reindex("2")

    assert first == store.get_collection()
    assert [first[i]["index"] for i in ("3", "a", "b")] == [0, 1, 2]
    assert before["a"] == first["a"]


def test_reindex_all_normalizes_every_group() -> None:
    store = TreeBase({"1": {}, "2": {"pid": "1", "index": 5}, "3": {}})

    report = store.check_integrity()
    assert set(report.unordered_parents) == {"root", "1"}

    store.reindex_all()
    assert store.check_integrity().is_consistent
    assert sibling_order(store, "root") == ["1", "3"]


def test_check_integrity_reports_structural_damage(caplog) -> None:
    """Cycles, dangling parents and over-deep chains are each reported."""

    caplog.set_level(logging.WARNING, logger="treebase.store")
    data = {
        "x": {"pid": "y", "index": 0},
        "y": {"pid": "x", "index": 0},
        "z": {"pid": "ghost", "index": 0},
    }
    for n in range(15):
        data[f"n{n}"] = {"pid": f"n{n - 1}" if n else "root", "index": 0}
    store = TreeBase(data)

    report = store.check_integrity()

    assert report.cyclic_ids == ["x", "y"]
    assert report.dangling_ids == ["z"]
    assert report.truncated_ids == ["n11", "n12", "n13", "n14"]
    assert not report.is_consistent
    assert any(getattr(r, "op", None) == "check_integrity" for r in caplog.records)


def test_check_integrity_clean_reference(store: TreeBase) -> None:
    assert store.check_integrity().is_consistent


def test_cyclic_data_does_not_hang_queries() -> None:
    store = TreeBase({"x": {"pid": "y"}, "y": {"pid": "x"}})

    assert store.get_parents("x") == ["y"]
    assert {i["id"] for i in store.get_deep_children("x")} == {"y"}
    # Moving out of the cycle restores a valid chain
    store.move("x", pid="root")
    assert store.get_parents("y") == ["x"]


def test_export_and_restore_snapshot(store: TreeBase) -> None:
    snapshot = store.export_state()

    assert snapshot["schema_version"] == 1
    assert snapshot["default_root"] == "root"
    assert list(snapshot["items"]) == sorted(make_reference_collection())

    restored = TreeBase.from_state(snapshot)
    assert restored.get_collection() == store.get_collection()
    assert restored.get_tree() == store.get_tree()

    # Snapshot is detached from the live store
    snapshot["items"]["a"]["title"] = "changed"
    assert store.get_item("a")["title"] == "Inner Item a"


def test_load_state_handles_garbage(store: TreeBase, caplog) -> None:
    store.load_state("garbage")  # type: ignore[arg-type]
    assert len(store) == 0

    caplog.set_level(logging.WARNING, logger="treebase.store")
    store.load_state({"schema_version": 99, "items": {"k": {}}})
    assert "k" in store
    assert any(getattr(r, "op", None) == "load_state" for r in caplog.records)

    with pytest.raises(ValidationError):
        store.load_state({"items": ["k"]})
