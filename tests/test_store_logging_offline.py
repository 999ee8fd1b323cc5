"""Offline tests for structured logging from TreeBase.

Refused mutations and degraded walks log at WARNING with ``op`` and
``reason`` attributes; successful mutations log at DEBUG with ``op``.
"""

import logging

from treebase import TreeBase


def test_refused_move_logs_op_and_reason(store: TreeBase, caplog) -> None:
    """A cyclic move logs a warning carrying op, item_id and reason."""

    caplog.set_level(logging.WARNING, logger="treebase.store")

    store.move("1", pid="a")

    records = [r for r in caplog.records if getattr(r, "op", None) == "move"]
    assert records and records[0].levelno == logging.WARNING
    assert records[0].item_id == "1"
    assert records[0].reason == store.last_diagnostic.reason
    assert records[0].domain == "treebase"


def test_update_with_structural_fields_logs_warning(store: TreeBase, caplog) -> None:
    caplog.set_level(logging.WARNING, logger="treebase.store")

    store.update("a", {"pid": "1"})

    assert any(
        getattr(r, "op", None) == "update" and "pid" in getattr(r, "reason", "")
        for r in caplog.records
    )


def test_truncated_walk_logs_warning(caplog) -> None:
    store = TreeBase(options={"max_depth": 2})
    parent = "root"
    for n in range(5):
        parent = store.add({"id": f"c{n}", "pid": parent})["id"]

    caplog.set_level(logging.WARNING, logger="treebase.store")
    assert store.get_parents("c4") == ["c3", "c2"]
    assert any(getattr(r, "reason", None) == "truncated" for r in caplog.records)


def test_mutations_log_debug_with_op(store: TreeBase, caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="treebase.store")

    store.add({"id": "n", "pid": "1"})
    store.move("n", index=0)
    store.remove("n")

    ops = [getattr(r, "op", None) for r in caplog.records if r.levelno == logging.DEBUG]
    assert ops[:3] == ["add", "move", "remove"]
