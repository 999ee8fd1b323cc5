"""Shared fixtures for offline treebase tests.

Ensures the project root is importable when tests run without an editable
install, and provides the reference collection used across scenarios:

    1 (root)
    └── 2
        ├── 3  (index 0)
        ├── a  (index 1)
        └── b  (index 2)
"""

import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for module imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from treebase import TreeBase  # noqa: E402


def make_reference_collection() -> dict:
    return {
        "1": {"title": "Root Item", "pid": "root"},
        "2": {"title": "item 2", "pid": "1"},
        "3": {"title": "Inner Item 3", "pid": "2", "index": 0},
        "a": {"title": "Inner Item a", "pid": "2", "index": 1},
        "b": {"title": "Inner Item b", "pid": "2", "index": 2},
    }


def sibling_order(store: TreeBase, pid: str) -> list[str]:
    """Ids of ``pid``'s children ordered by index."""

    children = store.get_direct_children(pid)
    return [child["id"] for child in sorted(children, key=lambda c: c["index"])]


def tree_ids(nodes: list, children_key: str = "children") -> list:
    """Reduce a materialized tree to nested ``(id, [children])`` pairs."""

    result = []
    for node in nodes:
        if node is None:
            result.append(None)
            continue
        result.append((node["id"], tree_ids(node.get(children_key, []), children_key)))
    return result


@pytest.fixture
def reference_collection() -> dict:
    return make_reference_collection()


@pytest.fixture
def store() -> TreeBase:
    return TreeBase(make_reference_collection())
