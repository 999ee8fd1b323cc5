"""Initial data loading for treebase.

Converts the two accepted input shapes into a canonical Collection:

- a flat mapping ``id -> item`` (``collection_from_mapping``)
- a nested tree literal (``flatten_tree``)

Both transforms copy their input, rewrite the configured parent key into the
canonical ``pid`` field and default missing parents to the root sentinel.
Malformed entries are logged and skipped rather than aborting the load.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .const import DOMAIN, ID_FIELD, INDEX_FIELD, PID_FIELD
from .models import Collection, Item, TreeOptions

LOGGER = logging.getLogger(__name__)


def _pop_parent(node: dict[str, Any], options: TreeOptions) -> Any:
    parent = node.pop(options.pid, None)
    if options.pid != PID_FIELD:
        canonical = node.pop(PID_FIELD, None)
        if parent is None:
            parent = canonical
    return parent


def _sanitize_index(item: Item, *, op: str) -> None:
    index = item.get(INDEX_FIELD)
    if index is None or (isinstance(index, int) and not isinstance(index, bool)):
        return
    LOGGER.warning(
        "Dropping non-integer index from loaded item",
        extra={"domain": DOMAIN, "op": op, "item_id": item.get(ID_FIELD), "index": index},
    )
    item.pop(INDEX_FIELD, None)


def _warn_root_id(item_id: str, *, op: str) -> None:
    LOGGER.warning(
        "Skipping loaded item whose id is the root sentinel",
        extra={"domain": DOMAIN, "op": op, "item_id": item_id},
    )


def _resolve_loaded_pid(item_id: str, parent: Any, options: TreeOptions, *, op: str) -> str:
    if parent is None or parent == "":
        return options.default_root
    pid = str(parent)
    if pid == item_id:
        LOGGER.warning(
            "Loaded item referenced itself as parent; attaching to root",
            extra={"domain": DOMAIN, "op": op, "item_id": item_id},
        )
        return options.default_root
    return pid


def collection_from_mapping(data: Mapping[Any, Any], options: TreeOptions) -> Collection:
    """Build a Collection from a flat ``id -> item`` mapping.

    Keys are coerced to strings and injected as the item ``id``. A value stored
    under the configured parent key becomes ``pid``; missing parents default to
    the root sentinel. An entry keyed by the root sentinel itself is skipped.
    """

    result: Collection = {}
    for raw_id, raw_item in data.items():
        if not isinstance(raw_item, Mapping):
            LOGGER.warning(
                "Skipping non-mapping item in collection input",
                extra={"domain": DOMAIN, "op": "load_collection", "item_id": str(raw_id)},
            )
            continue
        item_id = str(raw_id)
        if item_id == options.default_root:
            _warn_root_id(item_id, op="load_collection")
            continue
        item: Item = dict(raw_item)
        parent = _pop_parent(item, options)
        item[ID_FIELD] = item_id
        item[PID_FIELD] = _resolve_loaded_pid(item_id, parent, options, op="load_collection")
        _sanitize_index(item, op="load_collection")
        result[item_id] = item
    return result


def flatten_tree(
    tree: Iterable[Any],
    options: TreeOptions,
    *,
    parent_id: str | None = None,
    result: Collection | None = None,
) -> Collection:
    """Flatten a nested tree literal into a Collection.

    Each node's parent is its explicit parent field when present, otherwise the
    id of the enclosing node, otherwise the root sentinel. Nodes without an id
    are skipped (their children attach to the enclosing node). ``None`` holes,
    as produced by index-preserving trees, are ignored. Repeated ids are merged
    with later fields winning.
    """

    if result is None:
        result = {}
    for raw_node in tree:
        if raw_node is None:
            continue
        if not isinstance(raw_node, Mapping):
            LOGGER.warning(
                "Skipping non-mapping node in tree input",
                extra={"domain": DOMAIN, "op": "load_tree"},
            )
            continue
        node: dict[str, Any] = dict(raw_node)
        children = node.pop(options.children, None)
        parent = _pop_parent(node, options)
        if parent is None:
            parent = parent_id

        raw_id = node.get(ID_FIELD)
        if raw_id is None or raw_id == "":
            LOGGER.debug(
                "Skipping tree node without id",
                extra={"domain": DOMAIN, "op": "load_tree"},
            )
            if children:
                flatten_tree(children, options, parent_id=parent_id, result=result)
            continue

        item_id = str(raw_id)
        if item_id == options.default_root:
            _warn_root_id(item_id, op="load_tree")
            if children:
                flatten_tree(children, options, parent_id=parent_id, result=result)
            continue

        item: Item = {**result.get(item_id, {}), **node}
        item[ID_FIELD] = item_id
        item[PID_FIELD] = _resolve_loaded_pid(item_id, parent, options, op="load_tree")
        _sanitize_index(item, op="load_tree")
        result[item_id] = item

        if children:
            flatten_tree(children, options, parent_id=item_id, result=result)
    return result
