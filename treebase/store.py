"""In-memory collection store for treebase.

This module provides ``TreeBase``, a synchronous store owning a flat
``id -> item`` collection linked by ``pid`` back-references. It answers
hierarchy queries (children, descendants, ancestors), materializes nested
trees on demand and implements add/update/remove/move while keeping sibling
indices compact and the parent graph acyclic.

Every write to an item's ``index`` goes through ``_reindex_siblings``. Refused
structural changes (self moves, cyclic moves, missing targets) are not errors:
they leave the collection untouched, log a warning and record a
``Diagnostic`` on ``last_diagnostic``.

The store is not thread-safe; callers sharing an instance across threads must
serialize access.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from .const import CURRENT_SCHEMA_VERSION, DOMAIN, ID_FIELD, INDEX_FIELD, PID_FIELD
from .exceptions import ConflictError, NotFoundError, ValidationError
from .loading import collection_from_mapping, flatten_tree
from .models import (
    ChildPolicy,
    Collection,
    Diagnostic,
    IntegrityReport,
    Item,
    ItemCheck,
    TreeNode,
    TreeOptions,
    copy_item,
    insert_at,
    is_compact,
    new_item_id,
    sort_by_index,
    split_payload,
)
from .schemas import (
    SCHEMA_ITEM_ADD,
    SCHEMA_ITEM_CHECK,
    SCHEMA_MOVE,
    SCHEMA_REMOVE,
    build_options,
    validate,
)

LOGGER = logging.getLogger(__name__)

# Outcomes of an ancestor walk
WALK_OK = "ok"
WALK_CYCLE = "cycle"
WALK_TRUNCATED = "truncated"
WALK_DANGLING = "dangling"


class TreeBase:
    """Flat id-keyed collection with tree queries and order-preserving mutations.

    Args:
        collection: Optional flat mapping ``id -> item``.
        tree: Optional nested tree literal. Mutually exclusive with ``collection``.
        options: Raw option mapping (validated) or a ``TreeOptions`` instance.

    Example:
        >>> store = TreeBase({"1": {"title": "Docs"}})
        >>> store.add({"pid": "1", "title": "Intro"})["index"]
        0
    """

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def __init__(
        self,
        collection: Mapping[Any, Any] | None = None,
        *,
        tree: Iterable[Any] | None = None,
        options: Mapping[str, Any] | TreeOptions | None = None,
    ) -> None:
        self.options: TreeOptions = (
            options if isinstance(options, TreeOptions) else build_options(options)
        )
        # Primary store
        self._items: Collection = {}
        # parent id -> ordered set of child ids (dict keys keep append order)
        self._child_ids_by_pid: dict[str, dict[str, None]] = {}
        self.last_diagnostic: Diagnostic | None = None

        if collection is not None and tree is not None:
            raise ValidationError("pass either a collection or a tree, not both")
        if tree is not None:
            loaded = flatten_tree(tree, self.options)
        elif collection is not None:
            if not isinstance(collection, Mapping):
                raise ValidationError("collection must be a mapping of id to item")
            loaded = collection_from_mapping(collection, self.options)
        else:
            loaded = {}
        for item in loaded.values():
            self._put(item)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return str(item_id) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __repr__(self) -> str:
        return f"TreeBase({len(self._items)} items, root={self.options.default_root!r})"

    @property
    def root_id(self) -> str:
        return self.options.default_root

    # -----------------------------
    # Internal helpers: indexing
    # -----------------------------

    def _put(self, item: Item) -> None:
        item_id = item[ID_FIELD]
        previous = self._items.get(item_id)
        if previous is not None and previous[PID_FIELD] != item[PID_FIELD]:
            self._unlink(item_id, previous[PID_FIELD])
        self._items[item_id] = item
        self._child_ids_by_pid.setdefault(item[PID_FIELD], {})[item_id] = None

    def _unlink(self, item_id: str, pid: str) -> None:
        bucket = self._child_ids_by_pid.get(pid)
        if bucket is None:
            return
        bucket.pop(item_id, None)
        if not bucket:
            self._child_ids_by_pid.pop(pid, None)

    def _drop(self, item_id: str) -> Item | None:
        item = self._items.pop(item_id, None)
        if item is not None:
            self._unlink(item_id, item[PID_FIELD])
        return item

    def _direct_child_ids(self, pid: str) -> list[str]:
        return list(self._child_ids_by_pid.get(pid, {}))

    def _require(self, item_id: str | int) -> Item:
        item = self._items.get(str(item_id))
        if item is None:
            raise NotFoundError(f"item not found: {item_id}")
        return item

    def _parent_exists(self, pid: str) -> bool:
        return pid == self.options.default_root or pid in self._items

    def _full_walk_bound(self) -> int:
        # A legitimate chain cannot be longer than the collection itself.
        return len(self._items) + 1

    # -----------------------------
    # Internal helpers: hierarchy
    # -----------------------------

    def _walk_parents(
        self, item_id: str, *, stop_at: str | None, max_steps: int
    ) -> tuple[list[str], str]:
        """Follow ``pid`` links upward from ``item_id``.

        Returns the ancestor ids (nearest first, ``stop_at`` excluded) and the
        walk outcome: ok, cycle, truncated (bound reached) or dangling (a link
        points at a missing item other than the root sentinel). With
        ``stop_at=None`` the root sentinel itself ends the list.
        """

        result: list[str] = []
        seen: set[str] = {item_id}
        item = self._items.get(item_id)
        while item is not None:
            pid = item[PID_FIELD]
            if pid == stop_at:
                return result, WALK_OK
            if pid in seen:
                return result, WALK_CYCLE
            if len(result) >= max_steps:
                return result, WALK_TRUNCATED
            result.append(pid)
            seen.add(pid)
            item = self._items.get(pid)
        if result and result[-1] != self.options.default_root:
            return result, WALK_DANGLING
        return result, WALK_OK

    def _collect_descendant_ids(self, root_id: str) -> list[str]:
        """Collect all descendant ids (excluding the root itself), breadth-first."""

        result: list[str] = []
        visited: set[str] = {root_id}
        queue: list[str] = [root_id]
        while queue:
            current = queue.pop(0)
            for child_id in self._direct_child_ids(current):
                if child_id not in visited:
                    visited.add(child_id)
                    result.append(child_id)
                    queue.append(child_id)
        return result

    def _deep_children_by_containers(self, pid: str) -> list[Item]:
        is_dir = self.options.is_dir
        assert is_dir is not None
        result: list[Item] = []
        visited: set[str] = {pid}
        level: list[str] = [pid]
        while level:
            next_level: list[str] = []
            for parent_id in level:
                for child_id in self._direct_child_ids(parent_id):
                    child = copy_item(self._items[child_id])
                    result.append(child)
                    if child_id not in visited and is_dir(child):
                        visited.add(child_id)
                        next_level.append(child_id)
            level = next_level
        return result

    # -----------------------------
    # Internal helpers: ordering
    # -----------------------------

    def _reindex_siblings(
        self,
        pid: str,
        *,
        remove_id: str | None = None,
        insert: Item | None = None,
        position: int | None = None,
        adopt: Iterable[Item] = (),
    ) -> list[str]:
        """Recompute the sibling group of ``pid`` and write it back.

        Siblings are stable-sorted by ``index`` (unindexed last), ``remove_id``
        is left out, adopted items are appended in their own index order and
        ``insert`` is spliced in at the clamped ``position`` (appended when
        ``None``). Every member is then renumbered ``0..n-1`` under ``pid``.
        """

        adopted = list(adopt)
        adopted_ids = {item[ID_FIELD] for item in adopted}
        siblings = [
            self._items[child_id]
            for child_id in self._direct_child_ids(pid)
            if child_id != remove_id and child_id not in adopted_ids
        ]
        ordered = sort_by_index(siblings)
        ordered.extend(sort_by_index(adopted))
        if insert is not None:
            ordered = insert_at(ordered, position, insert)

        for pos, item in enumerate(ordered):
            self._put({**item, PID_FIELD: pid, INDEX_FIELD: pos})
        return [item[ID_FIELD] for item in ordered]

    def _adopt_children(self, old_pid: str, new_pid: str) -> list[str]:
        children = [self._items[child_id] for child_id in self._direct_child_ids(old_pid)]
        if not children:
            return []
        self._reindex_siblings(new_pid, adopt=children)
        return [child[ID_FIELD] for child in children]

    def _ensure_orphan_holder(self) -> str:
        holder_id = self.options.orphan_id
        if holder_id not in self._items:
            root = self.options.default_root
            self._reindex_siblings(root, insert={ID_FIELD: holder_id, PID_FIELD: root})
            LOGGER.debug(
                "Orphan holder created",
                extra={"domain": DOMAIN, "op": "remove", "item_id": holder_id},
            )
        return holder_id

    # -----------------------------
    # Internal helpers: diagnostics
    # -----------------------------

    def _begin(self) -> None:
        self.last_diagnostic = None

    def _diagnose(self, op: str, reason: str, item_id: str | None) -> Diagnostic:
        diagnostic = Diagnostic(op=op, reason=reason, item_id=item_id)
        self.last_diagnostic = diagnostic
        LOGGER.warning(
            reason,
            extra={"domain": DOMAIN, "op": op, "item_id": item_id, "reason": reason},
        )
        return diagnostic

    # -----------------------------
    # Public API: queries
    # -----------------------------

    def get_collection(self) -> Collection:
        """Return a copy of the flat collection; every item carries its ``pid``."""

        return {item_id: copy_item(item) for item_id, item in self._items.items()}

    def get_item(self, item_id: str | int) -> Item:
        return copy_item(self._require(item_id))

    def has_item(self, item_id: str | int) -> bool:
        return str(item_id) in self._items

    def get_direct_children(self, pid: str | int) -> list[Item]:
        """Items whose ``pid`` equals ``pid``, in collection order (not sorted)."""

        return [copy_item(self._items[child_id]) for child_id in self._direct_child_ids(str(pid))]

    def get_deep_children(self, pid: str | int) -> list[Item]:
        """All transitive descendants of ``pid`` as a flat list.

        With an ``is_dir`` predicate configured, traversal is breadth-first and
        only descends through items classified as containers. Without one,
        every item is tested for having ``pid`` among its ancestors.
        """

        key = str(pid)
        if self.options.is_dir is not None:
            return self._deep_children_by_containers(key)

        bound = self._full_walk_bound()
        result: list[Item] = []
        for item_id, item in self._items.items():
            # Walk past the root sentinel so it can be asked for too.
            ancestors, _ = self._walk_parents(item_id, stop_at=None, max_steps=bound)
            if key in ancestors:
                result.append(copy_item(item))
        return result

    def get_parents(
        self,
        item_id: str | int,
        root_id: str | None = None,
        *,
        max_steps: int | None = None,
    ) -> list[str]:
        """Return ancestor ids of ``item_id`` from nearest to furthest.

        The walk stops before ``root_id`` (the root sentinel by default) or
        after ``max_steps`` hops (``options.max_depth`` by default). A cycle or
        a reached bound ends the walk early and is logged as a warning; use
        ``check_integrity`` to find the affected items.
        """

        key = str(item_id)
        stop_at = root_id if root_id is not None else self.options.default_root
        steps = max_steps if max_steps is not None else self.options.max_depth
        ancestors, outcome = self._walk_parents(key, stop_at=stop_at, max_steps=steps)
        if outcome in (WALK_CYCLE, WALK_TRUNCATED):
            LOGGER.warning(
                "Ancestor walk stopped early",
                extra={"domain": DOMAIN, "op": "get_parents", "item_id": key, "reason": outcome},
            )
        return ancestors

    def is_deep_parent(
        self, item_id: str | int, pid: str | int, *, max_steps: int | None = None
    ) -> bool:
        """True if ``pid`` is an ancestor of ``item_id``."""

        return str(pid) in self.get_parents(item_id, max_steps=max_steps)

    def have_children(self, item_id: str | int) -> bool:
        return bool(self._child_ids_by_pid.get(str(item_id)))

    def find_sibling(self, pid: str | int, key: str, value: Any) -> Item | None:
        """Return the first direct child of ``pid`` whose ``key`` equals ``value``."""

        for child_id in self._direct_child_ids(str(pid)):
            child = self._items[child_id]
            if key in child and child[key] == value:
                return copy_item(child)
        return None

    def get_tree(self, root_id: str | None = None, keep_index: bool = True) -> list[TreeNode]:
        """Materialize the hierarchy below ``root_id`` as nested nodes.

        Each node is a copy of its item; nodes with children carry them under
        the configured children key. With ``keep_index`` an item's explicit
        ``index`` selects its slot, so non-contiguous raw indices leave ``None``
        holes; an occupied slot or a missing index appends instead. Slots are
        capped at the collection size, so an index beyond it appends too.
        """

        root = root_id if root_id is not None else self.options.default_root
        children_key = self.options.children
        # A group cannot hold more members than the collection
        max_slot = len(self._items)
        nodes: dict[str, TreeNode] = {}
        slotted: dict[str, list[TreeNode | None]] = {}
        appended: dict[str, list[TreeNode]] = {}

        for item_id, item in self._items.items():
            node: TreeNode = dict(item)
            nodes[item_id] = node
            pid = item[PID_FIELD]
            index = item.get(INDEX_FIELD)
            if keep_index and isinstance(index, int) and 0 <= index <= max_slot:
                slots = slotted.setdefault(pid, [])
                if index >= len(slots):
                    slots.extend([None] * (index + 1 - len(slots)))
                if slots[index] is None:
                    slots[index] = node
                    continue
            appended.setdefault(pid, []).append(node)

        children_by_pid: dict[str, list[TreeNode | None]] = {}
        for pid in {*slotted, *appended}:
            children_by_pid[pid] = [*slotted.get(pid, []), *appended.get(pid, [])]
            parent = nodes.get(pid)
            if parent is not None:
                parent[children_key] = children_by_pid[pid]

        return children_by_pid.get(root, [])  # type: ignore[return-value]

    # -----------------------------
    # Public API: mutations
    # -----------------------------

    def add(self, item: Mapping[str, Any], check: ItemCheck | None = None) -> Item:
        """Insert an item into its sibling group and return it.

        Args:
            item: Payload with optional ``id``, ``pid`` and ``index``; other
                fields are carried through unchanged.
            check: Optional ``{"key", "value"}`` duplicate check. When a
                sibling already matches, nothing is inserted and that sibling
                is returned.
        """

        self._begin()
        if not isinstance(item, Mapping):
            raise ValidationError("item must be a mapping")
        raw = dict(item)
        if self.options.pid != PID_FIELD and self.options.pid in raw:
            raw[PID_FIELD] = raw.pop(self.options.pid)
        payload = validate(SCHEMA_ITEM_ADD, raw, op="add")

        root = self.options.default_root
        pid = payload.get(PID_FIELD) or root
        if not self._parent_exists(pid):
            raise ValidationError(f"pid must reference an existing item: {pid}")

        if check is not None:
            wanted = validate(SCHEMA_ITEM_CHECK, check, op="add")
            existing = self.find_sibling(pid, wanted["key"], wanted["value"])
            if existing is not None:
                LOGGER.debug(
                    "Duplicate check matched an existing sibling",
                    extra={"domain": DOMAIN, "op": "add", "item_id": existing[ID_FIELD]},
                )
                return existing

        item_id = payload.get(ID_FIELD)
        if item_id is None:
            reserved = {*self._items, root, self.options.orphan_id}
            item_id = new_item_id(
                reserved, length=self.options.id_length, factory=self.options.id_factory
            )
        elif item_id in self._items:
            raise ConflictError(f"item id already exists: {item_id}")
        if item_id == root:
            raise ValidationError("item id cannot equal the root sentinel")

        position = payload.pop(INDEX_FIELD, None)
        child: Item = {**payload, ID_FIELD: item_id, PID_FIELD: pid}
        self._reindex_siblings(pid, insert=child, position=position)

        LOGGER.debug(
            "Item added",
            extra={"domain": DOMAIN, "op": "add", "item_id": item_id, "pid": pid},
        )
        return copy_item(self._items[item_id])

    def update(self, item_id: str | int, payload: Mapping[str, Any]) -> Item:
        """Merge payload fields into an existing item.

        Structural fields (``id``, ``pid``, ``index`` and the configured parent
        key) are ignored with a warning; use ``move`` to relocate items.
        """

        self._begin()
        current = self._require(item_id)
        if not isinstance(payload, Mapping):
            raise ValidationError("update payload must be a mapping")
        key = current[ID_FIELD]

        fields, stripped = split_payload(payload, self.options)
        if stripped:
            self._diagnose(
                "update",
                f"structural fields ignored by update: {', '.join(stripped)}",
                key,
            )

        self._put({**current, **fields})
        LOGGER.debug(
            "Item updated",
            extra={"domain": DOMAIN, "op": "update", "item_id": key, "fields": sorted(fields)},
        )
        return copy_item(self._items[key])

    def edit(self, item_id: str | int, payload: Mapping[str, Any]) -> Item:
        """Alias of ``update``."""

        return self.update(item_id, payload)

    def remove(
        self,
        item_id: str | int,
        policy: ChildPolicy | None = "cascade",
        *,
        target_id: str | None = None,
    ) -> Collection:
        """Delete an item and decide the fate of its children.

        Args:
            item_id: Item to delete.
            policy: ``"cascade"`` (or ``None``) deletes every descendant,
                ``"orphan"`` moves direct children under the orphan holder,
                ``"reparent"`` moves them under ``target_id``.
            target_id: New parent for the ``"reparent"`` policy.

        Returns:
            The updated collection.
        """

        self._begin()
        current = self._require(item_id)
        args = validate(SCHEMA_REMOVE, {"policy": policy, "target_id": target_id}, op="remove")
        key = current[ID_FIELD]
        pid = current[PID_FIELD]
        chosen = args.get("policy") or "cascade"

        moved: list[str] = []
        removed: list[str] = []
        if chosen == "cascade":
            removed = self._collect_descendant_ids(key)
            for descendant_id in removed:
                self._drop(descendant_id)
        elif chosen == "orphan":
            if self.have_children(key):
                holder_id = self.options.orphan_id
                if holder_id == key or holder_id in self._collect_descendant_ids(key):
                    self._diagnose("remove", "orphan holder lies inside the removed subtree", key)
                    return self.get_collection()
                moved = self._adopt_children(key, self._ensure_orphan_holder())
        else:
            target = args.get("target_id")
            if target is None:
                raise ValidationError("reparent policy requires target_id")
            if target == key or target in self._collect_descendant_ids(key):
                self._diagnose("remove", "reparent target lies inside the removed subtree", key)
                return self.get_collection()
            if not self._parent_exists(target):
                self._diagnose("remove", f"reparent target does not exist: {target}", key)
                return self.get_collection()
            moved = self._adopt_children(key, target)

        self._drop(key)
        self._reindex_siblings(pid)

        LOGGER.debug(
            "Item removed",
            extra={
                "domain": DOMAIN,
                "op": "remove",
                "item_id": key,
                "policy": chosen,
                "removed_descendants": len(removed),
                "moved_children": len(moved),
            },
        )
        return self.get_collection()

    def delete(
        self,
        item_id: str | int,
        policy: ChildPolicy | None = "cascade",
        *,
        target_id: str | None = None,
    ) -> Collection:
        """Alias of ``remove``."""

        return self.remove(item_id, policy, target_id=target_id)

    def move(self, item_id: str | int, pid: str | None = None, index: int | None = None) -> Item:
        """Relocate an item under ``pid`` and/or to position ``index``.

        Moving an item under itself, under one of its descendants or under a
        missing parent is refused: the collection is left unchanged, a warning
        is logged and the unchanged item is returned.
        """

        self._begin()
        current = self._require(item_id)
        key = current[ID_FIELD]
        requested = {k: v for k, v in ((PID_FIELD, pid), (INDEX_FIELD, index)) if v is not None}
        args = validate(SCHEMA_MOVE, requested, op="move")
        target_pid = args.get(PID_FIELD)
        position = args.get(INDEX_FIELD)

        if target_pid is not None:
            if target_pid == key:
                self._diagnose("move", "cannot move an item under itself", key)
                return copy_item(current)
            if not self._parent_exists(target_pid):
                self._diagnose("move", f"target parent does not exist: {target_pid}", key)
                return copy_item(current)
            if self.is_deep_parent(target_pid, key, max_steps=self._full_walk_bound()):
                self._diagnose("move", "cannot move an item under one of its descendants", key)
                return copy_item(current)

        old_pid = current[PID_FIELD]
        if target_pid is not None and target_pid != old_pid:
            self._reindex_siblings(old_pid, remove_id=key)
            self._reindex_siblings(target_pid, insert=self._items[key], position=position)
        elif position is not None:
            self._reindex_siblings(old_pid, remove_id=key, insert=current, position=position)
        else:
            return copy_item(current)

        moved = self._items[key]
        LOGGER.debug(
            "Item moved",
            extra={
                "domain": DOMAIN,
                "op": "move",
                "item_id": key,
                "old_pid": old_pid,
                "pid": moved[PID_FIELD],
                "index": moved[INDEX_FIELD],
            },
        )
        return copy_item(moved)

    def reindex(self, pid: str | int | None = None) -> list[Item]:
        """Compact the sibling group of ``pid`` (root by default) to ``0..n-1``.

        Returns the group in its new order. Already compact groups are left
        as they are.
        """

        key = str(pid) if pid is not None else self.options.default_root
        ordered_ids = self._reindex_siblings(key)
        return [copy_item(self._items[child_id]) for child_id in ordered_ids]

    def reindex_all(self) -> None:
        """Compact every sibling group, e.g. after loading raw data."""

        for pid in list(self._child_ids_by_pid):
            self._reindex_siblings(pid)

    # -----------------------------
    # Diagnostics
    # -----------------------------

    def check_integrity(self) -> IntegrityReport:
        """Scan for cycles, dangling parents, over-deep chains and unordered groups."""

        report = IntegrityReport()
        root = self.options.default_root
        bound = self._full_walk_bound()
        for item_id, item in self._items.items():
            pid = item[PID_FIELD]
            if not self._parent_exists(pid):
                report.dangling_ids.append(item_id)
                continue
            ancestors, outcome = self._walk_parents(item_id, stop_at=root, max_steps=bound)
            if outcome == WALK_CYCLE:
                report.cyclic_ids.append(item_id)
            elif len(ancestors) > self.options.max_depth:
                report.truncated_ids.append(item_id)

        for pid, bucket in self._child_ids_by_pid.items():
            if not is_compact(self._items[child_id] for child_id in bucket):
                report.unordered_parents.append(pid)

        if not report.is_consistent:
            LOGGER.warning(
                "Collection integrity check found problems",
                extra={
                    "domain": DOMAIN,
                    "op": "check_integrity",
                    "cyclic": len(report.cyclic_ids),
                    "dangling": len(report.dangling_ids),
                    "truncated": len(report.truncated_ids),
                    "unordered": len(report.unordered_parents),
                },
            )
        return report

    # -----------------------------
    # Snapshot: export/import
    # -----------------------------

    def export_state(self) -> dict[str, Any]:
        """Serialize the collection to a plain dict.

        Shape:
            {"schema_version": int, "default_root": str, "items": {id -> item}}
        """

        return {
            "schema_version": CURRENT_SCHEMA_VERSION,
            "default_root": self.options.default_root,
            "items": {item_id: copy_item(self._items[item_id]) for item_id in sorted(self._items)},
        }

    def load_state(self, data: Mapping[str, Any]) -> None:
        """Replace the collection with the content of an exported snapshot."""

        self._items = {}
        self._child_ids_by_pid = {}
        self.last_diagnostic = None

        if not isinstance(data, Mapping):
            return

        version = data.get("schema_version", CURRENT_SCHEMA_VERSION)
        if version != CURRENT_SCHEMA_VERSION:
            LOGGER.warning(
                "Loading snapshot with unexpected schema version",
                extra={"domain": DOMAIN, "op": "load_state", "schema_version": version},
            )
        items = data.get("items") or {}
        if not isinstance(items, Mapping):
            raise ValidationError("snapshot items must be a mapping")
        for item in collection_from_mapping(items, self.options).values():
            self._put(item)

    @classmethod
    def from_state(
        cls,
        data: Mapping[str, Any],
        options: Mapping[str, Any] | TreeOptions | None = None,
    ) -> TreeBase:
        """Create a store from an exported snapshot."""

        store = cls(options=options)
        store.load_state(data)
        return store
