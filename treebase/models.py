"""Typed models and helpers for treebase.

This module defines the shapes exchanged with the collection store (items,
duplicate checks, options, diagnostics) and the small pure helpers the store
composes: sibling ordering, clamped insertion, id generation and payload
sanitizing.

The intent is to keep these models free of store state. ``TreeBase`` is the
only place where the flat collection is read and written.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Container, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypedDict

from .const import (
    DEFAULT_CHILDREN_KEY,
    DEFAULT_PID_KEY,
    DEFAULT_ROOT,
    ID_ALPHABET,
    ID_FIELD,
    ID_GENERATION_MAX_ATTEMPTS,
    ID_LENGTH,
    INDEX_FIELD,
    ORPHAN_HOLDER_ID,
    PARENT_WALK_MAX_STEPS,
    PID_FIELD,
)
from .exceptions import ConflictError, ValidationError

# An item is a plain mapping: id, pid, optional index plus opaque payload.
Item = dict[str, Any]
Collection = dict[str, Item]
TreeNode = dict[str, Any]

ChildPolicy = Literal["cascade", "orphan", "reparent"]

IsDirPredicate = Callable[[Item], bool]
IdFactory = Callable[[int], str]


class ItemCheck(TypedDict):
    """Duplicate check for ``add``: a sibling with ``item[key] == value`` wins."""

    key: str
    value: Any


@dataclass(frozen=True)
class TreeOptions:
    """Validated store configuration.

    Attributes:
        pid: Field holding the parent id in input data.
        children: Field holding nested children in tree literals and in
            materialized trees.
        default_root: Sentinel id of the implicit top-level parent.
        is_dir: Optional predicate classifying container items. When set,
            deep-children queries only descend through containers.
        orphan_id: Id of the holder adopting children under the orphan policy.
        max_depth: Hop bound for public ancestor walks.
        id_length: Length of generated ids.
        id_factory: Optional callable ``(length) -> str`` replacing the
            default random id generator.
    """

    pid: str = DEFAULT_PID_KEY
    children: str = DEFAULT_CHILDREN_KEY
    default_root: str = DEFAULT_ROOT
    is_dir: IsDirPredicate | None = None
    orphan_id: str = ORPHAN_HOLDER_ID
    max_depth: int = PARENT_WALK_MAX_STEPS
    id_length: int = ID_LENGTH
    id_factory: IdFactory | None = None

    def __post_init__(self) -> None:
        if self.orphan_id == self.default_root:
            raise ValidationError("orphan_id must differ from default_root")


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal outcome of a refused mutation."""

    op: str
    reason: str
    item_id: str | None = None


@dataclass
class IntegrityReport:
    """Result of scanning the collection for corrupted structure.

    Attributes:
        cyclic_ids: Items whose ancestor walk revisits an id.
        dangling_ids: Items whose ``pid`` is neither an item nor the root.
        truncated_ids: Items whose ancestor chain is longer than the walk bound.
        unordered_parents: Parents whose children are not indexed ``0..n-1``.
    """

    cyclic_ids: list[str] = field(default_factory=list)
    dangling_ids: list[str] = field(default_factory=list)
    truncated_ids: list[str] = field(default_factory=list)
    unordered_parents: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not (
            self.cyclic_ids or self.dangling_ids or self.truncated_ids or self.unordered_parents
        )


# -----------------------------
# Ordering helpers
# -----------------------------


def index_sort_key(item: Mapping[str, Any]) -> tuple[bool, int]:
    """Sort key placing indexed items first (ascending), unindexed items last."""

    index = item.get(INDEX_FIELD)
    if index is None:
        return (True, 0)
    return (False, int(index))


def sort_by_index(items: Iterable[Item]) -> list[Item]:
    """Stable sort by ``index``; ties and unindexed items keep their relative order."""

    return sorted(items, key=index_sort_key)


def clamp_position(position: int | None, length: int) -> int:
    """Clamp a requested insert position into ``0..length``; ``None`` appends."""

    if position is None:
        return length
    return min(max(0, int(position)), length)


def insert_at(items: list[Item], position: int | None, new_item: Item) -> list[Item]:
    """Return a new list with ``new_item`` spliced in at the clamped position."""

    pos = clamp_position(position, len(items))
    return [*items[:pos], new_item, *items[pos:]]


def is_compact(items: Iterable[Mapping[str, Any]]) -> bool:
    """True when the items' indices are exactly ``0..n-1`` in sorted order."""

    indices = [item.get(INDEX_FIELD) for item in items]
    if any(i is None for i in indices):
        return False
    return sorted(indices) == list(range(len(indices)))


# -----------------------------
# Id helpers
# -----------------------------


def random_item_id(length: int = ID_LENGTH) -> str:
    """Generate a random alphanumeric id."""

    return "".join(random.choices(ID_ALPHABET, k=length))


def new_item_id(
    existing: Container[str],
    *,
    length: int = ID_LENGTH,
    factory: IdFactory | None = None,
) -> str:
    """Generate an id not present in ``existing``.

    Retries on collision and raises ConflictError when no free id was produced
    after ``ID_GENERATION_MAX_ATTEMPTS`` tries.
    """

    make = factory or random_item_id
    for _ in range(ID_GENERATION_MAX_ATTEMPTS):
        candidate = str(make(length))
        if candidate and candidate not in existing:
            return candidate
    raise ConflictError("could not generate a free item id")


# -----------------------------
# Payload helpers
# -----------------------------


def structural_fields(options: TreeOptions) -> frozenset[str]:
    """Fields only the store may write: id, parent linkage and index."""

    return frozenset({ID_FIELD, PID_FIELD, INDEX_FIELD, options.pid})


def split_payload(
    payload: Mapping[str, Any], options: TreeOptions
) -> tuple[dict[str, Any], list[str]]:
    """Split an update payload into mergeable fields and stripped structural keys."""

    blocked = structural_fields(options)
    kept = {k: v for k, v in payload.items() if k not in blocked}
    stripped = sorted(k for k in payload if k in blocked)
    return kept, stripped


def copy_item(item: Mapping[str, Any]) -> Item:
    """Shallow copy handed out to callers so the collection stays private."""

    return dict(item)
