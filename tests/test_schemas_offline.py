"""Offline tests for ingress schemas (voluptuous).

These tests verify defaults, aliases and basic typing at the option and
payload boundary, avoiding duplication of hierarchy rules which are covered
by store tests.
"""

from __future__ import annotations

import pytest
import voluptuous as vol
from treebase.exceptions import ValidationError
from treebase.models import TreeOptions
from treebase.schemas import (
    SCHEMA_ITEM_ADD,
    SCHEMA_ITEM_CHECK,
    SCHEMA_MOVE,
    SCHEMA_OPTIONS,
    SCHEMA_REMOVE,
    build_options,
    validate,
)


def test_options_schema_defaults() -> None:
    """Empty options resolve to the documented defaults."""

    out = SCHEMA_OPTIONS({})
    assert out["pid"] == "pid"
    assert out["children"] == "children"
    assert out["default_root"] == "root"
    assert out["is_dir"] is None
    assert out["orphan_id"] == "orphaned"
    assert out["max_depth"] == 10
    assert out["id_length"] == 5


def test_build_options_accepts_camel_case_aliases() -> None:
    def is_dir(item) -> bool:
        return item.get("type") == "folder"

    options = build_options({"defaultRoot": 0, "isDir": is_dir, "maxDepth": 3})
    assert isinstance(options, TreeOptions)
    assert options.default_root == "0"
    assert options.is_dir is is_dir
    assert options.max_depth == 3


@pytest.mark.parametrize(
    "raw",
    [
        {"is_dir": "folder"},
        {"max_depth": 0},
        {"pid": ""},
        {"bogus": True},
        {"id_length": "5"},
    ],
)
def test_build_options_rejects_bad_values(raw: dict) -> None:
    with pytest.raises(ValidationError):
        build_options(raw)


def test_build_options_rejects_non_mapping() -> None:
    with pytest.raises(ValidationError):
        build_options("nope")  # type: ignore[arg-type]


def test_payload_schema_cases() -> None:
    """Negative and coercion cases for mutation payloads."""

    # Extra payload is carried through; integer ids are coerced
    out = SCHEMA_ITEM_ADD({"id": 7, "pid": None, "title": "x"})
    assert out == {"id": "7", "pid": None, "title": "x"}

    with pytest.raises(vol.Invalid):
        SCHEMA_ITEM_ADD({"index": 1.5})
    with pytest.raises(vol.Invalid):
        SCHEMA_ITEM_ADD({"id": ""})

    # Duplicate checks require both key and value
    with pytest.raises(vol.Invalid):
        SCHEMA_ITEM_CHECK({"key": "title"})
    assert SCHEMA_ITEM_CHECK({"key": "title", "value": None}) == {"key": "title", "value": None}

    with pytest.raises(vol.Invalid):
        SCHEMA_MOVE({"pid": "a", "after": "b"})

    assert SCHEMA_REMOVE({})["policy"] == "cascade"
    with pytest.raises(vol.Invalid):
        SCHEMA_REMOVE({"policy": "drop"})


def test_validate_translates_invalid() -> None:
    with pytest.raises(ValidationError) as excinfo:
        validate(SCHEMA_MOVE, {"index": "x"}, op="move")
    assert str(excinfo.value).startswith("invalid move payload")
    assert isinstance(excinfo.value.__cause__, vol.Invalid)


def test_orphan_holder_cannot_be_the_root_sentinel() -> None:
    """An orphan holder equal to the root would be its own parent."""

    with pytest.raises(ValidationError):
        build_options({"orphan_id": "root"})
    with pytest.raises(ValidationError):
        build_options({"defaultRoot": "top", "orphanId": "top"})
    with pytest.raises(ValidationError):
        TreeOptions(default_root="top", orphan_id="top")


def test_index_rejects_booleans() -> None:
    """True/False are not positions even though bool subclasses int."""

    with pytest.raises(vol.Invalid):
        SCHEMA_ITEM_ADD({"index": True})
    with pytest.raises(vol.Invalid):
        SCHEMA_MOVE({"index": False})
    assert SCHEMA_ITEM_ADD({"index": 0})["index"] == 0
