"""Ingress validation schemas for treebase.

Options and mutation payloads are validated with voluptuous before they reach
the collection store. ``vol.Invalid`` never escapes this module's helpers: it
is translated into ``ValidationError`` carrying the failing operation name.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import voluptuous as vol

from .const import (
    DEFAULT_CHILDREN_KEY,
    DEFAULT_PID_KEY,
    DEFAULT_ROOT,
    DOMAIN,
    ID_LENGTH,
    ORPHAN_HOLDER_ID,
    PARENT_WALK_MAX_STEPS,
)
from .exceptions import ValidationError
from .models import TreeOptions

LOGGER = logging.getLogger(__name__)


def _optional_callable(value: Any) -> Any:
    if value is None or callable(value):
        return value
    raise vol.Invalid("expected a callable or None")


def _optional_index(value: Any) -> Any:
    # bool is an int subclass but never a position
    if value is None or (isinstance(value, int) and not isinstance(value, bool)):
        return value
    raise vol.Invalid("expected an integer index or None")


# Ids are strings; integer ids from literal data are coerced.
_ID = vol.All(vol.Coerce(str), vol.Length(min=1))
_FIELD_NAME = vol.All(str, vol.Length(min=1))
_INDEX = _optional_index

# camelCase spellings accepted for options
OPTION_ALIASES: dict[str, str] = {
    "defaultRoot": "default_root",
    "isDir": "is_dir",
    "orphanId": "orphan_id",
    "maxDepth": "max_depth",
    "idLength": "id_length",
    "idFactory": "id_factory",
}

SCHEMA_OPTIONS = vol.Schema(
    {
        vol.Optional("pid", default=DEFAULT_PID_KEY): _FIELD_NAME,
        vol.Optional("children", default=DEFAULT_CHILDREN_KEY): _FIELD_NAME,
        vol.Optional("default_root", default=DEFAULT_ROOT): _ID,
        vol.Optional("is_dir", default=None): _optional_callable,
        vol.Optional("orphan_id", default=ORPHAN_HOLDER_ID): _ID,
        vol.Optional("max_depth", default=PARENT_WALK_MAX_STEPS): vol.All(int, vol.Range(min=1)),
        vol.Optional("id_length", default=ID_LENGTH): vol.All(int, vol.Range(min=1)),
        vol.Optional("id_factory", default=None): _optional_callable,
    }
)

SCHEMA_ITEM_ADD = vol.Schema(
    {
        vol.Optional("id"): vol.Any(None, _ID),
        vol.Optional("pid"): vol.Any(None, _ID),
        vol.Optional("index"): _INDEX,
    },
    extra=vol.ALLOW_EXTRA,
)

SCHEMA_ITEM_CHECK = vol.Schema({vol.Required("key"): _FIELD_NAME, vol.Required("value"): object})

SCHEMA_MOVE = vol.Schema(
    {
        vol.Optional("pid"): vol.Any(None, _ID),
        vol.Optional("index"): _INDEX,
    }
)

SCHEMA_REMOVE = vol.Schema(
    {
        vol.Optional("policy", default="cascade"): vol.Any(
            None, vol.In(["cascade", "orphan", "reparent"])
        ),
        vol.Optional("target_id"): vol.Any(None, _ID),
    }
)


def validate(schema: vol.Schema, data: Any, *, op: str) -> dict[str, Any]:
    """Run ``schema`` on ``data`` and raise ValidationError on failure."""

    try:
        return schema(data)
    except vol.Invalid as exc:
        LOGGER.debug(
            "Payload rejected by schema",
            extra={"domain": DOMAIN, "op": op, "error": str(exc)},
        )
        raise ValidationError(f"invalid {op} payload: {exc}") from exc


def build_options(raw: Mapping[str, Any] | None = None) -> TreeOptions:
    """Validate raw options (snake_case or camelCase) into ``TreeOptions``."""

    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValidationError("options must be a mapping")
    normalized = {OPTION_ALIASES.get(key, key): value for key, value in raw.items()}
    return TreeOptions(**validate(SCHEMA_OPTIONS, normalized, op="options"))
