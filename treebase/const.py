"""Constants for treebase.

Defines the logging domain, option defaults and the bounds used by
ancestor walks and id generation.
"""

from typing import Final

# Logging domain carried in every structured log record
DOMAIN: Final[str] = "treebase"

# Public package version (kept in sync with pyproject.toml)
PACKAGE_VERSION: Final[str] = "0.1.0"

# Option defaults
DEFAULT_PID_KEY: Final[str] = "pid"
DEFAULT_CHILDREN_KEY: Final[str] = "children"
DEFAULT_ROOT: Final[str] = "root"
ORPHAN_HOLDER_ID: Final[str] = "orphaned"

# Canonical structural fields inside an item
ID_FIELD: Final[str] = "id"
PID_FIELD: Final[str] = "pid"
INDEX_FIELD: Final[str] = "index"

# Ancestor walks stop after this many hops unless configured otherwise
PARENT_WALK_MAX_STEPS: Final[int] = 10

# Generated ids
ID_ALPHABET: Final[str] = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
ID_LENGTH: Final[int] = 5
ID_GENERATION_MAX_ATTEMPTS: Final[int] = 100

# Version of the plain-dict snapshot produced by export_state()
CURRENT_SCHEMA_VERSION: Final[int] = 1
