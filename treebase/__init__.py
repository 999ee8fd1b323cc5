"""treebase - an in-memory forest of items addressable by parent id.

The package keeps a flat ``id -> item`` collection as the single source of
truth and derives child lists, ancestor chains and nested trees from it on
demand. Mutations (add, update, remove, move) keep sibling indices compact
and refuse changes that would create cycles.
"""

from .const import PACKAGE_VERSION
from .exceptions import ConflictError, NotFoundError, TreebaseError, ValidationError
from .loading import collection_from_mapping, flatten_tree
from .models import Diagnostic, IntegrityReport, ItemCheck, TreeOptions
from .schemas import build_options
from .store import TreeBase

__version__ = PACKAGE_VERSION

__all__ = [
    # Store
    "TreeBase",
    "TreeOptions",
    "build_options",
    # Loading
    "collection_from_mapping",
    "flatten_tree",
    # Results
    "Diagnostic",
    "IntegrityReport",
    "ItemCheck",
    # Exceptions
    "TreebaseError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
]
