"""Embedded clipboard history store."""

__version__ = "0.3.0"

from haste.dedup import AddResult
from haste.errors import HasteError, MigrationError, NotFoundError, StorageError, ValidationError
from haste.models import Item, ItemKind, NewItem
from haste.store import ClipStore

__all__ = [
    "AddResult",
    "ClipStore",
    "HasteError",
    "Item",
    "ItemKind",
    "MigrationError",
    "NewItem",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
