"""Flat call surface for a host running in another language.

Every function takes plain values (ints and null-terminated UTF-8 ``bytes``)
and returns plain values, a ``ctypes`` pointer, or a sentinel. Nothing raises
across this boundary: failures become ``None`` or ``-1`` and are logged at
debug level.

Ownership: each ``CItem`` / ``CItemArray`` pointer handed out is owned by
the caller until it is passed back to ``haste_free_item`` /
``haste_free_item_array``. The adapter keeps the backing memory alive until
then and never frees it on its own. Freeing ``None`` or an already released
pointer does nothing.
"""

import ctypes
import functools
import itertools
import json
import logging
import threading

from haste.errors import HasteError, ValidationError
from haste.models import Item, ItemKind, NewItem
from haste.store import ClipStore

logger = logging.getLogger(__name__)


class CItem(ctypes.Structure):
    _fields_ = [
        ("id", ctypes.c_int64),
        ("kind", ctypes.c_int32),  # 0=text, 1=rtf, 2=image, 3=file
        ("content_ref", ctypes.c_char_p),
        ("source_app", ctypes.c_char_p),  # NULL if none
        ("created_at", ctypes.c_int64),
        ("pinned", ctypes.c_int32),
        ("tags_json", ctypes.c_char_p),
    ]


class CItemArray(ctypes.Structure):
    _fields_ = [
        ("items", ctypes.POINTER(CItem)),
        ("count", ctypes.c_size_t),
    ]


_registry_lock = threading.Lock()
_handles: dict[int, ClipStore] = {}
_handle_ids = itertools.count(1)
# address -> the ctypes objects that keep that allocation alive
_allocations: dict[int, tuple] = {}


def _boundary(sentinel):
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (HasteError, TypeError, ValueError, OSError) as exc:
                logger.debug("%s failed: %s", func.__name__, exc, exc_info=True)
                return sentinel

        return wrapper

    return decorator


def _decode(value: bytes | None, name: str, required: bool = True) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{name} must not be NULL")
        return None
    if not isinstance(value, bytes):
        raise ValidationError(f"{name} must be bytes, got {type(value).__name__}")
    # C strings end at the first NUL
    value = value.split(b"\0", 1)[0]
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError(f"{name} is not valid UTF-8") from exc


def _encode(value: str) -> bytes:
    encoded = value.encode("utf-8")
    if b"\0" in encoded:
        raise ValidationError("string contains an embedded NUL")
    return encoded


_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _int64(value: int, name: str) -> int:
    value = int(value)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValidationError(f"{name} is outside the 64-bit integer range")
    return value


def _store(handle: int) -> ClipStore:
    with _registry_lock:
        store = _handles.get(handle)
    if store is None:
        raise ValidationError(f"Unknown store handle {handle!r}")
    return store


def _new_item(kind: int, content: bytes, source_app: bytes | None, created_at: int) -> NewItem:
    return NewItem(
        kind=ItemKind.parse(kind),
        content_ref=_decode(content, "content"),
        source_app=_decode(source_app, "source_app", required=False),
        created_at=_int64(created_at, "created_at"),
    )


def _fill(target: CItem, item: Item) -> None:
    target.id = item.id
    target.kind = item.kind.code
    target.content_ref = _encode(item.content_ref)
    target.source_app = _encode(item.source_app) if item.source_app is not None else None
    target.created_at = item.created_at
    target.pinned = 1 if item.pinned else 0
    target.tags_json = _encode(json.dumps(item.tags, ensure_ascii=False))


def _register(obj: ctypes.Structure, *keepalive) -> "ctypes._Pointer":
    pointer = ctypes.pointer(obj)
    with _registry_lock:
        _allocations[ctypes.addressof(obj)] = (obj, *keepalive)
    return pointer


def _release(pointer) -> bool:
    if not isinstance(pointer, ctypes._Pointer) or not pointer:
        return False
    address = ctypes.addressof(pointer.contents)
    with _registry_lock:
        return _allocations.pop(address, None) is not None


@_boundary(None)
def haste_open(db_path: bytes, blobs_dir: bytes) -> int | None:
    store = ClipStore.open(_decode(db_path, "db_path"), _decode(blobs_dir, "blobs_dir"))
    with _registry_lock:
        handle = next(_handle_ids)
        _handles[handle] = store
    return handle


@_boundary(None)
def haste_close(handle: int) -> None:
    with _registry_lock:
        store = _handles.pop(handle, None)
    if store is not None:
        store.close()


@_boundary(-1)
def haste_add(handle: int, kind: int, content: bytes, source_app: bytes | None, created_at: int) -> int:
    return _store(handle).add(_new_item(kind, content, source_app, created_at))


@_boundary(-1)
def haste_add_with_dedup(handle: int, kind: int, content: bytes, source_app: bytes | None, created_at: int) -> int:
    """Id of the inserted item, or of the existing item that was bumped; -1 on failure."""
    return _store(handle).add_with_dedup(_new_item(kind, content, source_app, created_at)).item_id


@_boundary(None)
def haste_search(handle: int, query: bytes, limit: int):
    items = _store(handle).search(_decode(query, "query"), _int64(limit, "limit"))
    rows = (CItem * len(items))()
    for row, item in zip(rows, items):
        _fill(row, item)
    array = CItemArray(ctypes.cast(rows, ctypes.POINTER(CItem)), len(items))
    return _register(array, rows)


@_boundary(None)
def haste_get(handle: int, item_id: int):
    item = _store(handle).get(_int64(item_id, "item_id"))
    c_item = CItem()
    _fill(c_item, item)
    return _register(c_item)


@_boundary(-1)
def haste_delete(handle: int, item_id: int) -> int:
    _store(handle).delete(_int64(item_id, "item_id"))
    return 0


@_boundary(-1)
def haste_set_pinned(handle: int, item_id: int, pinned: int) -> int:
    _store(handle).pin(_int64(item_id, "item_id"), bool(pinned))
    return 0


def haste_free_item(pointer) -> None:
    if pointer and not _release(pointer):
        logger.debug("haste_free_item: pointer was not allocated here or already freed")


def haste_free_item_array(pointer) -> None:
    if pointer and not _release(pointer):
        logger.debug("haste_free_item_array: pointer was not allocated here or already freed")


def live_allocations() -> int:
    """Number of item / array allocations not yet released by the caller."""
    with _registry_lock:
        return len(_allocations)
