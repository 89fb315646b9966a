import sqlite3

import pytest

from haste.migrations import ensure_current
from haste.models import ItemKind, NewItem
from haste.storage import ItemRepository
from haste.store import ClipStore


@pytest.fixture
def repo():
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    ensure_current(conn)
    repository = ItemRepository(conn)
    yield repository
    repository.close()


@pytest.fixture
def store(tmp_path):
    clip_store = ClipStore.open(tmp_path / "haste.db", tmp_path / "blobs")
    yield clip_store
    clip_store.close()


@pytest.fixture
def make_item():
    """Factory fixture to create NewItem instances for testing."""

    def _make_item(
        content: str = "hello world",
        kind: ItemKind = ItemKind.TEXT,
        created_at: int = 1000,
        source_app: str | None = None,
        tags: list[str] | None = None,
    ) -> NewItem:
        return NewItem(
            kind=kind,
            content_ref=content,
            source_app=source_app,
            created_at=created_at,
            tags=tags or [],
        )

    return _make_item
