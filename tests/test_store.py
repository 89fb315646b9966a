import threading
from unittest.mock import patch

import pytest

from haste.errors import MigrationError, NotFoundError, StorageError, ValidationError
from haste.migrations import LATEST_VERSION
from haste.models import ItemKind
from haste.store import ClipStore


class TestOpen:
    def test_creates_blobs_dir(self, tmp_path):
        blobs = tmp_path / "nested" / "blobs"
        with ClipStore.open(tmp_path / "haste.db", blobs) as store:
            assert blobs.is_dir()
            assert store.blobs_dir == blobs

    def test_schema_is_current(self, store):
        assert store.schema_version() == LATEST_VERSION

    def test_wal_mode(self, store):
        mode = store._repository._conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_missing_parent_directory_fails(self, tmp_path):
        with pytest.raises(StorageError):
            ClipStore.open(tmp_path / "no" / "such" / "dir" / "haste.db", tmp_path / "blobs")

    def test_not_a_database_fails(self, tmp_path):
        db = tmp_path / "garbage.db"
        db.write_bytes(b"this is not a sqlite file at all" * 10)
        with pytest.raises(StorageError) as exc_info:
            ClipStore.open(db, tmp_path / "blobs")
        assert exc_info.value.target == str(db)

    def test_blobs_path_is_a_file_fails(self, tmp_path):
        blobs = tmp_path / "blobs"
        blobs.write_text("occupied")
        with pytest.raises(StorageError) as exc_info:
            ClipStore.open(tmp_path / "haste.db", blobs)
        assert exc_info.value.operation == "create blobs directory"

    def test_migration_failure_fails_open(self, tmp_path):
        with patch("haste.store.ensure_current", side_effect=MigrationError(1, "initial_schema", "boom")):
            with pytest.raises(MigrationError):
                ClipStore.open(tmp_path / "haste.db", tmp_path / "blobs")

    def test_reopen_preserves_data_without_migrating(self, tmp_path, make_item):
        db, blobs = tmp_path / "haste.db", tmp_path / "blobs"
        with ClipStore.open(db, blobs) as store:
            item_id = store.add(make_item("survives restart", tags=["x"]))

        with patch("haste.migrations._apply") as mock_apply:
            with ClipStore.open(db, blobs) as store:
                item = store.get(item_id)
                assert store.search("restart", 10)[0].id == item_id
        mock_apply.assert_not_called()
        assert item.content_ref == "survives restart"
        assert item.tags == ["x"]


class TestProperties:
    def test_round_trip(self, store, make_item):
        for kind, content in [
            (ItemKind.TEXT, "plain text"),
            (ItemKind.RTF, "{\\rtf1 rich}"),
            (ItemKind.IMAGE, "/blobs/img.png"),
            (ItemKind.FILE, "/Users/me/report.pdf"),
        ]:
            new = make_item(content, kind=kind, source_app="App", created_at=42, tags=["t"])
            item = store.get(store.add(new))
            assert (item.kind, item.content_ref, item.source_app, item.created_at, item.tags, item.pinned) == (
                kind,
                content,
                "App",
                42,
                ["t"],
                False,
            )

    def test_dedup_idempotence(self, store, make_item):
        a = store.add_with_dedup(make_item("hello world", created_at=1000, source_app="Notes", tags=["a"]))
        b = store.add_with_dedup(make_item("  hello\n world ", created_at=2000, source_app="Mail", tags=["b"]))
        assert a.item_id == b.item_id
        assert b.bumped is True
        item = store.get(a.item_id)
        assert (item.tags, item.source_app, item.pinned, item.created_at) == (["a"], "Notes", False, 2000)

    def test_search_threshold(self, store, make_item):
        image_id = store.add(make_item("/shots/se.png", kind=ItemKind.IMAGE, created_at=1))
        file_id = store.add(make_item("/docs/se.txt", kind=ItemKind.FILE, created_at=2))
        assert {i.id for i in store.search("se", 10)} == {image_id, file_id}
        assert store.search("shots", 10) == []

    def test_delete_completeness(self, store, make_item):
        item_id = store.add(make_item("delete me entirely"))
        store.delete(item_id)
        with pytest.raises(NotFoundError):
            store.get(item_id)
        assert store.search("entirely", 10) == []
        assert store.search("de", 10) == []
        with pytest.raises(NotFoundError):
            store.delete(item_id)

    def test_pin(self, store, make_item):
        item_id = store.add(make_item("pin me"))
        store.pin(item_id)
        assert store.get(item_id).pinned is True
        store.pin(item_id, False)
        assert store.get(item_id).pinned is False
        with pytest.raises(NotFoundError):
            store.pin(item_id + 100)


class TestScenario:
    TEXTS = [
        "The quick brown fox jumps over the lazy dog",
        "Rust programming language is fast and safe",
        "SQLite is a lightweight database",
        "Full-text search with FTS5",
        "Clipboard manager for macOS",
    ]

    def test_rust_query(self, store, make_item):
        for i, text in enumerate(self.TEXTS):
            store.add(make_item(text, source_app="test", created_at=1000 + i))
        results = store.search("rust", 10)
        assert len(results) == 1
        assert "Rust" in results[0].content_ref

    def test_image_excluded_from_full_text(self, store, make_item):
        image_id = store.add(make_item("/path/to/image.png", kind=ItemKind.IMAGE))
        for i in range(3):
            store.add(make_item(f"some content number {i}", created_at=i))
        results = store.search("content", 10)
        assert len(results) == 3
        assert image_id not in {r.id for r in results}

    def test_short_query_recency(self, store, make_item):
        old = store.add(make_item("see you", created_at=1000))
        new = store.add(make_item("use this", created_at=2000))
        assert [r.id for r in store.search("se", 10)] == [new, old]


class TestConcurrency:
    def test_parallel_writers(self, store, make_item):
        ids = []
        errors = []
        lock = threading.Lock()

        def worker(n):
            try:
                for j in range(25):
                    item_id = store.add(make_item(f"thread {n} item {j}", created_at=n * 100 + j))
                    with lock:
                        ids.append(item_id)
            except Exception as exc:  # surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(set(ids)) == 200
        assert store.count() == 200

    def test_readers_and_writers(self, store, make_item):
        errors = []

        def writer():
            for j in range(50):
                store.add_with_dedup(make_item(f"shared {j % 10}", created_at=j))

        def reader():
            try:
                for _ in range(50):
                    for item in store.search("shared", 20):
                        assert item.kind is ItemKind.TEXT
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=writer) for _ in range(3)] + [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.count() == 10


class TestMisc:
    def test_tags_and_recent(self, store, make_item):
        item_id = store.add(make_item("tag me"))
        store.set_tags(item_id, ["one", "two"])
        assert store.recent(1)[0].tags == ["one", "two"]

    def test_purge(self, store, make_item):
        for i in range(4):
            store.add(make_item(f"entry {i}", created_at=i))
        assert store.purge_old(1) == 3
        assert store.count() == 1

    def test_malformed_item_never_reaches_storage(self, store, make_item):
        store.add_with_dedup(make_item("kept"))
        for bad in (42, None, "with\0nul"):
            with pytest.raises(ValidationError):
                store.add_with_dedup(make_item(bad))
        with pytest.raises(ValidationError):
            store.add(make_item("x", created_at="yesterday"))
        assert [item.content_ref for item in store.recent(10)] == ["kept"]
