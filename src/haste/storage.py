import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from haste.config import FTS_MIN_QUERY_LENGTH
from haste.errors import NotFoundError, StorageError, ValidationError
from haste.migrations import current_version
from haste.models import Item, ItemKind, NewItem, decode_tags, encode_tags

logger = logging.getLogger(__name__)

ITEM_COLUMNS = "i.id, i.kind, i.content_ref, i.source_app, i.created_at, i.pinned, i.tags"


class ItemRepository:
    """All reads and writes against the ``items`` table and its FTS index.

    The connection is shared between threads, so every method takes the same
    re-entrant lock. Multi-statement writes (row + index) run in one
    transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    def locked(self) -> threading.RLock:
        """The critical section guarding the connection, for multi-call operations."""
        return self._lock

    @contextmanager
    def _guard(self, operation: str, target: object = None) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise StorageError(operation, target, str(exc)) from exc

    def insert(self, item: NewItem) -> int:
        kind = item.kind
        tags_json = encode_tags(item.tags)
        with self._lock, self._guard("insert item"), self._conn:
            cursor = self._conn.execute(
                """INSERT INTO items (kind, content_ref, source_app, created_at, pinned, tags, dedup_key)
                   VALUES (?, ?, ?, ?, 0, ?, ?)""",
                (
                    kind.value,
                    item.content_ref,
                    item.source_app,
                    item.created_at,
                    tags_json,
                    item.dedup_key(),
                ),
            )
            item_id = cursor.lastrowid
            if kind.is_text:
                self._conn.execute(
                    "INSERT INTO items_fts (item_id, text) VALUES (?, ?)",
                    (item_id, item.content_ref),
                )
        return item_id

    def get(self, item_id: int) -> Item:
        with self._lock, self._guard("get item", item_id):
            row = self._conn.execute(
                f"SELECT {ITEM_COLUMNS} FROM items i WHERE i.id = ?", (item_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(item_id)
        return self._row_to_item(row)

    def delete(self, item_id: int) -> None:
        with self._lock, self._guard("delete item", item_id), self._conn:
            self._conn.execute("DELETE FROM items_fts WHERE item_id = ?", (item_id,))
            cursor = self._conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
            if cursor.rowcount == 0:
                # raising inside the transaction rolls back the index delete
                raise NotFoundError(item_id)

    def set_pinned(self, item_id: int, pinned: bool) -> None:
        self._update(item_id, "set pinned", "UPDATE items SET pinned = ? WHERE id = ?", (int(bool(pinned)), item_id))

    def update_timestamp(self, item_id: int, created_at: int) -> None:
        self._update(item_id, "update timestamp", "UPDATE items SET created_at = ? WHERE id = ?", (created_at, item_id))

    def set_tags(self, item_id: int, tags: list[str]) -> None:
        self._update(item_id, "set tags", "UPDATE items SET tags = ? WHERE id = ?", (encode_tags(tags), item_id))

    def _update(self, item_id: int, operation: str, sql: str, params: tuple) -> None:
        with self._lock, self._guard(operation, item_id), self._conn:
            cursor = self._conn.execute(sql, params)
            if cursor.rowcount == 0:
                raise NotFoundError(item_id)

    def find_duplicate(self, kind: ItemKind, dedup_key: str) -> int | None:
        """Id of the most recent item sharing ``kind`` and ``dedup_key``, if any."""
        with self._lock, self._guard("find duplicate"):
            row = self._conn.execute(
                """SELECT id FROM items
                   WHERE kind = ? AND dedup_key = ?
                   ORDER BY created_at DESC, id DESC
                   LIMIT 1""",
                (ItemKind.parse(kind).value, dedup_key),
            ).fetchone()
        return row["id"] if row else None

    def search(self, query: str, limit: int) -> list[Item]:
        """Substring scan for short queries, FTS5 match for the rest.

        The tokenizer does not reliably match tokens shorter than
        ``FTS_MIN_QUERY_LENGTH``, so those queries use LIKE over every kind.
        Longer queries only see Text/Rtf items, ranked by relevance then recency.
        """
        limit = self._check_limit(limit)
        if limit == 0:
            return []

        if len(query) < FTS_MIN_QUERY_LENGTH:
            with self._lock, self._guard("substring search", query):
                rows = self._conn.execute(
                    f"""SELECT {ITEM_COLUMNS} FROM items i
                        WHERE i.content_ref LIKE ?
                        ORDER BY i.created_at DESC
                        LIMIT ?""",
                    (f"%{query}%", limit),
                ).fetchall()
            return [self._row_to_item(r) for r in rows]

        sanitized = self._sanitize_fts_query(query)
        if not sanitized:
            return []
        with self._lock, self._guard("full-text search", query):
            rows = self._conn.execute(
                f"""SELECT {ITEM_COLUMNS} FROM items i
                    JOIN items_fts f ON f.item_id = i.id
                    WHERE items_fts MATCH ?
                    ORDER BY f.rank, i.created_at DESC
                    LIMIT ?""",
                (sanitized, limit),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def recent(self, limit: int = 25, pinned_only: bool = False) -> list[Item]:
        limit = self._check_limit(limit)
        where = "WHERE i.pinned = 1" if pinned_only else ""
        with self._lock, self._guard("list recent"):
            rows = self._conn.execute(
                f"SELECT {ITEM_COLUMNS} FROM items i {where} ORDER BY i.created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_item(r) for r in rows]

    def count(self) -> int:
        with self._lock, self._guard("count items"):
            row = self._conn.execute("SELECT COUNT(*) AS cnt FROM items").fetchone()
        return row["cnt"]

    def purge_old(self, keep_count: int) -> int:
        """Delete unpinned items beyond the ``keep_count`` most recent ones."""
        keep_count = self._check_limit(keep_count, "keep_count")
        with self._lock, self._guard("purge old items"), self._conn:
            ids = [
                row["id"]
                for row in self._conn.execute(
                    """SELECT id FROM items
                       WHERE pinned = 0
                       ORDER BY created_at DESC
                       LIMIT -1 OFFSET ?""",
                    (keep_count,),
                ).fetchall()
            ]
            for item_id in ids:
                self._conn.execute("DELETE FROM items_fts WHERE item_id = ?", (item_id,))
                self._conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        if ids:
            logger.info("Purged %d old items", len(ids))
        return len(ids)

    def schema_version(self) -> int:
        with self._lock, self._guard("read schema version"):
            return current_version(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _check_limit(limit: int, name: str = "limit") -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
            raise ValidationError(f"{name} must be a non-negative integer, got {limit!r}")
        return limit

    @staticmethod
    def _sanitize_fts_query(query: str) -> str:
        # Quote each token to prevent FTS5 syntax errors from special chars
        tokens = query.split()
        if not tokens:
            return ""
        quoted = ['"' + token.replace('"', '""') + '"' for token in tokens]
        return " ".join(quoted)

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        return Item(
            id=row["id"],
            kind=ItemKind(row["kind"]),
            content_ref=row["content_ref"],
            source_app=row["source_app"],
            created_at=row["created_at"],
            pinned=bool(row["pinned"]),
            tags=decode_tags(row["tags"], row["id"]),
        )
