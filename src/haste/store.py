"""Store façade: the only object a host application talks to.

A ``ClipStore`` is safe to share between threads; pass the same instance
around rather than opening the file twice. Every call is serialized through
the repository lock and either completes or raises.
"""

import logging
import sqlite3
from pathlib import Path

from haste.config import CACHE_SIZE_KIB, DEFAULT_SEARCH_LIMIT
from haste.dedup import AddResult, DedupPolicy
from haste.errors import StorageError
from haste.migrations import ensure_current
from haste.models import Item, NewItem
from haste.storage import ItemRepository
from haste.utils import ensure_dirs

logger = logging.getLogger(__name__)


def _pragmas() -> tuple[str, ...]:
    return (
        "PRAGMA journal_mode=WAL",
        "PRAGMA synchronous=NORMAL",
        f"PRAGMA cache_size=-{int(CACHE_SIZE_KIB)}",
        "PRAGMA temp_store=MEMORY",
        "PRAGMA foreign_keys=ON",
    )


class ClipStore:
    def __init__(self, repository: ItemRepository, db_path: str, blobs_dir: Path):
        self._repository = repository
        self._dedup = DedupPolicy(repository)
        self.db_path = db_path
        self.blobs_dir = blobs_dir

    @classmethod
    def open(cls, db_path: str | Path, blobs_dir: str | Path) -> "ClipStore":
        """Connect, configure, migrate, and create the blobs directory.

        Any failure closes the connection and raises; a half-open store is
        never returned.
        """
        db_path = str(db_path)
        blobs_dir = Path(blobs_dir)
        try:
            conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as exc:
            raise StorageError("open store", db_path, str(exc)) from exc

        try:
            for pragma in _pragmas():
                conn.execute(pragma)
            version = ensure_current(conn)
            ensure_dirs(blobs_dir)
        except sqlite3.Error as exc:
            conn.close()
            raise StorageError("configure store", db_path, str(exc)) from exc
        except OSError as exc:
            conn.close()
            raise StorageError("create blobs directory", blobs_dir, str(exc)) from exc
        except Exception:
            conn.close()
            raise

        logger.info("Opened store %s (schema version %d)", db_path, version)
        return cls(ItemRepository(conn), db_path, blobs_dir)

    def add(self, item: NewItem) -> int:
        return self._repository.insert(item)

    def add_with_dedup(self, item: NewItem) -> AddResult:
        return self._dedup.apply(item)

    def get(self, item_id: int) -> Item:
        return self._repository.get(item_id)

    def delete(self, item_id: int) -> None:
        self._repository.delete(item_id)

    def pin(self, item_id: int, pinned: bool = True) -> None:
        self._repository.set_pinned(item_id, pinned)

    def set_tags(self, item_id: int, tags: list[str]) -> None:
        self._repository.set_tags(item_id, tags)

    def search(self, query: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[Item]:
        return self._repository.search(query, limit)

    def recent(self, limit: int = DEFAULT_SEARCH_LIMIT, pinned_only: bool = False) -> list[Item]:
        return self._repository.recent(limit, pinned_only=pinned_only)

    def count(self) -> int:
        return self._repository.count()

    def purge_old(self, keep_count: int) -> int:
        return self._repository.purge_old(keep_count)

    def schema_version(self) -> int:
        return self._repository.schema_version()

    def close(self) -> None:
        self._repository.close()
        logger.info("Closed store %s", self.db_path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
