"""Versioned schema upgrades.

The schema version lives in SQLite's ``PRAGMA user_version``. Each step runs
inside a single transaction together with the version bump, so a store is
either at version ``v`` with step ``v`` fully applied or still at ``v - 1``.
Steps are never re-run once recorded, even if their SQL is idempotent.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass

from haste.errors import MigrationError
from haste.models import ItemKind, dedup_key

logger = logging.getLogger(__name__)


INITIAL_SCHEMA = """
CREATE TABLE items (
    id          INTEGER PRIMARY KEY,
    kind        TEXT NOT NULL CHECK(kind IN ('text', 'rtf', 'image', 'file')),
    content_ref TEXT NOT NULL,
    source_app  TEXT,
    created_at  INTEGER NOT NULL,
    pinned      INTEGER NOT NULL DEFAULT 0,
    tags        TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX idx_items_created_at ON items(created_at DESC);
CREATE INDEX idx_items_kind ON items(kind);

CREATE VIRTUAL TABLE items_fts USING fts5(
    item_id UNINDEXED,
    text,
    tokenize='unicode61 remove_diacritics 2'
);
"""

DEDUP_KEY_SCHEMA = """
ALTER TABLE items ADD COLUMN dedup_key TEXT;
CREATE INDEX idx_items_dedup ON items(kind, dedup_key, created_at DESC);
"""


def _backfill_dedup_keys(conn: sqlite3.Connection) -> None:
    rows = conn.execute("SELECT id, kind, content_ref FROM items WHERE dedup_key IS NULL").fetchall()
    conn.executemany(
        "UPDATE items SET dedup_key = ? WHERE id = ?",
        [(dedup_key(ItemKind(kind), content_ref), item_id) for item_id, kind, content_ref in rows],
    )
    if rows:
        logger.info("Backfilled dedup keys for %d items", len(rows))


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    script: str
    backfill: Callable[[sqlite3.Connection], None] | None = None


MIGRATIONS = (
    Migration(1, "initial_schema", INITIAL_SCHEMA),
    Migration(2, "dedup_key", DEDUP_KEY_SCHEMA, _backfill_dedup_keys),
)

LATEST_VERSION = MIGRATIONS[-1].version


def current_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


def ensure_current(conn: sqlite3.Connection) -> int:
    """Apply every pending migration in order and return the resulting version."""
    try:
        version = current_version(conn)
    except sqlite3.Error as exc:
        raise MigrationError(0, "read schema version", str(exc)) from exc

    if version > LATEST_VERSION:
        raise MigrationError(
            version,
            "unknown",
            f"store schema is newer than supported (store={version}, supported={LATEST_VERSION})",
        )

    for migration in MIGRATIONS:
        if version >= migration.version:
            continue
        _apply(conn, migration)
        version = migration.version

    return version


def _apply(conn: sqlite3.Connection, migration: Migration) -> None:
    try:
        # executescript commits anything pending first, then runs the script
        # inside the explicit transaction opened here.
        conn.executescript("BEGIN;\n" + migration.script)
        if migration.backfill is not None:
            migration.backfill(conn)
        conn.execute(f"PRAGMA user_version = {int(migration.version)}")
        conn.commit()
    except Exception as exc:
        conn.rollback()
        raise MigrationError(migration.version, migration.name, str(exc)) from exc
    logger.info("Applied schema migration %d (%s)", migration.version, migration.name)
