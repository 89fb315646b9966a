import sqlite3
from unittest.mock import patch

import pytest

from haste import migrations
from haste.errors import MigrationError
from haste.migrations import INITIAL_SCHEMA, LATEST_VERSION, MIGRATIONS, Migration, current_version, ensure_current


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    yield connection
    connection.close()


def _tables(conn):
    return {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'index')")}


class TestEnsureCurrent:
    def test_fresh_store_reaches_latest(self, conn):
        assert ensure_current(conn) == LATEST_VERSION
        assert current_version(conn) == LATEST_VERSION
        assert {"items", "items_fts", "idx_items_created_at", "idx_items_dedup"} <= _tables(conn)

    def test_versions_are_ordered(self):
        versions = [m.version for m in MIGRATIONS]
        assert versions == sorted(versions)
        assert versions == list(range(1, len(versions) + 1))

    def test_current_store_is_noop(self, conn):
        ensure_current(conn)
        with patch("haste.migrations._apply") as mock_apply:
            assert ensure_current(conn) == LATEST_VERSION
        mock_apply.assert_not_called()

    def test_only_pending_steps_run(self, conn):
        conn.executescript(INITIAL_SCHEMA)
        conn.execute("PRAGMA user_version = 1")
        applied = []
        real_apply = migrations._apply

        def spy(connection, migration):
            applied.append(migration.version)
            real_apply(connection, migration)

        with patch("haste.migrations._apply", side_effect=spy):
            ensure_current(conn)
        assert applied == [2]

    def test_upgrade_from_v1_backfills_dedup_keys(self, conn):
        conn.executescript(INITIAL_SCHEMA)
        conn.execute("PRAGMA user_version = 1")
        conn.execute(
            "INSERT INTO items (kind, content_ref, created_at) VALUES ('text', '  hello \n world ', 1)"
        )
        conn.execute(
            "INSERT INTO items (kind, content_ref, created_at) VALUES ('image', ' /a b.png', 2)"
        )
        conn.commit()

        assert ensure_current(conn) == 2
        keys = dict(conn.execute("SELECT kind, dedup_key FROM items").fetchall())
        assert keys == {"text": "hello world", "image": " /a b.png"}

    def test_newer_store_rejected(self, conn):
        conn.execute(f"PRAGMA user_version = {LATEST_VERSION + 1}")
        with pytest.raises(MigrationError) as exc_info:
            ensure_current(conn)
        assert exc_info.value.version == LATEST_VERSION + 1


class TestFailedMigration:
    def test_failed_step_rolls_back(self, conn):
        broken = (
            MIGRATIONS[0],
            Migration(2, "broken", "CREATE TABLE half_done (a);\nTHIS IS NOT SQL;"),
        )
        with patch("haste.migrations.MIGRATIONS", broken):
            with pytest.raises(MigrationError) as exc_info:
                ensure_current(conn)

        assert exc_info.value.version == 2
        assert exc_info.value.name == "broken"
        assert current_version(conn) == 1
        assert "half_done" not in _tables(conn)
        assert "items" in _tables(conn)

    def test_failed_backfill_rolls_back(self, conn):
        def explode(_conn):
            raise RuntimeError("backfill blew up")

        broken = (MIGRATIONS[0], Migration(2, "bad_backfill", "CREATE TABLE extra (a);", explode))
        with patch("haste.migrations.MIGRATIONS", broken):
            with pytest.raises(MigrationError, match="backfill blew up"):
                ensure_current(conn)
        assert current_version(conn) == 1
        assert "extra" not in _tables(conn)

    def test_retry_after_failure_applies_real_step(self, conn):
        broken = (MIGRATIONS[0], Migration(2, "broken", "NOT SQL;"))
        with patch("haste.migrations.MIGRATIONS", broken):
            with pytest.raises(MigrationError):
                ensure_current(conn)
        assert ensure_current(conn) == LATEST_VERSION
