"""
Tests for zipzap.store — PathStore upsert, merge, aging, schema, errors.

Author: zipzap contributors
"""

import sqlite3
import threading

import pytest

from zipzap.config import ScoringConfig
from zipzap.scoring import score
from zipzap.store import PathStore, SCHEMA_VERSION, StorageError
from zipzap.types import Entry


@pytest.fixture
def store():
    """Create an in-memory store for testing."""
    s = PathStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def disk_store(tmp_path):
    """Create a disk-backed store for testing."""
    db_path = str(tmp_path / "test.db")
    s = PathStore(db_path=db_path)
    yield s
    s.close()


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class TestSchema:
    def test_schema_version(self, store):
        row = store._conn.execute(
            "SELECT value FROM schema_meta WHERE key='schema_version'"
        ).fetchone()
        assert row["value"] == str(SCHEMA_VERSION)

    def test_created_by(self, store):
        row = store._conn.execute(
            "SELECT value FROM schema_meta WHERE key='created_by'"
        ).fetchone()
        assert row["value"] == "zipzap"

    def test_paths_columns(self, store):
        cols = {
            r["name"] for r in store._conn.execute("PRAGMA table_info(paths)")
        }
        assert cols == {"path", "rank", "last_access"}

    def test_wal_mode_on_disk(self, disk_store):
        mode = disk_store._conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode.lower() == "wal"

    def test_creates_parent_dirs(self, tmp_path):
        db_path = tmp_path / "a" / "b" / "db.sqlite"
        with PathStore(str(db_path)):
            pass
        assert db_path.exists()

    def test_reopen_is_idempotent(self, tmp_path):
        db_path = str(tmp_path / "db.sqlite")
        with PathStore(db_path) as s:
            s.upsert("/a", now=1)
        with PathStore(db_path) as s:
            assert s.get("/a").rank == 1

    def test_open_existing_while_writer_holds_lock(self, tmp_path):
        db_path = str(tmp_path / "db.sqlite")
        with PathStore(db_path) as s:
            s.upsert("/a", now=1)
        writer = sqlite3.connect(db_path, isolation_level=None)
        try:
            writer.execute("BEGIN IMMEDIATE")
            with PathStore(db_path, busy_timeout_ms=100) as s:
                assert [e.path for e in s.all_entries()] == ["/a"]
        finally:
            writer.execute("ROLLBACK")
            writer.close()


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


class TestUpsert:
    def test_first_visit(self, store):
        store.upsert("/home/u/proj", now=100)
        e = store.get("/home/u/proj")
        assert e == Entry(path="/home/u/proj", rank=1.0, last_access=100)

    def test_n_visits_add_exactly_n(self, store):
        for i in range(25):
            store.upsert("/p", now=100 + i)
        e = store.get("/p")
        assert e.rank == 25
        assert e.last_access == 124

    def test_one_entry_per_path(self, store):
        store.upsert("/a/b", now=1)
        store.upsert("/a/b/", now=2)
        store.upsert("/a/b//", now=3)
        entries = store.all_entries()
        assert len(entries) == 1
        assert entries[0].rank == 3

    def test_last_write_wins(self, store):
        store.upsert("/p", now=500)
        store.upsert("/p", now=300)
        assert store.get("/p").last_access == 300

    def test_case_preserved(self, store):
        store.upsert("/home/Foo", now=1)
        assert store.get("/home/Foo") is not None
        assert store.get("/home/foo") is None

    def test_default_now(self, store):
        store.upsert("/p")
        assert store.get("/p").last_access > 1_600_000_000

    def test_persists_across_connections(self, tmp_path):
        db_path = str(tmp_path / "db.sqlite")
        with PathStore(db_path) as s:
            s.upsert("/x", now=1)
            s.upsert("/x", now=2)
        with PathStore(db_path) as s:
            assert s.get("/x") == Entry(path="/x", rank=2.0, last_access=2)


class TestConcurrentUpsert:
    def test_no_lost_increments(self, tmp_path):
        db_path = str(tmp_path / "db.sqlite")
        PathStore(db_path).close()
        n_threads, n_visits = 4, 50
        errors = []

        def worker():
            try:
                with PathStore(db_path, busy_timeout_ms=30000) as s:
                    for _ in range(n_visits):
                        s.upsert("/shared", now=1)
                        s.upsert("/other", now=1)
            except Exception as e:  # surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        with PathStore(db_path) as s:
            assert s.get("/shared").rank == n_threads * n_visits
            assert s.get("/other").rank == n_threads * n_visits


# ---------------------------------------------------------------------------
# Aging
# ---------------------------------------------------------------------------


class TestAging:
    def test_age_all_scales_ranks(self, store):
        store.merge([
            Entry(path="/a", rank=10, last_access=1),
            Entry(path="/b", rank=4, last_access=1),
        ])
        pruned = store.age_all(0.5)
        assert pruned == 0
        assert store.get("/a").rank == 5
        assert store.get("/b").rank == 2

    def test_age_all_prunes_below_epsilon(self):
        with PathStore(":memory:", scoring=ScoringConfig(prune_epsilon=1.0)) as s:
            s.merge([
                Entry(path="/keep", rank=10, last_access=1),
                Entry(path="/drop", rank=1.5, last_access=1),
            ])
            assert s.age_all(0.5) == 1
            assert [e.path for e in s.all_entries()] == ["/keep"]

    def test_age_all_keeps_last_access(self, store):
        store.merge([Entry(path="/a", rank=10, last_access=77)])
        store.age_all(0.9)
        assert store.get("/a").last_access == 77

    @pytest.mark.parametrize("factor", [0, 1, 1.5, -0.2])
    def test_invalid_factor(self, store, factor):
        with pytest.raises(ValueError):
            store.age_all(factor)

    def test_aging_preserves_order(self, store):
        now = 10 * 86400
        entries = [
            Entry(path="/a", rank=50, last_access=now - 10),
            Entry(path="/b", rank=30, last_access=now - 7200),
            Entry(path="/c", rank=200, last_access=now - 30 * 86400),
            Entry(path="/d", rank=3, last_access=now),
        ]
        store.merge(entries)
        before = sorted(store.all_entries(), key=lambda e: -score(e, now))
        store.age_all(0.99)
        after = sorted(store.all_entries(), key=lambda e: -score(e, now))
        assert [e.path for e in before] == [e.path for e in after]
        for b, a in zip(before, after):
            assert a.rank < b.rank

    def test_upsert_triggers_aging_above_ceiling(self):
        policy = ScoringConfig(aging_ceiling=10.0, age_factor=0.5)
        with PathStore(":memory:", scoring=policy) as s:
            for _ in range(10):
                s.upsert("/p", now=1)
            # total == ceiling: not yet
            assert s.get("/p").rank == 10
            s.upsert("/p", now=2)
            assert s.get("/p").rank == pytest.approx(5.5)

    def test_default_ceiling_not_reached(self, store):
        for _ in range(100):
            store.upsert("/p", now=1)
        assert store.total_rank() == 100


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class TestMerge:
    def test_insert_absent(self, store):
        n = store.merge([Entry(path="/x", rank=3.5, last_access=100)])
        assert n == 1
        assert store.get("/x") == Entry(path="/x", rank=3.5, last_access=100)

    def test_older_record_loses(self, store):
        store.merge([Entry(path="/x", rank=7, last_access=200)])
        n = store.merge([Entry(path="/x", rank=99, last_access=100)])
        assert n == 0
        assert store.get("/x") == Entry(path="/x", rank=7.0, last_access=200)

    def test_newer_record_wins(self, store):
        store.merge([Entry(path="/x", rank=7, last_access=200)])
        n = store.merge([Entry(path="/x", rank=2, last_access=300)])
        assert n == 1
        assert store.get("/x") == Entry(path="/x", rank=2.0, last_access=300)

    def test_equal_timestamp_keeps_existing(self, store):
        store.merge([Entry(path="/x", rank=7, last_access=200)])
        assert store.merge([Entry(path="/x", rank=1, last_access=200)]) == 0
        assert store.get("/x").rank == 7

    def test_merge_twice_is_idempotent(self, store):
        recs = [
            Entry(path="/a", rank=1, last_access=10),
            Entry(path="/b", rank=2, last_access=20),
        ]
        store.merge(recs)
        first = sorted(store.all_entries(), key=lambda e: e.path)
        assert store.merge(recs) == 0
        assert sorted(store.all_entries(), key=lambda e: e.path) == first

    def test_failed_batch_rolls_back(self, store):
        with pytest.raises(StorageError):
            store.merge([
                Entry(path="/ok", rank=1, last_access=1),
                Entry(path="/bad", rank=-1, last_access=1),
            ])
        assert store.all_entries() == []


# ---------------------------------------------------------------------------
# Errors and stats
# ---------------------------------------------------------------------------


class TestErrors:
    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(StorageError):
            PathStore(str(blocker / "db.sqlite"))

    def test_closed_store_read(self):
        s = PathStore(":memory:")
        s.close()
        with pytest.raises(StorageError):
            s.all_entries()

    def test_closed_store_write(self):
        s = PathStore(":memory:")
        s.close()
        with pytest.raises(StorageError):
            s.upsert("/p")

    def test_error_is_chained(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(StorageError) as exc_info:
            PathStore(str(blocker / "db.sqlite"))
        assert exc_info.value.__cause__ is not None


class TestStats:
    def test_empty(self, store):
        st = store.stats()
        assert st["total_entries"] == 0
        assert st["total_rank"] == 0
        assert st["schema_version"] == SCHEMA_VERSION
        assert st["last_access"] is None

    def test_populated(self, store):
        store.upsert("/a", now=5)
        store.upsert("/b", now=9)
        store.upsert("/b", now=9)
        st = store.stats()
        assert st["total_entries"] == 2
        assert st["total_rank"] == 3
        assert st["last_access"] == 9
        assert st["aging_ceiling"] == 9000.0
