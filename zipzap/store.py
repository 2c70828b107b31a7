"""
Path Store — SQLite Persistent Backend

Tables:
    paths        - One row per tracked directory (path, rank, last_access)
    schema_meta  - Schema version and provenance

Concurrency: every mutation runs in a ``BEGIN IMMEDIATE`` transaction so
writers from separate processes serialize on the database lock and a
read-modify-write of the same path never loses an increment. WAL mode
lets readers proceed while a writer holds the lock; lock waits are bounded
by the connection's busy timeout.

All sqlite3 and OS errors are re-raised as StorageError.

Author: zipzap contributors
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from zipzap.config import ScoringConfig, StoreConfig
from zipzap.scoring import VISIT_INCREMENT, should_age
from zipzap.types import Entry, _now_epoch, normalize_path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# ---------------------------------------------------------------------------
# Schema DDL
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS paths (
    path        TEXT PRIMARY KEY,
    rank        REAL NOT NULL CHECK(rank >= 0),
    last_access INTEGER NOT NULL
);

-- Schema metadata for forward compatibility
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

_UPSERT_SQL = """
INSERT INTO paths (path, rank, last_access) VALUES (:path, :inc, :now)
ON CONFLICT(path) DO UPDATE SET
    rank = rank + :inc,
    last_access = :now
"""

# Newer last_access wins; ties keep the existing row.
_MERGE_SQL = """
INSERT INTO paths (path, rank, last_access) VALUES (?, ?, ?)
ON CONFLICT(path) DO UPDATE SET
    rank = excluded.rank,
    last_access = excluded.last_access
WHERE excluded.last_access > paths.last_access
"""


class StorageError(Exception):
    """The backing table could not be opened, read, or written."""

    pass


# ---------------------------------------------------------------------------
# PathStore
# ---------------------------------------------------------------------------

class PathStore:
    """
    SQLite-backed index of visited directories.

    Open one per operation and close it afterwards (or use it as a
    context manager); nothing is cached in memory between calls.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        scoring: Optional[ScoringConfig] = None,
    ):
        """Open (and create if needed) the path index.

        Args:
            db_path: SQLite database path (or ":memory:" for in-memory).
            wal_mode: Enable WAL journal mode for concurrent readers.
            busy_timeout_ms: How long a writer waits for the lock before
                the operation fails with StorageError.
            scoring: Aging policy (ceiling, factor, prune epsilon).

        Raises:
            StorageError: If the database cannot be created or opened.
        """
        self._db_path = db_path
        self._lock = threading.Lock()
        self._scoring = scoring or ScoringConfig()
        try:
            # Auto-create parent directory for disk-backed databases.
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                db_path,
                timeout=busy_timeout_ms / 1000.0,
                check_same_thread=False,
                isolation_level=None,
            )
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"cannot open database at {db_path!r}: {exc}") from exc

        self._conn.row_factory = sqlite3.Row
        try:
            # Existing databases are opened without taking the write lock
            if not self._has_schema():
                if wal_mode and db_path != ":memory:":
                    self._conn.execute("PRAGMA journal_mode=WAL")
                self._conn.executescript(_SCHEMA_SQL)
                self._conn.execute(
                    "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('schema_version', ?)",
                    (str(SCHEMA_VERSION),),
                )
                self._conn.execute(
                    "INSERT OR IGNORE INTO schema_meta (key, value) VALUES ('created_by', 'zipzap')",
                )
        except sqlite3.Error as exc:
            self._conn.close()
            raise StorageError(f"cannot initialize database at {db_path!r}: {exc}") from exc
        logger.debug(f"PathStore opened: {db_path}")

    @classmethod
    def from_config(
        cls, db_path: str, store: StoreConfig, scoring: ScoringConfig,
    ) -> PathStore:
        return cls(
            db_path=db_path,
            wal_mode=store.wal_mode,
            busy_timeout_ms=store.busy_timeout_ms,
            scoring=scoring,
        )

    @property
    def db_path(self) -> str:
        return self._db_path

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> PathStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize against other writers; commit on success, roll back on error."""
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(f"cannot lock database: {exc}") from exc
            try:
                yield self._conn
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback()
                raise StorageError(f"write failed, rolled back: {exc}") from exc
            except BaseException:
                self._rollback()
                raise

    def _rollback(self) -> None:
        # SQLite may already have rolled back on its own (e.g. SQLITE_FULL).
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    # -- Write operations --------------------------------------------------

    def upsert(self, path: str, now: Optional[int] = None) -> None:
        """
        Record one visit to ``path``: insert with rank 1 or add 1 to the
        existing rank, and stamp ``last_access``. If the table's total rank
        now exceeds the aging ceiling, age the whole table in the same
        transaction.
        """
        if now is None:
            now = _now_epoch()
        path = normalize_path(path)
        with self._transaction() as conn:
            conn.execute(
                _UPSERT_SQL, {"path": path, "inc": VISIT_INCREMENT, "now": now},
            )
            total = self._total_rank(conn)
            if should_age(total, self._scoring.aging_ceiling):
                pruned = self._age(conn, self._scoring.age_factor)
                logger.info(
                    f"Aging pass: total rank {total:.1f} > "
                    f"{self._scoring.aging_ceiling:.1f}, factor "
                    f"{self._scoring.age_factor}, {pruned} pruned"
                )

    def merge(self, records: Iterable[Entry]) -> int:
        """
        Merge externally sourced entries. An absent path is inserted; a
        present path is overwritten only when the incoming ``last_access``
        is strictly newer. Returns the number of rows inserted or overwritten.
        """
        with self._transaction() as conn:
            before = conn.total_changes
            conn.executemany(
                _MERGE_SQL,
                ((normalize_path(r.path), r.rank, r.last_access) for r in records),
            )
            return conn.total_changes - before

    def age_all(self, factor: float) -> int:
        """
        Multiply every rank by ``factor`` and prune entries that fall below
        the prune epsilon, as one transaction. Returns the number pruned.

        Raises:
            ValueError: If factor is not in (0, 1).
        """
        if not 0.0 < factor < 1.0:
            raise ValueError(f"aging factor must be in (0, 1), got {factor}")
        with self._transaction() as conn:
            return self._age(conn, factor)

    def _age(self, conn: sqlite3.Connection, factor: float) -> int:
        """Aging step (must be called within a transaction)."""
        conn.execute("UPDATE paths SET rank = rank * ?", (factor,))
        cur = conn.execute(
            "DELETE FROM paths WHERE rank < ?", (self._scoring.prune_epsilon,),
        )
        return cur.rowcount

    # -- Read operations ---------------------------------------------------

    def all_entries(self) -> List[Entry]:
        """Every tracked directory, unfiltered."""
        with self._lock:
            try:
                rows = self._conn.execute(
                    "SELECT path, rank, last_access FROM paths"
                ).fetchall()
            except sqlite3.Error as exc:
                raise StorageError(f"read failed: {exc}") from exc
        return [self._row_to_entry(r) for r in rows]

    def get(self, path: str) -> Optional[Entry]:
        """Read a single entry by path."""
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT path, rank, last_access FROM paths WHERE path=?",
                    (normalize_path(path),),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"read failed: {exc}") from exc
        return self._row_to_entry(row) if row is not None else None

    def total_rank(self) -> float:
        """Sum of all ranks (the aging trigger aggregate)."""
        with self._lock:
            try:
                return self._total_rank(self._conn)
            except sqlite3.Error as exc:
                raise StorageError(f"read failed: {exc}") from exc

    # -- Stats -------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Summary statistics for the path index."""
        with self._lock:
            try:
                row = self._conn.execute(
                    "SELECT COUNT(*) AS cnt, COALESCE(SUM(rank), 0.0) AS total, "
                    "MAX(last_access) AS newest FROM paths"
                ).fetchone()
                version = self._conn.execute(
                    "SELECT value FROM schema_meta WHERE key='schema_version'"
                ).fetchone()
            except sqlite3.Error as exc:
                raise StorageError(f"read failed: {exc}") from exc
        return {
            "db_path": self._db_path,
            "schema_version": int(version[0]) if version else None,
            "total_entries": row["cnt"],
            "total_rank": row["total"],
            "aging_ceiling": self._scoring.aging_ceiling,
            "last_access": row["newest"],
        }

    # -- Internal helpers --------------------------------------------------

    def _has_schema(self) -> bool:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM sqlite_master "
            "WHERE type='table' AND name IN ('paths', 'schema_meta')"
        ).fetchone()
        return row[0] == 2

    @staticmethod
    def _total_rank(conn: sqlite3.Connection) -> float:
        return conn.execute("SELECT COALESCE(SUM(rank), 0.0) FROM paths").fetchone()[0]

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> Entry:
        return Entry(
            path=row["path"],
            rank=row["rank"],
            last_access=row["last_access"],
        )
