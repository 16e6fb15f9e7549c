"""
Embedded key-value store using SQLite.

The store holds named partitions ("trees"), each a sorted map of
byte key -> byte value. It is the sole durable owner of accounts and of the
application-state document; everything in memory is a transient working copy.

One KVStore handle is opened per process and shared by every component.
Read-modify-write sequences run inside ``transaction()``, which holds a
process-level lock and an SQLite ``BEGIN IMMEDIATE`` write lock, so two
writers can never interleave between the read and the write-back.
"""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from .errors import PersistenceError

logger = logging.getLogger(__name__)


class Tree:
    """A named partition of a KVStore."""

    def __init__(self, store: "KVStore", name: str):
        self._store = store
        self.name = name

    def get(self, key: bytes) -> Optional[bytes]:
        return self._store.get(self.name, key)

    def insert(self, key: bytes, value: bytes) -> None:
        self._store.insert(self.name, key, value)

    def remove(self, key: bytes) -> bool:
        return self._store.remove(self.name, key)

    def items(self) -> list[tuple[bytes, bytes]]:
        return self._store.items(self.name)

    def is_empty(self) -> bool:
        return self._store.is_empty(self.name)

    def __len__(self) -> int:
        return self._store.count(self.name)


class KVStore:
    """
    SQLite-backed store of named byte-key/byte-value partitions.

    Single-key operations are atomic on their own. Multi-step operations
    should be wrapped in ``transaction()``.
    """

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None gives us manual transaction control
            # so we can use BEGIN IMMEDIATE around read-modify-write
            self._conn = sqlite3.connect(
                str(self._db_path), check_same_thread=False,
                isolation_level=None,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA busy_timeout=5000")
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS trees (
                    tree TEXT NOT NULL,
                    key BLOB NOT NULL,
                    value BLOB NOT NULL,
                    PRIMARY KEY (tree, key)
                ) WITHOUT ROWID
            """)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Failed to open store at {self._db_path}: {e}") from e

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Translate SQLite failures into PersistenceError."""
        if self._conn is None:
            raise PersistenceError(f"Store is closed ({operation})")
        try:
            yield
        except sqlite3.Error as e:
            logger.error("Store %s failed: %s", operation, e)
            raise PersistenceError(f"Store {operation} failed: {e}") from e

    def open_tree(self, name: str) -> Tree:
        """Return a handle to the named partition (created lazily on first write)."""
        return Tree(self, name)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["KVStore"]:
        """
        Run a block of operations as one atomic unit.

        Re-entrant: nested transactions join the outermost one. The outermost
        block commits on normal exit and rolls back if the block raises,
        so a failed update never leaves a record half-written.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                with self._guard("begin"):
                    self._conn.execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    with self._guard("rollback"):
                        self._conn.rollback()
                raise
            self._depth -= 1
            if outermost:
                with self._guard("commit"):
                    self._conn.commit()

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def insert(self, tree: str, key: bytes, value: bytes) -> None:
        """Insert or replace a single key."""
        with self._lock, self._guard("insert"):
            self._conn.execute("""
                INSERT OR REPLACE INTO trees (tree, key, value)
                VALUES (?, ?, ?)
            """, (tree, key, value))

    def remove(self, tree: str, key: bytes) -> bool:
        """
        Delete a single key.

        Returns:
            True if the key existed
        """
        with self._lock, self._guard("remove"):
            cursor = self._conn.execute("""
                DELETE FROM trees
                WHERE tree = ? AND key = ?
            """, (tree, key))
            return cursor.rowcount > 0

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get(self, tree: str, key: bytes) -> Optional[bytes]:
        """Get the value for a key, or None if absent."""
        with self._lock, self._guard("get"):
            row = self._conn.execute("""
                SELECT value FROM trees
                WHERE tree = ? AND key = ?
            """, (tree, key)).fetchone()
        return bytes(row[0]) if row is not None else None

    def items(self, tree: str) -> list[tuple[bytes, bytes]]:
        """All (key, value) pairs of a partition, in key order."""
        with self._lock, self._guard("iterate"):
            rows = self._conn.execute("""
                SELECT key, value FROM trees
                WHERE tree = ?
                ORDER BY key
            """, (tree,)).fetchall()
        return [(bytes(k), bytes(v)) for k, v in rows]

    def is_empty(self, tree: str) -> bool:
        with self._lock, self._guard("get"):
            row = self._conn.execute(
                "SELECT 1 FROM trees WHERE tree = ? LIMIT 1", (tree,)
            ).fetchone()
        return row is None

    def count(self, tree: str) -> int:
        with self._lock, self._guard("count"):
            row = self._conn.execute(
                "SELECT COUNT(*) FROM trees WHERE tree = ?", (tree,)
            ).fetchone()
        return row[0]

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
