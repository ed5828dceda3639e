import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from sovereign.core.errors import StorageError
from sovereign.core.types import AnchorReceipt, MemoryEntry, UserRecord
from . import StorageBackend

logger = logging.getLogger(__name__)

MEMORY = ":memory:"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class SQLiteStorage(StorageBackend):
    """
    SQLite persistent storage: one user row per identity, one append-only
    memories table ordered by (created_at, sequence), and anchor receipts.

    A single connection is shared across threads behind a lock; every write
    is its own transaction so readers never observe a partial entry or a
    partial batch.
    """

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = Path.cwd() / "sovereign.db"

        if str(db_path) == MEMORY:
            self.db_path: Path | str = MEMORY
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.db_path = self.db_path.resolve()

        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        try:
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
            if self.db_path != MEMORY:
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database {self.db_path}: {e}") from e

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                identity    TEXT PRIMARY KEY,
                created_at  TEXT NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                sequence        INTEGER PRIMARY KEY AUTOINCREMENT,
                id              TEXT    NOT NULL UNIQUE,
                identity        TEXT    NOT NULL,
                content         TEXT    NOT NULL,
                embedding_json  TEXT    NOT NULL,
                created_at      TEXT    NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS anchors (
                receipt_id      TEXT PRIMARY KEY,
                identity        TEXT NOT NULL,
                state_root      TEXT NOT NULL,
                committed_at    TEXT NOT NULL,
                anchor          TEXT NOT NULL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_order ON memories(identity, created_at, sequence)")
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_anchors_identity ON anchors(identity, committed_at)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Storage connection is closed")
        return self._conn

    # ── users

    def ensure_user(self, identity: str) -> UserRecord:
        with self._lock:
            try:
                self.conn.execute(
                    "INSERT OR IGNORE INTO users (identity, created_at) VALUES (?, ?)",
                    (identity, utc_now()),
                )
            except sqlite3.Error as e:
                raise StorageError(f"Failed to upsert user: {e}") from e
            return self.get_user(identity)

    def get_user(self, identity: str) -> Optional[UserRecord]:
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT identity, created_at FROM users WHERE identity = ?", (identity,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to load user: {e}") from e
        return UserRecord(identity=row[0], created_at=row[1]) if row else None

    def list_users(self) -> list[str]:
        """
        All known identities, most recent memory activity first.
        Users with no entries come last, newest account first.
        """
        with self._lock:
            try:
                cursor = self.conn.execute("""
                    SELECT u.identity
                    FROM users u LEFT JOIN memories m ON m.identity = u.identity
                    GROUP BY u.identity
                    ORDER BY MAX(m.created_at) IS NULL, MAX(m.created_at) DESC, u.created_at DESC
                """)
                return [row[0] for row in cursor.fetchall()]
            except sqlite3.Error as e:
                raise StorageError(f"Failed to list users: {e}") from e

    # ── memories

    def append_entry(self, identity: str, content: str, embedding: Sequence[float]) -> MemoryEntry:
        return self.append_entries(identity, [(content, embedding)])[0]

    def append_entries(
        self, identity: str, items: Sequence[Tuple[str, Sequence[float]]]
    ) -> List[MemoryEntry]:
        """Write every item in one transaction; on failure none of them is kept."""
        prepared = [(str(uuid.uuid4()), content, [float(v) for v in embedding]) for content, embedding in items]
        if not prepared:
            return []

        entries = []
        with self._lock:
            conn = self.conn
            # stamped under the lock so timestamp order agrees with sequence order
            created_at = utc_now()
            try:
                conn.execute("BEGIN")
                for entry_id, content, vector in prepared:
                    cursor = conn.execute("""
                        INSERT INTO memories (id, identity, content, embedding_json, created_at)
                        VALUES (?, ?, ?, ?, ?)
                    """, (entry_id, identity, content, json.dumps(vector, separators=(",", ":")), created_at))
                    entries.append(MemoryEntry(
                        id=entry_id,
                        identity=identity,
                        content=content,
                        created_at=created_at,
                        sequence=cursor.lastrowid,
                        embedding=vector,
                    ))
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise StorageError(f"Failed to append memory entry: {e}") from e

        return entries

    def _rows_to_entries(self, rows, identity: str) -> List[MemoryEntry]:
        loaded = []
        for row in rows:
            seq, eid, content, ejson, ts = row
            loaded.append(MemoryEntry(
                id=eid,
                identity=identity,
                content=content,
                created_at=ts,
                sequence=seq,
                embedding=json.loads(ejson),
            ))
        return loaded

    def load_entries(self, identity: str) -> List[MemoryEntry]:
        with self._lock:
            try:
                rows = self.conn.execute("""
                    SELECT sequence, id, content, embedding_json, created_at
                    FROM memories WHERE identity = ?
                    ORDER BY created_at ASC, sequence ASC
                """, (identity,)).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to load memory log: {e}") from e
        return self._rows_to_entries(rows, identity)

    def query_entries(self, identity: str, limit: int = 50) -> List[MemoryEntry]:
        """The `limit` most recent entries, returned oldest first."""
        with self._lock:
            try:
                rows = self.conn.execute("""
                    SELECT sequence, id, content, embedding_json, created_at
                    FROM memories WHERE identity = ?
                    ORDER BY created_at DESC, sequence DESC
                    LIMIT ?
                """, (identity, limit)).fetchall()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to query memory log: {e}") from e
        loaded = self._rows_to_entries(rows, identity)
        loaded.reverse()  # latest last
        return loaded

    def get_entry_count(self, identity: str) -> int:
        with self._lock:
            try:
                return self.conn.execute(
                    "SELECT COUNT(*) FROM memories WHERE identity = ?", (identity,)
                ).fetchone()[0]
            except sqlite3.Error as e:
                raise StorageError(f"Failed to count memory entries: {e}") from e

    def get_latest_timestamp(self, identity: str) -> Optional[str]:
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT MAX(created_at) FROM memories WHERE identity = ?", (identity,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to read latest timestamp: {e}") from e
        return row[0] if row and row[0] else None

    # ── anchors

    def record_anchor(self, receipt: AnchorReceipt) -> None:
        with self._lock:
            try:
                self.conn.execute("""
                    INSERT OR IGNORE INTO anchors (receipt_id, identity, state_root, committed_at, anchor)
                    VALUES (?, ?, ?, ?, ?)
                """, (receipt.receipt_id, receipt.identity, receipt.state_root,
                      receipt.committed_at, receipt.anchor))
            except sqlite3.Error as e:
                raise StorageError(f"Failed to record anchor receipt: {e}") from e

    def latest_anchor(self, identity: str) -> Optional[AnchorReceipt]:
        with self._lock:
            try:
                row = self.conn.execute("""
                    SELECT receipt_id, identity, state_root, committed_at, anchor
                    FROM anchors WHERE identity = ?
                    ORDER BY committed_at DESC LIMIT 1
                """, (identity,)).fetchone()
            except sqlite3.Error as e:
                raise StorageError(f"Failed to load anchor receipt: {e}") from e
        if row is None:
            return None
        rid, ident, root, ts, anchor = row
        return AnchorReceipt(identity=ident, state_root=root, receipt_id=rid, committed_at=ts, anchor=anchor)

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
