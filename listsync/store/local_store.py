"""Local SQLite storage for a client's ordered entry list."""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from .base import EntryStore

logger = logging.getLogger(__name__)

# SQL schema for the entry database
SCHEMA = """
-- Entries: one row per entry, ordered by position within a list key
CREATE TABLE IF NOT EXISTS entries (
    list_key TEXT NOT NULL,
    position INTEGER NOT NULL,
    text TEXT NOT NULL,
    PRIMARY KEY (list_key, text)
);

CREATE INDEX IF NOT EXISTS idx_entries_position ON entries(list_key, position);

-- Per-list bookkeeping
CREATE TABLE IF NOT EXISTS lists (
    list_key TEXT PRIMARY KEY,
    updated_at TEXT NOT NULL
);
"""


class LocalStore(EntryStore):
    """SQLite-backed durable mirror of the local entry list.

    Several independent lists can share one database file; each store
    instance reads and writes the list named by its key.
    """

    def __init__(self, db_path: str | Path, key: str = "cross-browser-todos"):
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            key: Name of the list this store reads and writes.
        """
        self.db_path = Path(db_path).expanduser()
        self.key = key
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(SCHEMA)
        self._conn.commit()

        logger.info(f"LocalStore connected to {self.db_path} (key={self.key})")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    def load(self) -> list[str]:
        """Load the persisted entries in order."""
        conn = self._ensure_connected()
        rows = conn.execute(
            "SELECT text FROM entries WHERE list_key = ? ORDER BY position",
            (self.key,),
        ).fetchall()
        return [row["text"] for row in rows]

    def save(self, entries: list[str]) -> None:
        """Replace the persisted list in a single transaction.

        Repeated entries are stored once, at their first position.
        """
        conn = self._ensure_connected()
        unique = list(dict.fromkeys(entries))

        with conn:
            conn.execute("DELETE FROM entries WHERE list_key = ?", (self.key,))
            conn.executemany(
                "INSERT INTO entries (list_key, position, text) VALUES (?, ?, ?)",
                [(self.key, i, text) for i, text in enumerate(unique)],
            )
            conn.execute(
                """
                INSERT INTO lists (list_key, updated_at) VALUES (?, ?)
                ON CONFLICT(list_key) DO UPDATE SET updated_at = excluded.updated_at
                """,
                (self.key, datetime.now().isoformat()),
            )

        logger.debug(f"Saved {len(unique)} entries to {self.key}")

    def get_stats(self) -> dict[str, Any]:
        """Get statistics about the stored list.

        Returns:
            Dictionary with key, entry count and last update time.
        """
        conn = self._ensure_connected()
        count = conn.execute(
            "SELECT COUNT(*) FROM entries WHERE list_key = ?", (self.key,)
        ).fetchone()[0]
        row = conn.execute(
            "SELECT updated_at FROM lists WHERE list_key = ?", (self.key,)
        ).fetchone()

        return {
            "key": self.key,
            "entry_count": count,
            "updated_at": row["updated_at"] if row else None,
        }
