"""SQLite-based key-value store for chat memory persistence."""

import sqlite3
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, List

from .kv_store import KeyValueStore, StorageError

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-based persistent key-value store."""

    def __init__(self, db_path: str = "data/chat_memory.db"):
        """
        Initialize SQLite key-value store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.commit()
        conn.close()
        logger.info(f"Database initialized at {self.db_path}")

    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: Storage key

        Returns:
            Stored text or None
        """
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?",
                    (key,)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """
        Insert or replace a value.

        Args:
            key: Storage key
            value: Text to store
        """
        try:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    (key, value, datetime.now().isoformat())
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    def remove(self, key: str) -> None:
        """Delete a key if present."""
        try:
            conn = self._get_connection()
            try:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e

    def list_keys(self, prefix: str = "") -> List[str]:
        """
        List keys starting with a prefix.

        Args:
            prefix: Key prefix (empty string lists everything)

        Returns:
            Matching keys in key order
        """
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    """
                    SELECT key FROM kv_store
                    WHERE substr(key, 1, ?) = ?
                    ORDER BY key
                    """,
                    (len(prefix), prefix)
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys for prefix {prefix!r}: {e}") from e

        return [row["key"] for row in rows]
