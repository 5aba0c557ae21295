"""Persistent resumable-upload session store.

This module provides:
- SessionStore: the get/set/delete interface the transfer engine uses
- LocalSessionStore: SQLite-backed implementation, durable across restarts

Architecture:
    One row per in-flight resumable upload, keyed by the object's
    canonical identifier. A row is written when a session is negotiated
    and removed when the upload completes (or the session is discarded).
    No cross-process locking: concurrent writers to the same key follow
    last-writer-wins.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Protocol

from storagexfer.core.types import SessionRecord

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Key-value cache of in-progress upload sessions."""

    def get(self, key: str) -> SessionRecord | None:
        """Get the session record for a key, if any."""
        ...

    def set(self, key: str, record: SessionRecord) -> None:
        """Persist the session record for a key (replacing any previous one)."""
        ...

    def delete(self, key: str) -> None:
        """Remove the session record for a key. Absence is not an error."""
        ...


class LocalSessionStore:
    """SQLite-based session store scoped to the local user."""

    def __init__(self, db_path: Path) -> None:
        """Open (or create) the session database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Sessions for different objects run on different threads
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS upload_sessions (
                key TEXT PRIMARY KEY,
                uri TEXT NOT NULL,
                created_at REAL NOT NULL
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalSessionStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def get(self, key: str) -> SessionRecord | None:
        """Get the session record for a key.

        Args:
            key: Canonical object identifier.

        Returns:
            SessionRecord if found, None otherwise.
        """
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM upload_sessions WHERE key = ?",
                (key,),
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return SessionRecord(key=row["key"], uri=row["uri"], created_at=row["created_at"])

    def set(self, key: str, record: SessionRecord) -> None:
        """Persist a session record (upsert)."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO upload_sessions (key, uri, created_at) "
                "VALUES (?, ?, ?)",
                (key, record.uri, record.created_at),
            )
        logger.debug(f"Stored upload session for {key}")

    def delete(self, key: str) -> None:
        """Remove a session record."""
        with self._lock:
            self._conn.execute("DELETE FROM upload_sessions WHERE key = ?", (key,))

    def list_records(self) -> list[SessionRecord]:
        """List all stored sessions, oldest first."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM upload_sessions ORDER BY created_at, key"
            )
            rows = cursor.fetchall()
        return [
            SessionRecord(key=row["key"], uri=row["uri"], created_at=row["created_at"])
            for row in rows
        ]
