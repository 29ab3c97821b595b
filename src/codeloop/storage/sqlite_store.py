"""
SQLite Store.

Persists conversation records and project snapshots as JSON documents in a
single SQLite file. Suitable for one user on one machine.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from codeloop.errors import StorageError
from codeloop.storage.backend import AgentStore

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id TEXT PRIMARY KEY,
        name TEXT,
        project_name TEXT,
        created_at TEXT NOT NULL,
        last_modified TEXT NOT NULL,
        record TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_conversations_last_modified
    ON conversations(last_modified)
    """,
    """
    CREATE TABLE IF NOT EXISTS projects (
        name TEXT PRIMARY KEY,
        saved_at TEXT NOT NULL,
        snapshot TEXT NOT NULL
    )
    """,
)


class SQLiteStore(AgentStore):
    """
    SQLite-backed store.

    Thread-safe via connection-per-thread pattern.
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize the store.

        Args:
            db_path: Path to SQLite database file (created if it doesn't exist)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        # Thread-local storage for connections
        self._local = threading.local()

        for statement in SCHEMA:
            self._execute(statement)

    def _get_connection(self) -> sqlite3.Connection:
        """Get the database connection for the current thread."""
        if not hasattr(self._local, "connection") or self._local.connection is None:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            self._local.connection = conn
        return self._local.connection

    def _execute(self, query: str, params: tuple = ()) -> int:
        try:
            conn = self._get_connection()
            cursor = conn.cursor()
            cursor.execute(query, params)
            conn.commit()
            return cursor.rowcount
        except sqlite3.Error as e:
            raise StorageError(f"SQLite write failed: {e}") from e

    def _fetch_one(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(query, params)
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite read failed: {e}") from e
        return dict(row) if row is not None else None

    def _fetch_all(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        try:
            cursor = self._get_connection().cursor()
            cursor.execute(query, params)
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"SQLite read failed: {e}") from e
        return [dict(row) for row in rows]

    # =========================================================================
    # Conversations
    # =========================================================================

    def save_conversation(self, record: dict[str, Any]) -> None:
        metadata = record["metadata"]
        now = datetime.now().isoformat()
        self._execute(
            """
            INSERT OR REPLACE INTO conversations
                (id, name, project_name, created_at, last_modified, record)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                metadata["id"],
                metadata.get("name"),
                metadata.get("project_name"),
                metadata.get("created_at") or now,
                metadata.get("last_modified") or now,
                json.dumps(record),
            ),
        )
        logger.debug(f"Saved conversation {metadata['id']}")

    def load_conversation(self, conversation_id: str) -> dict[str, Any] | None:
        row = self._fetch_one("SELECT record FROM conversations WHERE id = ?", (conversation_id,))
        return json.loads(row["record"]) if row else None

    def latest_conversation(self) -> dict[str, Any] | None:
        row = self._fetch_one(
            "SELECT record FROM conversations ORDER BY last_modified DESC LIMIT 1"
        )
        return json.loads(row["record"]) if row else None

    def list_conversations(self) -> list[dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT id, name, project_name, created_at, last_modified
            FROM conversations ORDER BY last_modified DESC
            """
        )

    def delete_conversation(self, conversation_id: str) -> bool:
        return self._execute("DELETE FROM conversations WHERE id = ?", (conversation_id,)) > 0

    # =========================================================================
    # Projects
    # =========================================================================

    def save_project(self, name: str, snapshot: dict[str, Any]) -> None:
        self._execute(
            "INSERT OR REPLACE INTO projects (name, saved_at, snapshot) VALUES (?, ?, ?)",
            (name, datetime.now().isoformat(), json.dumps(snapshot)),
        )
        logger.debug(f"Saved project {name}")

    def load_project(self, name: str) -> dict[str, Any] | None:
        row = self._fetch_one("SELECT snapshot FROM projects WHERE name = ?", (name,))
        return json.loads(row["snapshot"]) if row else None

    def list_projects(self) -> list[str]:
        return [row["name"] for row in self._fetch_all("SELECT name FROM projects ORDER BY name")]

    def close(self) -> None:
        """Close the database connection for the current thread."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None
