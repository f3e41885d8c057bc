"""SQLite-backed key-value store for locally cached course data."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class LocalStore:
    """String-keyed persistent storage with JSON values.

    Writes are serialised by a lock so one store can be shared by the worker
    threads that fetch courses concurrently.
    """

    def __init__(self, db_path: Path | str) -> None:
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            target = db_path
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(target, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_item(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def remove_item(self, key: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        return cursor.rowcount > 0

    def keys(self, prefix: str = "") -> list[str]:
        """Return stored keys starting with `prefix`, sorted."""
        with self._lock:
            rows = self._conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [str(row["key"]) for row in rows if str(row["key"]).startswith(prefix)]

    def get_json(self, key: str) -> Any | None:
        """Decode a JSON value. Corrupt values read as absent."""
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring malformed local value for %s", key)
            return None

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value))

    def get_index(self, key: str) -> list[str]:
        """Return an ordered list of ids. Anything but a JSON list of strings is an empty index."""
        value = self.get_json(key)
        if not isinstance(value, list):
            if value is not None:
                logger.warning("Local index %s is not a list; treating as empty", key)
            return []
        return [item for item in value if isinstance(item, str)]

    def set_index(self, key: str, ids: list[str]) -> None:
        deduped = list(dict.fromkeys(ids))
        self.set_json(key, deduped)

    def close(self) -> None:
        self._conn.close()
