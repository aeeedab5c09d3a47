"""Key-value persistence layer for kigen-rank.

Every component of the engine stores JSON strings under deterministic keys,
so the only storage contract is get/set/remove/list_keys.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Protocol


DEFAULT_DB_PATH = Path.home() / ".kigen-rank" / "data.db"


class KeyValueStore(Protocol):
    """Storage contract consumed by the engine."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def list_keys(self, prefix: str = "") -> list[str]: ...


class Database:
    """SQLite-backed key-value store with WAL mode."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        # Background sync threads share this connection.
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._lock = threading.Lock()
        self.init_db()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def get(self, key: str) -> str | None:
        """Get a value by key."""
        with self._lock:
            row = self.conn.execute(
                "SELECT value FROM kv WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """Set a value (upsert)."""
        with self._lock:
            self.conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, str(value)),
            )
            self.conn.commit()

    def remove(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        with self._lock:
            self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self.conn.commit()

    def list_keys(self, prefix: str = "") -> list[str]:
        """Return all keys starting with prefix, sorted."""
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        with self._lock:
            rows = self.conn.execute(
                "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            ).fetchall()
        return [row["key"] for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()


class MemoryStore:
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = str(value)

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.data if k.startswith(prefix))

    def close(self) -> None:
        pass
