"""SQLite-backed key-value store."""

import sqlite3
from pathlib import Path

from jobscout.core.store import KeyValueStore

_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_KV_TABLE)
    conn.commit()
    return conn


class SQLiteStore(KeyValueStore):
    """KeyValueStore over a single ``kv`` table.

    Usage::

        conn = init_db("data/jobscout.db")
        store = SQLiteStore(conn)
        store.set("api_request_count", "{...}")
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @classmethod
    def open(cls, path: str | Path) -> "SQLiteStore":
        return cls(init_db(path))

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return row["value"]  # type: ignore[no-any-return]

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = datetime('now')
            """,
            (key, value),
        )
        self._conn.commit()

    def remove(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self._conn.commit()

    def list_keys(self, prefix: str = "") -> list[str]:
        # substr comparison instead of LIKE: cache keys contain '_', a LIKE wildcard
        rows = self._conn.execute(
            "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [row["key"] for row in rows]

    def remove_all(self, keys: list[str]) -> None:
        self._conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
