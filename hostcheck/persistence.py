from __future__ import annotations

from pathlib import Path
import sqlite3
import threading


class SQLitePersistence:
    """
    Key/value records plus named lists, the two shapes the probe store needs.
    Values are opaque strings; callers do their own JSON encoding.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = self._resolve_db_path(db_path)
        self._lock = threading.Lock()

        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            self._db_path, check_same_thread=False, timeout=10.0
        )
        self._conn.row_factory = sqlite3.Row

        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._init_schema()

    @staticmethod
    def _resolve_db_path(raw_path: str) -> Path:
        p = Path(raw_path).expanduser()
        if p.is_absolute():
            return p
        return Path.cwd() / p

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS records (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS list_items (
                row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                list_key TEXT NOT NULL,
                value TEXT NOT NULL
            )
            """
        )
        self._conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_list_items_key
            ON list_items (list_key, row_id)
            """
        )
        self._conn.commit()

    def get(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM records WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO records (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                (key, value),
            )
            self._conn.commit()

    def delete(self, key: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM records WHERE key = ?", (key,))
            self._conn.commit()
        return cur.rowcount > 0

    def push_tail(self, list_key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO list_items (list_key, value) VALUES (?, ?)",
                (list_key, value),
            )
            self._conn.commit()

    def pop_head(self, list_key: str) -> str | None:
        # Single statement, so two connections can never pop the same row.
        with self._lock:
            rows = self._conn.execute(
                """
                DELETE FROM list_items
                WHERE row_id = (
                    SELECT row_id FROM list_items
                    WHERE list_key = ?
                    ORDER BY row_id
                    LIMIT 1
                )
                RETURNING value
                """,
                (list_key,),
            ).fetchall()
            self._conn.commit()
        return rows[0]["value"] if rows else None

    def list_remove(self, list_key: str, value: str) -> int:
        """Remove every occurrence of ``value`` wherever it sits in the list."""
        with self._lock:
            cur = self._conn.execute(
                "DELETE FROM list_items WHERE list_key = ? AND value = ?",
                (list_key, value),
            )
            self._conn.commit()
        return cur.rowcount

    def list_items(self, list_key: str) -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT value FROM list_items WHERE list_key = ? ORDER BY row_id",
                (list_key,),
            ).fetchall()
        return [r["value"] for r in rows]

    def list_length(self, list_key: str) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM list_items WHERE list_key = ?",
                (list_key,),
            ).fetchone()
        return int(row["n"])

    def close(self) -> None:
        with self._lock:
            self._conn.close()
