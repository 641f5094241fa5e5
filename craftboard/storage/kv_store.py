"""Persistent string key-value store.

This stands in for the browser's local storage: string keys, string values,
no transactions. Two implementations:
- SQLiteKeyValueStore: one small table on disk (WAL, lock retry)
- MemoryKeyValueStore: dict-backed, for tests and throwaway runs
"""

from __future__ import annotations

import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Protocol, runtime_checkable

from craftboard.errors import StoreError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class MemoryKeyValueStore:
    """In-process store. Values are kept as the strings they were written as."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class SQLiteKeyValueStore:
    """SQLite-backed key-value table"""

    def __init__(self, db_path: str = "craftboard.db"):
        self.db_path = db_path
        self.max_retries = 3
        self.retry_delay = 0.5
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_table()

    @contextmanager
    def get_connection(self):
        """Open a connection, retrying while the database is locked."""
        conn = None
        for attempt in range(self.max_retries):
            try:
                conn = sqlite3.connect(self.db_path, timeout=10.0)
                conn.execute('PRAGMA journal_mode=WAL;')
                conn.execute('PRAGMA synchronous=NORMAL;')
                break
            except sqlite3.OperationalError as e:
                if conn is not None:
                    conn.close()
                    conn = None
                if "database is locked" in str(e) and attempt < self.max_retries - 1:
                    logger.warning(f"Store locked, retrying in {self.retry_delay}s (attempt {attempt + 1})")
                    time.sleep(self.retry_delay)
                    continue
                raise StoreError(f"Cannot open key-value store {self.db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Key-value store operation failed: {e}") from e
        finally:
            conn.close()

    def _init_table(self) -> None:
        with self.get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        with self.get_connection() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self.get_connection() as conn:
            conn.execute(
                """
                INSERT INTO kv (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, str(value)),
            )

    def remove(self, key: str) -> None:
        with self.get_connection() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self.get_connection() as conn:
            return [r[0] for r in conn.execute("SELECT key FROM kv ORDER BY key").fetchall()]
