"""
Document-scoped key-value stores for Sequencer.

The host environment provides a string key-value store attached to the
document that survives session restarts. This module defines the protocol
and two implementations:
- InMemoryKeyValueStore: For tests and ephemeral documents
- SqliteKeyValueStore: Durable store backed by a single SQLite file

Invariants:
    - Keys and values are strings; a missing key reads as ""
    - set() replaces the whole value atomically
    - One SQLite file per document

How to change safely:
    - Keep get() returning "" for missing keys; callers rely on it
    - Schema changes to the SQLite table must be backward compatible

Table schema:
    plugin_data:
        - key TEXT PRIMARY KEY
        - value TEXT
        - updated_at INTEGER (Unix ms)
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..errors import PersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """String key-value storage scoped to one document."""

    def get(self, key: str) -> str:
        """Read a value ("" when absent)."""
        ...

    def set(self, key: str, value: str) -> None:
        """Write a value, replacing any previous one."""
        ...

    def keys(self) -> list[str]:
        """List keys that currently hold a value."""
        ...


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore.

    All data is lost when the object is discarded.

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> store.set("selectedSequence", "seq_1")
        >>> store.get("selectedSequence")
        'seq_1'
    """

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str:
        return self._data.get(key, "")

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def keys(self) -> list[str]:
        return [k for k, v in self._data.items() if v]

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw contents, for tests and diagnostics."""
        return dict(self._data)


class SqliteKeyValueStore:
    """Durable KeyValueStore backed by one SQLite file.

    A connection is opened per operation; writes run in an immediate
    transaction so a value is either fully replaced or untouched.

    Example:
        >>> store = SqliteKeyValueStore("/tmp/invoice.sequencer.db")
        >>> store.set("migrationVersion", "2")
    """

    SCHEMA_VERSION = 1

    def __init__(self, path: str, busy_timeout_ms: int = 5000) -> None:
        """Initialize the store, creating the file and schema if needed.

        Args:
            path: SQLite database file path
            busy_timeout_ms: SQLite busy timeout
        """
        self.path = Path(path)
        self.busy_timeout_ms = busy_timeout_ms
        with self._get_connection() as conn:
            self._create_schema(conn)
        logger.debug("Opened key-value store", extra={"path": str(self.path)})

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a configured connection to the store file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(self.path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS plugin_data (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL DEFAULT '',
                updated_at INTEGER NOT NULL
            );

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    def get(self, key: str) -> str:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM plugin_data WHERE key = ?", (key,)).fetchone()
        return row[0] if row else ""

    def set(self, key: str, value: str) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute(
                        """
                        INSERT INTO plugin_data (key, value, updated_at) VALUES (?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                        """,
                        (key, value, int(time.time() * 1000)),
                    )
                    conn.execute("COMMIT")
                except Exception:
                    conn.execute("ROLLBACK")
                    raise
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to write '{key}': {e}", key=key) from e

    def keys(self) -> list[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key FROM plugin_data WHERE value != '' ORDER BY key"
            ).fetchall()
        return [row[0] for row in rows]
