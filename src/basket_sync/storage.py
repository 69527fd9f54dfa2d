"""Durable key-value storage for Basket Sync.

This module provides string key/value persistence with a JSON file (default),
SQLite, or in-memory backend. Use create_storage() to get the appropriate
backend based on configuration. Blocking file and database I/O runs in a
worker thread so callers on the event loop never block.
"""

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Protocol


class StorageBackend(str, Enum):
    """Key-value storage backend types."""

    JSON = "json"
    SQLITE = "sqlite"
    MEMORY = "memory"


class KeyValueStorage(Protocol):
    """Protocol defining the key-value storage interface."""

    async def get(self, key: str) -> str | None: ...
    async def set(self, key: str, value: str) -> None: ...
    async def remove(self, key: str) -> None: ...


class MemoryStorage:
    """Non-durable storage, for tests and demo mode."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    async def set(self, key: str, value: str) -> None:
        self._values[key] = value

    async def remove(self, key: str) -> None:
        self._values.pop(key, None)


class JSONFileStorage:
    """Manages a single JSON file mapping keys to string values."""

    def __init__(self, data_dir: Path | None = None):
        """Initialize JSON file storage.

        Args:
            data_dir: Directory for the storage file. Defaults to ./data
        """
        self.data_dir = data_dir or Path.cwd() / "data"
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        """Path to the storage file."""
        return self.data_dir / "preferences.json"

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}

        with open(self.path) as f:
            return json.load(f)

    def _write(self, values: dict[str, str]) -> None:
        # Write to a sibling file first so a crash never leaves a truncated file
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(values, f, indent=2)
        tmp_path.replace(self.path)

    def _set(self, key: str, value: str) -> None:
        values = self._read()
        values[key] = value
        self._write(values)

    def _remove(self, key: str) -> None:
        values = self._read()
        if key in values:
            del values[key]
            self._write(values)

    async def get(self, key: str) -> str | None:
        values = await asyncio.to_thread(self._read)
        return values.get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)


class SQLiteStorage:
    """Manages key-value persistence in a SQLite database."""

    def __init__(self, db_path: Path | None = None):
        """Initialize SQLite storage.

        Args:
            db_path: Path to the SQLite database file. Defaults to ./data/basket.db
        """
        if db_path is None:
            db_path = Path.cwd() / "data" / "basket.db"
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        """Initialize database schema if not exists."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

    def _get(self, key: str) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO preferences (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def _remove(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM preferences WHERE key = ?", (key,))

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)


def create_storage(
    backend: StorageBackend = StorageBackend.JSON,
    data_dir: Path | None = None,
) -> KeyValueStorage:
    """Create key-value storage with the specified backend.

    Args:
        backend: Which backend to use (json, sqlite or memory)
        data_dir: Directory holding the storage file

    Returns:
        A JSONFileStorage, SQLiteStorage or MemoryStorage instance

    Example:
        storage = create_storage(StorageBackend.SQLITE, data_dir=Path("./data"))
    """
    if backend == StorageBackend.SQLITE:
        db_path = data_dir / "basket.db" if data_dir is not None else None
        return SQLiteStorage(db_path=db_path)
    if backend == StorageBackend.MEMORY:
        return MemoryStorage()
    return JSONFileStorage(data_dir=data_dir)
