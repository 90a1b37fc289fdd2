import csv
import logging
import os
import sqlite3
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Iterable, List, Optional, Tuple

import aiosqlite

logger = logging.getLogger("coachlog.db")

CLIENTS_KEY = "fitness_clients"
EXERCISES_KEY = "fitness_exercises"
WORKOUTS_KEY = "fitness_workouts"
PERSONAL_RECORDS_KEY = "fitness_personal_records"
TEMPLATES_KEY = "fitness_workout_templates"
VIDEO_RECORDS_KEY = "fitness_video_records"
SETTINGS_KEY = "fitness_measurement_settings"

COLLECTION_KEYS = (
    CLIENTS_KEY,
    EXERCISES_KEY,
    WORKOUTS_KEY,
    PERSONAL_RECORDS_KEY,
    TEMPLATES_KEY,
    VIDEO_RECORDS_KEY,
    SETTINGS_KEY,
)


def storage_key(collection: str, user_id: Optional[str] = None) -> str:
    """Return the persisted key for ``collection``, namespaced when a user is given."""
    if user_id:
        return f"user_{user_id}_{collection}"
    return collection


def user_keys(user_id: str) -> List[str]:
    return [storage_key(key, user_id) for key in COLLECTION_KEYS]


def load_default_exercises(csv_path: Optional[str] = None) -> List[dict]:
    """Read the built-in exercise catalog shipped next to this module."""
    csv_path = csv_path or os.path.join(
        os.path.dirname(__file__), "default_exercises.csv"
    )
    if not os.path.exists(csv_path):
        logger.warning("Default exercise catalog %s not found", csv_path)
        return []
    with open(csv_path, newline="", encoding="utf-8") as csvfile:
        reader = csv.DictReader(csvfile)
        return [
            {
                "id": row["Id"],
                "name": row["Exercise Name"],
                "category": row["Category"],
                "muscle_groups": [m for m in row["Muscle Groups"].split("|") if m],
                "equipment": row.get("Equipment") or None,
                "instructions": row.get("Instructions") or None,
            }
            for row in reader
        ]


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "storage": (
            """CREATE TABLE storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    revision INTEGER NOT NULL DEFAULT 0
                );""",
            ["key", "value", "revision"],
        ),
    }

    def __init__(self, db_path: str = "coachlog.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.rowcount

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


# A stored value is only replaced by a write carrying a newer revision, so the
# logically-last mutation wins even when writes complete out of order.
_UPSERT = (
    "INSERT INTO storage (key, value, revision) VALUES (?, ?, ?) "
    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, revision = excluded.revision "
    "WHERE excluded.revision > storage.revision;"
)


class KeyValueRepository(BaseRepository):
    """Repository for JSON snapshots stored under string keys."""

    def get_item(self, key: str) -> Optional[str]:
        rows = self.fetch_all("SELECT value FROM storage WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    def get_revision(self, key: str) -> Optional[int]:
        rows = self.fetch_all("SELECT revision FROM storage WHERE key = ?;", (key,))
        return int(rows[0][0]) if rows else None

    def set_item(self, key: str, value: str, revision: Optional[int] = None) -> bool:
        """Store ``value``; returns ``False`` when a newer revision is already stored."""
        if revision is None:
            revision = time.time_ns()
        return self.execute(_UPSERT, (key, value, revision)) > 0

    def remove_items(self, keys: Iterable[str]) -> None:
        with self._connection() as conn:
            conn.executemany(
                "DELETE FROM storage WHERE key = ?;", [(k,) for k in keys]
            )

    def keys(self, prefix: str = "") -> List[str]:
        rows = self.fetch_all(
            "SELECT key FROM storage WHERE substr(key, 1, ?) = ? ORDER BY key;",
            (len(prefix), prefix),
        )
        return [r[0] for r in rows]


class AsyncKeyValueRepository(AsyncBaseRepository):
    """Async repository for JSON snapshots stored under string keys."""

    async def get_item(self, key: str) -> Optional[str]:
        rows = await self.fetch_all("SELECT value FROM storage WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    async def get_revision(self, key: str) -> Optional[int]:
        rows = await self.fetch_all(
            "SELECT revision FROM storage WHERE key = ?;", (key,)
        )
        return int(rows[0][0]) if rows else None

    async def set_item(
        self, key: str, value: str, revision: Optional[int] = None
    ) -> bool:
        if revision is None:
            revision = time.time_ns()
        return await self.execute(_UPSERT, (key, value, revision)) > 0

    async def remove_items(self, keys: Iterable[str]) -> None:
        async with self._async_connection() as conn:
            await conn.executemany(
                "DELETE FROM storage WHERE key = ?;", [(k,) for k in keys]
            )

    async def keys(self, prefix: str = "") -> List[str]:
        rows = await self.fetch_all(
            "SELECT key FROM storage WHERE substr(key, 1, ?) = ? ORDER BY key;",
            (len(prefix), prefix),
        )
        return [r[0] for r in rows]
