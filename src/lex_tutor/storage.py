"""Namespaced key/value persistence on top of SQLite.

Every value is stored as JSON under ``"{namespace}:{key}"``. The store never
raises: a storage fault or a corrupt value is logged and reported as
``ABSENT``, which callers treat exactly like "never used the app before".

There is no locking. Two processes writing the same namespace lose updates
(last write wins); the tutor assumes one running instance per user.
"""
import json
import sqlite3
from typing import Any, Iterable

from loguru import logger

from lex_tutor.db import DEFAULT_DB_PATH, get_connection, init_db
from lex_tutor.errors import StorageUnavailable


class _Absent:
    """Sentinel for values that were never stored or could not be read."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


def make_key(namespace: str, key: str) -> str:
    return f"{namespace}:{key}"


class KeyValueStore:
    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        try:
            init_db(db_path)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"Storage at {db_path} is unavailable: {e}")

    def _execute(self, sql: str, params: tuple = ()) -> list:
        try:
            conn = get_connection(self.db_path)
            try:
                rows = conn.execute(sql, params).fetchall()
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageUnavailable(str(e)) from e
        return rows

    def set(self, namespace: str, key: str, value: Any) -> None:
        full_key = make_key(namespace, key)
        try:
            serialized = json.dumps(value)
            self._execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (full_key, serialized),
            )
        except (TypeError, ValueError, StorageUnavailable) as e:
            logger.warning(f"Could not save state for key '{full_key}': {e}")

    def get(self, namespace: str, key: str, default: Any = ABSENT) -> Any:
        full_key = make_key(namespace, key)
        try:
            rows = self._execute("SELECT value FROM kv_store WHERE key = ?", (full_key,))
        except StorageUnavailable as e:
            logger.warning(f"Could not load state for key '{full_key}': {e}")
            return default
        if not rows or rows[0]["value"] is None:
            return default
        try:
            return json.loads(rows[0]["value"])
        except ValueError as e:
            logger.warning(f"Discarding corrupt value for key '{full_key}': {e}")
            return default

    def remove(self, namespace: str, key: str) -> None:
        full_key = make_key(namespace, key)
        try:
            self._execute("DELETE FROM kv_store WHERE key = ?", (full_key,))
        except StorageUnavailable as e:
            logger.warning(f"Could not remove state for key '{full_key}': {e}")

    def remove_many(self, namespace: str, keys: Iterable[str]) -> None:
        for key in keys:
            self.remove(namespace, key)
