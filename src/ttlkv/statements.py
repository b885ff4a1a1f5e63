"""
The fixed set of statements the store runs against the kv table.

Each public method executes exactly one SQL statement on a connection in
autocommit mode, so each call is its own engine transaction. Liveness
(``expires_at IS NULL OR expires_at > unixepoch()``) is part of every
statement that reads, so there is no check-then-act window.
"""

from __future__ import annotations

import sqlite3
from typing import Any, Iterable, Sequence

import orjson

from ttlkv.exceptions import StorageError, StoreBusyError
from ttlkv.logging import get_logger
from ttlkv.types import Row

logger = get_logger(__name__)

COLUMNS = "json_data, counter, expires_at, created_at, updated_at"
LIVE = "(expires_at IS NULL OR expires_at > unixepoch())"

SELECT_LIVE = f"""
    SELECT {COLUMNS} FROM kv
    WHERE key = :key AND {LIVE}
    LIMIT 1
"""

DELETE_AND_RETURN_LIVE = f"""
    DELETE FROM kv
    WHERE key = :key AND {LIVE}
    RETURNING {COLUMNS}
"""

INSERT_IGNORE = """
    INSERT INTO kv (key, json_data, expires_at)
    VALUES (:key, :json_data, :expires_at)
"""

INSERT_REPLACE = """
    REPLACE INTO kv (key, json_data, expires_at)
    VALUES (:key, :json_data, :expires_at)
"""

DELETE_BY_KEY = """
    DELETE FROM kv WHERE key = :key
"""

DELETE_BY_KEYS_JSON = """
    DELETE FROM kv WHERE key IN (SELECT value FROM json_each(:keys))
"""

ADD_TO_COUNTER = f"""
    UPDATE kv
    SET counter = counter + :delta, updated_at = unixepoch()
    WHERE key = :key AND {LIVE}
    RETURNING {COLUMNS}
"""

# Beyond this many keys the batch delete binds one JSON array instead of
# one placeholder per key, staying under SQLITE_MAX_VARIABLE_NUMBER.
MAX_PLACEHOLDERS = 999

PRIMARY_KEY_CONFLICT = "SQLITE_CONSTRAINT_PRIMARYKEY"
BUSY_CODES = ("SQLITE_BUSY", "SQLITE_LOCKED")


def translate_error(
    exc: sqlite3.Error,
    operation: str,
    key: str | None = None,
) -> StorageError:
    """Map a sqlite3 error to StoreBusyError or StorageError.

    The caller raises the result ``from exc``.
    """
    code = getattr(exc, "sqlite_errorname", None)
    context: dict[str, Any] = {"operation": operation}
    if key is not None:
        context["key"] = key
    if code:
        context["code"] = code

    if code and code.startswith(BUSY_CODES):
        logger.debug("Store busy", **context)
        return StoreBusyError("Store is busy, lock wait exceeded", context=context)
    return StorageError(str(exc) or "Storage engine error", context=context)


class Statements:
    """Executes the kv operation set on one sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _run(
        self,
        operation: str,
        sql: str,
        params: dict[str, Any] | Sequence[Any],
        key: str | None = None,
    ) -> list[Row]:
        """Execute one statement and drain it.

        Draining matters for RETURNING statements: the write is only
        complete, and the lock released, once the cursor is exhausted.
        """
        try:
            cursor = self._conn.execute(sql, params)
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise translate_error(e, operation, key) from e
        return [Row(*row) for row in rows]

    def _first(self, rows: list[Row]) -> Row | None:
        return rows[0] if rows else None

    def select_live(self, key: str) -> Row | None:
        """Return the entry for key if it exists and has not expired."""
        return self._first(self._run("select_live", SELECT_LIVE, {"key": key}, key))

    def delete_and_return_live(self, key: str) -> Row | None:
        """Delete the entry for key if live and return its pre-delete state.

        An expired row is left in place for cleanup and None is returned.
        """
        return self._first(
            self._run("delete_and_return_live", DELETE_AND_RETURN_LIVE, {"key": key}, key)
        )

    def insert_ignore(self, key: str, json_data: str | None, expires_at: int | None) -> bool:
        """Insert a new row unless key is already present.

        Returns:
            True if inserted, False on a primary-key conflict.

        Raises:
            StorageError: For any other failure, including other constraint
                violations.
        """
        params = {"key": key, "json_data": json_data, "expires_at": expires_at}
        try:
            self._conn.execute(INSERT_IGNORE, params)
        except sqlite3.IntegrityError as e:
            if getattr(e, "sqlite_errorname", None) == PRIMARY_KEY_CONFLICT:
                logger.debug("Insert conflict", key=key)
                return False
            raise translate_error(e, "insert_ignore", key) from e
        except sqlite3.Error as e:
            raise translate_error(e, "insert_ignore", key) from e
        return True

    def insert_replace(self, key: str, json_data: str | None, expires_at: int | None) -> None:
        """Create or overwrite the row for key.

        REPLACE deletes the old row, so counter and created_at start fresh.
        """
        params = {"key": key, "json_data": json_data, "expires_at": expires_at}
        self._run("insert_replace", INSERT_REPLACE, params, key)

    def delete_by_key(self, key: str) -> None:
        """Remove the row for key, live or expired. No-op if absent."""
        self._run("delete_by_key", DELETE_BY_KEY, {"key": key}, key)

    def delete_by_keys(self, keys: Iterable[str]) -> None:
        """Remove every listed row in a single statement."""
        keys = list(keys)
        if not keys:
            return
        if len(keys) <= MAX_PLACEHOLDERS:
            placeholders = ",".join("?" * len(keys))
            sql = f"DELETE FROM kv WHERE key IN ({placeholders})"
            self._run("delete_by_keys", sql, keys)
        else:
            self._run(
                "delete_by_keys",
                DELETE_BY_KEYS_JSON,
                {"keys": orjson.dumps(keys).decode("utf-8")},
            )

    def add_to_counter(self, key: str, delta: int) -> Row | None:
        """Add delta to the counter of a live entry and return the updated row.

        A missing or expired key is not created.
        """
        return self._first(
            self._run("add_to_counter", ADD_TO_COUNTER, {"key": key, "delta": delta}, key)
        )
