"""
Schema and engine-enforced invariants for the kv table.

Expiration cleanup and update timestamps live in triggers so that no
code path can forget them:

- update_updated_at_on_update stamps updated_at after every UPDATE
- cleanup_expired_on_insert removes expired rows before every INSERT
- cleanup_expired_on_delete removes expired rows before every DELETE

There is no background sweeper. A store that only reads keeps its
expired rows on disk, and every read filters them out.
"""

from __future__ import annotations

import sqlite3

from ttlkv.config import Settings
from ttlkv.exceptions import ConfigurationError
from ttlkv.logging import get_logger

logger = get_logger(__name__)

# unixepoch() arrived in 3.38.0, RETURNING in 3.35.0
MIN_SQLITE_VERSION: tuple[int, int, int] = (3, 38, 0)

TABLE = "kv"

CREATE_TABLE = """
    CREATE TABLE IF NOT EXISTS kv (
        key TEXT NOT NULL PRIMARY KEY,
        json_data TEXT,
        counter INTEGER NOT NULL DEFAULT 0,
        expires_at INTEGER,
        created_at INTEGER NOT NULL DEFAULT (unixepoch()),
        updated_at INTEGER NOT NULL DEFAULT (unixepoch())
    )
"""

CREATE_UPDATE_TRIGGER = """
    CREATE TRIGGER IF NOT EXISTS update_updated_at_on_update
    AFTER UPDATE ON kv
    BEGIN
        UPDATE kv SET updated_at = unixepoch() WHERE key = NEW.key;
    END
"""

CREATE_INSERT_CLEANUP_TRIGGER = """
    CREATE TRIGGER IF NOT EXISTS cleanup_expired_on_insert
    BEFORE INSERT ON kv
    BEGIN
        DELETE FROM kv
        WHERE expires_at IS NOT NULL AND expires_at <= unixepoch();
    END
"""

# The row being deleted is left to the DELETE itself; SQLite leaves the
# outcome undefined when a BEFORE trigger removes the target row.
CREATE_DELETE_CLEANUP_TRIGGER = """
    CREATE TRIGGER IF NOT EXISTS cleanup_expired_on_delete
    BEFORE DELETE ON kv
    BEGIN
        DELETE FROM kv
        WHERE expires_at IS NOT NULL AND expires_at <= unixepoch()
            AND key <> OLD.key;
    END
"""

SCHEMA_STATEMENTS: tuple[str, ...] = (
    CREATE_TABLE,
    CREATE_UPDATE_TRIGGER,
    CREATE_INSERT_CLEANUP_TRIGGER,
    CREATE_DELETE_CLEANUP_TRIGGER,
)

TRIGGERS: tuple[str, ...] = (
    "update_updated_at_on_update",
    "cleanup_expired_on_insert",
    "cleanup_expired_on_delete",
)


def check_sqlite_version(
    version_info: tuple[int, ...] = sqlite3.sqlite_version_info,
) -> None:
    """Fail early when the linked SQLite library lacks unixepoch() or RETURNING.

    Raises:
        ConfigurationError: If the library is older than MIN_SQLITE_VERSION.
    """
    if tuple(version_info) < MIN_SQLITE_VERSION:
        raise ConfigurationError(
            "SQLite library is too old",
            context={
                "found": ".".join(str(p) for p in version_info),
                "required": ".".join(str(p) for p in MIN_SQLITE_VERSION),
            },
        )


def apply_pragmas(conn: sqlite3.Connection, settings: Settings) -> None:
    """Apply durability and performance settings to a fresh connection.

    In-memory databases report journal_mode "memory" regardless of the
    request; that is expected.
    """
    row = conn.execute(f"PRAGMA journal_mode = {settings.KV_JOURNAL_MODE}").fetchone()
    conn.execute(f"PRAGMA synchronous = {settings.KV_SYNCHRONOUS}")
    conn.execute(f"PRAGMA busy_timeout = {int(settings.KV_BUSY_TIMEOUT_MS)}")
    conn.execute(f"PRAGMA cache_size = -{int(settings.KV_CACHE_SIZE_KIB)}")
    conn.execute("PRAGMA temp_store = MEMORY")

    logger.debug(
        "Applied pragmas",
        journal_mode=row[0] if row else None,
        synchronous=settings.KV_SYNCHRONOUS,
        busy_timeout_ms=settings.KV_BUSY_TIMEOUT_MS,
        cache_size_kib=settings.KV_CACHE_SIZE_KIB,
    )


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create the kv table and its triggers if they do not exist.

    Safe to call on every open.
    """
    for statement in SCHEMA_STATEMENTS:
        conn.execute(statement)
    logger.debug("Schema ready", table=TABLE, triggers=len(TRIGGERS))
