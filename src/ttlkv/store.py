"""
KVStore: embedded key-value store with per-key expiry and counters.

Each public call maps to exactly one SQLite statement. Conflicts and
missing keys are ordinary return values (False / None); engine faults
propagate as StorageError subclasses.

Typical use:

    with open_store("/var/lib/app/kv.sqlite") as kv:
        kv.set("session:42", {"user": "ada"}, ttl=3600)
        entry = kv.get("session:42")
"""

from __future__ import annotations

import math
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Generator, Iterable

from ttlkv.config import MEMORY, Settings, get_settings
from ttlkv.exceptions import (
    ConfigurationError,
    SerializationError,
    StoreClosedError,
    ValidationError,
)
from ttlkv.logging import get_logger, log_context
from ttlkv.schema import apply_pragmas, apply_schema, check_sqlite_version
from ttlkv.serialization import JSONSerializer, Serializer
from ttlkv.statements import Statements, translate_error
from ttlkv.types import (
    Entry,
    Row,
    from_epoch_seconds,
    in_epoch_range,
    to_epoch_seconds,
    ttl_to_seconds,
)

logger = get_logger(__name__)


class KVStore:
    """SQLite-backed key-value store.

    The store owns one connection for its whole lifetime. The connection
    may be used from several threads; a lock serializes access to the
    Python connection object while SQLite's own locking (WAL, busy
    timeout) arbitrates between stores and processes sharing a file.
    """

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        serializer: Serializer | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Open or create a store.

        Args:
            path: SQLite file path, or ":memory:" for an ephemeral store.
                Defaults to KV_DB_PATH from settings.
            serializer: Payload codec. Defaults to JSONSerializer.
            settings: Engine settings. Defaults to get_settings().

        Raises:
            ConfigurationError: If SQLite is too old or the path is unusable.
            StorageError: If the database cannot be opened or initialized.
        """
        check_sqlite_version()

        self.settings = settings or get_settings()
        self._path = str(path) if path is not None else self.settings.KV_DB_PATH
        self.serializer: Serializer = serializer or JSONSerializer()
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = self._connect()
        self._statements = Statements(self._conn)

    def _connect(self) -> sqlite3.Connection:
        """Open the connection, then apply pragmas and schema."""
        if self._path != MEMORY:
            try:
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(
                    "Cannot create database directory",
                    context={"path": self._path, "error": str(e)},
                ) from e

        with log_context(store=self._path, operation="open"):
            try:
                conn = sqlite3.connect(
                    self._path,
                    timeout=self.settings.KV_BUSY_TIMEOUT_MS / 1000,
                    isolation_level=None,
                    check_same_thread=False,
                )
            except sqlite3.Error as e:
                raise translate_error(e, "open") from e

            try:
                apply_pragmas(conn, self.settings)
                apply_schema(conn)
            except sqlite3.Error as e:
                conn.close()
                raise translate_error(e, "open") from e

            logger.debug("Store opened", path=self._path)
        return conn

    @property
    def path(self) -> str:
        """Path of the backing file, or ":memory:"."""
        return self._path

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def connection(self) -> sqlite3.Connection:
        """The raw sqlite3 connection.

        Writes through it still pass through the table's triggers.
        """
        if self._conn is None:
            raise StoreClosedError("Store is closed", context={"path": self._path})
        return self._conn

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("Store closed", path=self._path)

    def __enter__(self) -> KVStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"KVStore(path={self._path!r}, {state})"

    @contextmanager
    def _locked(self) -> Generator[Statements, None, None]:
        with self._lock:
            if self._conn is None:
                raise StoreClosedError("Store is closed", context={"path": self._path})
            yield self._statements

    # ------------------------------------------------------------------
    # Payload and expiry helpers
    # ------------------------------------------------------------------

    def _encode(self, key: str, data: Any) -> str | None:
        if data is None:
            return None
        try:
            return self.serializer.dumps(data)
        except (TypeError, ValueError) as e:
            raise SerializationError(
                "Cannot serialize payload",
                context={"key": key, "direction": "encode", "error": str(e)},
            ) from e

    def _to_entry(self, key: str, row: Row | None) -> Entry | None:
        if row is None:
            return None

        data: Any = None
        if row.json_data is not None:
            try:
                data = self.serializer.loads(row.json_data)
            except (TypeError, ValueError) as e:
                raise SerializationError(
                    "Stored payload is not decodable",
                    context={"key": key, "direction": "decode", "error": str(e)},
                ) from e

        return Entry(
            data=data,
            counter=row.counter,
            expires_at=from_epoch_seconds(row.expires_at) if row.expires_at is not None else None,
            created_at=from_epoch_seconds(row.created_at),
            updated_at=from_epoch_seconds(row.updated_at),
        )

    @staticmethod
    def _resolve_expiry(
        ttl: float | timedelta | None,
        expires_at: datetime | int | None,
    ) -> int | None:
        """Compute the absolute expiry in epoch seconds, or None for no expiry."""
        if ttl is not None and expires_at is not None:
            raise ValidationError(
                "ttl and expires_at are mutually exclusive",
                context={"ttl": ttl, "expires_at": expires_at},
            )

        if ttl is not None:
            if isinstance(ttl, bool) or not isinstance(ttl, (int, float, timedelta)):
                raise ValidationError(
                    "ttl must be a number of seconds or a timedelta",
                    context={"field": "ttl", "value": ttl},
                )
            try:
                seconds = ttl_to_seconds(ttl)
            except OverflowError as e:
                raise ValidationError(
                    "ttl must be finite", context={"field": "ttl", "value": ttl}
                ) from e
            if not math.isfinite(seconds):
                raise ValidationError(
                    "ttl must be finite", context={"field": "ttl", "value": ttl}
                )
            expiry = time.time() + seconds
            if not in_epoch_range(expiry):
                raise ValidationError(
                    "ttl puts expiry outside the supported date range",
                    context={"field": "ttl", "value": ttl},
                )
            return math.floor(expiry)

        if expires_at is not None:
            if isinstance(expires_at, bool) or not isinstance(expires_at, (datetime, int)):
                raise ValidationError(
                    "expires_at must be a datetime or epoch seconds",
                    context={"field": "expires_at", "value": expires_at},
                )
            expiry = to_epoch_seconds(expires_at)
            if not in_epoch_range(expiry):
                raise ValidationError(
                    "expires_at is outside the supported date range",
                    context={"field": "expires_at", "value": expires_at},
                )
            return expiry

        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Entry | None:
        """Return the live entry for key, or None if absent or expired."""
        with self._locked() as statements:
            row = statements.select_live(key)
        return self._to_entry(key, row)

    def get_and_delete(self, key: str) -> Entry | None:
        """Atomically remove a live entry and return it.

        Returns None, and removes nothing, if the key is absent or expired.
        """
        with self._locked() as statements:
            row = statements.delete_and_return_live(key)
        return self._to_entry(key, row)

    def set(
        self,
        key: str,
        data: Any,
        *,
        replace: bool = False,
        ttl: float | timedelta | None = None,
        expires_at: datetime | int | None = None,
    ) -> bool:
        """Store data under key.

        Args:
            key: Entry key.
            data: Any value the serializer accepts. None stores an entry
                without payload.
            replace: Overwrite an existing entry, resetting its counter.
            ttl: Lifetime in seconds (or a timedelta) from now.
            expires_at: Absolute expiry as a datetime or epoch seconds.
                Mutually exclusive with ttl.

        Returns:
            True if stored. False if key already holds a live entry and
            replace was not requested; the existing entry is untouched.

        Raises:
            ValidationError: On invalid ttl/expires_at arguments.
            SerializationError: If data cannot be serialized.
            StorageError: On any engine failure other than the conflict.
        """
        expiry = self._resolve_expiry(ttl, expires_at)
        json_data = self._encode(key, data)

        with self._locked() as statements:
            if replace:
                statements.insert_replace(key, json_data, expiry)
                return True
            return statements.insert_ignore(key, json_data, expiry)

    def delete(self, *keys: str) -> None:
        """Delete zero or more keys, live or expired. Missing keys are ignored."""
        self.delete_many(keys)

    def delete_many(self, keys: Iterable[str]) -> None:
        """Delete a batch of keys in a single statement.

        An empty batch is a no-op.
        """
        if isinstance(keys, (str, bytes)):
            raise ValidationError(
                "delete_many expects an iterable of keys, not a single key",
                context={"field": "keys", "value": keys},
            )

        keys = list(keys)
        if not keys:
            return

        with self._locked() as statements:
            if len(keys) == 1:
                statements.delete_by_key(keys[0])
            else:
                statements.delete_by_keys(keys)

    def increment(self, key: str) -> Entry | None:
        """Add one to the counter of a live entry.

        Returns the updated entry, or None if key is absent or expired.
        """
        return self._add_to_counter(key, 1)

    def decrement(self, key: str) -> Entry | None:
        """Subtract one from the counter of a live entry.

        Returns the updated entry, or None if key is absent or expired.
        """
        return self._add_to_counter(key, -1)

    def _add_to_counter(self, key: str, delta: int) -> Entry | None:
        with self._locked() as statements:
            row = statements.add_to_counter(key, delta)
        return self._to_entry(key, row)


def open_store(
    path: str | Path | None = None,
    *,
    serializer: Serializer | None = None,
    settings: Settings | None = None,
) -> KVStore:
    """Open or create a store at path (":memory:" for an ephemeral one).

    See KVStore for arguments.
    """
    return KVStore(path, serializer=serializer, settings=settings)
