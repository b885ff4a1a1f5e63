"""
Pytest configuration and fixtures for ttlkv tests.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Callable, Generator
from unittest.mock import patch

import pytest

from ttlkv.config import MEMORY, Settings, clear_settings_cache
from ttlkv.logging import ROOT_LOGGER
from ttlkv.store import KVStore

InsertRow = Callable[..., None]


def now_unix() -> int:
    """Current time in whole epoch seconds."""
    return int(time.time())


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test databases."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "KV_DB_PATH": str(temp_dir / "env" / "kv.sqlite"),
        "KV_JOURNAL_MODE": "wal",
        "KV_SYNCHRONOUS": "FULL",
        "KV_BUSY_TIMEOUT_MS": "250",
        "KV_CACHE_SIZE_KIB": "4096",
        "KV_LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def test_settings() -> Settings:
    """Settings with defaults, ignoring any .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def store(test_settings: Settings) -> Generator[KVStore, None, None]:
    """Provide an in-memory store."""
    kv = KVStore(MEMORY, settings=test_settings)
    yield kv
    kv.close()


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path for a file-backed store."""
    return temp_dir / "data" / "kv.sqlite"


@pytest.fixture
def file_store(db_path: Path, test_settings: Settings) -> Generator[KVStore, None, None]:
    """Provide a file-backed store in WAL mode."""
    kv = KVStore(db_path, settings=test_settings)
    yield kv
    kv.close()


@pytest.fixture
def insert_row() -> InsertRow:
    """Insert a row directly, bypassing the store API.

    Used to plant rows with timestamps in the past.
    """

    def _insert(
        conn: sqlite3.Connection,
        key: str,
        json_data: str | None = None,
        counter: int = 0,
        created_at: int | None = None,
        updated_at: int | None = None,
        expires_at: int | None = None,
    ) -> None:
        created = created_at if created_at is not None else now_unix()
        conn.execute(
            """
            INSERT INTO kv (key, json_data, counter, created_at, updated_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                key,
                json_data,
                counter,
                created,
                updated_at if updated_at is not None else created,
                expires_at,
            ),
        )

    return _insert


def count_rows(conn: sqlite3.Connection, key: str | None = None) -> int:
    """Count physical rows, including expired ones."""
    if key is None:
        return conn.execute("SELECT COUNT(*) FROM kv").fetchone()[0]
    return conn.execute("SELECT COUNT(*) FROM kv WHERE key = ?", (key,)).fetchone()[0]


@pytest.fixture
def row_count() -> Callable[..., int]:
    """Expose count_rows as a fixture."""
    return count_rows


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def restore_package_logger() -> Generator[None, None, None]:
    """Undo any setup_logging() done by a test or a CLI invocation."""
    root = logging.getLogger(ROOT_LOGGER)
    handlers = list(root.handlers)
    level = root.level
    propagate = root.propagate
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    root.propagate = propagate
