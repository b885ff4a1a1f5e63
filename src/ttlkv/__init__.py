"""
ttlkv: an embedded, persistent key-value store on SQLite.

Per-key expiry, atomic counters and conflict-aware inserts, with expired
rows cleaned up by table triggers instead of a background sweeper.
"""

from ttlkv.config import MEMORY, Settings, get_settings
from ttlkv.exceptions import (
    ConfigurationError,
    KVError,
    SerializationError,
    StorageError,
    StoreBusyError,
    StoreClosedError,
    ValidationError,
)
from ttlkv.serialization import JSONSerializer, Serializer
from ttlkv.store import KVStore, open_store
from ttlkv.types import Entry

__version__ = "0.1.0"

__all__ = [
    "MEMORY",
    "ConfigurationError",
    "Entry",
    "JSONSerializer",
    "KVError",
    "KVStore",
    "SerializationError",
    "Serializer",
    "Settings",
    "StorageError",
    "StoreBusyError",
    "StoreClosedError",
    "ValidationError",
    "get_settings",
    "open_store",
]
