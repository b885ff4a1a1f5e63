"""
Custom exception hierarchy for ttlkv.

All exceptions inherit from KVError, which provides optional context
for structured error handling and logging.

Expected outcomes are not exceptions: a conflicting insert returns False
and a missing or expired key returns None. Everything here signals a
fault the caller has to decide about.
"""

from __future__ import annotations

from typing import Any


class KVError(Exception):
    """Base exception for all ttlkv errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(KVError):
    """Raised when the store cannot be configured.

    Examples:
        - Linked SQLite library is too old
        - Database path cannot be created
    """

    pass


class ValidationError(KVError):
    """Raised when arguments to a store operation are invalid.

    Context should include:
        - field: The argument that failed validation
        - value: The invalid value
    """

    pass


class StoreClosedError(KVError):
    """Raised when an operation is attempted on a closed store."""

    pass


class StorageError(KVError):
    """Raised when the storage engine fails unexpectedly.

    The original sqlite3 error is chained as ``__cause__``.

    Context should include:
        - operation: The statement that failed
        - key: The key involved, if any
        - code: The SQLite error name, if available
    """

    pass


class StoreBusyError(StorageError):
    """Raised when the write lock could not be acquired within the busy timeout.

    Never retried by ttlkv.
    """

    pass


class SerializationError(StorageError):
    """Raised when a payload cannot be encoded or a stored payload cannot be decoded.

    Context should include:
        - key: The key whose payload failed
        - direction: "encode" or "decode"
    """

    pass
