"""
Payload serialization.

The storage layer treats payloads as opaque text. A serializer turns
caller values into that text and back. None never reaches a serializer:
the store keeps it as SQL NULL so "no payload" stays distinct from any
encoded value.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import orjson


@runtime_checkable
class Serializer(Protocol):
    """Encode/decode capability for entry payloads."""

    def dumps(self, value: Any) -> str: ...

    def loads(self, text: str) -> Any: ...


class JSONSerializer:
    """Default serializer backed by orjson.

    Raises TypeError/ValueError from orjson unchanged; the store wraps
    them in SerializationError with the offending key.
    """

    def __init__(self, option: int | None = None) -> None:
        self.option = option

    def dumps(self, value: Any) -> str:
        return orjson.dumps(value, option=self.option).decode("utf-8")

    def loads(self, text: str) -> Any:
        return orjson.loads(text)
