"""
Serializers used by the file-system cache.

A serializer turns a value of one type into bytes and back, and names the
content type it produces.
"""

from __future__ import annotations

import json
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, TypeAdapter, ValidationError

from zen.core.errors import ErrorCode, ZenError

T = TypeVar("T")


@runtime_checkable
class Serializer(Protocol[T]):
    """Bytes codec for cache values of type T."""

    def serialize(self, value: T) -> bytes: ...

    def deserialize(self, data: bytes) -> T: ...

    def content_type(self) -> str: ...


class JSONSerializer(Generic[T]):
    """
    JSON serializer.

    Without a model type, plain JSON values (dicts, lists, scalars) round-trip.
    With a model type (a pydantic model or any type pydantic can validate,
    e.g. ``dict[str, int]``), values are validated on the way back in.

    Example:
        >>> s = JSONSerializer(SyncRecord)
        >>> record == s.deserialize(s.serialize(record))
        True
    """

    def __init__(self, model: type[T] | Any | None = None) -> None:
        self._model = model
        self._adapter: TypeAdapter[Any] | None = TypeAdapter(model) if model is not None else None

    def serialize(self, value: T) -> bytes:
        try:
            if isinstance(value, BaseModel):
                return value.model_dump_json().encode("utf-8")
            if self._adapter is not None:
                return self._adapter.dump_json(value)
            return json.dumps(value).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ZenError(ErrorCode.SERIALIZATION, "failed to serialize value", cause=e)

    def deserialize(self, data: bytes) -> T:
        try:
            if self._adapter is not None:
                return self._adapter.validate_json(data)
            return json.loads(data)
        except (ValidationError, ValueError) as e:
            raise ZenError(ErrorCode.SERIALIZATION, "failed to deserialize value", cause=e)

    def content_type(self) -> str:
        return "application/json"


class StringSerializer:
    """Identity serializer for text values."""

    def serialize(self, value: str) -> bytes:
        if not isinstance(value, str):
            raise ZenError(ErrorCode.SERIALIZATION, f"expected str, got {type(value).__name__}")
        return value.encode("utf-8")

    def deserialize(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ZenError(ErrorCode.SERIALIZATION, "cached bytes are not valid UTF-8", cause=e)

    def content_type(self) -> str:
        return "text/plain"


__all__ = ["JSONSerializer", "Serializer", "StringSerializer"]
