"""Blob codec for nested attribute structures stored in relational columns.

Trees are serialized as UTF-8 JSON. The encoded form does not say whether the
top level was a list or a mapping, so decoding takes a :class:`Shape` and
fails rather than guessing when the stored value does not match it.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from nodestore.storage.errors import CodecError


class Shape(str, Enum):
    """Target runtime shape for a decoded blob."""

    SEQUENCE = "sequence"
    MAPPING = "mapping"


_SHAPE_TYPES = {Shape.SEQUENCE: list, Shape.MAPPING: dict}


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-finite number {token} is not allowed")


def encode_blob(value: Any, field: str = "blob") -> bytes:
    """Encode a list/dict tree into bytes for a blob column."""

    try:
        text = json.dumps(
            value,
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError) as exc:
        raise CodecError(field, f"cannot encode value: {exc}") from exc
    return text.encode("utf-8")


def decode_blob(raw: Any, shape: Shape, field: str = "blob") -> Any:
    """Decode a blob column back into a tree of the requested ``shape``.

    A SQL NULL or JSON ``null`` decodes to an empty container of that shape.
    """

    shape = Shape(shape)
    if raw is None:
        return _SHAPE_TYPES[shape]()
    if isinstance(raw, memoryview):
        raw = raw.tobytes()
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CodecError(field, f"blob is not valid UTF-8: {exc}") from exc
    elif isinstance(raw, str):
        text = raw
    else:
        raise CodecError(field, f"unexpected column type {type(raw).__name__}")

    try:
        value = json.loads(text, parse_constant=_reject_constant)
    except ValueError as exc:
        raise CodecError(field, f"malformed blob: {exc}") from exc

    if value is None:
        return _SHAPE_TYPES[shape]()
    if not isinstance(value, _SHAPE_TYPES[shape]):
        raise CodecError(
            field,
            f"expected {shape.value}, stored value is {type(value).__name__}",
        )
    return value


__all__ = ["Shape", "encode_blob", "decode_blob"]
