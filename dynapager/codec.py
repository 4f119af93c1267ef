"""
Flat binary encoding of DynamoDB keys.

A key ``{"PK": "abc", "SK": "cdef"}`` is encoded as::

    b"S" + len("PK") (1 byte) + b"PK" + len("abc") (2 bytes, big-endian) + b"abc"
    b"S" + len("SK") (1 byte) + b"SK" + len("cdef") (2 bytes, big-endian) + b"cdef"

String values use the ``S`` tag, binary values the ``B`` tag, so the type of
every attribute survives the round trip.
"""

import struct
from collections.abc import Mapping
from typing import Any

from boto3.dynamodb.types import Binary

from .exceptions import DecodingError, EncodingError

MAX_NAME_LENGTH = 0xFF
MAX_VALUE_LENGTH = 0xFFFF

STRING_TAG = b"S"
BINARY_TAG = b"B"

KeyValue = str | bytes
Key = dict[str, KeyValue]


def _encode_value(name: str, value: Any) -> tuple[bytes, bytes]:
    if isinstance(value, str):
        return STRING_TAG, value.encode("utf-8")
    if isinstance(value, Binary):
        return BINARY_TAG, bytes(value.value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BINARY_TAG, bytes(value)
    raise EncodingError(
        f"Key attribute '{name}' must be a string or binary value, got {type(value).__name__}"
    )


def flatten_key(key: Mapping[str, Any]) -> bytes:
    """Encodes a key into its canonical byte form. Attributes set to None are dropped."""
    parts: list[bytes] = []
    for name, value in key.items():
        if value is None:
            continue
        tag, raw = _encode_value(name, value)
        raw_name = name.encode("utf-8")
        if len(raw_name) > MAX_NAME_LENGTH:
            raise EncodingError(
                f"Key attribute name '{name[:32]}...' exceeds {MAX_NAME_LENGTH} bytes"
            )
        if len(raw) > MAX_VALUE_LENGTH:
            raise EncodingError(
                f"Value of key attribute '{name}' exceeds {MAX_VALUE_LENGTH} bytes"
            )
        parts.append(tag + struct.pack(">B", len(raw_name)) + raw_name)
        parts.append(struct.pack(">H", len(raw)) + raw)
    return b"".join(parts)


def unflatten_key(data: bytes) -> Key:
    """
    Decodes bytes produced by flatten_key.

    Raises:
        DecodingError: If the input is truncated or carries an unknown type tag
    """
    key: Key = {}
    view = memoryview(data)
    pos = 0
    end = len(view)
    try:
        while pos < end:
            tag = bytes(view[pos : pos + 1])
            if tag not in (STRING_TAG, BINARY_TAG):
                raise DecodingError(f"Unknown type tag at offset {pos}")
            (name_len,) = struct.unpack_from(">B", view, pos + 1)
            pos += 2
            if pos + name_len + 2 > end:
                raise DecodingError("Truncated key attribute name")
            name = bytes(view[pos : pos + name_len]).decode("utf-8")
            pos += name_len
            (value_len,) = struct.unpack_from(">H", view, pos)
            pos += 2
            if pos + value_len > end:
                raise DecodingError(f"Truncated value for key attribute '{name}'")
            raw = bytes(view[pos : pos + value_len])
            pos += value_len
            key[name] = raw if tag == BINARY_TAG else raw.decode("utf-8")
    except (struct.error, UnicodeDecodeError) as e:
        raise DecodingError("Malformed key bytes", original_error=e) from e
    return key
