"""Embedding codec used at the storage boundary.

Vectors are written as little-endian float32 blobs (sqlite-vec's wire
format). Reads accept anything an older writer or another backend may have
left behind: native lists, float32 blobs, JSON array text, or
comma/whitespace-delimited text. Anything that does not decode cleanly is
returned as ``None``; callers treat that as "no vector", never as zeros.
"""

from __future__ import annotations

import json
import math
import re
import struct
from typing import Any

from sqlite_vec import serialize_float32

_DELIMITER_RE = re.compile(r"[,\s;]+")


def encode_embedding(embedding: list[float]) -> bytes:
    """Serialize *embedding* to a compact float32 blob."""
    return serialize_float32([float(v) for v in embedding])


def decode_embedding(raw: Any) -> list[float] | None:
    """Decode a stored embedding, or return None if it is unusable.

    Args:
        raw: A list/tuple of numbers, float32 bytes, or a JSON / delimited string.

    Returns:
        The vector as a list of finite floats, or None.
    """
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray, memoryview)):
        values = _from_blob(bytes(raw))
    elif isinstance(raw, str):
        values = _from_text(raw)
    elif isinstance(raw, (list, tuple)):
        values = _from_sequence(raw)
    else:
        return None

    if not values or not all(math.isfinite(v) for v in values):
        return None
    return values


def _from_blob(data: bytes) -> list[float] | None:
    if not data or len(data) % 4:
        return None
    return list(struct.unpack(f"<{len(data) // 4}f", data))


def _from_text(text: str) -> list[float] | None:
    text = text.strip()
    if not text:
        return None
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return None
        return _from_sequence(parsed) if isinstance(parsed, list) else None
    try:
        return [float(part) for part in _DELIMITER_RE.split(text) if part]
    except ValueError:
        return None


def _from_sequence(seq: list | tuple) -> list[float] | None:
    values: list[float] = []
    for item in seq:
        # bool is an int subclass; a list of flags is not a vector
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            return None
        values.append(float(item))
    return values
