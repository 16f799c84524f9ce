"""
Registry Serialization — orjson encoding of table snapshots.

bytes values are wrapped as {"__registry_bytes_b64__": "<base64>"} for safe
JSON round-trip, at any nesting depth.
"""
import base64
from typing import Any

import orjson

_BYTES_WRAPPER_KEY = "__registry_bytes_b64__"


def _wrap(value: Any) -> Any:
    if isinstance(value, bytes):
        return {_BYTES_WRAPPER_KEY: base64.b64encode(value).decode("ascii")}
    if isinstance(value, dict):
        return {k: _wrap(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_wrap(v) for v in value]
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, dict):
        if _BYTES_WRAPPER_KEY in value and len(value) == 1:
            return base64.b64decode(value[_BYTES_WRAPPER_KEY])
        return {k: _unwrap(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unwrap(v) for v in value]
    return value


def serialize_value(value: Any) -> bytes:
    """Serialize a Python value to orjson bytes.

    Supports: str, int, float, dict, list, tuple, bytes, bool, None.

    Args:
        value: Python value to serialize.

    Returns:
        orjson-encoded bytes.
    """
    return orjson.dumps(_wrap(value))


def deserialize_value(data: bytes) -> Any:
    """Deserialize bytes produced by :func:`serialize_value`.

    Tuples come back as lists.
    """
    return _unwrap(orjson.loads(data))
