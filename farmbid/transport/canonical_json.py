"""Canonical JSON helpers shared by request signing, storage documents and notifications."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import orjson

_ORJSON_OPTIONS = orjson.OPT_SORT_KEYS | orjson.OPT_NAIVE_UTC


def _default(value: Any) -> Any:
    # Decimals serialize as strings.
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def canonical_dumps(payload: Any) -> bytes:
    """Return canonical JSON bytes with sorted keys and stable formatting."""
    return orjson.dumps(payload, default=_default, option=_ORJSON_OPTIONS)


def canonical_loads(raw: bytes | bytearray | str) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        return orjson.loads(bytes(raw))
    return orjson.loads(raw)
