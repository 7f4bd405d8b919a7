"""Sortable prefixed identifiers.

IDs embed a millisecond timestamp and a per-millisecond counter so that IDs
created by one process sort in creation order, followed by a random suffix.
"""

import secrets
import time
from typing import Literal

PREFIX_MAP = {
    "call": "rpc",
    "request": "req",
}

IDPrefix = Literal["call", "request"]

LENGTH = 22
_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

_last_timestamp = 0
_counter = 0


def ascending(prefix: IDPrefix) -> str:
    """Create a new ascending ID such as ``rpc_0192c4e3a7f001Xk29aPq0``."""
    global _last_timestamp, _counter

    now_ms = int(time.time() * 1000)
    if now_ms != _last_timestamp:
        _last_timestamp = now_ms
        _counter = 0
    _counter += 1

    encoded = format(now_ms * 0x1000 + _counter, "014x")
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(LENGTH - 14))
    return f"{PREFIX_MAP[prefix]}_{encoded}{suffix}"


def timestamp(id_str: str) -> int:
    """Extract the millisecond timestamp from an ascending ID."""
    parts = id_str.split("_")
    if len(parts) != 2:
        raise ValueError(f"Invalid ID format: {id_str}")
    return int(parts[1][:14], 16) // 0x1000


class Identifier:
    """Namespace class for ID generation functions."""

    ascending = staticmethod(ascending)
    timestamp = staticmethod(timestamp)
