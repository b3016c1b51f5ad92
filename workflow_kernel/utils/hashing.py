"""
Canonical JSON and SHA-256 digests of entity snapshots.

``EntityStore.state_fingerprint`` hashes every user, transaction and
approval through ``hash_payload``; tests compare fingerprints taken before
and after a rejected command to show nothing changed.  The encoding must
therefore be stable across runs and across databases:

* keys sorted, no whitespace
* datetimes as UTC ISO-8601, so a value read back from SQLite (naive,
  re-tagged UTC) hashes the same as the aware value that was written
* enums by name, amounts as decimal strings (uint256 exceeds JSON's safe
  integer range for most consumers)
"""

import dataclasses
import hashlib
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _encode(obj: Any) -> Any:
    if isinstance(obj, datetime):
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=timezone.utc)
        return obj.astimezone(timezone.utc).isoformat()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _normalize(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _normalize(value: Any) -> Any:
    # Enum and int must be handled before json sees them: IntEnum is an int
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, dict):
        return {str(_normalize(k)): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value


def canonicalize_json(data: Any) -> str:
    return json.dumps(
        _normalize(data),
        sort_keys=True,
        separators=(",", ":"),
        default=_encode,
    )


def hash_payload(payload: Any) -> str:
    """Hex SHA-256 of ``canonicalize_json(payload)``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
