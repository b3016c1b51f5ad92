"""
Input validation helpers for workflow commands.

Pure checks with no I/O.  Each helper returns the normalized value or
raises ``InvalidInputError`` naming the offending field, so callers react
to ``e.field`` rather than to message text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from workflow_kernel.domain.entities import UserRole
from workflow_kernel.exceptions import InvalidInputError

MAX_UINT256 = 2**256 - 1

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class ValidationLimits:
    """Field length bounds.  Built from configuration by ``workflow_config``."""

    name_max_length: int = 100
    email_max_length: int = 254
    description_max_length: int = 200
    reason_max_length: int = 200
    recent_transactions_max: int = 100


DEFAULT_LIMITS = ValidationLimits()


def normalize_address(value: Any, field: str = "address") -> str:
    """Validate a wallet address and return its lower-cased form."""
    if not isinstance(value, str) or not _ADDRESS_RE.match(value.strip()):
        raise InvalidInputError(field, "must be 0x followed by 40 hex characters")
    return value.strip().lower()


def require_text(value: Any, field: str, max_length: int) -> str:
    """Non-empty (after strip) string of at most ``max_length`` characters."""
    if not isinstance(value, str):
        raise InvalidInputError(field, "must be a string")
    text = value.strip()
    if not text:
        raise InvalidInputError(field, "is required")
    if len(text) > max_length:
        raise InvalidInputError(field, f"must be at most {max_length} characters")
    return text


def optional_text(value: Any, field: str, max_length: int) -> str:
    """Like ``require_text`` but an empty or None value yields ``""``."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidInputError(field, "must be a string")
    text = value.strip()
    if len(text) > max_length:
        raise InvalidInputError(field, f"must be at most {max_length} characters")
    return text


def require_email(value: Any, max_length: int, field: str = "email") -> str:
    email = require_text(value, field, max_length)
    if not _EMAIL_RE.match(email):
        raise InvalidInputError(field, "must be a valid email address")
    return email


def require_amount(value: Any, field: str = "amount") -> int:
    """Positive integer in smallest currency units, fitting a uint256."""
    # bool is an int subclass; True must not become 1 unit
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(field, "must be an integer number of units")
    if value <= 0:
        raise InvalidInputError(field, "must be greater than zero")
    if value > MAX_UINT256:
        raise InvalidInputError(field, "exceeds uint256 range")
    return value


def require_id(value: Any, field: str) -> int:
    """Entity id: positive integer (0 is the absent sentinel)."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidInputError(field, "must be a positive integer id")
    return value


def require_role(value: Any, field: str = "role") -> UserRole:
    if isinstance(value, bool):
        raise InvalidInputError(field, "must be a UserRole")
    try:
        return UserRole(value)
    except ValueError:
        raise InvalidInputError(field, f"unknown role {value!r}") from None


def require_count(value: Any, maximum: int, field: str = "count", minimum: int = 1) -> int:
    """Integer in ``[minimum, maximum]``; positive unless ``minimum`` says otherwise."""
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        reason = "must be a positive integer" if minimum == 1 else f"must be an integer >= {minimum}"
        raise InvalidInputError(field, reason)
    if value > maximum:
        raise InvalidInputError(field, f"must be at most {maximum}")
    return value
