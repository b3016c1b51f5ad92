"""
Configuration Loader (``workflow_config.loader``).

Responsibility
--------------
Reads a YAML configuration set and parses it into the frozen
``workflow_config.schema`` dataclasses.  Callers go through
``workflow_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ValueError`` naming the offending key; unknown
  keys are rejected rather than ignored.
* ``compute_checksum`` is deterministic for identical parsed content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types, missing sections, bad owner address -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from workflow_config.schema import (
    DatabaseSettings,
    EventSettings,
    LimitSettings,
    OwnerSettings,
    WorkflowSettings,
)
from workflow_kernel.domain.validation import normalize_address
from workflow_kernel.exceptions import InvalidInputError

_ROOT_KEYS = frozenset({"config_id", "version", "database", "owner", "limits", "events"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name}: must be a mapping")
    unknown = set(section) - allowed
    if unknown:
        raise ValueError(f"{name}: unknown keys {sorted(unknown)}")
    return section


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{key}: must be a positive integer, got {value!r}")
    return value


def _non_negative_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{key}: must be a non-negative integer, got {value!r}")
    return value


def _string(value: Any, key: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key}: must be a non-empty string")
    return value.strip()


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    section = _section(data, "database", {"url", "echo"})
    defaults = DatabaseSettings()
    echo = section.get("echo", defaults.echo)
    if not isinstance(echo, bool):
        raise ValueError("database.echo: must be true or false")
    return DatabaseSettings(
        url=_string(section.get("url", defaults.url), "database.url"),
        echo=echo,
    )


def parse_owner(data: dict[str, Any]) -> OwnerSettings:
    section = _section(data, "owner", {"address", "name", "email"})
    if "address" not in section:
        raise ValueError("owner.address: is required")
    try:
        address = normalize_address(section["address"], "owner.address")
    except InvalidInputError as exc:
        raise ValueError(f"owner.address: {exc.reason}") from exc
    defaults = OwnerSettings(address=address)
    return OwnerSettings(
        address=address,
        name=_string(section.get("name", defaults.name), "owner.name"),
        email=_string(section.get("email", defaults.email), "owner.email"),
    )


def parse_limits(data: dict[str, Any]) -> LimitSettings:
    defaults = LimitSettings()
    keys = {f.name for f in fields(LimitSettings)}
    section = _section(data, "limits", keys)
    return LimitSettings(**{
        key: _positive_int(section.get(key, getattr(defaults, key)), f"limits.{key}")
        for key in keys
    })


def parse_events(data: dict[str, Any]) -> EventSettings:
    section = _section(data, "events", {"retain_in_memory"})
    return EventSettings(
        retain_in_memory=_non_negative_int(
            section.get("retain_in_memory", EventSettings().retain_in_memory),
            "events.retain_in_memory",
        ),
    )


def parse_settings(data: dict[str, Any]) -> WorkflowSettings:
    """Parse a whole configuration document."""
    unknown = set(data) - _ROOT_KEYS
    if unknown:
        raise ValueError(f"unknown top-level keys {sorted(unknown)}")

    return WorkflowSettings(
        config_id=_string(data.get("config_id", ""), "config_id"),
        version=_positive_int(data.get("version", 1), "version"),
        owner=parse_owner(data),
        database=parse_database(data),
        limits=parse_limits(data),
        events=parse_events(data),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> WorkflowSettings:
    return parse_settings(load_yaml_file(path))
