"""
workflow_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the one way to obtain configuration at runtime,
    ``get_active_config()``, returning a frozen ``WorkflowSettings``.

Architecture position:
    Configuration -- sits above ``workflow_kernel``.  The kernel never
    imports from this package; ``WorkflowEngine.from_config`` only reads
    attributes of the settings object it is handed.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema validation failures, naming the key.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``workflow_config_loaded`` log entry with the config id, version and
    checksum, tying a running engine to the exact settings it was built
    from.
"""

from __future__ import annotations

import logging
from pathlib import Path

from workflow_config.loader import load_settings
from workflow_config.schema import (
    DatabaseSettings,
    EventSettings,
    LimitSettings,
    OwnerSettings,
    WorkflowSettings,
)

_logger = logging.getLogger("workflow_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> WorkflowSettings:
    """The only public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to
            ``workflow_config/sets/default.yaml``.

    Returns:
        Parsed, validated ``WorkflowSettings``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    settings = load_settings(path)

    _logger.info(
        "workflow_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_path": str(path),
        },
    )
    return settings


__all__ = [
    "DatabaseSettings",
    "EventSettings",
    "LimitSettings",
    "OwnerSettings",
    "WorkflowSettings",
    "get_active_config",
]
