"""
WorkflowSettings schema.

Frozen dataclasses describing one configuration set.  YAML is parsed into
these types by ``workflow_config.loader``; the kernel receives the parsed
object and never reads configuration files itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workflow_kernel.db.engine import IN_MEMORY_URL
from workflow_kernel.domain.validation import ValidationLimits


@dataclass(frozen=True)
class DatabaseSettings:
    """Where entities and the event log are stored."""

    url: str = IN_MEMORY_URL
    echo: bool = False


@dataclass(frozen=True)
class OwnerSettings:
    """The genesis Admin created when an engine is built."""

    address: str
    name: str = "Platform Owner"
    email: str = "owner@example.com"


@dataclass(frozen=True)
class LimitSettings:
    """Field length bounds and listing caps."""

    name_max_length: int = 100
    email_max_length: int = 254
    description_max_length: int = 200
    reason_max_length: int = 200
    recent_transactions_max: int = 100

    def to_validation_limits(self) -> ValidationLimits:
        """Bridge to the kernel's validation limits."""
        return ValidationLimits(
            name_max_length=self.name_max_length,
            email_max_length=self.email_max_length,
            description_max_length=self.description_max_length,
            reason_max_length=self.reason_max_length,
            recent_transactions_max=self.recent_transactions_max,
        )


@dataclass(frozen=True)
class EventSettings:
    # Envelopes kept by the bus for late subscribers; 0 disables replay
    retain_in_memory: int = 0


@dataclass(frozen=True)
class WorkflowSettings:
    """Root of a configuration set."""

    config_id: str
    version: int
    owner: OwnerSettings
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    limits: LimitSettings = field(default_factory=LimitSettings)
    events: EventSettings = field(default_factory=EventSettings)
    checksum: str = ""
