"""
Workflow events (``workflow_kernel.domain.events``).

Responsibility
--------------
Frozen records of committed state changes.  Payload fields mirror the
on-chain event logs of the workflow ledger, so subscribers written
against those logs map over one-to-one.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  Persisted by
``services.event_log`` and delivered by ``services.event_bus``.

Invariants enforced
-------------------
* Every event class has a unique ``event_type`` string; ``EVENT_TYPES``
  maps it back to the class for replay.
* ``to_payload`` / ``event_from_payload`` are inverse for every event.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from enum import IntEnum
from typing import Any, ClassVar

from workflow_kernel.domain.entities import (
    ApprovalStatus,
    TransactionStatus,
    UserRole,
)


@dataclass(frozen=True)
class WorkflowEvent:
    """Base class for all workflow events."""

    event_type: ClassVar[str] = "WorkflowEvent"

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for f in fields(self):
            val = getattr(self, f.name)
            payload[f.name] = int(val) if isinstance(val, IntEnum) else val
        return payload


@dataclass(frozen=True)
class UserRegistered(WorkflowEvent):
    event_type: ClassVar[str] = "UserRegistered"

    user_id: int
    wallet_address: str
    name: str


@dataclass(frozen=True)
class UserRoleUpdated(WorkflowEvent):
    event_type: ClassVar[str] = "UserRoleUpdated"

    wallet_address: str
    new_role: UserRole


@dataclass(frozen=True)
class UserDeactivated(WorkflowEvent):
    event_type: ClassVar[str] = "UserDeactivated"

    wallet_address: str


@dataclass(frozen=True)
class TransactionCreated(WorkflowEvent):
    event_type: ClassVar[str] = "TransactionCreated"

    transaction_id: int
    from_address: str
    to_address: str
    amount: int


@dataclass(frozen=True)
class TransactionStatusUpdated(WorkflowEvent):
    event_type: ClassVar[str] = "TransactionStatusUpdated"

    transaction_id: int
    status: TransactionStatus


@dataclass(frozen=True)
class ApprovalRequested(WorkflowEvent):
    event_type: ClassVar[str] = "ApprovalRequested"

    approval_id: int
    transaction_id: int
    requester: str


@dataclass(frozen=True)
class ApprovalProcessed(WorkflowEvent):
    event_type: ClassVar[str] = "ApprovalProcessed"

    approval_id: int
    status: ApprovalStatus
    approver: str


EVENT_TYPES: dict[str, type[WorkflowEvent]] = {
    cls.event_type: cls
    for cls in (
        UserRegistered,
        UserRoleUpdated,
        UserDeactivated,
        TransactionCreated,
        TransactionStatusUpdated,
        ApprovalRequested,
        ApprovalProcessed,
    )
}

# Enum-typed payload fields, restored on replay
_ENUM_FIELDS: dict[str, type[IntEnum]] = {
    "new_role": UserRole,
}
_STATUS_ENUMS: dict[str, type[IntEnum]] = {
    "TransactionStatusUpdated": TransactionStatus,
    "ApprovalProcessed": ApprovalStatus,
}


def event_from_payload(event_type: str, payload: dict[str, Any]) -> WorkflowEvent:
    """Rebuild an event from its stored type name and payload."""
    try:
        cls = EVENT_TYPES[event_type]
    except KeyError:
        raise ValueError(f"Unknown event type: {event_type}") from None
    kwargs = dict(payload)
    for name, enum_cls in _ENUM_FIELDS.items():
        if name in kwargs:
            kwargs[name] = enum_cls(kwargs[name])
    if "status" in kwargs and event_type in _STATUS_ENUMS:
        kwargs["status"] = _STATUS_ENUMS[event_type](kwargs["status"])
    return cls(**kwargs)


@dataclass(frozen=True)
class EventEnvelope:
    """A committed event with its global position in the event log."""

    sequence: int
    occurred_at: datetime
    event: WorkflowEvent

    @property
    def event_type(self) -> str:
        return self.event.event_type
