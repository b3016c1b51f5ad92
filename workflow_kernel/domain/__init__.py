"""
Pure domain layer.

This package contains value objects and decision logic with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from workflow_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workflow_kernel.domain.entities import (
    NO_APPROVAL,
    NOT_REGISTERED,
    Approval,
    ApprovalStatus,
    ApprovalType,
    DashboardMetrics,
    Transaction,
    TransactionStatus,
    User,
    UserRole,
)
from workflow_kernel.domain.events import (
    ApprovalProcessed,
    ApprovalRequested,
    EventEnvelope,
    TransactionCreated,
    TransactionStatusUpdated,
    UserDeactivated,
    UserRegistered,
    UserRoleUpdated,
    WorkflowEvent,
)
from workflow_kernel.domain.policy import (
    Action,
    PolicyDecision,
    RegistrationTarget,
    can_perform,
)
from workflow_kernel.domain.validation import DEFAULT_LIMITS, ValidationLimits

__all__ = [
    "Action",
    "Approval",
    "ApprovalProcessed",
    "ApprovalRequested",
    "ApprovalStatus",
    "ApprovalType",
    "Clock",
    "DEFAULT_LIMITS",
    "DashboardMetrics",
    "DeterministicClock",
    "EventEnvelope",
    "NOT_REGISTERED",
    "NO_APPROVAL",
    "PolicyDecision",
    "RegistrationTarget",
    "SystemClock",
    "Transaction",
    "TransactionCreated",
    "TransactionStatus",
    "TransactionStatusUpdated",
    "User",
    "UserDeactivated",
    "UserRegistered",
    "UserRole",
    "UserRoleUpdated",
    "ValidationLimits",
    "WorkflowEvent",
    "can_perform",
]
