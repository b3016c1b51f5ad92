"""
Workflow entity types (``workflow_kernel.domain.entities``).

Responsibility
--------------
Pure value objects for the three workflow entities -- User, Transaction,
Approval -- and the status state machines that govern the last two.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/`` or outer layers.

Invariants enforced
-------------------
* ``TRANSACTION_TRANSITIONS`` and ``APPROVAL_TRANSITIONS`` define the only
  valid status changes.  Terminal states have no outgoing edges.
* Enum integer values match the ledger ABI so adapters can exchange raw
  numbers with existing clients.
* ``NO_APPROVAL`` (0) is the "absent" sentinel for ``Transaction.approval_id``
  and ``NOT_REGISTERED`` (0) the sentinel user id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum

NOT_REGISTERED = 0
NO_APPROVAL = 0


# =========================================================================
# Enums
# =========================================================================


class UserRole(IntEnum):
    """Platform roles, ordered by authority."""

    REGULAR = 0
    MANAGER = 1
    ADMIN = 2


class TransactionStatus(IntEnum):
    """Transaction lifecycle states."""

    PENDING = 0
    ACTIVE = 1
    COMPLETED = 2
    REJECTED = 3


class ApprovalStatus(IntEnum):
    """Approval lifecycle states."""

    PENDING = 0
    APPROVED = 1
    REJECTED = 2


class ApprovalType(IntEnum):
    """What an approval gates.  Only TRANSACTION is exercised."""

    TRANSACTION = 0
    USER_ROLE = 1
    SYSTEM_CONFIG = 2


# =========================================================================
# State machines
# =========================================================================


TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset({
        TransactionStatus.ACTIVE,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.ACTIVE: frozenset({
        TransactionStatus.COMPLETED,
    }),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.REJECTED: frozenset(),
}

TERMINAL_TRANSACTION_STATUSES: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.COMPLETED,
    TransactionStatus.REJECTED,
})

APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})


def can_transition_transaction(
    current: TransactionStatus, target: TransactionStatus
) -> bool:
    return target in TRANSACTION_TRANSITIONS.get(current, frozenset())


def can_transition_approval(
    current: ApprovalStatus, target: ApprovalStatus
) -> bool:
    return target in APPROVAL_TRANSITIONS.get(current, frozenset())


# =========================================================================
# Entity snapshots
# =========================================================================


@dataclass(frozen=True)
class User:
    """Immutable snapshot of a registered user."""

    id: int
    wallet_address: str
    name: str
    email: str
    role: UserRole
    is_active: bool
    created_at: datetime
    is_owner: bool = False

    @property
    def is_admin(self) -> bool:
        return self.is_active and self.role == UserRole.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.is_active and self.role == UserRole.MANAGER


@dataclass(frozen=True)
class Transaction:
    """
    Immutable snapshot of a transaction.

    ``approval_id`` is ``NO_APPROVAL`` until an approval is requested and
    never changes afterwards.
    """

    id: int
    from_address: str
    to_address: str
    amount: int
    description: str
    status: TransactionStatus
    approval_id: int
    timestamp: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TRANSACTION_STATUSES

    @property
    def has_approval(self) -> bool:
        return self.approval_id != NO_APPROVAL


@dataclass(frozen=True)
class Approval:
    """
    Immutable snapshot of an approval.

    ``approver`` is empty and ``processed_at`` is None until the approval
    reaches a terminal status.
    """

    id: int
    transaction_id: int
    requester: str
    approver: str
    approval_type: ApprovalType
    status: ApprovalStatus
    reason: str
    decision_reason: str
    timestamp: datetime
    processed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES


@dataclass(frozen=True)
class DashboardMetrics:
    """Aggregate figures for an actor's dashboard."""

    total_transactions: int
    total_approvals: int
    total_users: int
    pending_approvals: int
    completed_volume: int
    transactions_by_status: dict[TransactionStatus, int]
