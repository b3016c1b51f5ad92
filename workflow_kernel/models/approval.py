"""
Module: workflow_kernel.models.approval
Responsibility: ORM persistence for approval requests on transactions.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/entities.py and exceptions.py.

Invariants enforced:
    - ``transaction_id`` references an existing transaction (foreign key).
    - ``status`` and ``approval_type`` are valid enum values (check
      constraints).
    - At most one approval per transaction: UNIQUE(transaction_id).
    - Terminal approvals (APPROVED, REJECTED) are immutable:
      ``before_update`` listener raises TerminalStateViolationError.

Failure modes:
    - IntegrityError on a second approval for the same transaction.
    - TerminalStateViolationError on any UPDATE of a terminal row.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    SmallInteger,
    String,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import EntityBase
from workflow_kernel.domain.entities import (
    TERMINAL_APPROVAL_STATUSES,
    Approval,
    ApprovalStatus,
    ApprovalType,
)
from workflow_kernel.exceptions import TerminalStateViolationError


class ApprovalModel(EntityBase):
    """Persistent approval record."""

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint("status IN (0, 1, 2)", name="ck_approvals_valid_status"),
        CheckConstraint("approval_type IN (0, 1, 2)", name="ck_approvals_valid_type"),
        Index("ix_approvals_status", "status"),
    )

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("transactions.id"), nullable=False, unique=True,
    )
    requester: Mapped[str] = mapped_column(String(42), nullable=False)
    approver: Mapped[str] = mapped_column(String(42), nullable=False, default="")
    approval_type: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=int(ApprovalType.TRANSACTION),
    )
    status: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=int(ApprovalStatus.PENDING),
    )
    reason: Mapped[str] = mapped_column(String(1000), nullable=False)
    decision_reason: Mapped[str] = mapped_column(
        String(1000), nullable=False, default="",
    )
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} transaction={self.transaction_id} "
            f"status={self.status}>"
        )

    def to_dto(self) -> Approval:
        """Convert ORM model to frozen domain DTO."""
        return Approval(
            id=self.id,
            transaction_id=self.transaction_id,
            requester=self.requester,
            approver=self.approver,
            approval_type=ApprovalType(self.approval_type),
            status=ApprovalStatus(self.status),
            reason=self.reason,
            decision_reason=self.decision_reason,
            timestamp=self.timestamp,
            processed_at=self.processed_at,
        )


@event.listens_for(ApprovalModel, "before_update")
def prevent_terminal_approval_update(mapper, connection, target):
    """Refuse to write changes to an approval already processed."""
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if ApprovalStatus(previous) in TERMINAL_APPROVAL_STATUSES:
        raise TerminalStateViolationError(
            "Approval", target.id, ApprovalStatus(previous).name,
        )
