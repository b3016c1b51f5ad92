"""
Module: workflow_kernel.models.transaction
Responsibility: ORM persistence for transactions between registered users.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/entities.py and exceptions.py.

Invariants enforced:
    - ``status`` is one of the TransactionStatus values (check constraint).
    - ``amount`` is stored exactly (UInt256), ``approval_id`` >= 0.
    - A transaction in a terminal status (COMPLETED, REJECTED) cannot be
      modified: ``before_update`` listener raises
      TerminalStateViolationError.  Lifecycle services check first; the
      listener is the backstop.

Failure modes:
    - TerminalStateViolationError on any UPDATE of a terminal row.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Index, SmallInteger, String, event, inspect
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import EntityBase, UInt256
from workflow_kernel.domain.entities import (
    NO_APPROVAL,
    TERMINAL_TRANSACTION_STATUSES,
    Transaction,
    TransactionStatus,
)
from workflow_kernel.exceptions import TerminalStateViolationError


class TransactionModel(EntityBase):
    """Persistent transaction record."""

    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("status IN (0, 1, 2, 3)", name="ck_transactions_valid_status"),
        CheckConstraint("approval_id >= 0", name="ck_transactions_approval_id"),
        Index("ix_transactions_from", "from_address"),
        Index("ix_transactions_to", "to_address"),
        Index("ix_transactions_status", "status"),
    )

    from_address: Mapped[str] = mapped_column(String(42), nullable=False)
    to_address: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(UInt256(), nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    status: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=int(TransactionStatus.PENDING),
    )
    approval_id: Mapped[int] = mapped_column(nullable=False, default=NO_APPROVAL)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.id} {self.from_address}->{self.to_address} "
            f"status={self.status}>"
        )

    def to_dto(self) -> Transaction:
        """Convert ORM model to frozen domain DTO."""
        return Transaction(
            id=self.id,
            from_address=self.from_address,
            to_address=self.to_address,
            amount=self.amount,
            description=self.description,
            status=TransactionStatus(self.status),
            approval_id=self.approval_id,
            timestamp=self.timestamp,
        )


@event.listens_for(TransactionModel, "before_update")
def prevent_terminal_transaction_update(mapper, connection, target):
    """Refuse to write changes to a transaction already in a terminal status."""
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if TransactionStatus(previous) in TERMINAL_TRANSACTION_STATUSES:
        raise TerminalStateViolationError(
            "Transaction", target.id, TransactionStatus(previous).name,
        )
