"""
ApprovalLifecycle -- request and decide approvals on transactions.

Responsibility:
    Creates approvals for PENDING transactions and records decisions,
    driving the linked transaction through TransactionLifecycle so the two
    entities always change together.

Architecture position:
    Kernel > Services.  Called by the workflow engine after authorization.
    Owns no data: approvals go through EntityStore, transaction side
    effects through TransactionLifecycle.

Invariants enforced:
    - One approval per transaction: ``request`` refuses a transaction whose
      ``approval_id`` is already set, before looking at its status.
    - Approvals move PENDING -> APPROVED or PENDING -> REJECTED exactly once.
    - APPROVED pairs with an ACTIVE transaction, REJECTED with a REJECTED
      one.  Both writes share the caller's unit of work, so a failure in
      either rolls back both.

Failure modes:
    - TransactionNotFoundError / ApprovalNotFoundError.
    - AlreadyLinkedError: approval already requested for the transaction.
    - InvalidTransitionError: transaction not PENDING, or approval already
      processed.
    - InvalidInputError: empty or oversized reason.
"""

from __future__ import annotations

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.entities import (
    NO_APPROVAL,
    Approval,
    ApprovalStatus,
    TransactionStatus,
    can_transition_approval,
)
from workflow_kernel.domain.events import ApprovalProcessed, ApprovalRequested
from workflow_kernel.domain.validation import (
    DEFAULT_LIMITS,
    ValidationLimits,
    optional_text,
    require_text,
)
from workflow_kernel.exceptions import AlreadyLinkedError, InvalidTransitionError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.event_log import EventLog
from workflow_kernel.services.transaction_lifecycle import TransactionLifecycle

logger = get_logger("services.approval_lifecycle")


class ApprovalLifecycle:
    """Applies approval state transitions and their transaction side effects."""

    def __init__(
        self,
        store: EntityStore,
        events: EventLog,
        transactions: TransactionLifecycle,
        clock: Clock | None = None,
        limits: ValidationLimits = DEFAULT_LIMITS,
    ):
        self._store = store
        self._events = events
        self._transactions = transactions
        self._clock = clock or SystemClock()
        self._limits = limits

    def request(self, transaction_id: int, requester: str, reason: str) -> Approval:
        """
        Open a PENDING approval for ``transaction_id`` and link it.

        Preconditions:
            - The transaction has no linked approval (else AlreadyLinked).
            - The transaction is PENDING (else InvalidState).
            - ``reason`` is non-empty.
        """
        transaction = self._store.get_transaction(transaction_id)
        if transaction.approval_id != NO_APPROVAL:
            raise AlreadyLinkedError(transaction_id, transaction.approval_id)
        if transaction.status != TransactionStatus.PENDING:
            raise InvalidTransitionError(
                "Transaction", transaction_id, transaction.status.name,
                "request_approval",
            )
        reason = require_text(reason, "reason", self._limits.reason_max_length)

        approval = self._store.create_approval(
            transaction_id=transaction_id,
            requester=requester,
            reason=reason,
            timestamp=self._clock.now(),
        )
        self._transactions.link_approval(transaction_id, approval.id)
        self._events.append(
            ApprovalRequested(
                approval_id=approval.id,
                transaction_id=transaction_id,
                requester=requester,
            )
        )
        logger.info(
            "approval_requested",
            extra={
                "approval_id": approval.id,
                "transaction_id": transaction_id,
                "requester": requester,
            },
        )
        return approval

    def process(
        self,
        approval_id: int,
        approver: str,
        approved: bool,
        reason: str = "",
    ) -> Approval:
        """
        Decide a PENDING approval and apply the result to its transaction.

        Postconditions:
            - approved=True: approval APPROVED, transaction ACTIVE.
            - approved=False: approval REJECTED, transaction REJECTED.
        """
        current = self._store.get_approval(approval_id)
        target = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        if not can_transition_approval(current.status, target):
            raise InvalidTransitionError(
                "Approval", approval_id, current.status.name, "process",
            )
        decision_reason = optional_text(
            reason, "reason", self._limits.reason_max_length,
        )
        processed_at = self._clock.now()

        def _decide(model):
            model.status = int(target)
            model.approver = approver
            model.decision_reason = decision_reason
            model.processed_at = processed_at

        approval = self._store.update_approval(approval_id, _decide)
        self._events.append(
            ApprovalProcessed(approval_id=approval_id, status=target, approver=approver)
        )
        self._transactions.apply_approval_result(current.transaction_id, approved)

        logger.info(
            "approval_processed",
            extra={
                "approval_id": approval_id,
                "transaction_id": current.transaction_id,
                "status": target.name,
                "approver": approver,
            },
        )
        return approval
