"""
TransactionLifecycle -- the Pending/Active/Completed/Rejected state machine.

Responsibility:
    Validates and applies every status change on a Transaction, records the
    matching events, and keeps ``approval_id`` write-once.

Architecture position:
    Kernel > Services.  Called by the workflow engine (create, complete) and
    by ApprovalLifecycle (link_approval, apply_approval_result).  Mutates
    transactions only through ``EntityStore.update_transaction``.

Invariants enforced:
    - Transitions follow ``TRANSACTION_TRANSITIONS``; terminal statuses
      (COMPLETED, REJECTED) admit no further call.
    - A new transaction is PENDING with ``approval_id == NO_APPROVAL``.
    - ``approval_id`` is set once, while PENDING.
    - Only the sender completes, and only from ACTIVE.

Failure modes:
    - InvalidInputError: malformed amount, description or addresses.
    - UserNotFoundError: recipient (or sender) is not registered.
    - InvalidTransitionError: action not allowed in the current status.
    - AlreadyLinkedError: an approval is already linked.
    - UnauthorizedError: ``complete`` called by someone other than the sender.
"""

from __future__ import annotations

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.entities import (
    NO_APPROVAL,
    Transaction,
    TransactionStatus,
    can_transition_transaction,
)
from workflow_kernel.domain.events import TransactionCreated, TransactionStatusUpdated
from workflow_kernel.domain.validation import (
    DEFAULT_LIMITS,
    ValidationLimits,
    normalize_address,
    require_amount,
    require_text,
)
from workflow_kernel.exceptions import (
    AlreadyLinkedError,
    InvalidInputError,
    InvalidStateError,
    InvalidTransitionError,
    UnauthorizedError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.event_log import EventLog

logger = get_logger("services.transaction_lifecycle")


class TransactionLifecycle:
    """Applies transaction state transitions inside the caller's unit of work."""

    def __init__(
        self,
        store: EntityStore,
        events: EventLog,
        clock: Clock | None = None,
        limits: ValidationLimits = DEFAULT_LIMITS,
    ):
        self._store = store
        self._events = events
        self._clock = clock or SystemClock()
        self._limits = limits

    def create(
        self,
        from_address: str,
        to_address: str,
        amount: int,
        description: str,
    ) -> Transaction:
        """
        Create a PENDING transaction from ``from_address`` to ``to_address``.

        Both parties must be registered and active, and distinct.
        """
        sender = normalize_address(from_address, "from_address")
        recipient = normalize_address(to_address, "to_address")
        amount = require_amount(amount)
        description = require_text(
            description, "description", self._limits.description_max_length,
        )
        if sender == recipient:
            raise InvalidInputError("to_address", "must differ from the sender")

        for field, address in (("from_address", sender), ("to_address", recipient)):
            party = self._store.get_user_by_address(address)
            if not party.is_active:
                raise InvalidInputError(field, "account is inactive")

        transaction = self._store.create_transaction(
            from_address=sender,
            to_address=recipient,
            amount=amount,
            description=description,
            timestamp=self._clock.now(),
        )
        self._events.append(
            TransactionCreated(
                transaction_id=transaction.id,
                from_address=sender,
                to_address=recipient,
                amount=amount,
            )
        )
        logger.info(
            "transaction_created",
            extra={
                "transaction_id": transaction.id,
                "from_address": sender,
                "to_address": recipient,
                "amount": str(amount),
            },
        )
        return transaction

    def link_approval(self, transaction_id: int, approval_id: int) -> Transaction:
        """Attach ``approval_id`` to a PENDING transaction with no approval."""
        current = self._store.get_transaction(transaction_id)
        if current.approval_id != NO_APPROVAL:
            raise AlreadyLinkedError(transaction_id, current.approval_id)
        if current.status != TransactionStatus.PENDING:
            raise InvalidTransitionError(
                "Transaction", transaction_id, current.status.name, "link_approval",
            )

        def _link(model):
            model.approval_id = approval_id

        transaction = self._store.update_transaction(transaction_id, _link)
        logger.info(
            "transaction_approval_linked",
            extra={"transaction_id": transaction_id, "approval_id": approval_id},
        )
        return transaction

    def apply_approval_result(self, transaction_id: int, approved: bool) -> Transaction:
        """PENDING -> ACTIVE when approved, PENDING -> REJECTED otherwise."""
        current = self._store.get_transaction(transaction_id)
        target = TransactionStatus.ACTIVE if approved else TransactionStatus.REJECTED
        if not can_transition_transaction(current.status, target):
            raise InvalidTransitionError(
                "Transaction", transaction_id, current.status.name,
                "apply_approval_result",
            )
        if current.approval_id == NO_APPROVAL:
            raise InvalidStateError(
                f"Transaction {transaction_id} has no linked approval"
            )
        return self._transition(current, target)

    def complete(self, transaction_id: int, actor_address: str) -> Transaction:
        """ACTIVE -> COMPLETED, by the sender only."""
        current = self._store.get_transaction(transaction_id)
        if current.from_address != actor_address:
            raise UnauthorizedError(
                "complete_transaction", actor_address,
                "only the sender can complete a transaction",
            )
        if not can_transition_transaction(current.status, TransactionStatus.COMPLETED):
            raise InvalidTransitionError(
                "Transaction", transaction_id, current.status.name, "complete",
            )
        return self._transition(current, TransactionStatus.COMPLETED)

    def _transition(
        self,
        current: Transaction,
        target: TransactionStatus,
    ) -> Transaction:
        def _set_status(model):
            model.status = int(target)

        transaction = self._store.update_transaction(current.id, _set_status)
        self._events.append(
            TransactionStatusUpdated(transaction_id=current.id, status=target)
        )
        logger.info(
            "transaction_status_changed",
            extra={
                "transaction_id": current.id,
                "from_status": current.status.name,
                "to_status": target.name,
            },
        )
        return transaction
