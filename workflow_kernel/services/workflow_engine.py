"""
WorkflowEngine -- the single command and query surface of the kernel.

Responsibility:
    Composes the entity store, authorization policy, user registry and the
    two lifecycle managers into commands that are authorized, validated,
    applied and recorded as one unit of work, then published to the event
    bus.  Read accessors run against a consistent snapshot.

Architecture position:
    Kernel > Services -- outermost kernel service.  Adapters (HTTP, CLI,
    UI) call this class and nothing else.

Invariants enforced:
    - Order per command: authorization, validation, mutation, event
      recording, commit, publication.
    - All-or-nothing: any failure rolls back every write of the command,
      including its events.
    - One command at a time: commands and snapshots share the Database
      lock, so a reader never observes half of a compound mutation.
    - Events reach subscribers only after commit, in sequence order.  They
      are queued on the bus under the Database lock and delivered after it
      is released, so the two locks are never held in opposite orders.

Failure modes:
    - Every failure is a ``WorkflowKernelError`` subclass carrying a
      ``kind`` from the closed ``ErrorKind`` set.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from sqlalchemy.orm import Session

from workflow_kernel.db.engine import Database
from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.entities import (
    Approval,
    DashboardMetrics,
    Transaction,
    TransactionStatus,
    User,
    UserRole,
)
from workflow_kernel.domain.events import EventEnvelope
from workflow_kernel.domain.policy import (
    Action,
    RegistrationTarget,
    can_perform,
    require,
)
from workflow_kernel.domain.validation import (
    DEFAULT_LIMITS,
    ValidationLimits,
    normalize_address,
    require_count,
    require_id,
    require_role,
)
from workflow_kernel.exceptions import InvalidInputError, WorkflowKernelError
from workflow_kernel.logging_config import LogContext, get_logger
from workflow_kernel.services.approval_lifecycle import ApprovalLifecycle
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.event_bus import EventBus
from workflow_kernel.services.event_log import EventLog
from workflow_kernel.services.sequence_service import SequenceService
from workflow_kernel.services.transaction_lifecycle import TransactionLifecycle
from workflow_kernel.services.user_registry import UserRegistry

logger = get_logger("services.workflow_engine")

T = TypeVar("T")


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a successful command: the resulting entity and its events."""

    value: Any
    events: tuple[EventEnvelope, ...] = ()


class _UnitOfWork:
    """Services bound to one session, built fresh for every command."""

    def __init__(self, session: Session, clock: Clock, limits: ValidationLimits):
        sequences = SequenceService(session)
        self.store = EntityStore(session, sequences)
        self.events = EventLog(session, clock, sequences)
        self.users = UserRegistry(self.store, self.events, clock, limits)
        self.transactions = TransactionLifecycle(self.store, self.events, clock, limits)
        self.approvals = ApprovalLifecycle(
            self.store, self.events, self.transactions, clock, limits,
        )


class WorkflowEngine:
    """
    Facade over the workflow kernel.

    Every command takes the calling wallet address (``actor``) first and
    returns a ``CommandResult``; queries return frozen DTOs.

    Usage:
        engine = WorkflowEngine.from_config(get_active_config())
        result = engine.create_transaction(sender, receiver, 1000, "Invoice 7")
        result.value.status  # TransactionStatus.PENDING
    """

    def __init__(
        self,
        database: Database,
        bus: EventBus | None = None,
        clock: Clock | None = None,
        limits: ValidationLimits = DEFAULT_LIMITS,
    ):
        self._database = database
        self._bus = bus or EventBus()
        self._clock = clock or SystemClock()
        self._limits = limits

    @classmethod
    def from_config(
        cls,
        settings,
        clock: Clock | None = None,
    ) -> WorkflowEngine:
        """
        Build a ready engine: tables created and the owner bootstrapped.

        ``settings`` is a ``workflow_config`` WorkflowSettings; the kernel
        only reads its ``database``, ``owner``, ``limits`` and ``events``
        sections and never imports the config package.
        """
        database = Database(settings.database.url, echo=settings.database.echo)
        database.create_tables()
        engine = cls(
            database,
            bus=EventBus(retain_in_memory=settings.events.retain_in_memory),
            clock=clock,
            limits=settings.limits.to_validation_limits(),
        )
        engine.bootstrap_owner(
            settings.owner.address, settings.owner.name, settings.owner.email,
        )
        return engine

    @property
    def database(self) -> Database:
        return self._database

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def limits(self) -> ValidationLimits:
        return self._limits

    # ------------------------------------------------------------------
    # Command plumbing
    # ------------------------------------------------------------------

    def _execute(
        self,
        command: str,
        actor: str | None,
        operation: Callable[[_UnitOfWork], T],
    ) -> CommandResult:
        with LogContext.command_scope(command, actor):
            logger.info("command_started")
            with self._database.lock:
                try:
                    with self._database.transaction() as session:
                        uow = _UnitOfWork(session, self._clock, self._limits)
                        value = operation(uow)
                        events = tuple(uow.events.recorded)
                except WorkflowKernelError as exc:
                    logger.warning(
                        "command_rejected",
                        extra={
                            "code": exc.code,
                            "kind": exc.kind.value,
                            "error": str(exc),
                        },
                    )
                    raise

                logger.info(
                    "command_committed",
                    extra={
                        "event_count": len(events),
                        "sequence": events[-1].sequence if events else None,
                    },
                )
                # Enqueued before the lock is released, so every subscriber
                # queue follows commit order.
                self._bus.enqueue(events)
            # Handlers may read or issue commands, so they run unlocked
            self._bus.deliver_pending()
        return CommandResult(value=value, events=events)

    def _read(self, operation: Callable[[EntityStore], T]) -> T:
        with self._database.snapshot() as session:
            return operation(EntityStore(session))

    @staticmethod
    def _caller(actor: Any) -> str:
        return normalize_address(actor, "actor")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def bootstrap_owner(self, wallet_address: str, name: str, email: str) -> CommandResult:
        """Create the genesis Admin if it does not exist yet."""
        return self._execute(
            "bootstrap_owner",
            wallet_address,
            lambda uow: uow.users.bootstrap_owner(wallet_address, name, email),
        )

    def register_user(
        self,
        actor: str,
        wallet_address: str,
        name: str,
        email: str,
        role: UserRole = UserRole.REGULAR,
    ) -> CommandResult:
        def operation(uow: _UnitOfWork) -> User:
            caller = self._caller(actor)
            wallet = normalize_address(wallet_address, "wallet_address")
            requested_role = require_role(role)
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.REGISTER_USER,
                    RegistrationTarget(wallet, requested_role),
                    actor_address=caller,
                ),
                Action.REGISTER_USER,
                caller,
            )
            return uow.users.register(wallet, name, email, requested_role)

        return self._execute("register_user", actor, operation)

    def self_register(self, actor: str, name: str, email: str) -> CommandResult:
        """Register the calling wallet itself.  The role is always REGULAR."""
        def operation(uow: _UnitOfWork) -> User:
            caller = self._caller(actor)
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.REGISTER_USER,
                    RegistrationTarget(caller, UserRole.REGULAR),
                    actor_address=caller,
                ),
                Action.REGISTER_USER,
                caller,
            )
            return uow.users.register(caller, name, email, UserRole.REGULAR)

        return self._execute("self_register", actor, operation)

    def update_user_role(self, actor: str, wallet_address: str, role: UserRole) -> CommandResult:
        def operation(uow: _UnitOfWork) -> User:
            caller = self._caller(actor)
            require(
                can_perform(uow.store.find_user_by_address(caller), Action.UPDATE_USER_ROLE),
                Action.UPDATE_USER_ROLE,
                caller,
            )
            return uow.users.update_role(wallet_address, role)

        return self._execute("update_user_role", actor, operation)

    def deactivate_user(self, actor: str, wallet_address: str) -> CommandResult:
        def operation(uow: _UnitOfWork) -> User:
            caller = self._caller(actor)
            wallet = normalize_address(wallet_address, "wallet_address")
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.DEACTIVATE_USER,
                    uow.store.find_user_by_address(wallet),
                ),
                Action.DEACTIVATE_USER,
                caller,
            )
            return uow.users.deactivate(wallet)

        return self._execute("deactivate_user", actor, operation)

    def create_transaction(
        self,
        actor: str,
        to_address: str,
        amount: int,
        description: str,
    ) -> CommandResult:
        """Create a PENDING transaction sent by ``actor``."""
        def operation(uow: _UnitOfWork) -> Transaction:
            caller = self._caller(actor)
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.CREATE_TRANSACTION,
                    caller,
                ),
                Action.CREATE_TRANSACTION,
                caller,
            )
            return uow.transactions.create(caller, to_address, amount, description)

        return self._execute("create_transaction", actor, operation)

    def request_approval(self, actor: str, transaction_id: int, reason: str) -> CommandResult:
        def operation(uow: _UnitOfWork) -> Approval:
            caller = self._caller(actor)
            tx_id = require_id(transaction_id, "transaction_id")
            transaction = uow.store.get_transaction(tx_id)
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.REQUEST_APPROVAL,
                    transaction,
                ),
                Action.REQUEST_APPROVAL,
                caller,
            )
            return uow.approvals.request(tx_id, caller, reason)

        return self._execute("request_approval", actor, operation)

    def process_approval(
        self,
        actor: str,
        approval_id: int,
        approved: bool,
        reason: str = "",
    ) -> CommandResult:
        """Approve or reject; the linked transaction moves in the same commit."""
        def operation(uow: _UnitOfWork) -> Approval:
            caller = self._caller(actor)
            ap_id = require_id(approval_id, "approval_id")
            approval = uow.store.get_approval(ap_id)
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.PROCESS_APPROVAL,
                    approval,
                ),
                Action.PROCESS_APPROVAL,
                caller,
            )
            if not isinstance(approved, bool):
                raise InvalidInputError("approved", "must be a boolean")
            return uow.approvals.process(ap_id, caller, approved, reason)

        return self._execute("process_approval", actor, operation)

    def complete_transaction(self, actor: str, transaction_id: int) -> CommandResult:
        def operation(uow: _UnitOfWork) -> Transaction:
            caller = self._caller(actor)
            tx_id = require_id(transaction_id, "transaction_id")
            transaction = uow.store.get_transaction(tx_id)
            require(
                can_perform(
                    uow.store.find_user_by_address(caller),
                    Action.COMPLETE_TRANSACTION,
                    transaction,
                ),
                Action.COMPLETE_TRANSACTION,
                caller,
            )
            return uow.transactions.complete(tx_id, caller)

        return self._execute("complete_transaction", actor, operation)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user(self, wallet_address: str) -> User:
        wallet = normalize_address(wallet_address, "wallet_address")
        return self._read(lambda store: store.get_user_by_address(wallet))

    def find_user(self, wallet_address: str) -> User | None:
        wallet = normalize_address(wallet_address, "wallet_address")
        return self._read(lambda store: store.find_user_by_address(wallet))

    def get_all_users(self, actor: str) -> list[User]:
        """Registered users, owner excluded.  Admin only."""
        caller = self._caller(actor)

        def operation(store: EntityStore) -> list[User]:
            self._authorize_read(store, caller, Action.LIST_USERS)
            return store.list_users()

        return self._read(operation)

    def get_transaction(self, transaction_id: int) -> Transaction:
        tx_id = require_id(transaction_id, "transaction_id")
        return self._read(lambda store: store.get_transaction(tx_id))

    def get_user_transactions(self, wallet_address: str) -> list[Transaction]:
        """Transactions sent or received by ``wallet_address``, oldest first."""
        wallet = normalize_address(wallet_address, "wallet_address")
        return self._read(lambda store: store.list_transactions_for(wallet))

    def get_recent_transactions(self, count: int) -> list[Transaction]:
        """Up to ``count`` newest transactions, newest first.  0 gives ``[]``."""
        requested = require_count(count, sys.maxsize, minimum=0)
        if requested == 0:
            return []
        limit = min(requested, self._limits.recent_transactions_max)
        return self._read(lambda store: store.recent_transactions(limit))

    def get_all_transactions(self, actor: str) -> list[Transaction]:
        caller = self._caller(actor)

        def operation(store: EntityStore) -> list[Transaction]:
            self._authorize_read(store, caller, Action.LIST_TRANSACTIONS)
            return store.list_transactions()

        return self._read(operation)

    def get_approval(self, approval_id: int) -> Approval:
        ap_id = require_id(approval_id, "approval_id")
        return self._read(lambda store: store.get_approval(ap_id))

    def get_pending_approvals(self, actor: str) -> list[Approval]:
        caller = self._caller(actor)

        def operation(store: EntityStore) -> list[Approval]:
            self._authorize_read(store, caller, Action.LIST_PENDING_APPROVALS)
            return store.list_pending_approvals()

        return self._read(operation)

    def get_transaction_count(self) -> int:
        return self._read(lambda store: store.count_transactions())

    def get_approval_count(self) -> int:
        return self._read(lambda store: store.count_approvals())

    def get_user_count(self) -> int:
        """Registered users, owner excluded."""
        return self._read(lambda store: store.count_users())

    def get_dashboard_metrics(self, actor: str) -> DashboardMetrics:
        """
        Platform totals as seen by ``actor``.

        Pending approvals are only counted for Admins and Managers; other
        callers (including unregistered wallets) see 0.
        """
        caller = self._caller(actor)

        def operation(store: EntityStore) -> DashboardMetrics:
            viewer = store.find_user_by_address(caller)
            can_view_approvals = can_perform(
                viewer, Action.LIST_PENDING_APPROVALS,
            ).allowed
            transactions = store.list_transactions()
            by_status = {status: 0 for status in TransactionStatus}
            completed_volume = 0
            for tx in transactions:
                by_status[tx.status] += 1
                if tx.status == TransactionStatus.COMPLETED:
                    completed_volume += tx.amount
            return DashboardMetrics(
                total_transactions=len(transactions),
                total_approvals=store.count_approvals(),
                total_users=store.count_users(),
                pending_approvals=(
                    len(store.list_pending_approvals()) if can_view_approvals else 0
                ),
                completed_volume=completed_volume,
                transactions_by_status=by_status,
            )

        return self._read(operation)

    def state_fingerprint(self) -> str:
        """Hash of every entity; equal before and after a rejected command."""
        return self._read(lambda store: store.state_fingerprint())

    def events_since(self, sequence: int = 0, limit: int | None = None) -> list[EventEnvelope]:
        """Committed events after ``sequence``, for replay."""
        with self._database.snapshot() as session:
            return EventLog(session, self._clock).events_since(sequence, limit)

    @staticmethod
    def _authorize_read(store: EntityStore, caller: str, action: Action) -> None:
        require(
            can_perform(store.find_user_by_address(caller), action),
            action,
            caller,
        )
