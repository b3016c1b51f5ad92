"""
EntityStore -- the only gateway to the user, transaction and approval tables.

Responsibility:
    Creates, loads, lists and updates workflow entities inside the caller's
    unit of work, and hands back frozen DTOs.  Lifecycle managers mutate
    entities exclusively through ``update_*(id, mutator)``; nobody keeps a
    private copy of an entity.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Ids are allocated by SequenceService: 1, 2, 3, ... per entity type.
    - Wallet addresses are stored and compared lower-cased.
    - ``update_*`` raises the matching NotFoundError for unknown ids.
    - Approvals may only reference existing transactions.

Failure modes:
    - UserNotFoundError / TransactionNotFoundError / ApprovalNotFoundError.
    - UserAlreadyExistsError when creating a user for a taken address.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from sqlalchemy import or_, select

from workflow_kernel.domain.entities import (
    NO_APPROVAL,
    Approval,
    ApprovalStatus,
    ApprovalType,
    Transaction,
    TransactionStatus,
    User,
    UserRole,
)
from workflow_kernel.exceptions import (
    ApprovalNotFoundError,
    TransactionNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.approval import ApprovalModel
from workflow_kernel.models.transaction import TransactionModel
from workflow_kernel.models.user import UserModel
from workflow_kernel.services.base import BaseService
from workflow_kernel.services.sequence_service import SequenceService
from workflow_kernel.utils.hashing import hash_payload

logger = get_logger("services.entity_store")


class EntityStore(BaseService):
    """
    Session-bound repository for the three workflow tables.

    Contract:
        All public methods return DTOs, never ORM objects.  Mutators passed
        to ``update_*`` receive the ORM row and may change its columns; the
        store flushes afterwards.
    """

    def __init__(self, session, sequences: SequenceService | None = None):
        super().__init__(session)
        self._sequences = sequences or SequenceService(session)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(
        self,
        wallet_address: str,
        name: str,
        email: str,
        role: UserRole,
        created_at: datetime,
        is_owner: bool = False,
    ) -> User:
        """Insert a new user.  ``wallet_address`` must already be normalized."""
        if self._find_user_model(wallet_address) is not None:
            raise UserAlreadyExistsError(wallet_address)

        model = UserModel(
            id=self._sequences.next_value(SequenceService.USER),
            wallet_address=wallet_address,
            name=name,
            email=email,
            role=int(role),
            is_active=True,
            is_owner=is_owner,
            created_at=created_at,
        )
        self._persist(model)
        logger.debug("user_row_created", extra={"user_id": model.id})
        return model.to_dto()

    def get_user(self, user_id: int) -> User:
        return self._load_user_model(user_id).to_dto()

    def get_user_by_address(self, wallet_address: str) -> User:
        model = self._find_user_model(wallet_address)
        if model is None:
            raise UserNotFoundError(wallet_address)
        return model.to_dto()

    def find_user_by_address(self, wallet_address: str) -> User | None:
        model = self._find_user_model(wallet_address)
        return model.to_dto() if model is not None else None

    def list_users(self, include_owner: bool = False) -> list[User]:
        """All users ordered by id.  The genesis owner is excluded by default."""
        stmt = select(UserModel).order_by(UserModel.id)
        if not include_owner:
            stmt = stmt.where(UserModel.is_owner.is_(False))
        return [m.to_dto() for m in self._rows(stmt)]

    def count_users(self) -> int:
        """Registered users, excluding the genesis owner."""
        return self._count(UserModel, UserModel.is_owner.is_(False))

    def count_active_admins(self) -> int:
        return self._count(
            UserModel,
            UserModel.role == int(UserRole.ADMIN),
            UserModel.is_active.is_(True),
        )

    def update_user(self, user_id: int, mutator: Callable[[UserModel], None]) -> User:
        return self._mutate(self._load_user_model(user_id), mutator).to_dto()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        from_address: str,
        to_address: str,
        amount: int,
        description: str,
        timestamp: datetime,
    ) -> Transaction:
        model = TransactionModel(
            id=self._sequences.next_value(SequenceService.TRANSACTION),
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            description=description,
            status=int(TransactionStatus.PENDING),
            approval_id=NO_APPROVAL,
            timestamp=timestamp,
        )
        return self._persist(model).to_dto()

    def get_transaction(self, transaction_id: int) -> Transaction:
        return self._load_transaction_model(transaction_id).to_dto()

    def list_transactions(self) -> list[Transaction]:
        return [m.to_dto() for m in self._rows(
            select(TransactionModel).order_by(TransactionModel.id)
        )]

    def list_transactions_for(self, wallet_address: str) -> list[Transaction]:
        """Transactions the address sent or receives, oldest first."""
        return [m.to_dto() for m in self._rows(
            select(TransactionModel).where(
                or_(
                    TransactionModel.from_address == wallet_address,
                    TransactionModel.to_address == wallet_address,
                )
            ).order_by(TransactionModel.id)
        )]

    def recent_transactions(self, count: int) -> list[Transaction]:
        """The ``count`` newest transactions, newest first."""
        return [m.to_dto() for m in self._rows(
            select(TransactionModel)
            .order_by(TransactionModel.id.desc())
            .limit(count)
        )]

    def count_transactions(self) -> int:
        return self._count(TransactionModel)

    def update_transaction(
        self,
        transaction_id: int,
        mutator: Callable[[TransactionModel], None],
    ) -> Transaction:
        return self._mutate(self._load_transaction_model(transaction_id), mutator).to_dto()

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def create_approval(
        self,
        transaction_id: int,
        requester: str,
        reason: str,
        timestamp: datetime,
        approval_type: ApprovalType = ApprovalType.TRANSACTION,
    ) -> Approval:
        # Referential integrity is checked here so the caller gets a typed
        # error rather than an IntegrityError at flush time.
        self._load_transaction_model(transaction_id)

        model = ApprovalModel(
            id=self._sequences.next_value(SequenceService.APPROVAL),
            transaction_id=transaction_id,
            requester=requester,
            approver="",
            approval_type=int(approval_type),
            status=int(ApprovalStatus.PENDING),
            reason=reason,
            decision_reason="",
            timestamp=timestamp,
        )
        return self._persist(model).to_dto()

    def get_approval(self, approval_id: int) -> Approval:
        return self._load_approval_model(approval_id).to_dto()

    def list_pending_approvals(self) -> list[Approval]:
        return [m.to_dto() for m in self._rows(
            select(ApprovalModel)
            .where(ApprovalModel.status == int(ApprovalStatus.PENDING))
            .order_by(ApprovalModel.id)
        )]

    def list_approvals(self) -> list[Approval]:
        return [m.to_dto() for m in self._rows(
            select(ApprovalModel).order_by(ApprovalModel.id)
        )]

    def count_approvals(self) -> int:
        return self._count(ApprovalModel)

    def update_approval(
        self,
        approval_id: int,
        mutator: Callable[[ApprovalModel], None],
    ) -> Approval:
        return self._mutate(self._load_approval_model(approval_id), mutator).to_dto()

    # ------------------------------------------------------------------
    # Whole-store views
    # ------------------------------------------------------------------

    def state_fingerprint(self) -> str:
        """SHA-256 over every user, transaction and approval, in id order."""
        return hash_payload({
            "users": self.list_users(include_owner=True),
            "transactions": self.list_transactions(),
            "approvals": self.list_approvals(),
        })

    # ------------------------------------------------------------------
    # Internal loaders
    # ------------------------------------------------------------------

    def _find_user_model(self, wallet_address: str) -> UserModel | None:
        return self.session.execute(
            select(UserModel).where(
                UserModel.wallet_address == wallet_address.lower(),
            )
        ).scalar_one_or_none()

    def _load_user_model(self, user_id: int) -> UserModel:
        model = self.session.get(UserModel, user_id)
        if model is None:
            raise UserNotFoundError(str(user_id))
        return model

    def _load_transaction_model(self, transaction_id: int) -> TransactionModel:
        model = self.session.get(TransactionModel, transaction_id)
        if model is None:
            raise TransactionNotFoundError(transaction_id)
        return model

    def _load_approval_model(self, approval_id: int) -> ApprovalModel:
        model = self.session.get(ApprovalModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(approval_id)
        return model
