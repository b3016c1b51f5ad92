"""
Module: workflow_kernel.models.user
Responsibility: ORM persistence for platform users.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/entities.py (enums and DTOs only).

Invariants enforced:
    - At most one user per wallet address: ``wallet_address`` is stored
      lower-cased and is UNIQUE, so lookups are case-insensitive.
    - ``role`` is one of the UserRole values (check constraint).

Failure modes:
    - IntegrityError on duplicate wallet_address (the registry checks first
      and raises UserAlreadyExistsError; the constraint is the backstop).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Index, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import EntityBase
from workflow_kernel.domain.entities import User, UserRole


class UserModel(EntityBase):
    """Persistent user record."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint("role IN (0, 1, 2)", name="ck_users_valid_role"),
        Index("ix_users_role_active", "role", "is_active"),
    )

    wallet_address: Mapped[str] = mapped_column(
        String(42), nullable=False, unique=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    role: Mapped[int] = mapped_column(
        SmallInteger, nullable=False, default=int(UserRole.REGULAR),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_owner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<User {self.id} {self.wallet_address} role={self.role}>"

    def to_dto(self) -> User:
        """Convert ORM model to frozen domain DTO."""
        return User(
            id=self.id,
            wallet_address=self.wallet_address,
            name=self.name,
            email=self.email,
            role=UserRole(self.role),
            is_active=self.is_active,
            created_at=self.created_at,
            is_owner=self.is_owner,
        )
