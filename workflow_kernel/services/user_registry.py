"""
UserRegistry -- registration, role changes and deactivation of users.

Responsibility:
    Validates user fields, enforces wallet uniqueness, and keeps at least
    one active Admin on the platform.  Records the user events.

Architecture position:
    Kernel > Services.  Called by the workflow engine after authorization.

Invariants enforced:
    - At most one user per wallet address.  Registering an address whose
      user is inactive reactivates that same user (same id).
    - At least one active Admin at all times: demoting or deactivating the
      last one raises LastAdminError.
    - The genesis owner is created once by ``bootstrap_owner``.

Failure modes:
    - InvalidInputError: malformed address, name, email or role.
    - UserAlreadyExistsError: the address belongs to an active user.
    - UserNotFoundError: role change or deactivation of an unknown address.
    - LastAdminError / InvalidTransitionError.
"""

from __future__ import annotations

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.entities import User, UserRole
from workflow_kernel.domain.events import (
    UserDeactivated,
    UserRegistered,
    UserRoleUpdated,
)
from workflow_kernel.domain.validation import (
    DEFAULT_LIMITS,
    ValidationLimits,
    normalize_address,
    require_email,
    require_role,
    require_text,
)
from workflow_kernel.exceptions import (
    InvalidTransitionError,
    LastAdminError,
    UserAlreadyExistsError,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.event_log import EventLog

logger = get_logger("services.user_registry")


class UserRegistry:
    """User lifecycle inside the caller's unit of work."""

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

    def bootstrap_owner(self, wallet_address: str, name: str, email: str) -> User:
        """
        Create the genesis Admin.  Returns the existing owner when present.

        Raises:
            UserAlreadyExistsError: the wallet is already registered as an
                ordinary user, so it cannot become the owner.
        """
        address = normalize_address(wallet_address, "wallet_address")
        existing = self._store.find_user_by_address(address)
        if existing is not None:
            if not existing.is_owner:
                raise UserAlreadyExistsError(address)
            return existing

        owner = self._store.create_user(
            wallet_address=address,
            name=require_text(name, "name", self._limits.name_max_length),
            email=require_email(email, self._limits.email_max_length),
            role=UserRole.ADMIN,
            created_at=self._clock.now(),
            is_owner=True,
        )
        self._events.append(
            UserRegistered(user_id=owner.id, wallet_address=address, name=owner.name)
        )
        logger.info("owner_bootstrapped", extra={"user_id": owner.id, "wallet_address": address})
        return owner

    def register(
        self,
        wallet_address: str,
        name: str,
        email: str,
        role: UserRole = UserRole.REGULAR,
    ) -> User:
        """
        Register ``wallet_address`` with the given profile and role.

        An inactive user at the same address is reactivated with the new
        profile and keeps its id.
        """
        address = normalize_address(wallet_address, "wallet_address")
        name = require_text(name, "name", self._limits.name_max_length)
        email = require_email(email, self._limits.email_max_length)
        role = require_role(role)

        existing = self._store.find_user_by_address(address)
        if existing is not None:
            if existing.is_active:
                raise UserAlreadyExistsError(address)

            def _reactivate(model):
                model.name = name
                model.email = email
                model.role = int(role)
                model.is_active = True

            user = self._store.update_user(existing.id, _reactivate)
            logger.info(
                "user_reactivated",
                extra={"user_id": user.id, "wallet_address": address, "role": role.name},
            )
        else:
            user = self._store.create_user(
                wallet_address=address,
                name=name,
                email=email,
                role=role,
                created_at=self._clock.now(),
            )
            logger.info(
                "user_registered",
                extra={"user_id": user.id, "wallet_address": address, "role": role.name},
            )

        self._events.append(
            UserRegistered(user_id=user.id, wallet_address=address, name=name)
        )
        return user

    def update_role(self, wallet_address: str, role: UserRole) -> User:
        address = normalize_address(wallet_address, "wallet_address")
        role = require_role(role)
        current = self._store.get_user_by_address(address)

        if current.is_admin and role != UserRole.ADMIN:
            self._guard_last_admin(current)

        def _set_role(model):
            model.role = int(role)

        user = self._store.update_user(current.id, _set_role)
        self._events.append(UserRoleUpdated(wallet_address=address, new_role=role))
        logger.info(
            "user_role_updated",
            extra={
                "wallet_address": address,
                "from_role": current.role.name,
                "to_role": role.name,
            },
        )
        return user

    def deactivate(self, wallet_address: str) -> User:
        address = normalize_address(wallet_address, "wallet_address")
        current = self._store.get_user_by_address(address)
        if not current.is_active:
            raise InvalidTransitionError("User", current.id, "INACTIVE", "deactivate")
        if current.is_admin:
            self._guard_last_admin(current)

        def _deactivate(model):
            model.is_active = False

        user = self._store.update_user(current.id, _deactivate)
        self._events.append(UserDeactivated(wallet_address=address))
        logger.info("user_deactivated", extra={"user_id": user.id, "wallet_address": address})
        return user

    def _guard_last_admin(self, admin: User) -> None:
        if self._store.count_active_admins() <= 1:
            logger.warning(
                "last_admin_protected", extra={"wallet_address": admin.wallet_address},
            )
            raise LastAdminError(admin.wallet_address)
