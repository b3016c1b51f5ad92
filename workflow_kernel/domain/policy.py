"""
Authorization policy (``workflow_kernel.domain.policy``).

Responsibility
--------------
Decides whether an actor may perform an action on a target.  A pure
function of its inputs: no store access, no clock, no logging.  Callers
load the actor and target snapshots first and pass them in.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Consumed by the services, which turn a
denial into ``UnauthorizedError`` via ``require()``.

Rules
-----
=========================  ==============================================
Action                     Allowed when
=========================  ==============================================
REGISTER_USER              actor is Admin, or actor registers its own
                           wallet with role REGULAR (self-registration)
UPDATE_USER_ROLE           actor is Admin
DEACTIVATE_USER            actor is Admin and target is not the owner
CREATE_TRANSACTION         actor is active and ``from`` is its own address
REQUEST_APPROVAL           actor is Admin/Manager, or is the transaction's
                           receiver (``to``).  The sender alone is denied.
PROCESS_APPROVAL           actor is Admin or Manager
COMPLETE_TRANSACTION       actor is the transaction's sender (``from``)
LIST_USERS                 actor is Admin
LIST_TRANSACTIONS          actor is Admin
LIST_PENDING_APPROVALS     actor is Admin or Manager
single-entity reads        always
=========================  ==============================================

Every action other than self-registration and the unrestricted reads
requires an active, registered actor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from workflow_kernel.domain.entities import Transaction, User, UserRole
from workflow_kernel.exceptions import UnauthorizedError


class Action(str, Enum):
    """Operations subject to authorization."""

    REGISTER_USER = "register_user"
    UPDATE_USER_ROLE = "update_user_role"
    DEACTIVATE_USER = "deactivate_user"
    CREATE_TRANSACTION = "create_transaction"
    REQUEST_APPROVAL = "request_approval"
    PROCESS_APPROVAL = "process_approval"
    COMPLETE_TRANSACTION = "complete_transaction"
    GET_USER = "get_user"
    GET_TRANSACTION = "get_transaction"
    GET_APPROVAL = "get_approval"
    GET_USER_TRANSACTIONS = "get_user_transactions"
    LIST_USERS = "list_users"
    LIST_TRANSACTIONS = "list_transactions"
    LIST_PENDING_APPROVALS = "list_pending_approvals"


UNRESTRICTED_ACTIONS: frozenset[Action] = frozenset({
    Action.GET_USER,
    Action.GET_TRANSACTION,
    Action.GET_APPROVAL,
    Action.GET_USER_TRANSACTIONS,
})


@dataclass(frozen=True)
class RegistrationTarget:
    """Target of REGISTER_USER: the wallet being registered and its role."""

    wallet_address: str
    role: UserRole


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of ``can_perform``.  ``reason`` explains a denial."""

    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> PolicyDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> PolicyDecision:
        return cls(allowed=False, reason=reason)


def _is_admin_or_manager(actor: User) -> bool:
    return actor.role in (UserRole.ADMIN, UserRole.MANAGER)


def can_perform(
    actor: User | None,
    action: Action,
    target: Any = None,
    *,
    actor_address: str | None = None,
) -> PolicyDecision:
    """
    Decide whether ``actor`` may perform ``action`` on ``target``.

    Args:
        actor: Snapshot of the calling user, or None when the calling
            wallet is not registered.
        action: The operation being attempted.
        target: Action-specific target -- a ``RegistrationTarget``, a
            ``User``, a ``Transaction``, an ``Approval``, or the ``from``
            address for CREATE_TRANSACTION.
        actor_address: Normalized calling wallet.  Needed for
            self-registration, where ``actor`` may be None.

    Returns:
        PolicyDecision.  Never raises.
    """
    if action in UNRESTRICTED_ACTIONS:
        return PolicyDecision.allow()

    if action == Action.REGISTER_USER:
        return _decide_registration(actor, target, actor_address)

    if actor is None:
        return PolicyDecision.deny("caller is not a registered user")
    if not actor.is_active:
        return PolicyDecision.deny("caller account is inactive")

    if action == Action.UPDATE_USER_ROLE:
        if actor.role != UserRole.ADMIN:
            return PolicyDecision.deny("Admin role required")
        return PolicyDecision.allow()

    if action == Action.DEACTIVATE_USER:
        if actor.role != UserRole.ADMIN:
            return PolicyDecision.deny("Admin role required")
        if isinstance(target, User) and target.is_owner:
            return PolicyDecision.deny("the platform owner cannot be deactivated")
        return PolicyDecision.allow()

    if action == Action.CREATE_TRANSACTION:
        if target != actor.wallet_address:
            return PolicyDecision.deny("transactions must be sent from the caller's own address")
        return PolicyDecision.allow()

    if action == Action.REQUEST_APPROVAL:
        if _is_admin_or_manager(actor):
            return PolicyDecision.allow()
        if isinstance(target, Transaction) and target.to_address == actor.wallet_address:
            return PolicyDecision.allow()
        return PolicyDecision.deny(
            "only the receiver, a Manager or an Admin can request approval"
        )

    if action == Action.PROCESS_APPROVAL:
        if _is_admin_or_manager(actor):
            return PolicyDecision.allow()
        return PolicyDecision.deny("Manager or Admin role required")

    if action == Action.COMPLETE_TRANSACTION:
        if isinstance(target, Transaction) and target.from_address == actor.wallet_address:
            return PolicyDecision.allow()
        return PolicyDecision.deny("only the sender can complete a transaction")

    if action in (Action.LIST_USERS, Action.LIST_TRANSACTIONS):
        if actor.role != UserRole.ADMIN:
            return PolicyDecision.deny("Admin role required")
        return PolicyDecision.allow()

    if action == Action.LIST_PENDING_APPROVALS:
        if _is_admin_or_manager(actor):
            return PolicyDecision.allow()
        return PolicyDecision.deny("Manager or Admin role required")

    return PolicyDecision.deny(f"no rule for {action.value}")


def _decide_registration(
    actor: User | None,
    target: Any,
    actor_address: str | None,
) -> PolicyDecision:
    if not isinstance(target, RegistrationTarget):
        return PolicyDecision.deny("registration target missing")

    if actor is not None and actor.is_active and actor.role == UserRole.ADMIN:
        return PolicyDecision.allow()

    caller = actor.wallet_address if actor is not None else actor_address
    if caller is None or caller != target.wallet_address:
        return PolicyDecision.deny("Admin role required to register other wallets")
    if target.role != UserRole.REGULAR:
        return PolicyDecision.deny("self-registration is limited to the Regular role")
    return PolicyDecision.allow()


def require(
    decision: PolicyDecision,
    action: Action,
    actor_address: str | None,
) -> None:
    """Raise ``UnauthorizedError`` if ``decision`` is a denial."""
    if not decision.allowed:
        raise UnauthorizedError(action.value, actor_address, decision.reason)
