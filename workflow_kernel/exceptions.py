"""
Typed Exception Hierarchy for the Workflow Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (a web adapter, an RPC bridge, a test) must be able to
react to a failure without reading its message.  Matching on message text is
fragile: wording changes silently break the caller.

Every exception therefore carries:
  1. A TYPED class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. A KIND class attribute -- one of the closed ``ErrorKind`` set
  4. Structured DATA as attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        engine.request_approval(actor, tx_id, "ok")
    except Exception as e:
        if "already requested" in str(e):   # FRAGILE
            ...

Example - RIGHT way:
    try:
        engine.request_approval(actor, tx_id, "ok")
    except AlreadyLinkedError as e:
        show_existing(e.approval_id)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    WorkflowKernelError (base)
    |
    +-- NotFoundError                    kind=NOT_FOUND
    |   +-- UserNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- ApprovalNotFoundError
    |
    +-- AlreadyExistsError               kind=ALREADY_EXISTS
    |   +-- UserAlreadyExistsError
    |
    +-- UnauthorizedError                kind=UNAUTHORIZED
    |
    +-- InvalidInputError                kind=INVALID_INPUT
    |
    +-- InvalidStateError                kind=INVALID_STATE
    |   +-- InvalidTransitionError
    |   +-- LastAdminError
    |   +-- TerminalStateViolationError
    |
    +-- AlreadyLinkedError               kind=ALREADY_LINKED

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Kind            | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NOT_FOUND       | USER_NOT_FOUND              | Wallet or user id is not registered
                | TRANSACTION_NOT_FOUND       | Transaction id unknown
                | APPROVAL_NOT_FOUND          | Approval id unknown
ALREADY_EXISTS  | USER_ALREADY_EXISTS         | Active user already holds the wallet
UNAUTHORIZED    | UNAUTHORIZED                | Policy denied the action
INVALID_INPUT   | INVALID_INPUT               | Empty/oversized/malformed field, bad amount
INVALID_STATE   | INVALID_TRANSITION          | Action illegal for the entity's status
                | LAST_ADMIN                  | Change would leave no active Admin
                | TERMINAL_STATE_VIOLATION    | Row in terminal status was modified
ALREADY_LINKED  | APPROVAL_ALREADY_LINKED     | Transaction already has an approval

All command failures are atomic: the unit of work is rolled back before the
exception reaches the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced by the facade."""

    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    UNAUTHORIZED = "unauthorized"
    INVALID_INPUT = "invalid_input"
    INVALID_STATE = "invalid_state"
    ALREADY_LINKED = "already_linked"


class WorkflowKernelError(Exception):
    """
    Base exception for all workflow kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification and a ``kind`` drawn from ``ErrorKind``.
    """

    code: str = "WORKFLOW_KERNEL_ERROR"
    kind: ErrorKind = ErrorKind.INVALID_STATE


# Not-found exceptions


class NotFoundError(WorkflowKernelError):
    """Base exception for unknown ids or addresses."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class UserNotFoundError(NotFoundError):
    """No user registered for the given wallet address or id."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_ref: str):
        self.user_ref = user_ref
        super().__init__(f"User not found: {user_ref}")


class TransactionNotFoundError(NotFoundError):
    """Transaction with given id was not found."""

    code: str = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction not found: {transaction_id}")


class ApprovalNotFoundError(NotFoundError):
    """Approval with given id was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: int):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


# Duplicate exceptions


class AlreadyExistsError(WorkflowKernelError):
    """Base exception for duplicate registrations."""

    code: str = "ALREADY_EXISTS"
    kind: ErrorKind = ErrorKind.ALREADY_EXISTS


class UserAlreadyExistsError(AlreadyExistsError):
    """An active user is already registered for this wallet address."""

    code: str = "USER_ALREADY_EXISTS"

    def __init__(self, wallet_address: str):
        self.wallet_address = wallet_address
        super().__init__(f"User already registered: {wallet_address}")


# Authorization


class UnauthorizedError(WorkflowKernelError):
    """
    The authorization policy denied the action.

    ``reason`` is the policy's explanation and is safe to show to the actor.
    """

    code: str = "UNAUTHORIZED"
    kind: ErrorKind = ErrorKind.UNAUTHORIZED

    def __init__(self, action: str, actor: str | None, reason: str):
        self.action = action
        self.actor = actor
        self.reason = reason
        super().__init__(f"Unauthorized {action} by {actor or '<anonymous>'}: {reason}")


# Input validation


class InvalidInputError(WorkflowKernelError):
    """A command argument is empty, oversized, malformed or out of range."""

    code: str = "INVALID_INPUT"
    kind: ErrorKind = ErrorKind.INVALID_INPUT

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# State machine exceptions


class InvalidStateError(WorkflowKernelError):
    """Base exception for actions that are illegal in the current state."""

    code: str = "INVALID_STATE"
    kind: ErrorKind = ErrorKind.INVALID_STATE


class InvalidTransitionError(InvalidStateError):
    """The entity's current status does not allow the requested action."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: int,
        current_status: str,
        action: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} {entity_type} {entity_id} in status {current_status}"
        )


class LastAdminError(InvalidStateError):
    """The change would leave the platform without an active Admin."""

    code: str = "LAST_ADMIN"

    def __init__(self, wallet_address: str):
        self.wallet_address = wallet_address
        super().__init__(
            f"Cannot remove Admin role from {wallet_address}: "
            "it is the last active Admin"
        )


class TerminalStateViolationError(InvalidStateError):
    """
    A row already in a terminal status was modified.

    Raised by ORM listeners; reaching it means a service skipped its own
    transition check.
    """

    code: str = "TERMINAL_STATE_VIOLATION"

    def __init__(self, entity_type: str, entity_id: int, status: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.status = status
        super().__init__(
            f"{entity_type} {entity_id} is terminal ({status}) and cannot change"
        )


# Linking


class AlreadyLinkedError(WorkflowKernelError):
    """Approval was already requested for this transaction."""

    code: str = "APPROVAL_ALREADY_LINKED"
    kind: ErrorKind = ErrorKind.ALREADY_LINKED

    def __init__(self, transaction_id: int, approval_id: int):
        self.transaction_id = transaction_id
        self.approval_id = approval_id
        super().__init__(
            f"Transaction {transaction_id} already linked to approval {approval_id}"
        )


def error_payload(exc: WorkflowKernelError) -> dict[str, Any]:
    """Render an exception as a structured dict for adapters."""
    payload: dict[str, Any] = {
        "code": exc.code,
        "kind": exc.kind.value,
        "message": str(exc),
    }
    for key, val in vars(exc).items():
        if not key.startswith("_") and key not in payload:
            payload[key] = val
    return payload
