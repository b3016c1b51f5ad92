"""
Tests for the authorization policy (``workflow_kernel.domain.policy``).

The policy is a pure function: every case builds actor and target
snapshots by hand, with no database.
"""

from datetime import datetime, timezone

import pytest

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
from workflow_kernel.domain.policy import (
    Action,
    PolicyDecision,
    RegistrationTarget,
    can_perform,
    require,
)
from workflow_kernel.exceptions import UnauthorizedError

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)
SENDER = "0x" + "1" * 40
RECEIVER = "0x" + "2" * 40
OTHER = "0x" + "3" * 40


def _user(address, role=UserRole.REGULAR, active=True, owner=False) -> User:
    return User(
        id=1, wallet_address=address, name="n", email="n@x.io",
        role=role, is_active=active, created_at=NOW, is_owner=owner,
    )


TX = Transaction(
    id=1, from_address=SENDER, to_address=RECEIVER, amount=5, description="d",
    status=TransactionStatus.PENDING, approval_id=NO_APPROVAL, timestamp=NOW,
)
APPROVAL = Approval(
    id=1, transaction_id=1, requester=RECEIVER, approver="",
    approval_type=ApprovalType.TRANSACTION, status=ApprovalStatus.PENDING,
    reason="r", decision_reason="", timestamp=NOW,
)

ADMIN = _user(OTHER, UserRole.ADMIN)
MANAGER = _user(OTHER, UserRole.MANAGER)


class TestRegistration:
    def test_admin_registers_any_role(self):
        target = RegistrationTarget(SENDER, UserRole.ADMIN)
        assert can_perform(ADMIN, Action.REGISTER_USER, target).allowed

    def test_unregistered_wallet_self_registers_as_regular(self):
        target = RegistrationTarget(SENDER, UserRole.REGULAR)
        decision = can_perform(None, Action.REGISTER_USER, target, actor_address=SENDER)
        assert decision.allowed

    def test_self_registration_cannot_pick_a_higher_role(self):
        target = RegistrationTarget(SENDER, UserRole.MANAGER)
        decision = can_perform(None, Action.REGISTER_USER, target, actor_address=SENDER)
        assert not decision.allowed

    def test_non_admin_cannot_register_others(self):
        target = RegistrationTarget(RECEIVER, UserRole.REGULAR)
        decision = can_perform(_user(SENDER), Action.REGISTER_USER, target)
        assert not decision.allowed

    def test_inactive_admin_cannot_register_others(self):
        target = RegistrationTarget(RECEIVER, UserRole.REGULAR)
        inactive = _user(OTHER, UserRole.ADMIN, active=False)
        assert not can_perform(inactive, Action.REGISTER_USER, target).allowed

    def test_missing_target_denied(self):
        assert not can_perform(ADMIN, Action.REGISTER_USER).allowed


class TestRoleManagement:
    @pytest.mark.parametrize("role,allowed", [
        (UserRole.ADMIN, True),
        (UserRole.MANAGER, False),
        (UserRole.REGULAR, False),
    ])
    def test_update_role_is_admin_only(self, role, allowed):
        assert can_perform(_user(OTHER, role), Action.UPDATE_USER_ROLE).allowed is allowed

    def test_owner_cannot_be_deactivated(self):
        owner = _user(SENDER, UserRole.ADMIN, owner=True)
        decision = can_perform(ADMIN, Action.DEACTIVATE_USER, owner)
        assert not decision.allowed
        assert "owner" in decision.reason


class TestTransactions:
    def test_create_from_own_address(self):
        assert can_perform(_user(SENDER), Action.CREATE_TRANSACTION, SENDER).allowed

    def test_create_from_someone_else_denied(self):
        assert not can_perform(_user(SENDER), Action.CREATE_TRANSACTION, RECEIVER).allowed

    def test_unregistered_actor_denied(self):
        assert not can_perform(None, Action.CREATE_TRANSACTION, SENDER).allowed

    def test_inactive_actor_denied(self):
        decision = can_perform(_user(SENDER, active=False), Action.CREATE_TRANSACTION, SENDER)
        assert not decision.allowed

    def test_only_sender_completes(self):
        assert can_perform(_user(SENDER), Action.COMPLETE_TRANSACTION, TX).allowed
        assert not can_perform(_user(RECEIVER), Action.COMPLETE_TRANSACTION, TX).allowed
        assert not can_perform(ADMIN, Action.COMPLETE_TRANSACTION, TX).allowed


class TestApprovals:
    def test_receiver_may_request(self):
        assert can_perform(_user(RECEIVER), Action.REQUEST_APPROVAL, TX).allowed

    def test_sender_alone_may_not_request(self):
        assert not can_perform(_user(SENDER), Action.REQUEST_APPROVAL, TX).allowed

    def test_third_party_regular_may_not_request(self):
        assert not can_perform(_user(OTHER), Action.REQUEST_APPROVAL, TX).allowed

    @pytest.mark.parametrize("actor", [ADMIN, MANAGER])
    def test_staff_may_request_and_process(self, actor):
        assert can_perform(actor, Action.REQUEST_APPROVAL, TX).allowed
        assert can_perform(actor, Action.PROCESS_APPROVAL, APPROVAL).allowed

    def test_regular_may_not_process(self):
        assert not can_perform(_user(RECEIVER), Action.PROCESS_APPROVAL, APPROVAL).allowed


class TestListings:
    def test_list_users_and_transactions_admin_only(self):
        for action in (Action.LIST_USERS, Action.LIST_TRANSACTIONS):
            assert can_perform(ADMIN, action).allowed
            assert not can_perform(MANAGER, action).allowed

    def test_pending_approvals_visible_to_staff(self):
        assert can_perform(MANAGER, Action.LIST_PENDING_APPROVALS).allowed
        assert not can_perform(_user(SENDER), Action.LIST_PENDING_APPROVALS).allowed

    @pytest.mark.parametrize("action", [
        Action.GET_USER,
        Action.GET_TRANSACTION,
        Action.GET_APPROVAL,
        Action.GET_USER_TRANSACTIONS,
    ])
    def test_single_reads_unrestricted(self, action):
        assert can_perform(None, action).allowed


class TestRequire:
    def test_allow_passes(self):
        require(PolicyDecision.allow(), Action.GET_USER, None)

    def test_deny_raises_with_reason(self):
        with pytest.raises(UnauthorizedError) as exc_info:
            require(PolicyDecision.deny("nope"), Action.PROCESS_APPROVAL, SENDER)
        assert exc_info.value.action == "process_approval"
        assert exc_info.value.actor == SENDER
        assert exc_info.value.reason == "nope"
