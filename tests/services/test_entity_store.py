"""
Tests for EntityStore (``workflow_kernel.services.entity_store``).

Covers id allocation, case-insensitive lookups, listings, the
``update_*(id, mutator)`` contract and the state fingerprint.
"""

from datetime import datetime, timezone

import pytest

from workflow_kernel.domain.entities import TransactionStatus, UserRole
from workflow_kernel.exceptions import (
    ApprovalNotFoundError,
    ErrorKind,
    TransactionNotFoundError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from tests.conftest import ALICE, BOB, OWNER, address

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _user(store, addr, role=UserRole.REGULAR, owner=False):
    return store.create_user(addr, "Name", "n@example.com", role, NOW, is_owner=owner)


class TestUsers:
    def test_ids_start_at_one_and_increase(self, services):
        first = _user(services.store, ALICE)
        second = _user(services.store, BOB)
        assert (first.id, second.id) == (1, 2)

    def test_duplicate_address_rejected(self, services):
        _user(services.store, ALICE)
        with pytest.raises(UserAlreadyExistsError) as exc_info:
            _user(services.store, ALICE)
        assert exc_info.value.kind == ErrorKind.ALREADY_EXISTS

    def test_lookup_is_case_insensitive(self, services):
        mixed = "0xABCDEF" + "1" * 34
        user = _user(services.store, mixed.lower())
        assert services.store.get_user_by_address(mixed).id == user.id
        assert services.store.find_user_by_address(mixed.upper().replace("0X", "0x")).id == user.id

    def test_missing_user(self, services):
        assert services.store.find_user_by_address(ALICE) is None
        with pytest.raises(UserNotFoundError):
            services.store.get_user_by_address(ALICE)
        with pytest.raises(UserNotFoundError):
            services.store.get_user(99)

    def test_owner_excluded_from_listing_and_count(self, services):
        _user(services.store, OWNER, UserRole.ADMIN, owner=True)
        _user(services.store, ALICE)
        assert services.store.count_users() == 1
        assert [u.wallet_address for u in services.store.list_users()] == [ALICE]
        assert len(services.store.list_users(include_owner=True)) == 2

    def test_count_active_admins(self, services):
        _user(services.store, OWNER, UserRole.ADMIN, owner=True)
        admin = _user(services.store, ALICE, UserRole.ADMIN)
        assert services.store.count_active_admins() == 2

        def _disable(model):
            model.is_active = False

        services.store.update_user(admin.id, _disable)
        assert services.store.count_active_admins() == 1


class TestTransactionsAndApprovals:
    def test_transaction_starts_pending_without_approval(self, services):
        tx = services.store.create_transaction(ALICE, BOB, 10, "d", NOW)
        assert tx.id == 1
        assert tx.status == TransactionStatus.PENDING
        assert tx.approval_id == 0
        assert tx.timestamp == NOW

    def test_uint256_amount_round_trips(self, services):
        big = 2**256 - 1
        tx = services.store.create_transaction(ALICE, BOB, big, "d", NOW)
        services.session.expire_all()
        assert services.store.get_transaction(tx.id).amount == big

    def test_recent_is_newest_first_and_limited(self, services):
        for n in range(5):
            services.store.create_transaction(ALICE, BOB, n + 1, f"tx {n}", NOW)
        recent = services.store.recent_transactions(3)
        assert [t.id for t in recent] == [5, 4, 3]

    def test_listing_for_address_covers_both_directions(self, services):
        carol = address(0xC3)
        services.store.create_transaction(ALICE, BOB, 1, "a->b", NOW)
        services.store.create_transaction(BOB, carol, 1, "b->c", NOW)
        services.store.create_transaction(ALICE, carol, 1, "a->c", NOW)
        assert [t.id for t in services.store.list_transactions_for(BOB)] == [1, 2]

    def test_approval_requires_existing_transaction(self, services):
        with pytest.raises(TransactionNotFoundError):
            services.store.create_approval(7, BOB, "why", NOW)

    def test_pending_approvals_listing(self, services):
        services.store.create_transaction(ALICE, BOB, 1, "d", NOW)
        approval = services.store.create_approval(1, BOB, "why", NOW)
        assert services.store.list_pending_approvals() == [approval]
        assert services.store.count_approvals() == 1

    def test_update_unknown_ids(self, services):
        with pytest.raises(TransactionNotFoundError):
            services.store.update_transaction(1, lambda m: None)
        with pytest.raises(ApprovalNotFoundError) as exc_info:
            services.store.update_approval(1, lambda m: None)
        assert exc_info.value.kind == ErrorKind.NOT_FOUND


class TestFingerprint:
    def test_stable_without_changes(self, services):
        services.store.create_transaction(ALICE, BOB, 1, "d", NOW)
        assert services.store.state_fingerprint() == services.store.state_fingerprint()

    def test_changes_with_any_mutation(self, services):
        tx = services.store.create_transaction(ALICE, BOB, 1, "d", NOW)
        before = services.store.state_fingerprint()

        def _activate(model):
            model.status = int(TransactionStatus.ACTIVE)

        services.store.update_transaction(tx.id, _activate)
        assert services.store.state_fingerprint() != before
