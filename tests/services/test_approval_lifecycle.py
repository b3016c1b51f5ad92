"""
Tests for ApprovalLifecycle (``workflow_kernel.services.approval_lifecycle``).

Invariants tested:
- request links the approval and refuses a second one (AlreadyLinked
  before status).
- process always moves approval and transaction together.
- processed approvals are final.
"""

import pytest

from workflow_kernel.domain.entities import ApprovalStatus, TransactionStatus
from workflow_kernel.exceptions import (
    AlreadyLinkedError,
    ApprovalNotFoundError,
    InvalidInputError,
    InvalidTransitionError,
    TransactionNotFoundError,
)
from tests.conftest import ALICE, BOB, MANAGER


@pytest.fixture
def tx(seeded_services):
    return seeded_services.transactions.create(ALICE, BOB, 1000, "Invoice 42")


@pytest.fixture
def approval(seeded_services, tx):
    return seeded_services.approvals.request(tx.id, BOB, "goods received")


class TestRequest:
    def test_creates_pending_and_links(self, seeded_services, tx, approval):
        assert approval.id == 1
        assert approval.status == ApprovalStatus.PENDING
        assert approval.requester == BOB
        assert approval.approver == ""
        assert approval.reason == "goods received"
        assert seeded_services.store.get_transaction(tx.id).approval_id == approval.id

    def test_records_requested_event(self, seeded_services, approval):
        last = seeded_services.events.recorded[-1]
        assert last.event_type == "ApprovalRequested"
        assert last.event.approval_id == approval.id

    def test_second_request_already_linked(self, seeded_services, tx, approval):
        with pytest.raises(AlreadyLinkedError):
            seeded_services.approvals.request(tx.id, MANAGER, "again")

    def test_already_linked_takes_precedence_over_status(self, seeded_services, tx, approval):
        seeded_services.approvals.process(approval.id, MANAGER, False)
        with pytest.raises(AlreadyLinkedError):
            seeded_services.approvals.request(tx.id, MANAGER, "again")

    def test_empty_reason_rejected(self, seeded_services, tx):
        with pytest.raises(InvalidInputError) as exc_info:
            seeded_services.approvals.request(tx.id, BOB, "   ")
        assert exc_info.value.field == "reason"

    def test_unknown_transaction(self, seeded_services):
        with pytest.raises(TransactionNotFoundError):
            seeded_services.approvals.request(99, BOB, "why")


class TestProcess:
    def test_approve_pairs_with_active(self, seeded_services, tx, approval):
        result = seeded_services.approvals.process(approval.id, MANAGER, True, "looks fine")
        assert result.status == ApprovalStatus.APPROVED
        assert result.approver == MANAGER
        assert result.decision_reason == "looks fine"
        assert result.reason == "goods received"
        assert result.processed_at is not None
        assert seeded_services.store.get_transaction(tx.id).status == TransactionStatus.ACTIVE

    def test_reject_pairs_with_rejected(self, seeded_services, tx, approval):
        result = seeded_services.approvals.process(approval.id, MANAGER, False)
        assert result.status == ApprovalStatus.REJECTED
        assert seeded_services.store.get_transaction(tx.id).status == TransactionStatus.REJECTED

    def test_events_in_order(self, seeded_services, approval):
        seeded_services.approvals.process(approval.id, MANAGER, True)
        types = [e.event_type for e in seeded_services.events.recorded[-2:]]
        assert types == ["ApprovalProcessed", "TransactionStatusUpdated"]

    def test_processed_is_final(self, seeded_services, approval):
        seeded_services.approvals.process(approval.id, MANAGER, True)
        with pytest.raises(InvalidTransitionError) as exc_info:
            seeded_services.approvals.process(approval.id, MANAGER, False)
        assert exc_info.value.entity_type == "Approval"

    def test_unknown_approval(self, seeded_services):
        with pytest.raises(ApprovalNotFoundError):
            seeded_services.approvals.process(5, MANAGER, True)

    def test_oversized_decision_reason(self, seeded_services, approval):
        with pytest.raises(InvalidInputError):
            seeded_services.approvals.process(approval.id, MANAGER, True, "x" * 201)
        assert seeded_services.store.get_approval(approval.id).status == ApprovalStatus.PENDING
