"""
Pytest fixtures for the workflow kernel test suite.

Provides:
- An isolated in-memory SQLite ``Database`` per test
- A ``DeterministicClock`` and an ``EventBus`` that retains history
- A ``WorkflowEngine`` with the owner bootstrapped, and one with the
  standard cast of users registered
- Session-bound services for tests below the facade
- Structured log capture
"""

import json
import logging
from io import StringIO

import pytest

from workflow_kernel.db.engine import Database
from workflow_kernel.domain.clock import DeterministicClock
from workflow_kernel.domain.entities import UserRole
from workflow_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from workflow_kernel.services.approval_lifecycle import ApprovalLifecycle
from workflow_kernel.services.entity_store import EntityStore
from workflow_kernel.services.event_bus import EventBus
from workflow_kernel.services.event_log import EventLog
from workflow_kernel.services.sequence_service import SequenceService
from workflow_kernel.services.transaction_lifecycle import TransactionLifecycle
from workflow_kernel.services.user_registry import UserRegistry
from workflow_kernel.services.workflow_engine import WorkflowEngine


def address(n: int) -> str:
    """Deterministic, well-formed wallet address for test actor ``n``."""
    return f"0x{n:040x}"


OWNER = address(0xA1)
MANAGER = address(0xB1)
ALICE = address(0xC1)
BOB = address(0xC2)
CAROL = address(0xC3)
STRANGER = address(0xDEAD)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture workflow_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.create_transaction(...)
            logs = captured_logs()
            assert any(r["message"] == "command_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("workflow_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def database():
    """Fresh in-memory database with all tables created."""
    db = Database()
    db.create_tables()
    yield db
    db.drop_tables()
    db.dispose()


@pytest.fixture
def bus() -> EventBus:
    return EventBus(retain_in_memory=100)


# =============================================================================
# Facade
# =============================================================================


@pytest.fixture
def engine(database, bus, clock) -> WorkflowEngine:
    """Engine with only the genesis owner (an Admin) registered."""
    eng = WorkflowEngine(database, bus=bus, clock=clock)
    eng.bootstrap_owner(OWNER, "Owner", "owner@example.com")
    return eng


@pytest.fixture
def seeded_engine(engine) -> WorkflowEngine:
    """
    Engine with MANAGER (Manager), ALICE and BOB (Regular) registered.

    ALICE sends transactions to BOB in most tests.
    """
    engine.register_user(OWNER, MANAGER, "Mia Manager", "mia@example.com", UserRole.MANAGER)
    engine.register_user(OWNER, ALICE, "Alice", "alice@example.com", UserRole.REGULAR)
    engine.register_user(OWNER, BOB, "Bob", "bob@example.com", UserRole.REGULAR)
    return engine


@pytest.fixture
def pending_tx(seeded_engine):
    """A PENDING transaction ALICE -> BOB for 1000 units."""
    return seeded_engine.create_transaction(ALICE, BOB, 1000, "Invoice 42").value


@pytest.fixture
def linked_approval(seeded_engine, pending_tx):
    """A PENDING approval requested by BOB on ``pending_tx``."""
    return seeded_engine.request_approval(BOB, pending_tx.id, "goods received").value


# =============================================================================
# Session-bound services
# =============================================================================


@pytest.fixture
def session(database):
    """A plain session; rolled back at teardown."""
    s = database.session_factory()
    yield s
    s.rollback()
    s.close()


class Services:
    """The kernel services wired onto one session, as the engine does."""

    def __init__(self, session, clock):
        self.session = session
        self.sequences = SequenceService(session)
        self.store = EntityStore(session, self.sequences)
        self.events = EventLog(session, clock, self.sequences)
        self.users = UserRegistry(self.store, self.events, clock)
        self.transactions = TransactionLifecycle(self.store, self.events, clock)
        self.approvals = ApprovalLifecycle(
            self.store, self.events, self.transactions, clock,
        )


@pytest.fixture
def services(session, clock) -> Services:
    return Services(session, clock)


@pytest.fixture
def seeded_services(services) -> Services:
    """Services with the owner, MANAGER, ALICE and BOB created."""
    services.users.bootstrap_owner(OWNER, "Owner", "owner@example.com")
    services.users.register(MANAGER, "Mia Manager", "mia@example.com", UserRole.MANAGER)
    services.users.register(ALICE, "Alice", "alice@example.com")
    services.users.register(BOB, "Bob", "bob@example.com")
    return services
