"""Tests for workflow_kernel.logging_config: JSON lines, command context, setup."""

import json
import logging
import threading
from datetime import datetime, timezone
from io import StringIO

import pytest

from workflow_kernel.domain.entities import TransactionStatus, UserRole
from workflow_kernel.exceptions import AlreadyLinkedError, InvalidInputError
from workflow_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def lines():
    """Reconfigure logging onto a buffer; returns a reader of parsed lines."""
    reset_logging()
    LogContext.clear()
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _read
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestJsonLines:
    def test_envelope(self, lines):
        get_logger("services.user_registry").info("user_registered")
        (record,) = lines()
        assert record["message"] == "user_registered"
        assert record["level"] == "INFO"
        assert record["logger"] == "workflow_kernel.services.user_registry"
        assert datetime.fromisoformat(record["ts"]).tzinfo is not None

    def test_extra_fields_and_value_types(self, lines):
        processed_at = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        get_logger("t").info(
            "approval_processed",
            extra={
                "approval_id": 3,
                "status": TransactionStatus.ACTIVE,
                "role": UserRole.MANAGER.name,
                "processed_at": processed_at,
                "amount": str(2**255),
            },
        )
        (record,) = lines()
        assert record["approval_id"] == 3
        assert record["status"] == 1
        assert record["role"] == "MANAGER"
        assert record["processed_at"] == processed_at.isoformat()
        assert record["amount"] == str(2**255)

    def test_unserializable_extra_falls_back_to_str(self, lines):
        get_logger("t").info("odd", extra={"thing": object()})
        assert lines()[0]["thing"].startswith("<object object")

    def test_kernel_error_details(self, lines):
        try:
            raise AlreadyLinkedError(3, 9)
        except AlreadyLinkedError:
            get_logger("t").exception("link_failed")
        (record,) = lines()
        assert record["exc_type"] == "AlreadyLinkedError"
        assert record["exc_code"] == "APPROVAL_ALREADY_LINKED"
        assert record["exc_kind"] == "already_linked"
        assert (record["exc_transaction_id"], record["exc_approval_id"]) == (3, 9)
        assert "Traceback" in record["traceback"]

    def test_plain_error_has_no_code(self, lines):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            get_logger("t").error("failed", exc_info=True)
        (record,) = lines()
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record


class TestLogContext:
    def test_fields_reach_records(self, lines):
        with LogContext.bind(command="create_transaction", actor="0xabc"):
            get_logger("t").info("inside")
        get_logger("t").info("outside")
        inside, outside = lines()
        assert (inside["command"], inside["actor"]) == ("create_transaction", "0xabc")
        assert "command" not in outside

    def test_extra_cannot_override_context(self, lines):
        with LogContext.bind(actor="0xabc"):
            get_logger("t").info("m", extra={"actor": "0xdef"})
        assert lines()[0]["actor"] == "0xabc"

    def test_bind_nests_and_restores(self):
        LogContext.set(correlation_id="outer", entity_id="1")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all() == {"correlation_id": "inner", "entity_id": "1"}
        assert LogContext.get_all() == {"correlation_id": "outer", "entity_id": "1"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_none_values_ignored(self):
        with LogContext.bind(actor=None, command="x"):
            assert LogContext.get_all() == {"command": "x"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(producer="x")

    def test_command_scope(self):
        with LogContext.command_scope("process_approval", "0xabc"):
            first = LogContext.get_all()
        with LogContext.command_scope("process_approval", 7):
            second = LogContext.get_all()
        assert first["actor"] == "0xabc"
        assert "actor" not in second
        assert first["correlation_id"] != second["correlation_id"]
        assert LogContext.get_all() == {}

    def test_threads_do_not_share_context(self):
        seen = {}
        LogContext.set(command="main")

        def worker():
            seen["worker"] = LogContext.get_all()

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()
        assert seen["worker"] == {}
        assert LogContext.get_all() == {"command": "main"}
        LogContext.clear()


class TestSetup:
    def test_idempotent_until_reset(self, lines):
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("workflow_kernel").handlers) == 1

    def test_level_filters(self, lines):
        reset_logging()
        stream = StringIO()
        configure_logging(stream=stream, level="warning")
        get_logger("t").info("dropped")
        get_logger("t").warning("kept")
        assert [json.loads(l)["message"] for l in stream.getvalue().splitlines()] == ["kept"]

    def test_does_not_propagate(self, lines):
        assert logging.getLogger("workflow_kernel").propagate is False

    def test_invalid_input_fields_logged(self, lines):
        try:
            raise InvalidInputError("amount", "must be positive")
        except InvalidInputError:
            get_logger("t").warning("rejected", exc_info=True)
        record = lines()[0]
        assert (record["exc_field"], record["exc_reason"]) == ("amount", "must be positive")
