"""Tests for SequenceService counter rows."""

import pytest

from workflow_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_starts_at_one(self, session):
        seq = SequenceService(session)
        assert seq.current_value(SequenceService.TRANSACTION) == 0
        assert seq.next_value(SequenceService.TRANSACTION) == 1
        assert seq.next_value(SequenceService.TRANSACTION) == 2
        assert seq.current_value(SequenceService.TRANSACTION) == 2

    def test_sequences_are_independent(self, session):
        seq = SequenceService(session)
        seq.next_value(SequenceService.USER)
        seq.next_value(SequenceService.USER)
        assert seq.next_value(SequenceService.APPROVAL) == 1

    def test_rollback_returns_the_value(self, database):
        with database.transaction() as session:
            SequenceService(session).next_value(SequenceService.EVENT)

        with pytest.raises(RuntimeError):
            with database.transaction() as session:
                SequenceService(session).next_value(SequenceService.EVENT)
                raise RuntimeError("abort")

        with database.transaction() as session:
            assert SequenceService(session).next_value(SequenceService.EVENT) == 2
