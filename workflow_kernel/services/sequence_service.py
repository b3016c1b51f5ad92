"""
SequenceService -- monotonic id allocation via locked counter rows.

Responsibility:
    Provides strictly increasing integer ids for users, transactions,
    approvals and events.  Each entity type has its own counter row,
    starting at 1; 0 is never handed out because it is the "absent"
    sentinel throughout the workflow.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value.  The aggregate-max-plus-one pattern is never used.
    - Transactional: an increment is only visible after the caller's unit
      of work commits.  Rollback returns the value, so a failed command
      does not leave a gap in the ids.

Failure modes:
    - None beyond database errors.  Concurrent allocation is serialized by
      the Database lock and, on servers that support it, by
      ``SELECT ... FOR UPDATE``.
"""

from __future__ import annotations

from sqlalchemy import select

from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.sequence_counter import SequenceCounter
from workflow_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceService(BaseService):
    """
    Service for generating transactional sequence numbers.

    Usage:
        with database.transaction() as session:
            new_id = SequenceService(session).next_value(SequenceService.TRANSACTION)
            # If the unit of work rolls back, new_id is not consumed
    """

    # Well-known sequence names
    USER = "user"
    TRANSACTION = "transaction"
    APPROVAL = "approval"
    EVENT = "event"

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              committed value for this sequence name.

        Args:
            sequence_name: Name of the sequence.

        Returns:
            The next sequence value (always > 0).
        """
        counter = self._counter(sequence_name, for_update=True)
        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
        counter.current_value += 1
        self._persist(counter)
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int:
        """Get the last allocated value without incrementing (0 if none)."""
        counter = self._counter(sequence_name)
        return counter.current_value if counter else 0

    def _counter(self, sequence_name: str, for_update: bool = False) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        if for_update:
            # populate_existing so a row cached earlier in this session is re-read
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()
