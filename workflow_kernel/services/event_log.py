"""
EventLog -- append-only outbox of committed workflow events.

Responsibility:
    Persists each workflow event to ``workflow_events`` in the same unit of
    work as the state change that caused it, and replays committed events
    for subscribers that fell behind.

Architecture position:
    Kernel > Services.  Written to by the lifecycle managers and the user
    registry; read by the workflow engine.

Invariants enforced:
    - An event exists in the log if and only if its state change committed
      (same session, same commit).
    - ``sequence`` is global and strictly increasing in commit order, since
      the Database lock serializes units of work.
    - Records are never updated or deleted (ORM listeners on EventRecord).

Failure modes:
    - ValueError from ``events_since`` if a stored row has an unknown
      event type (corrupted log).
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workflow_kernel.domain.clock import Clock, SystemClock
from workflow_kernel.domain.events import (
    EventEnvelope,
    WorkflowEvent,
    event_from_payload,
)
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.event_record import EventRecord
from workflow_kernel.services.base import BaseService
from workflow_kernel.services.sequence_service import SequenceService

logger = get_logger("services.event_log")


class EventLog(BaseService):
    """
    Session-bound event recorder.

    ``recorded`` holds the envelopes appended through this instance, in
    order, so the caller can hand them to the bus once the unit of work
    commits.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._sequences = sequences or SequenceService(session)
        self.recorded: list[EventEnvelope] = []

    def append(self, event: WorkflowEvent) -> EventEnvelope:
        """Record ``event`` in the current unit of work."""
        sequence = self._sequences.next_value(SequenceService.EVENT)
        occurred_at = self._clock.now()
        self._persist(
            EventRecord(
                id=sequence,
                event_type=event.event_type,
                payload=event.to_payload(),
                occurred_at=occurred_at,
            )
        )

        envelope = EventEnvelope(sequence=sequence, occurred_at=occurred_at, event=event)
        self.recorded.append(envelope)
        logger.debug(
            "event_recorded",
            extra={"sequence": sequence, "event_type": event.event_type},
        )
        return envelope

    def events_since(self, sequence: int = 0, limit: int | None = None) -> list[EventEnvelope]:
        """Committed events with ``sequence`` strictly greater than the argument."""
        stmt = (
            select(EventRecord)
            .where(EventRecord.id > sequence)
            .order_by(EventRecord.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [
            EventEnvelope(
                sequence=record.id,
                occurred_at=record.occurred_at,
                event=event_from_payload(record.event_type, record.payload),
            )
            for record in self._rows(stmt)
        ]

    def latest_sequence(self) -> int:
        """Sequence of the newest committed event, 0 when the log is empty."""
        return self.session.execute(
            select(func.coalesce(func.max(EventRecord.id), 0))
        ).scalar_one()
