"""
Module: workflow_kernel.models.event_record
Responsibility: ORM persistence for the committed workflow event log (outbox).
Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions.py.

Invariants enforced:
    - Append-only: no UPDATE, no DELETE (ORM listeners).
    - ``id`` is the global event sequence, allocated by SequenceService, so
      log order is commit order.

Failure modes:
    - TerminalStateViolationError on any UPDATE/DELETE attempt.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import EntityBase
from workflow_kernel.exceptions import TerminalStateViolationError


class EventRecord(EntityBase):
    """One committed workflow event."""

    __tablename__ = "workflow_events"

    __table_args__ = (
        Index("ix_workflow_events_type", "event_type"),
    )

    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<EventRecord {self.id} {self.event_type}>"


@event.listens_for(EventRecord, "before_update")
def prevent_event_update(mapper, connection, target):
    raise TerminalStateViolationError("EventRecord", target.id, "committed")


@event.listens_for(EventRecord, "before_delete")
def prevent_event_delete(mapper, connection, target):
    raise TerminalStateViolationError("EventRecord", target.id, "committed")
