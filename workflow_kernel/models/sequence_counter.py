"""
Module: workflow_kernel.models.sequence_counter
Responsibility: Counter rows backing SequenceService id allocation.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from workflow_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "transaction", "approval")
    name: Mapped[str] = mapped_column(String(50), primary_key=True)

    # Last value handed out; 0 means none yet
    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )
