"""
Module: workflow_kernel.db.base
Responsibility: Declarative base for all SQLAlchemy ORM models, the integer
    primary key convention, and the column types that keep amounts and
    timestamps exact on every backend.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  ALL model files import from here.  This module MUST NOT import
    from models/, services/, or domain/.

Invariants enforced:
    - Integer primary keys assigned by SequenceService, never by the
      database: ids are 1, 2, 3, ... per entity and a rolled-back unit of
      work does not consume one.
    - uint256 amounts round-trip exactly (UInt256 stores decimal text;
      SQLite's INTEGER is only 64-bit).
    - Timestamps come back timezone-aware UTC on every backend (UTCDateTime;
      SQLite drops tzinfo on read).
"""

from datetime import datetime, timezone
from typing import ClassVar

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

UINT256_DIGITS = 78


class UInt256(TypeDecorator):
    """
    Unsigned 256-bit integer stored as decimal text.

    Guarantees:
        - process_bind_param: int -> str on INSERT/UPDATE.
        - process_result_value: str -> int on SELECT.
    """

    impl = String(UINT256_DIGITS)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(int(value))
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return int(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Naive values read back from backends without timezone support are
    interpreted as UTC, which is how they were written.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to UTCDateTime column")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all workflow models.

    Guarantees:
        - datetime maps to UTCDateTime.
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        int: BigInteger,
    }


class EntityBase(Base):
    """
    Abstract base for the workflow entity tables.

    Guarantees:
        - ``id`` is an application-assigned integer (no autoincrement).
    """

    __abstract__ = True

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=False,
    )
