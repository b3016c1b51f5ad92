"""Database layer: declarative base, column types and the Database scope."""

from workflow_kernel.db.base import Base, EntityBase, UInt256, UTCDateTime
from workflow_kernel.db.engine import IN_MEMORY_URL, Database, build_engine

__all__ = [
    "Base",
    "Database",
    "EntityBase",
    "IN_MEMORY_URL",
    "UInt256",
    "UTCDateTime",
    "build_engine",
]
