"""
BaseService -- session plumbing shared by the store-facing services.

Responsibility:
    Holds the ``Session`` of the current unit of work and the few helpers
    every store-facing service repeats: insert-and-flush, row listing,
    counting, and in-place mutation of a loaded row.

Invariants enforced:
    Services flush, they never commit or roll back.  ``Database.transaction()``
    owns the boundary, so an approval decision and the transaction status
    it drives land in one commit or not at all.  Flushing on every write
    makes the terminal-row listeners and unique constraints fire inside the
    command that caused them.
"""

from abc import ABC
from typing import Any, Callable, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

M = TypeVar("M")


class BaseService(ABC):
    def __init__(self, session: Session):
        self.session = session

    def _persist(self, model: M) -> M:
        self.session.add(model)
        self.session.flush()
        return model

    def _rows(self, stmt: Select) -> list[Any]:
        return list(self.session.execute(stmt).scalars())

    def _count(self, model_class: type, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(model_class)
        if criteria:
            stmt = stmt.where(*criteria)
        return self.session.execute(stmt).scalar_one()

    def _mutate(self, model: M, mutator: Callable[[M], None]) -> M:
        """Apply ``mutator`` to a loaded row and flush the change."""
        mutator(model)
        self.session.flush()
        return model
