"""ORM models.  Importing this package registers every table on Base.metadata."""

from workflow_kernel.models.approval import ApprovalModel
from workflow_kernel.models.event_record import EventRecord
from workflow_kernel.models.transaction import TransactionModel
from workflow_kernel.models.user import UserModel
from workflow_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "ApprovalModel",
    "EventRecord",
    "SequenceCounter",
    "TransactionModel",
    "UserModel",
]
