"""
Enumerations shared across django-bulk-dispatch.
"""

from enum import Enum


class Operation(str, Enum):
    """Kind of platform operation that produced a batch."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNDELETE = "undelete"

    @property
    def has_old_records(self) -> bool:
        return self is not Operation.INSERT


class Phase(str, Enum):
    """Stage of processing relative to persistence."""

    BEFORE = "before"
    AFTER = "after"


class MutationKind(str, Enum):
    """Kind of follow-on mutation a rule may request."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


# Coalesced mutations are flushed in this order
MUTATION_ORDER = (MutationKind.INSERT, MutationKind.UPDATE, MutationKind.DELETE)
