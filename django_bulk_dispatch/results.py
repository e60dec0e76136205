"""
Result values returned by the engine and the invocation boundary.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from django_bulk_dispatch.batch import StagedChange
from django_bulk_dispatch.context import TriggerContext
from django_bulk_dispatch.enums import MutationKind
from django_bulk_dispatch.gateway import MutationResult


class FieldError(NamedTuple):
    """A record-level rejection: ``(record_id, field, message)``."""

    record_id: Any
    field: Optional[str]
    message: str


class Notification(NamedTuple):
    """An outbound message queued for delivery after commit."""

    recipient: str
    subject: str
    body: str


@dataclass
class DispatchResult:
    """Everything one RuleEngine.dispatch produced."""

    context: TriggerContext
    staged: List[StagedChange] = field(default_factory=list)
    errors: List[FieldError] = field(default_factory=list)
    requested: Dict[Tuple[MutationKind, str], Tuple[Any, ...]] = field(default_factory=dict)
    mutations: List[MutationResult] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)
    queries: int = 0
    rules_run: int = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class InvocationResult:
    """Base class of the three invocation outcomes."""

    committed = False


@dataclass
class Committed(InvocationResult):
    """The operation passed every rule and its mutations were applied."""

    staged: List[StagedChange] = field(default_factory=list)
    mutations: List[MutationResult] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)
    batches: int = 0

    committed = True


@dataclass
class RejectedWithFieldErrors(InvocationResult):
    """One or more records were rejected; nothing was committed."""

    errors: List[FieldError] = field(default_factory=list)

    @property
    def record_ids(self) -> List[Any]:
        return [error.record_id for error in self.errors]


@dataclass
class Fatal(InvocationResult):
    """The invocation was aborted; nothing was committed."""

    message: str
    error: Optional[BaseException] = None
