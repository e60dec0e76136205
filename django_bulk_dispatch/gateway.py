"""
ExternalGateway: the single choke point for calls to the host platform.

Rules never talk to storage directly. Queries and mutations go through a
gateway, and the gateway handed to a dispatch is always wrapped in a
BudgetedGateway that counts calls and refuses any call past the
per-invocation cap.
"""

import contextlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from django_bulk_dispatch.enums import MutationKind
from django_bulk_dispatch.exceptions import BudgetExceededError
from django_bulk_dispatch.records import Record

logger = logging.getLogger(__name__)


def _freeze(value):
    """Turn filter values into hashable, order-insensitive equivalents."""
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_freeze(item) for item in value]
        try:
            return tuple(sorted(items))
        except TypeError:
            return tuple(sorted(items, key=repr))
    if isinstance(value, dict):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    return value


@dataclass(frozen=True)
class QuerySpec:
    """
    Hashable description of one query.

    Two specs with the same entity, filters and fields are the same query,
    which is what lets the engine collapse duplicate requests.
    """

    entity: str
    filters: Tuple[Tuple[str, Any], ...] = ()
    fields: Tuple[str, ...] = ()

    @classmethod
    def build(cls, entity: str, fields: Optional[Sequence[str]] = None, **filters) -> "QuerySpec":
        """
        Build a spec from Django-style lookup keyword arguments.

        Example:
            QuerySpec.build("crm.Contact", fields=["account_id"], account_id__in=[1, 2])
        """
        return cls(
            entity=entity,
            filters=tuple(sorted((key, _freeze(value)) for key, value in filters.items())),
            fields=tuple(sorted(fields or ())),
        )

    def filter_kwargs(self) -> Dict[str, Any]:
        return {key: list(value) if isinstance(value, tuple) else value for key, value in self.filters}

    def __str__(self):
        lookups = ", ".join(f"{k}={v!r}" for k, v in self.filters)
        return f"{self.entity}({lookups})"


@dataclass
class MutationResult:
    """
    Outcome of one coalesced mutation call.

    ``errors`` holds ``(record_id, message)`` pairs for records the host
    refused; the rest were applied.
    """

    kind: MutationKind
    entity: str
    records: Tuple[Record, ...]
    errors: List[Tuple[Any, str]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records) - len(self.errors)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class ExternalGateway(ABC):
    """Abstract interface to the host platform's storage."""

    @abstractmethod
    def query(self, spec: QuerySpec) -> List[Record]:
        """Run a side-effect-free query and return matching records."""

    @abstractmethod
    def mutate(self, kind: MutationKind, entity: str, records: Sequence[Record]) -> MutationResult:
        """Apply one coalesced mutation of ``kind`` to ``records``."""

    def atomic(self):
        """Context manager delimiting one invocation's transaction."""
        return contextlib.nullcontext()

    def on_commit(self, func: Callable[[], Any]):
        """Run ``func`` once the enclosing transaction commits."""
        func()


class GatewayBudget:
    """
    Call counters for one invocation.

    Args:
        query_limit: Maximum number of query calls
        mutation_limit: Maximum number of mutation calls
    """

    def __init__(self, query_limit: int, mutation_limit: int):
        self.query_limit = query_limit
        self.mutation_limit = mutation_limit
        self.queries = 0
        self.mutations = 0

    @classmethod
    def from_config(cls, asynchronous: bool = False) -> "GatewayBudget":
        from django_bulk_dispatch.config import get_config

        query_limit, mutation_limit = get_config().limits(asynchronous)
        return cls(query_limit, mutation_limit)

    def charge_query(self):
        if self.queries >= self.query_limit:
            raise BudgetExceededError("query", self.query_limit)
        self.queries += 1

    def charge_mutation(self):
        if self.mutations >= self.mutation_limit:
            raise BudgetExceededError("mutation", self.mutation_limit)
        self.mutations += 1

    def reset(self):
        self.queries = 0
        self.mutations = 0

    def __repr__(self):
        return (
            f"<GatewayBudget queries={self.queries}/{self.query_limit} "
            f"mutations={self.mutations}/{self.mutation_limit}>"
        )


class BudgetedGateway(ExternalGateway):
    """
    Gateway wrapper that enforces a GatewayBudget.

    The budget is charged before the wrapped gateway is called, so a call
    past the cap never reaches the host.
    """

    def __init__(self, gateway: ExternalGateway, budget: GatewayBudget):
        self.gateway = gateway
        self.budget = budget

    def query(self, spec: QuerySpec) -> List[Record]:
        self.budget.charge_query()
        logger.debug(f"Query {self.budget.queries}/{self.budget.query_limit}: {spec}")
        return self.gateway.query(spec)

    def mutate(self, kind: MutationKind, entity: str, records: Sequence[Record]) -> MutationResult:
        self.budget.charge_mutation()
        logger.debug(
            f"Mutation {self.budget.mutations}/{self.budget.mutation_limit}: "
            f"{kind.value} {len(records)} {entity} records"
        )
        return self.gateway.mutate(kind, entity, records)

    def atomic(self):
        return self.gateway.atomic()

    def on_commit(self, func: Callable[[], Any]):
        self.gateway.on_commit(func)
