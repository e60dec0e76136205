"""
Test helpers.

RecordingGateway is an in-memory ExternalGateway that serves canned query
results and records every call, so tests can assert on call counts without
a database. Its ``atomic``/``on_commit`` pair follows Django's semantics:
callbacks registered inside a transaction run only when the outermost
block exits cleanly and are discarded on rollback.
"""

import contextlib
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from django_bulk_dispatch.enums import MutationKind
from django_bulk_dispatch.gateway import ExternalGateway, MutationResult, QuerySpec
from django_bulk_dispatch.notifications import Notifier
from django_bulk_dispatch.records import Record


class RecordingGateway(ExternalGateway):
    """
    Gateway test double.

    Args:
        responses: Canned results keyed by QuerySpec
        resolver: Fallback ``spec -> records`` callable for specs without a
            canned response
    """

    def __init__(
        self,
        responses: Optional[Dict[QuerySpec, Sequence[Record]]] = None,
        resolver: Optional[Callable[[QuerySpec], Sequence[Record]]] = None,
    ):
        self.responses = dict(responses or {})
        self.resolver = resolver
        self.queries: List[QuerySpec] = []
        self.mutations: List[Tuple[MutationKind, str, Tuple[Record, ...]]] = []
        self.failures: Dict[MutationKind, Exception] = {}
        self.commits = 0
        self.rollbacks = 0
        self._depth = 0
        self._pending: List[Callable] = []

    def respond(self, spec: QuerySpec, records: Sequence[Record]):
        self.responses[spec] = list(records)

    def fail_on(self, kind: MutationKind, error: Exception):
        """Make every ``kind`` mutation raise ``error``."""
        self.failures[kind] = error

    def query(self, spec: QuerySpec) -> List[Record]:
        self.queries.append(spec)
        if spec in self.responses:
            return list(self.responses[spec])
        if self.resolver is not None:
            return list(self.resolver(spec))
        return []

    def mutate(self, kind: MutationKind, entity: str, records: Sequence[Record]) -> MutationResult:
        records = tuple(records)
        self.mutations.append((kind, entity, records))
        if kind in self.failures:
            raise self.failures[kind]
        return MutationResult(kind, entity, records)

    @contextlib.contextmanager
    def atomic(self):
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._pending.clear()
                self.rollbacks += 1
            raise
        self._depth -= 1
        if self._depth == 0:
            self.commits += 1
            pending, self._pending = self._pending, []
            for func in pending:
                func()

    def on_commit(self, func: Callable):
        if self._depth:
            self._pending.append(func)
        else:
            func()

    @property
    def query_count(self) -> int:
        return len(self.queries)

    @property
    def mutation_count(self) -> int:
        return len(self.mutations)

    def mutation_calls(self, kind: MutationKind) -> List[Tuple[MutationKind, str, Tuple[Record, ...]]]:
        return [call for call in self.mutations if call[0] is kind]

    def reset(self):
        self.queries.clear()
        self.mutations.clear()
        self.commits = 0
        self.rollbacks = 0


class RecordingNotifier(Notifier):
    """Notifier test double that keeps every message it was asked to send."""

    def __init__(self, error: Optional[Exception] = None):
        self.sent = []
        self.error = error

    def send(self, messages):
        if self.error is not None:
            raise self.error
        self.sent.extend(messages)
