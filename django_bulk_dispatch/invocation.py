"""
Platform invocation boundary.

``invoke`` is the one call the host makes into the dispatcher. It
classifies the flags, splits the changeset into batches at the cap, runs
every batch through the RuleEngine inside one transaction with one call
budget, and reports the outcome as Committed, RejectedWithFieldErrors or
Fatal. Any outcome other than Committed rolls the transaction back.
"""

import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from django_bulk_dispatch.batch import ChangeBatch, StagedChange, split_records
from django_bulk_dispatch.config import get_config, get_notifier
from django_bulk_dispatch.context import TriggerContext, classify
from django_bulk_dispatch.engine import RuleEngine
from django_bulk_dispatch.enums import Operation
from django_bulk_dispatch.exceptions import (
    ConfigurationError,
    DispatchError,
    RecursionLimitError,
)
from django_bulk_dispatch.gateway import BudgetedGateway, ExternalGateway, GatewayBudget
from django_bulk_dispatch.logging_config import log_invocation_result
from django_bulk_dispatch.notifications import Notifier, schedule_notifications
from django_bulk_dispatch.records import Record
from django_bulk_dispatch.results import (
    Committed,
    FieldError,
    Fatal,
    InvocationResult,
    RejectedWithFieldErrors,
)

logger = logging.getLogger(__name__)


@dataclass
class RawChangeSet:
    """
    Platform-supplied records for one operation.

    ``new`` holds the new state of each record, ``old`` the previous state.
    Deletes may supply only ``old``.
    """

    entity: str
    new: Sequence[Mapping[str, Any]] = ()
    old: Sequence[Mapping[str, Any]] = ()


class RecursionGuard:
    """
    Thread-local depth tracking for nested invocations.

    A rule whose mutations make the host invoke the dispatcher again nests
    one level deeper for that (entity, context). Past ``max_depth`` the
    nested invocation is refused.
    """

    _thread_local = threading.local()

    @classmethod
    def _state(cls):
        if not hasattr(cls._thread_local, "stack"):
            cls._thread_local.stack = []
            cls._thread_local.depth = {}
        return cls._thread_local

    @classmethod
    def enter(cls, entity: str, context: TriggerContext, max_depth: int) -> int:
        """
        Track entering an invocation.

        Returns:
            Depth for this (entity, context) pair, starting at 1

        Raises:
            RecursionLimitError: If ``max_depth`` would be exceeded
        """
        state = cls._state()
        key = (entity, context)
        depth = state.depth.get(key, 0) + 1
        if depth > max_depth:
            path = " -> ".join(f"{e}:{c.event}" for e, c in state.stack)
            raise RecursionLimitError(
                f"Maximum invocation depth ({max_depth}) exceeded for {entity}.{context.event}. "
                f"Call stack: {path}"
            )
        state.depth[key] = depth
        state.stack.append(key)
        return depth

    @classmethod
    def exit(cls, entity: str, context: TriggerContext):
        state = cls._state()
        key = (entity, context)
        if state.stack and state.stack[-1] == key:
            state.stack.pop()
        if state.depth.get(key):
            state.depth[key] -= 1

    @classmethod
    @contextlib.contextmanager
    def track(cls, entity: str, context: TriggerContext, max_depth: int):
        depth = cls.enter(entity, context, max_depth)
        try:
            yield depth
        finally:
            cls.exit(entity, context)

    @classmethod
    def get_current_depth(cls, entity: str, context: TriggerContext) -> int:
        return cls._state().depth.get((entity, context), 0)

    @classmethod
    def get_call_stack(cls):
        return list(cls._state().stack)


class _Rejected(Exception):
    """Unwinds the transaction when records were rejected."""

    def __init__(self, errors: List[FieldError]):
        super().__init__(f"{len(errors)} record(s) rejected")
        self.errors = errors


class Invoker:
    """
    Runs invocations against one gateway.

    Each call to ``invoke`` gets its own call budget, so concurrent or
    successive invocations never share counters.

    Args:
        gateway: Host platform gateway
        engine: RuleEngine; defaults to one over the global registry
        notifier: Post-commit notifier; defaults to the configured one
        asynchronous: Use the asynchronous call budgets
    """

    def __init__(
        self,
        gateway: ExternalGateway,
        engine: Optional[RuleEngine] = None,
        notifier: Optional[Notifier] = None,
        asynchronous: bool = False,
    ):
        self.gateway = gateway
        self.engine = engine or RuleEngine()
        self._notifier = notifier
        self.asynchronous = asynchronous

    @property
    def notifier(self) -> Notifier:
        if self._notifier is None:
            self._notifier = get_notifier()
        return self._notifier

    def invoke(self, raw: RawChangeSet, flags: Mapping[str, bool]) -> InvocationResult:
        """
        Process one platform operation.

        Args:
            raw: The changed records
            flags: Platform metadata flags (``is_insert``, ``is_before`` ...)

        Returns:
            Committed, RejectedWithFieldErrors or Fatal
        """
        try:
            context = classify(flags)
        except ConfigurationError as e:
            logger.error(f"Invalid trigger flags for {raw.entity}: {e}")
            return Fatal(str(e), e)

        config = get_config()
        budget = GatewayBudget(*config.limits(self.asynchronous))
        gateway = BudgetedGateway(self.gateway, budget)

        try:
            with RecursionGuard.track(raw.entity, context, config.max_recursion_depth):
                result = self._run(raw, context, gateway, config.batch_size)
        except _Rejected as e:
            result = RejectedWithFieldErrors(e.errors)
        except DispatchError as e:
            logger.warning(f"Invocation on {raw.entity} ({context.event}) aborted: {e}")
            result = Fatal(str(e), e)

        log_invocation_result(raw.entity, result)
        if result.committed:
            schedule_notifications(self.gateway, self.notifier, result.notifications)
        return result

    def _run(self, raw: RawChangeSet, context: TriggerContext, gateway, batch_size: int) -> Committed:
        new_records, old_by_id = self._build_records(raw, context)
        committed = Committed()
        errors: List[FieldError] = []

        with gateway.atomic():
            offset = 0
            for chunk in split_records(new_records, batch_size):
                old = {
                    record.id: old_by_id[record.id]
                    for record in chunk
                    if record.id in old_by_id
                }
                batch = ChangeBatch(raw.entity, chunk, old, max_size=batch_size)
                dispatched = self.engine.dispatch(batch, context, gateway)

                committed.staged.extend(
                    StagedChange(change.index + offset, change.record_id, change.changes)
                    for change in dispatched.staged
                )
                committed.mutations.extend(dispatched.mutations)
                committed.notifications.extend(dispatched.notifications)
                errors.extend(dispatched.errors)
                committed.batches += 1
                offset += len(chunk)

            if errors:
                raise _Rejected(errors)

        return committed

    def _build_records(self, raw: RawChangeSet, context: TriggerContext):
        operation = context.operation
        if operation is Operation.INSERT and raw.old:
            raise ConfigurationError("Insert operations carry no old records")

        old_records = [Record(raw.entity, values) for values in raw.old]
        old_by_id = {record.id: record for record in old_records}

        if raw.new:
            new_records = [Record(raw.entity, values) for values in raw.new]
        elif operation is Operation.DELETE:
            new_records = [record.snapshot() for record in old_records]
        else:
            new_records = []

        return new_records, old_by_id


def invoke(
    raw: RawChangeSet,
    flags: Mapping[str, bool],
    gateway: Optional[ExternalGateway] = None,
    **kwargs,
) -> InvocationResult:
    """
    Process one platform operation with a throwaway Invoker.

    Without a gateway the Django ORM gateway is used.
    """
    if gateway is None:
        from django_bulk_dispatch.orm import OrmGateway

        gateway = OrmGateway()
    return Invoker(gateway, **kwargs).invoke(raw, flags)
