"""
RuleEngine: single execution path for rules.

One dispatch evaluates every applicable rule once against the whole batch:

1. the bulk fetch step collects the queries all rules declared, drops
   duplicates and issues one gateway query per distinct spec;
2. rules run in registration order, each seeing the records its condition
   selects, the fetched results and the edits earlier rules staged;
3. mutation requests are coalesced into one gateway call per
   (kind, entity).

Rules cannot query while they run. Anything they need from storage has to
be declared up front, so no rule can issue a query per record.
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from django_bulk_dispatch.batch import ChangeBatch
from django_bulk_dispatch.context import TriggerContext
from django_bulk_dispatch.enums import MUTATION_ORDER, MutationKind, Operation
from django_bulk_dispatch.exceptions import (
    BatchRejected,
    DispatchError,
    ExternalCallError,
    InvalidOperationError,
    RecordValidationError,
)
from django_bulk_dispatch.gateway import BudgetedGateway, ExternalGateway, GatewayBudget, QuerySpec
from django_bulk_dispatch.logging_config import (
    log_dispatch_complete,
    log_dispatch_start,
    log_rule_execution,
)
from django_bulk_dispatch.records import Record
from django_bulk_dispatch.results import DispatchResult, FieldError, Notification
from django_bulk_dispatch.rules import Rule

logger = logging.getLogger(__name__)


class MutationPlan:
    """Mutation requests collected during one dispatch, grouped by (kind, entity)."""

    def __init__(self):
        self._requests: "OrderedDict[Tuple[MutationKind, str], List[Record]]" = OrderedDict()

    def add(self, kind: MutationKind, records: Iterable[Record]):
        for record in records:
            pending = self._requests.setdefault((kind, record.entity), [])
            if not any(existing is record for existing in pending):
                pending.append(record)

    def pending(self, kind: MutationKind, entity: Optional[str] = None) -> List[Record]:
        records = []
        for (pending_kind, pending_entity), pending in self._requests.items():
            if pending_kind is kind and entity in (None, pending_entity):
                records.extend(pending)
        return records

    def calls(self) -> List[Tuple[MutationKind, str, List[Record]]]:
        """One entry per coalesced call, inserts first, then updates, then deletes."""
        return [
            (kind, entity, records)
            for kind in MUTATION_ORDER
            for (pending_kind, entity), records in self._requests.items()
            if pending_kind is kind and records
        ]

    def summary(self) -> Dict[Tuple[MutationKind, str], Tuple[Any, ...]]:
        return {
            (kind, entity): tuple(record.id for record in records)
            for kind, entity, records in self.calls()
        }

    def __bool__(self):
        return any(self._requests.values())


class RuleScope:
    """
    What a rule sees while it runs.

    ``records`` are the batch records the rule's condition selected, in
    batch order. Everything else a rule may do (read fetched results,
    reject records, request mutations, queue notifications) goes through
    the scope.
    """

    def __init__(
        self,
        rule: Rule,
        batch: ChangeBatch,
        context: TriggerContext,
        records: Sequence[Record],
        fetched: Dict[QuerySpec, List[Record]],
        plan: MutationPlan,
        result: DispatchResult,
    ):
        self.rule = rule
        self.batch = batch
        self.context = context
        self.records = list(records)
        self._fetched = fetched
        self._plan = plan
        self._result = result

    def old_for(self, record: Record) -> Optional[Record]:
        return self.batch.old_for(record)

    def fetched(self, spec: QuerySpec) -> List[Record]:
        """
        Results of a query declared in the bulk fetch step.

        Raises:
            InvalidOperationError: If ``spec`` was not declared by this rule
        """
        try:
            return self._fetched[spec]
        except KeyError:
            raise InvalidOperationError(
                f"Rule {self.rule.name} read {spec} without declaring it in its bulk fetch step"
            ) from None

    def query(self, spec: QuerySpec):
        """Always refused: queries belong to the bulk fetch step."""
        raise InvalidOperationError(
            f"Rule {self.rule.name} tried to query {spec} while evaluating records; "
            f"declare the query in the rule's fetch step instead"
        )

    def add_error(self, record: Record, message: str, field: Optional[str] = None):
        """Reject one record without stopping the rest of the batch."""
        self._result.errors.append(FieldError(record.id, field, message))
        logger.debug(f"Rule {self.rule.name} rejected {record.entity} {record.id!r}: {message}")

    def reject(self, message: str):
        """Reject the whole batch."""
        raise BatchRejected(message)

    def request(self, kind: MutationKind, records: Iterable[Record]):
        records = list(records)
        if self.context.is_before:
            for record in records:
                if self.batch.contains(record):
                    raise InvalidOperationError(
                        f"Rule {self.rule.name} requested a {kind.value} of {record.entity} "
                        f"{record.id!r}, which belongs to the batch being processed; "
                        f"edit its fields directly in the before phase"
                    )
        self._plan.add(kind, records)

    def request_insert(self, records: Iterable[Record]):
        self.request(MutationKind.INSERT, records)

    def request_update(self, records: Iterable[Record]):
        self.request(MutationKind.UPDATE, records)

    def request_delete(self, records: Iterable[Record]):
        self.request(MutationKind.DELETE, records)

    def pending(self, kind: MutationKind, entity: Optional[str] = None) -> List[Record]:
        """Mutation requests staged so far in this dispatch."""
        return self._plan.pending(kind, entity)

    def notify(self, recipient: str, subject: str, body: str):
        """Queue a notification for delivery after commit."""
        self._result.notifications.append(Notification(recipient, subject, body))


class RuleEngine:
    """
    Evaluates registered rules against change batches.

    Args:
        registry: Rule registry; defaults to the global one
        gateway: Gateway used when ``dispatch`` is not given one
    """

    def __init__(self, registry=None, gateway: Optional[ExternalGateway] = None):
        if registry is None:
            from django_bulk_dispatch.registry import registry
        self.registry = registry
        self.gateway = gateway

    def dispatch(
        self,
        batch: ChangeBatch,
        context: TriggerContext,
        gateway: Optional[ExternalGateway] = None,
    ) -> DispatchResult:
        """
        Run every applicable rule once against ``batch``.

        Record-level rejections are collected in the result. BatchRejected,
        budget and usage errors, and any unexpected exception abort the
        dispatch and propagate.

        Args:
            batch: The batch to evaluate
            context: Classification of the batch
            gateway: Gateway for this dispatch; a gateway without a budget
                gets a fresh one from configuration

        Returns:
            DispatchResult
        """
        gateway = self._budgeted(gateway or self.gateway)
        result = DispatchResult(context)

        # Only before-phase inserts/updates/undeletes may edit batch records
        if context.is_before and context.operation is not Operation.DELETE:
            batch.open()
        else:
            batch.seal()

        rules = self.registry.get_rules(batch.entity, context)
        log_dispatch_start(context.event, batch.entity, batch.count, rules=len(rules))

        try:
            if rules:
                plan = MutationPlan()
                fetched = self._bulk_fetch(rules, batch, context, gateway, result)

                for rule in rules:
                    self._run_rule(rule, batch, context, fetched, plan, result)

                if context.is_before:
                    result.staged = batch.staged_changes()
                result.requested = plan.summary()
                batch.seal()

                if result.has_errors:
                    if plan:
                        logger.debug(
                            f"Skipping {len(plan.calls())} mutation call(s): batch has record errors"
                        )
                else:
                    self._flush(plan, gateway, result)
        finally:
            batch.seal()

        log_dispatch_complete(context.event, batch.entity, result)
        return result

    def _budgeted(self, gateway: Optional[ExternalGateway]) -> BudgetedGateway:
        if gateway is None:
            raise InvalidOperationError("RuleEngine.dispatch needs a gateway")
        if isinstance(gateway, BudgetedGateway):
            return gateway
        return BudgetedGateway(gateway, GatewayBudget.from_config())

    def _bulk_fetch(self, rules, batch, context, gateway, result) -> Dict[QuerySpec, List[Record]]:
        """Issue one query per distinct spec declared by ``rules``."""
        specs: "OrderedDict[QuerySpec, None]" = OrderedDict()
        for rule in rules:
            for spec in rule.fetch(batch, context):
                specs.setdefault(spec, None)

        fetched = {}
        for spec in specs:
            fetched[spec] = list(gateway.query(spec))
            result.queries += 1

        if specs:
            logger.debug(f"Bulk fetch issued {len(fetched)} distinct queries for {batch.entity}")
        return fetched

    def _select_records(self, rule: Rule, batch: ChangeBatch) -> List[Record]:
        if rule.condition is None:
            return list(batch.records)
        return [
            record
            for record in batch.records
            if rule.condition.check(record, batch.old_for(record))
        ]

    def _run_rule(self, rule, batch, context, fetched, plan, result):
        records = self._select_records(rule, batch)
        if not records:
            logger.debug(f"No records matched the condition of {rule.name}; skipping")
            return

        log_rule_execution(rule.name, batch.entity, len(records))
        scope = RuleScope(rule, batch, context, records, fetched, plan, result)
        result.rules_run += 1

        try:
            rule.apply(scope)
        except RecordValidationError as e:
            result.errors.append(FieldError(e.record_id, e.field, e.message))
        except BatchRejected as e:
            logger.info(f"Rule {rule.name} rejected the {batch.entity} batch: {e}")
            raise
        except DispatchError:
            raise
        except Exception as e:
            # Fail-fast: re-raise so the invocation rolls back
            logger.error(f"Rule {rule.name} failed: {e}", exc_info=True)
            raise

    def _flush(self, plan: MutationPlan, gateway: ExternalGateway, result: DispatchResult):
        for kind, entity, records in plan.calls():
            try:
                mutation = gateway.mutate(kind, entity, records)
            except ExternalCallError as e:
                if not e.record_ids:
                    raise
                result.errors.extend(FieldError(record_id, None, str(e)) for record_id in e.record_ids)
                continue
            unattributed = [message for record_id, message in mutation.errors if record_id is None]
            if unattributed:
                raise ExternalCallError(
                    f"{kind.value} of {entity} failed for records without an id: {unattributed[0]}"
                )
            result.mutations.append(mutation)
            result.errors.extend(
                FieldError(record_id, None, message) for record_id, message in mutation.errors
            )
