"""
Rule definitions.

A rule is registered once and never changes afterwards. It declares the
contexts it applies to, an optional per-record condition, the queries it
needs (the bulk fetch step) and an action that runs once per batch.
"""

import logging
from typing import Any, Callable, FrozenSet, Iterable, List, Optional, Union

from django_bulk_dispatch.conditions import TriggerCondition
from django_bulk_dispatch.context import TriggerContext
from django_bulk_dispatch.exceptions import ConfigurationError, InvalidOperationError
from django_bulk_dispatch.gateway import QuerySpec

logger = logging.getLogger(__name__)

ContextLike = Union[TriggerContext, str]
FetchLike = Union[QuerySpec, Callable[..., Any]]


def normalize_contexts(contexts: Iterable[ContextLike]) -> FrozenSet[TriggerContext]:
    """Accept TriggerContext values or event names such as ``"after_update"``."""
    normalized = set()
    for context in contexts:
        if isinstance(context, str):
            context = TriggerContext.from_event(context)
        elif not isinstance(context, TriggerContext):
            raise ConfigurationError(f"Not a trigger context: {context!r}")
        normalized.add(context)
    return frozenset(normalized)


class Rule:
    """
    Base class for class-based rules.

    Subclasses set the class attributes and implement ``apply``; any of
    them can be overridden per instance through the constructor.

    Example:
        class CopyBillingPostalCode(Rule):
            entity = "crm.Account"
            contexts = [BEFORE_INSERT, BEFORE_UPDATE]
            condition = IsTruthy("match_billing_address")
            reads = ["billing_postal_code"]
            writes = ["shipping_postal_code"]

            def apply(self, scope):
                for record in scope.records:
                    record["shipping_postal_code"] = record["billing_postal_code"]
    """

    entity: Optional[str] = None
    contexts: Iterable[ContextLike] = ()
    condition: Optional[TriggerCondition] = None
    fetch_specs: Iterable[FetchLike] = ()
    reads: Iterable[str] = ()
    writes: Iterable[str] = ()

    def __init__(
        self,
        entity: Optional[str] = None,
        contexts: Optional[Iterable[ContextLike]] = None,
        condition: Optional[TriggerCondition] = None,
        fetch: Optional[Iterable[FetchLike]] = None,
        reads: Optional[Iterable[str]] = None,
        writes: Optional[Iterable[str]] = None,
        name: Optional[str] = None,
    ):
        self.entity = entity or self.entity
        self.contexts = normalize_contexts(contexts if contexts is not None else self.contexts)
        self.condition = condition or self.condition
        self.fetch_specs = tuple(fetch if fetch is not None else self.fetch_specs)
        self.reads = frozenset(reads if reads is not None else self.reads)
        self.writes = frozenset(writes if writes is not None else self.writes)
        self.name = name or self.__class__.__name__
        self._frozen = False

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise InvalidOperationError(f"Rule {self.name} cannot be changed after registration")
        super().__setattr__(name, value)

    def freeze(self):
        self._frozen = True

    def applies_to(self, context: TriggerContext) -> bool:
        return context in self.contexts

    def referenced_fields(self) -> FrozenSet[str]:
        fields = self.reads | self.writes
        if self.condition is not None:
            fields |= self.condition.referenced_fields()
        return fields

    def fetch(self, batch, context) -> List[QuerySpec]:
        """
        Bulk fetch step: the queries this rule needs for ``batch``.

        Each entry of ``fetch_specs`` is either a QuerySpec or a callable
        ``(batch, context)`` returning a QuerySpec, a list of them, or None.
        """
        specs = []
        for entry in self.fetch_specs:
            produced = entry(batch, context) if callable(entry) else entry
            if produced is None:
                continue
            if isinstance(produced, QuerySpec):
                specs.append(produced)
            else:
                specs.extend(produced)
        return specs

    def apply(self, scope):
        """Run the rule once for the batch described by ``scope``."""
        raise NotImplementedError

    def __repr__(self):
        events = ", ".join(sorted(c.event for c in self.contexts))
        return f"<Rule {self.name} on {self.entity} [{events}]>"


class FunctionRule(Rule):
    """Rule whose action is a plain function taking the scope."""

    def __init__(self, func: Callable[[Any], None], entity: str, contexts, **kwargs):
        kwargs.setdefault("name", getattr(func, "__qualname__", repr(func)))
        super().__init__(entity=entity, contexts=contexts, **kwargs)
        self.func = func

    def apply(self, scope):
        return self.func(scope)
