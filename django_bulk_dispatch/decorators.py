"""
Decorators for registering function-based rules.

Example:
    @before_insert("crm.Account", condition=IsTruthy("match_billing_address"),
                   reads=["billing_postal_code"], writes=["shipping_postal_code"])
    def copy_billing_postal_code(scope):
        for record in scope.records:
            record["shipping_postal_code"] = record["billing_postal_code"]
"""

from typing import Callable, Iterable, Optional

from django_bulk_dispatch.conditions import TriggerCondition
from django_bulk_dispatch.context import (
    AFTER_DELETE,
    AFTER_INSERT,
    AFTER_UNDELETE,
    AFTER_UPDATE,
    BEFORE_DELETE,
    BEFORE_INSERT,
    BEFORE_UNDELETE,
    BEFORE_UPDATE,
)
from django_bulk_dispatch.rules import FunctionRule


def rule(
    entity: str,
    *contexts,
    condition: Optional[TriggerCondition] = None,
    fetch: Iterable = (),
    reads: Iterable[str] = (),
    writes: Iterable[str] = (),
    registry=None,
):
    """
    Register the decorated function as a rule.

    Args:
        entity: Entity the rule listens to
        *contexts: TriggerContext values or event names
        condition: Optional per-record condition
        fetch: Query specs (or callables producing them) for the bulk fetch step
        reads: Fields the action reads
        writes: Fields the action writes
        registry: Registry to use instead of the default one

    The function is returned unchanged, with the registered rule attached as
    ``func.rule``.
    """
    if registry is None:
        from django_bulk_dispatch.registry import registry

    def decorator(func: Callable) -> Callable:
        func.rule = registry.register(
            FunctionRule(
                func,
                entity,
                contexts,
                condition=condition,
                fetch=fetch,
                reads=reads,
                writes=writes,
            )
        )
        return func

    return decorator


def before_insert(entity: str, **kwargs):
    """Decorator for BEFORE_INSERT rules."""
    return rule(entity, BEFORE_INSERT, **kwargs)


def after_insert(entity: str, **kwargs):
    """Decorator for AFTER_INSERT rules."""
    return rule(entity, AFTER_INSERT, **kwargs)


def before_update(entity: str, **kwargs):
    """Decorator for BEFORE_UPDATE rules."""
    return rule(entity, BEFORE_UPDATE, **kwargs)


def after_update(entity: str, **kwargs):
    """Decorator for AFTER_UPDATE rules."""
    return rule(entity, AFTER_UPDATE, **kwargs)


def before_delete(entity: str, **kwargs):
    """Decorator for BEFORE_DELETE rules."""
    return rule(entity, BEFORE_DELETE, **kwargs)


def after_delete(entity: str, **kwargs):
    """Decorator for AFTER_DELETE rules."""
    return rule(entity, AFTER_DELETE, **kwargs)


def before_undelete(entity: str, **kwargs):
    """Decorator for BEFORE_UNDELETE rules."""
    return rule(entity, BEFORE_UNDELETE, **kwargs)


def after_undelete(entity: str, **kwargs):
    """Decorator for AFTER_UNDELETE rules."""
    return rule(entity, AFTER_UNDELETE, **kwargs)
