"""
Rule conditions.

A condition narrows the records a rule sees. It is checked per record
against the new and old state, in memory, before the rule runs; conditions
never reach the gateway.
"""

import logging
from typing import Any, Callable, FrozenSet, Optional

logger = logging.getLogger(__name__)


def resolve_field(record: Any, path: str) -> Any:
    """
    Resolve a field path against a record.

    Dotted paths walk nested mappings (``"owner.email"``). Missing fields and
    a None record both resolve to None.
    """
    current = record
    for part in path.split("."):
        if current is None:
            return None
        if hasattr(current, "get"):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


class TriggerCondition:
    """
    Base class for rule conditions.

    Subclasses implement ``check``. Conditions combine with ``&``, ``|`` and
    ``~``.
    """

    def check(self, record: Any, old_record: Optional[Any] = None) -> bool:
        """
        Check if the condition is met for one record.

        Args:
            record: The record in its new state
            old_record: The previous state, if the operation has one

        Returns:
            True if the record should be passed to the rule
        """
        raise NotImplementedError

    def referenced_fields(self) -> FrozenSet[str]:
        """Top-level field names this condition reads."""
        return frozenset()

    def __call__(self, record: Any, old_record: Optional[Any] = None) -> bool:
        return self.check(record, old_record)

    def __and__(self, other):
        return AndCondition(self, other)

    def __or__(self, other):
        return OrCondition(self, other)

    def __invert__(self):
        return NotCondition(self)


class FieldCondition(TriggerCondition):
    """Condition on a single field."""

    def __init__(self, field: str):
        self.field = field

    def referenced_fields(self) -> FrozenSet[str]:
        return frozenset([self.field.split(".")[0]])

    def __repr__(self):
        return f"{self.__class__.__name__}({self.field!r})"


class HasChanged(FieldCondition):
    """
    True when a field differs between the old and new state.

    With ``has_changed=False`` the check is inverted. Records without an old
    state never match.
    """

    def __init__(self, field: str, has_changed: bool = True):
        super().__init__(field)
        self.has_changed = has_changed

    def check(self, record, old_record=None) -> bool:
        if old_record is None:
            return False

        current_value = resolve_field(record, self.field)
        previous_value = resolve_field(old_record, self.field)
        result = (current_value != previous_value) == self.has_changed

        if result:
            logger.debug(f"HasChanged({self.field}): {previous_value} -> {current_value}")

        return result


class IsEqual(FieldCondition):
    """
    True when a field equals a value.

    With ``only_on_change=True`` the field must also have held a different
    value before.
    """

    def __init__(self, field: str, value: Any, only_on_change: bool = False):
        super().__init__(field)
        self.value = value
        self.only_on_change = only_on_change

    def check(self, record, old_record=None) -> bool:
        current_value = resolve_field(record, self.field)

        if self.only_on_change:
            if old_record is None:
                return False
            previous_value = resolve_field(old_record, self.field)
            return previous_value != self.value and current_value == self.value
        return current_value == self.value


class IsNotEqual(FieldCondition):
    """True when a field does not equal a value."""

    def __init__(self, field: str, value: Any, only_on_change: bool = False):
        super().__init__(field)
        self.value = value
        self.only_on_change = only_on_change

    def check(self, record, old_record=None) -> bool:
        current_value = resolve_field(record, self.field)

        if self.only_on_change:
            if old_record is None:
                return False
            previous_value = resolve_field(old_record, self.field)
            return previous_value == self.value and current_value != self.value
        return current_value != self.value


class WasEqual(FieldCondition):
    """True when the old value of a field equals a value."""

    def __init__(self, field: str, value: Any, only_on_change: bool = False):
        super().__init__(field)
        self.value = value
        self.only_on_change = only_on_change

    def check(self, record, old_record=None) -> bool:
        if old_record is None:
            return False

        previous_value = resolve_field(old_record, self.field)
        if self.only_on_change:
            current_value = resolve_field(record, self.field)
            return previous_value == self.value and current_value != self.value
        return previous_value == self.value


class ChangesTo(FieldCondition):
    """True when a field moves to a value it did not hold before."""

    def __init__(self, field: str, value: Any):
        super().__init__(field)
        self.value = value

    def check(self, record, old_record=None) -> bool:
        if old_record is None:
            return False
        current_value = resolve_field(record, self.field)
        previous_value = resolve_field(old_record, self.field)
        return previous_value != self.value and current_value == self.value


class ChangesFrom(FieldCondition):
    """True when a field leaves a value it held before."""

    def __init__(self, field: str, value: Any):
        super().__init__(field)
        self.value = value

    def check(self, record, old_record=None) -> bool:
        if old_record is None:
            return False
        current_value = resolve_field(record, self.field)
        previous_value = resolve_field(old_record, self.field)
        return previous_value == self.value and current_value != self.value


class IsTruthy(FieldCondition):
    """True when a field holds a truthy value (checkbox flags and the like)."""

    def check(self, record, old_record=None) -> bool:
        return bool(resolve_field(record, self.field))


class CustomCondition(TriggerCondition):
    """
    Condition backed by a callable taking ``(record, old_record)``.

    ``fields`` declares what the callable reads so registration can check
    it against the entity schema.
    """

    def __init__(self, func: Callable[[Any, Optional[Any]], bool], fields=()):
        self.func = func
        self.fields = frozenset(fields)

    def check(self, record, old_record=None) -> bool:
        return bool(self.func(record, old_record))

    def referenced_fields(self) -> FrozenSet[str]:
        return self.fields


class AndCondition(TriggerCondition):
    def __init__(self, left: TriggerCondition, right: TriggerCondition):
        self.left = left
        self.right = right

    def check(self, record, old_record=None) -> bool:
        return self.left.check(record, old_record) and self.right.check(record, old_record)

    def referenced_fields(self) -> FrozenSet[str]:
        return self.left.referenced_fields() | self.right.referenced_fields()


class OrCondition(TriggerCondition):
    def __init__(self, left: TriggerCondition, right: TriggerCondition):
        self.left = left
        self.right = right

    def check(self, record, old_record=None) -> bool:
        return self.left.check(record, old_record) or self.right.check(record, old_record)

    def referenced_fields(self) -> FrozenSet[str]:
        return self.left.referenced_fields() | self.right.referenced_fields()


class NotCondition(TriggerCondition):
    def __init__(self, condition: TriggerCondition):
        self.condition = condition

    def check(self, record, old_record=None) -> bool:
        return not self.condition.check(record, old_record)

    def referenced_fields(self) -> FrozenSet[str]:
        return self.condition.referenced_fields()


def has_changed(field: str) -> HasChanged:
    """Convenience function for HasChanged condition."""
    return HasChanged(field, has_changed=True)


def has_not_changed(field: str) -> HasChanged:
    """Convenience function for HasChanged condition (inverted)."""
    return HasChanged(field, has_changed=False)


def is_equal(field: str, value: Any) -> IsEqual:
    """Convenience function for IsEqual condition."""
    return IsEqual(field, value)


def changes_to(field: str, value: Any) -> ChangesTo:
    """Convenience function for ChangesTo condition."""
    return ChangesTo(field, value)
