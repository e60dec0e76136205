"""
Rule registry.

Rules are kept per entity in registration order, which is also the order
the engine runs them in. Registration is where rules are validated: a rule
that names no context, or reads a field its entity's schema does not know,
is refused with a ConfigurationError.
"""

import logging
import threading
from collections import defaultdict
from typing import Dict, List, Optional

from django_bulk_dispatch.context import TriggerContext
from django_bulk_dispatch.exceptions import ConfigurationError
from django_bulk_dispatch.records import RecordSchema
from django_bulk_dispatch.rules import Rule

logger = logging.getLogger(__name__)


class RuleRegistry:
    """Holds registered rules and entity schemas."""

    def __init__(self):
        self._rules: Dict[str, List[Rule]] = defaultdict(list)
        self._schemas: Dict[str, RecordSchema] = {}
        self._lock = threading.RLock()

    def register_schema(self, schema: RecordSchema) -> RecordSchema:
        """
        Register the schema of an entity.

        Rules already registered for the entity are validated against it.
        """
        with self._lock:
            for rule in self._rules.get(schema.entity, []):
                schema.validate(rule.referenced_fields(), owner=rule.name)
            self._schemas[schema.entity] = schema
        return schema

    def get_schema(self, entity: str) -> Optional[RecordSchema]:
        return self._schemas.get(entity)

    def register(self, rule: Rule) -> Rule:
        """
        Validate, freeze and register a rule.

        Raises:
            ConfigurationError: If the rule is incomplete or references
                fields unknown to its entity's schema
        """
        if not rule.entity:
            raise ConfigurationError(f"Rule {rule.name} does not name an entity")
        if not rule.contexts:
            raise ConfigurationError(f"Rule {rule.name} does not apply to any context")

        with self._lock:
            if any(existing is rule for existing in self._rules[rule.entity]):
                raise ConfigurationError(f"Rule {rule.name} is already registered")

            schema = self._schemas.get(rule.entity)
            if schema is not None:
                schema.validate(rule.referenced_fields(), owner=rule.name)
            else:
                logger.debug(f"No schema registered for {rule.entity}; skipping field validation")

            rule.freeze()
            self._rules[rule.entity].append(rule)

        logger.debug(f"Registered {rule!r}")
        return rule

    def unregister(self, rule: Rule):
        with self._lock:
            rules = self._rules.get(rule.entity, [])
            self._rules[rule.entity] = [r for r in rules if r is not rule]

    def get_rules(self, entity: str, context: TriggerContext) -> List[Rule]:
        """Rules for ``entity`` that apply to ``context``, in registration order."""
        with self._lock:
            return [rule for rule in self._rules.get(entity, []) if rule.applies_to(context)]

    def list_all(self) -> Dict[str, List[Rule]]:
        with self._lock:
            return {entity: list(rules) for entity, rules in self._rules.items() if rules}

    def clear(self):
        """Remove all rules and schemas. Useful for testing."""
        with self._lock:
            self._rules.clear()
            self._schemas.clear()


# Default registry used by the decorators
registry = RuleRegistry()


def register_rule(rule: Rule) -> Rule:
    return registry.register(rule)


def register_schema(schema: RecordSchema) -> RecordSchema:
    return registry.register_schema(schema)


def get_rules(entity: str, context: TriggerContext) -> List[Rule]:
    return registry.get_rules(entity, context)


def list_all_rules() -> Dict[str, List[Rule]]:
    return registry.list_all()


def clear_rules():
    registry.clear()
