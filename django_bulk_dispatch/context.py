"""
Trigger context classification.

The platform describes an operation with independent boolean flags
(``is_insert``, ``is_before`` ...). This module folds them into a single
TriggerContext value so the combination is checked once, up front, and rules
can match on an exhaustive (operation, phase) pair.
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from django_bulk_dispatch.enums import Operation, Phase
from django_bulk_dispatch.exceptions import ConfigurationError

OPERATION_FLAGS = {
    "is_insert": Operation.INSERT,
    "is_update": Operation.UPDATE,
    "is_delete": Operation.DELETE,
    "is_undelete": Operation.UNDELETE,
}

PHASE_FLAGS = {
    "is_before": Phase.BEFORE,
    "is_after": Phase.AFTER,
}


@dataclass(frozen=True)
class TriggerContext:
    """Immutable (operation, phase) classification of one batch."""

    operation: Operation
    phase: Phase

    @property
    def event(self) -> str:
        """Event name such as ``before_insert``."""
        return f"{self.phase.value}_{self.operation.value}"

    @property
    def is_before(self) -> bool:
        return self.phase is Phase.BEFORE

    @property
    def is_after(self) -> bool:
        return self.phase is Phase.AFTER

    @property
    def has_old_records(self) -> bool:
        return self.operation.has_old_records

    @classmethod
    def from_event(cls, event: str) -> "TriggerContext":
        """
        Parse an event name back into a context.

        Raises:
            ConfigurationError: If the name is not ``<phase>_<operation>``
        """
        phase_name, _, operation_name = event.lower().partition("_")
        try:
            return cls(Operation(operation_name), Phase(phase_name))
        except ValueError:
            raise ConfigurationError(f"Unknown trigger event: {event!r}") from None

    def __str__(self):
        return self.event


def classify(flags: Optional[Mapping[str, bool]] = None, **kwargs) -> TriggerContext:
    """
    Build a TriggerContext from platform metadata flags.

    Flags can be given as a mapping, as keyword arguments, or both. Exactly
    one operation flag and exactly one phase flag must be set.

    Args:
        flags: Mapping of flag name to bool
        **kwargs: Additional flags

    Returns:
        The matching TriggerContext

    Raises:
        ConfigurationError: On unknown flags or impossible combinations
    """
    merged = dict(flags or {})
    merged.update(kwargs)

    unknown = set(merged) - set(OPERATION_FLAGS) - set(PHASE_FLAGS)
    if unknown:
        raise ConfigurationError(f"Unknown trigger flags: {', '.join(sorted(unknown))}")

    operations = [op for name, op in OPERATION_FLAGS.items() if merged.get(name)]
    phases = [phase for name, phase in PHASE_FLAGS.items() if merged.get(name)]

    if len(operations) != 1:
        raise ConfigurationError(
            f"Exactly one operation flag must be set, got {len(operations)}: {merged}"
        )
    if len(phases) != 1:
        raise ConfigurationError(
            f"Exactly one phase flag must be set, got {len(phases)}: {merged}"
        )

    return TriggerContext(operations[0], phases[0])


BEFORE_INSERT = TriggerContext(Operation.INSERT, Phase.BEFORE)
AFTER_INSERT = TriggerContext(Operation.INSERT, Phase.AFTER)
BEFORE_UPDATE = TriggerContext(Operation.UPDATE, Phase.BEFORE)
AFTER_UPDATE = TriggerContext(Operation.UPDATE, Phase.AFTER)
BEFORE_DELETE = TriggerContext(Operation.DELETE, Phase.BEFORE)
AFTER_DELETE = TriggerContext(Operation.DELETE, Phase.AFTER)
BEFORE_UNDELETE = TriggerContext(Operation.UNDELETE, Phase.BEFORE)
AFTER_UNDELETE = TriggerContext(Operation.UNDELETE, Phase.AFTER)

ALL_CONTEXTS = frozenset(
    TriggerContext(operation, phase) for operation in Operation for phase in Phase
)
