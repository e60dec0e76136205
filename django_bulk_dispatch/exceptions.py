"""
Exception taxonomy for django-bulk-dispatch.

Record-scoped errors are collected and reported back with the invocation
result. Everything else aborts the current dispatch.
"""

from typing import Any, Optional

from django.core.exceptions import ImproperlyConfigured, ValidationError


class DispatchError(Exception):
    """Base class for all dispatcher errors."""


class RecordValidationError(DispatchError, ValidationError):
    """
    A rule rejected one record.

    The error is attached to the record (and optionally one of its fields)
    and does not abort evaluation of sibling records.
    """

    def __init__(self, message: str, record_id: Any = None, field: Optional[str] = None):
        ValidationError.__init__(self, message)
        self.record_id = record_id
        self.field = field

    def __str__(self):
        return self.message


class ConfigurationError(DispatchError, ImproperlyConfigured):
    """Invalid context flags, rule registration or settings."""


class BudgetExceededError(DispatchError):
    """A gateway call would exceed the per-invocation call budget."""

    def __init__(self, kind: str, limit: int):
        super().__init__(f"{kind} call budget of {limit} exceeded")
        self.kind = kind
        self.limit = limit


class ExternalCallError(DispatchError):
    """
    The host platform failed a query or mutation.

    ``record_ids`` lists the records the failure can be attributed to; an
    empty list means the failure is unattributable.
    """

    def __init__(self, message: str, record_ids=None):
        super().__init__(message)
        self.record_ids = list(record_ids or [])


class InvalidOperationError(DispatchError):
    """A rule or caller used the dispatcher in a way the phase forbids."""


class BatchRejected(DispatchError):
    """A rule rejected the whole batch."""


class BatchSizeError(DispatchError, ValueError):
    """A batch was built with more records than the configured cap."""

    def __init__(self, size: int, cap: int):
        super().__init__(f"Batch of {size} records exceeds the cap of {cap}")
        self.size = size
        self.cap = cap


class RecursionLimitError(DispatchError):
    """Nested invocations for one entity and context went too deep."""
