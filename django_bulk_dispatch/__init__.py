"""
Django Bulk Dispatch - bulk-safe record-change rules for Django.

Batches of changed records are classified into a trigger context
(operation x before/after phase) and run through registered rules once per
batch. All storage access goes through a budgeted gateway, so rules cannot
issue queries or mutations per record.
"""

from django_bulk_dispatch.batch import ChangeBatch, split_records
from django_bulk_dispatch.conditions import (
    ChangesFrom,
    ChangesTo,
    CustomCondition,
    HasChanged,
    IsEqual,
    IsNotEqual,
    IsTruthy,
    TriggerCondition,
    WasEqual,
)
from django_bulk_dispatch.context import (
    AFTER_DELETE,
    AFTER_INSERT,
    AFTER_UNDELETE,
    AFTER_UPDATE,
    ALL_CONTEXTS,
    BEFORE_DELETE,
    BEFORE_INSERT,
    BEFORE_UNDELETE,
    BEFORE_UPDATE,
    TriggerContext,
    classify,
)
from django_bulk_dispatch.decorators import (
    after_delete,
    after_insert,
    after_undelete,
    after_update,
    before_delete,
    before_insert,
    before_undelete,
    before_update,
    rule,
)
from django_bulk_dispatch.engine import RuleEngine, RuleScope
from django_bulk_dispatch.enums import MutationKind, Operation, Phase
from django_bulk_dispatch.exceptions import (
    BatchRejected,
    BatchSizeError,
    BudgetExceededError,
    ConfigurationError,
    DispatchError,
    ExternalCallError,
    InvalidOperationError,
    RecordValidationError,
    RecursionLimitError,
)
from django_bulk_dispatch.gateway import (
    BudgetedGateway,
    ExternalGateway,
    GatewayBudget,
    MutationResult,
    QuerySpec,
)
from django_bulk_dispatch.invocation import Invoker, RawChangeSet, invoke
from django_bulk_dispatch.records import Record, RecordSchema
from django_bulk_dispatch.results import (
    Committed,
    DispatchResult,
    Fatal,
    FieldError,
    InvocationResult,
    Notification,
    RejectedWithFieldErrors,
)
from django_bulk_dispatch.rules import FunctionRule, Rule

__all__ = [
    "AFTER_DELETE",
    "AFTER_INSERT",
    "AFTER_UNDELETE",
    "AFTER_UPDATE",
    "ALL_CONTEXTS",
    "BEFORE_DELETE",
    "BEFORE_INSERT",
    "BEFORE_UNDELETE",
    "BEFORE_UPDATE",
    "BatchRejected",
    "BatchSizeError",
    "BudgetExceededError",
    "BudgetedGateway",
    "ChangeBatch",
    "ChangesFrom",
    "ChangesTo",
    "Committed",
    "ConfigurationError",
    "CustomCondition",
    "DispatchError",
    "DispatchResult",
    "ExternalCallError",
    "ExternalGateway",
    "Fatal",
    "FieldError",
    "FunctionRule",
    "GatewayBudget",
    "HasChanged",
    "InvalidOperationError",
    "InvocationResult",
    "Invoker",
    "IsEqual",
    "IsNotEqual",
    "IsTruthy",
    "MutationKind",
    "MutationResult",
    "Notification",
    "Operation",
    "Phase",
    "QuerySpec",
    "RawChangeSet",
    "Record",
    "RecordSchema",
    "RecordValidationError",
    "RecursionLimitError",
    "RejectedWithFieldErrors",
    "Rule",
    "RuleEngine",
    "RuleScope",
    "TriggerCondition",
    "TriggerContext",
    "WasEqual",
    "after_delete",
    "after_insert",
    "after_undelete",
    "after_update",
    "before_delete",
    "before_insert",
    "before_undelete",
    "before_update",
    "classify",
    "invoke",
    "rule",
    "split_records",
]

__version__ = "1.0.0"
