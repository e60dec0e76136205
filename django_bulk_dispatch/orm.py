"""
ExternalGateway backed by the Django ORM.

Entities are model labels (``"crm.Account"``). Records carry column values
keyed by attribute name (``account_id`` for a foreign key), plus ``id`` for
the primary key whatever the model calls it.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from django.apps import apps
from django.db import DEFAULT_DB_ALIAS, DatabaseError, transaction

from django_bulk_dispatch.enums import MutationKind
from django_bulk_dispatch.exceptions import ConfigurationError, ExternalCallError
from django_bulk_dispatch.gateway import ExternalGateway, MutationResult, QuerySpec
from django_bulk_dispatch.invocation import RawChangeSet
from django_bulk_dispatch.records import Record, RecordSchema

logger = logging.getLogger(__name__)


def entity_for_model(model) -> str:
    return model._meta.label


def schema_for_model(model, custom_suffix: Optional[str] = None) -> RecordSchema:
    """Build a RecordSchema from a model's concrete fields."""
    if custom_suffix is None:
        from django_bulk_dispatch.config import get_config

        custom_suffix = get_config().custom_field_suffix

    names = set()
    for field in model._meta.concrete_fields:
        names.add(field.name)
        names.add(field.attname)
    return RecordSchema(entity_for_model(model), names, custom_suffix=custom_suffix)


def instance_values(instance) -> Dict[str, Any]:
    """Column values of a model instance, keyed by attribute name."""
    values = {field.attname: getattr(instance, field.attname) for field in instance._meta.concrete_fields}
    values["id"] = instance.pk
    return values


def change_set_for_instances(instances: Sequence, originals: Optional[Sequence] = None) -> RawChangeSet:
    """
    Build a RawChangeSet from model instances.

    Args:
        instances: Instances in their new state
        originals: Instances in their previous state, if any
    """
    instances = list(instances)
    originals = list(originals or [])
    sample = instances[0] if instances else (originals[0] if originals else None)
    if sample is None:
        raise ValueError("Cannot build a change set without instances")
    return RawChangeSet(
        entity=entity_for_model(type(sample)),
        new=[instance_values(instance) for instance in instances],
        old=[instance_values(original) for original in originals],
    )


class OrmGateway(ExternalGateway):
    """
    Gateway that runs queries and mutations through model managers.

    Uses ``_base_manager`` so custom default managers cannot hide rows.

    Args:
        using: Database alias
    """

    def __init__(self, using: Optional[str] = None):
        self.using = using or DEFAULT_DB_ALIAS

    def get_model(self, entity: str):
        try:
            return apps.get_model(entity)
        except (LookupError, ValueError) as e:
            raise ConfigurationError(f"Unknown entity {entity!r}: {e}") from e

    def _manager(self, model):
        return model._base_manager.db_manager(self.using)

    def query(self, spec: QuerySpec) -> List[Record]:
        model = self.get_model(spec.entity)
        pk_name = model._meta.pk.attname
        queryset = self._manager(model).filter(**spec.filter_kwargs())
        if spec.fields:
            queryset = queryset.values(pk_name, *spec.fields)
        else:
            queryset = queryset.values()

        try:
            rows = list(queryset)
        except DatabaseError as e:
            raise ExternalCallError(f"Query {spec} failed: {e}") from e

        return [Record(spec.entity, row, id=row[pk_name]) for row in rows]

    def mutate(self, kind: MutationKind, entity: str, records: Sequence[Record]) -> MutationResult:
        model = self.get_model(entity)
        records = tuple(records)
        try:
            if kind is MutationKind.INSERT:
                return self._insert(model, entity, records)
            if kind is MutationKind.UPDATE:
                return self._update(model, entity, records)
            return self._delete(model, entity, records)
        except DatabaseError as e:
            raise ExternalCallError(f"{kind.value} of {len(records)} {entity} records failed: {e}") from e

    def _column_values(self, model, record: Record) -> Dict[str, Any]:
        columns = {}
        for field in model._meta.concrete_fields:
            columns[field.name] = field.attname
            columns[field.attname] = field.attname
        columns["id"] = model._meta.pk.attname

        unknown = sorted(name for name in record if name not in columns)
        if unknown:
            raise ConfigurationError(
                f"{entity_for_model(model)} has no columns for fields: {', '.join(unknown)}"
            )
        return {columns[name]: value for name, value in record.items()}

    def _insert(self, model, entity, records) -> MutationResult:
        objs = [model(**self._column_values(model, record)) for record in records]
        created = self._manager(model).bulk_create(objs)
        for record, obj in zip(records, created):
            if obj.pk is not None and not record.is_sealed:
                record["id"] = obj.pk
        logger.debug(f"Inserted {len(created)} {entity} records")
        return MutationResult(MutationKind.INSERT, entity, records)

    def _require_ids(self, kind: MutationKind, entity: str, records):
        missing = sum(1 for record in records if record.id is None)
        if missing:
            raise ExternalCallError(f"Cannot {kind.value} {missing} {entity} record(s) without an id")

    def _update(self, model, entity, records) -> MutationResult:
        self._require_ids(MutationKind.UPDATE, entity, records)

        pk_name = model._meta.pk.attname
        objs = []
        fields = set()
        for record in records:
            values = self._column_values(model, record)
            objs.append(model(**values))
            fields.update(name for name in values if name != pk_name)

        if objs and fields:
            self._manager(model).bulk_update(objs, sorted(fields))
        logger.debug(f"Updated {len(objs)} {entity} records ({', '.join(sorted(fields))})")
        return MutationResult(MutationKind.UPDATE, entity, records)

    def _delete(self, model, entity, records) -> MutationResult:
        self._require_ids(MutationKind.DELETE, entity, records)
        ids = [record.id for record in records]
        if ids:
            self._manager(model).filter(pk__in=ids).delete()
        logger.debug(f"Deleted {len(ids)} {entity} records")
        return MutationResult(MutationKind.DELETE, entity, records)

    def atomic(self):
        return transaction.atomic(using=self.using)

    def on_commit(self, func):
        transaction.on_commit(func, using=self.using)
