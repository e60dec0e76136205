"""
Record and schema types.

A Record is the unit the dispatcher moves around: a mapping from field name
to value for one row of one entity. Records stay writable while their batch is
in the Before phase; every write made in that window is tracked so the edits
can be handed back to the platform as staged changes.
"""

from collections.abc import MutableMapping
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from django_bulk_dispatch.exceptions import ConfigurationError, InvalidOperationError

_MISSING = object()


class Record(MutableMapping):
    """
    Field mapping for a single record.

    Args:
        entity: Name of the entity (model label) the record belongs to
        fields: Initial field values
        id: Identifier; taken from ``fields["id"]`` when omitted
    """

    def __init__(self, entity: str, fields: Optional[Mapping[str, Any]] = None, id: Any = None):
        self.entity = entity
        self._data: Dict[str, Any] = dict(fields or {})
        if id is not None:
            self._data["id"] = id
        self._original = dict(self._data)
        self._sealed = False

    @property
    def id(self):
        return self._data.get("id")

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def seal(self):
        """Make the record read-only."""
        self._sealed = True

    def unseal(self):
        """Make the record writable again for another before-phase dispatch."""
        self._sealed = False

    @property
    def staged_changes(self) -> Dict[str, Any]:
        """Fields whose value differs from the value the record was built with."""
        return {
            name: value
            for name, value in self._data.items()
            if self._original.get(name, _MISSING) != value
        }

    def snapshot(self) -> "Record":
        """Return an unsealed copy holding the current values."""
        return Record(self.entity, self._data)

    def __getitem__(self, name):
        return self._data[name]

    def __setitem__(self, name, value):
        if self._sealed:
            raise InvalidOperationError(
                f"{self.entity} record {self.id!r} is sealed; "
                f"field '{name}' cannot be written outside a before-phase dispatch"
            )
        self._data[name] = value

    def __delitem__(self, name):
        raise InvalidOperationError("Fields cannot be removed from a record")

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def __repr__(self):
        return f"<Record {self.entity} id={self.id!r} {self._data!r}>"


class RecordSchema:
    """
    Declared field names of one entity.

    Fields ending with ``custom_suffix`` are accepted without being declared,
    for entities that carry dynamic custom fields. Pass ``custom_suffix=None``
    to reject every undeclared field.
    """

    def __init__(self, entity: str, fields: Iterable[str], custom_suffix: Optional[str] = "__c"):
        self.entity = entity
        self.fields: FrozenSet[str] = frozenset(fields) | {"id"}
        self.custom_suffix = custom_suffix

    def knows(self, field: str) -> bool:
        if field in self.fields:
            return True
        return bool(self.custom_suffix) and field.endswith(self.custom_suffix)

    def validate(self, fields: Iterable[str], owner: str = "rule"):
        """
        Check that every field name is known to the schema.

        Raises:
            ConfigurationError: If any field is unknown
        """
        unknown = sorted(f for f in fields if not self.knows(f))
        if unknown:
            raise ConfigurationError(
                f"{owner} references unknown {self.entity} fields: {', '.join(unknown)}"
            )

    def __repr__(self):
        return f"<RecordSchema {self.entity} ({len(self.fields)} fields)>"
