"""
ChangeBatch: the records delivered to one dispatch.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from django_bulk_dispatch.exceptions import BatchSizeError
from django_bulk_dispatch.records import Record


@dataclass(frozen=True)
class StagedChange:
    """Field edits a Before-phase rule made to one record of the batch."""

    index: int
    record_id: Any
    changes: Dict[str, Any]


class ChangeBatch:
    """
    Immutable view over one batch of changed records.

    ``new_records`` keeps the platform's order. ``old_records`` maps record
    identifiers to their previous state and is empty for inserts. The batch
    itself never changes after construction; only the new records' field
    values may change, and only until the batch is sealed.

    Args:
        entity: Entity name shared by every record in the batch
        new_records: Records in their new state, in platform order
        old_records: Previous state, as a mapping by id or a sequence of records
        max_size: Batch cap; defaults to the configured ``BATCH_SIZE``

    Raises:
        BatchSizeError: If the batch holds more records than the cap
    """

    def __init__(
        self,
        entity: str,
        new_records: Iterable[Record],
        old_records: Union[Mapping[Any, Record], Sequence[Record], None] = None,
        max_size: Optional[int] = None,
    ):
        if max_size is None:
            from django_bulk_dispatch.config import get_config

            max_size = get_config().batch_size

        self.entity = entity
        self._new: Tuple[Record, ...] = tuple(new_records)

        if old_records is None:
            old_map = {}
        elif isinstance(old_records, Mapping):
            old_map = dict(old_records)
        else:
            old_map = {record.id: record for record in old_records}

        size = max(len(self._new), len(old_map))
        if size > max_size:
            raise BatchSizeError(size, max_size)

        for record in old_map.values():
            record.seal()
        self._old = MappingProxyType(old_map)
        self.max_size = max_size
        self._sealed = False

    @property
    def new_records(self) -> Tuple[Record, ...]:
        return self._new

    # Alias used by most rules
    records = new_records

    @property
    def old_records(self) -> Mapping[Any, Record]:
        return self._old

    @property
    def count(self) -> int:
        return len(self._new)

    @property
    def ids(self) -> List[Any]:
        """Identifiers of the new records that have one, in batch order."""
        return [record.id for record in self._new if record.id is not None]

    @property
    def new_map(self) -> Mapping[Any, Record]:
        return MappingProxyType({record.id: record for record in self._new if record.id is not None})

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def old_for(self, record: Record) -> Optional[Record]:
        """Previous state of ``record``, or None when there is none."""
        return self._old.get(record.id)

    def changed(self, record: Record, field: str) -> bool:
        """True when ``field`` differs between the old and new state of ``record``."""
        old = self.old_for(record)
        if old is None:
            return False
        return old.get(field) != record.get(field)

    def contains(self, record: Record) -> bool:
        """True when ``record`` (or a record with its id) is part of this batch."""
        if record.entity != self.entity:
            return False
        if any(record is own for own in self._new):
            return True
        return record.id is not None and (record.id in self.new_map or record.id in self._old)

    def seal(self):
        """Make every new record read-only."""
        for record in self._new:
            record.seal()
        self._sealed = True

    def open(self):
        """Make the new records writable for a before-phase dispatch."""
        for record in self._new:
            record.unseal()
        self._sealed = False

    def staged_changes(self) -> List[StagedChange]:
        """Field edits made to the new records, one entry per edited record."""
        staged = []
        for index, record in enumerate(self._new):
            changes = record.staged_changes
            if changes:
                staged.append(StagedChange(index, record.id, changes))
        return staged

    def __len__(self):
        return len(self._new)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._new)

    def __repr__(self):
        return f"<ChangeBatch {self.entity} new={len(self._new)} old={len(self._old)}>"


def split_records(records: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """
    Split a changeset into sequential chunks of at most ``size`` items.

    Raises:
        ValueError: If ``size`` is not positive
    """
    if size < 1:
        raise ValueError(f"Batch size must be positive, got {size}")
    for start in range(0, len(records), size):
        yield records[start : start + size]
