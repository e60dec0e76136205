"""
Utility functions and helpers for testing django-bulk-dispatch.
"""

from typing import Dict, Iterable, List, Optional

from django_bulk_dispatch.batch import ChangeBatch
from django_bulk_dispatch.records import Record

ACCOUNT = "tests.Account"
CONTACT = "tests.Contact"
OPPORTUNITY = "tests.Opportunity"


def account(id=None, **fields) -> Record:
    """Build an Account record with sensible defaults."""
    values = {
        "name": f"Account {id}",
        "rating": "",
        "owner_email": "",
        "billing_postal_code": "",
        "shipping_postal_code": "",
        "match_billing_address": False,
    }
    values.update(fields)
    return Record(ACCOUNT, values, id=id)


def accounts(count: int, start: int = 1, **fields) -> List[Record]:
    return [account(id=i, **fields) for i in range(start, start + count)]


def update_batch(
    old: Iterable[Record], changes: Optional[Dict[int, Dict]] = None, max_size: Optional[int] = None
) -> ChangeBatch:
    """
    Build an update batch from old records.

    ``changes`` maps record ids to the field values that differ in the new
    state.
    """
    old = list(old)
    changes = changes or {}
    new = []
    for record in old:
        values = dict(record)
        values.update(changes.get(record.id, {}))
        new.append(Record(record.entity, values))
    return ChangeBatch(old[0].entity, new, old, max_size=max_size)
