"""
Pytest configuration for django-bulk-dispatch tests.
"""

import pytest

from django_bulk_dispatch.config import reload_config
from django_bulk_dispatch.registry import clear_rules
from django_bulk_dispatch.invocation import RecursionGuard


@pytest.fixture(autouse=True)
def clean_registry():
    """Every test starts with no rules and freshly loaded settings."""
    clear_rules()
    reload_config()
    yield
    clear_rules()
    reload_config()


@pytest.fixture
def gateway():
    from django_bulk_dispatch.testing import RecordingGateway

    return RecordingGateway()


@pytest.fixture(autouse=True)
def reset_recursion_guard():
    yield
    RecursionGuard._thread_local.__dict__.clear()
