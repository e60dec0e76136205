"""
Django settings integration for django-bulk-dispatch.

Every setting is read from the Django settings module with the
``BULK_DISPATCH_`` prefix, falling back to the defaults below.
"""

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

SETTINGS_PREFIX = "BULK_DISPATCH"

# Defaults mirror the synchronous and asynchronous transaction limits of
# the hosted CRM platforms this library was modelled on.
DEFAULT_BULK_DISPATCH_SETTINGS = {
    "BATCH_SIZE": 200,
    "QUERY_LIMIT": 100,
    "MUTATION_LIMIT": 150,
    "ASYNC_QUERY_LIMIT": 200,
    "ASYNC_MUTATION_LIMIT": 150,
    "MAX_RECURSION_DEPTH": 16,
    "CUSTOM_FIELD_SUFFIX": "__c",
    "NOTIFIER_CLASS": "django_bulk_dispatch.notifications.DjangoMailNotifier",
    "NOTIFIER_KWARGS": {},
    "LOG_LEVEL": "INFO",
}

_POSITIVE_INTEGERS = (
    "BATCH_SIZE",
    "QUERY_LIMIT",
    "MUTATION_LIMIT",
    "ASYNC_QUERY_LIMIT",
    "ASYNC_MUTATION_LIMIT",
    "MAX_RECURSION_DEPTH",
)


def get_bulk_dispatch_setting(setting_name: str, default=None):
    """Get a bulk dispatch setting from Django settings."""
    return getattr(settings, f"{SETTINGS_PREFIX}_{setting_name}", default)


def get_all_bulk_dispatch_settings():
    """Get all bulk dispatch settings with defaults."""
    return {
        key: get_bulk_dispatch_setting(key, default_value)
        for key, default_value in DEFAULT_BULK_DISPATCH_SETTINGS.items()
    }


def validate_bulk_dispatch_settings():
    """
    Validate bulk dispatch settings.

    Raises:
        ImproperlyConfigured: If any setting has an invalid value
    """
    values = get_all_bulk_dispatch_settings()

    for key in _POSITIVE_INTEGERS:
        value = values[key]
        # bool is an int subclass but never a valid limit
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ImproperlyConfigured(
                f"{SETTINGS_PREFIX}_{key} must be a positive integer, got: {value!r}"
            )

    suffix = values["CUSTOM_FIELD_SUFFIX"]
    if suffix is not None and not isinstance(suffix, str):
        raise ImproperlyConfigured(
            f"{SETTINGS_PREFIX}_CUSTOM_FIELD_SUFFIX must be a string or None, got: {suffix!r}"
        )

    notifier_class = values["NOTIFIER_CLASS"]
    if notifier_class:
        try:
            import_string(notifier_class)
        except ImportError as e:
            raise ImproperlyConfigured(
                f"Invalid {SETTINGS_PREFIX}_NOTIFIER_CLASS: {notifier_class}. Error: {e}"
            )

    if not isinstance(values["NOTIFIER_KWARGS"], dict):
        raise ImproperlyConfigured(f"{SETTINGS_PREFIX}_NOTIFIER_KWARGS must be a dict")

    if str(values["LOG_LEVEL"]).upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ImproperlyConfigured(
            f"{SETTINGS_PREFIX}_LOG_LEVEL must be a logging level name, got: {values['LOG_LEVEL']!r}"
        )
