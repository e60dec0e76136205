"""
Django app configuration for django-bulk-dispatch.
"""

from django.apps import AppConfig


class BulkDispatchConfig(AppConfig):
    """Validates settings and configures logging when Django starts."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_bulk_dispatch"
    verbose_name = "Django Bulk Dispatch"

    def ready(self):
        from django_bulk_dispatch.config import get_config, reload_config
        from django_bulk_dispatch.logging_config import configure_logging
        from django_bulk_dispatch.settings import validate_bulk_dispatch_settings

        validate_bulk_dispatch_settings()
        reload_config()
        configure_logging(get_config().log_level)
