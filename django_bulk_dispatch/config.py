"""
Configuration management for django-bulk-dispatch.

Settings are loaded from Django settings into a dataclass so the rest of the
library reads typed attributes instead of raw setting names.
"""

import logging
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional

from django.utils.module_loading import import_string

from django_bulk_dispatch.settings import get_all_bulk_dispatch_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchConfig:
    """Configuration for the dispatcher."""

    batch_size: int = 200

    # Per-invocation call budgets
    query_limit: int = 100
    mutation_limit: int = 150
    async_query_limit: int = 200
    async_mutation_limit: int = 150

    max_recursion_depth: int = 16
    custom_field_suffix: Optional[str] = "__c"

    notifier_class: str = "django_bulk_dispatch.notifications.DjangoMailNotifier"
    notifier_kwargs: Dict[str, Any] = field(default_factory=dict)

    log_level: str = "INFO"

    def limits(self, asynchronous: bool = False):
        """Return ``(query_limit, mutation_limit)`` for the execution mode."""
        if asynchronous:
            return self.async_query_limit, self.async_mutation_limit
        return self.query_limit, self.mutation_limit

    @classmethod
    def from_settings(cls) -> "DispatchConfig":
        """Build a config from ``BULK_DISPATCH_*`` Django settings."""
        values = get_all_bulk_dispatch_settings()
        return cls(**{f.name: values[f.name.upper()] for f in fields(cls)})


class ConfigManager:
    """Holds the active configuration."""

    def __init__(self):
        self._config: Optional[DispatchConfig] = None

    def get_config(self) -> DispatchConfig:
        if self._config is None:
            self._config = DispatchConfig.from_settings()
        return self._config

    def update_config(self, **kwargs):
        """Override configuration values."""
        known = {f.name for f in fields(DispatchConfig)}
        for key in kwargs:
            if key not in known:
                logger.warning(f"Unknown configuration key: {key}")
        self._config = replace(
            self.get_config(), **{k: v for k, v in kwargs.items() if k in known}
        )

    def reload(self):
        """Drop the cached configuration so settings are read again."""
        self._config = None

    def get_notifier(self):
        """Instantiate the configured notifier."""
        config = self.get_config()
        notifier_cls = import_string(config.notifier_class)
        return notifier_cls(**config.notifier_kwargs)


# Global configuration manager instance
config_manager = ConfigManager()


def get_config() -> DispatchConfig:
    """Get the current configuration."""
    return config_manager.get_config()


def update_config(**kwargs):
    """Update configuration values."""
    config_manager.update_config(**kwargs)


def reload_config():
    """Re-read configuration from Django settings."""
    config_manager.reload()


def get_notifier():
    """Get an instance of the configured notifier."""
    return config_manager.get_notifier()
