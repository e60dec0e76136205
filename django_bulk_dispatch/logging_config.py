"""
Logging configuration for django-bulk-dispatch.

All library loggers live under the ``django_bulk_dispatch`` namespace. The
formatter below keeps per-query and per-rule debug chatter out of the way
unless ``DJANGO_BULK_DISPATCH_DEBUG_VERBOSE`` is set.
"""

import logging
import os
from typing import Optional

# Environment variable to control debug verbosity
DEBUG_VERBOSE = os.getenv("DJANGO_BULK_DISPATCH_DEBUG_VERBOSE", "false").lower() == "true"

logger = logging.getLogger("django_bulk_dispatch")


class ReducedDebugFormatter(logging.Formatter):
    """Formatter that drops noisy debug messages unless verbose mode is on."""

    noisy_patterns = (
        "Query ",
        "Mutation ",
        "HasChanged(",
        "No records matched the condition",
        "Registered <Rule",
    )

    def format(self, record):
        if record.levelno == logging.DEBUG:
            message = record.getMessage()
            if not DEBUG_VERBOSE and self._is_noisy_debug(message):
                return ""
            return f"[BULK-DISPATCH] {message}"
        return super().format(record)

    def _is_noisy_debug(self, message: str) -> bool:
        return any(pattern in message for pattern in self.noisy_patterns)


class _DropEmpty(logging.Filter):
    """Drop records the formatter blanked out."""

    def __init__(self, formatter: logging.Formatter):
        super().__init__()
        self.formatter = formatter

    def filter(self, record):
        return bool(self.formatter.format(record))


def configure_logging(level: Optional[str] = None):
    """
    Configure the ``django_bulk_dispatch`` logger.

    Args:
        level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
    """
    if level is None:
        level = "DEBUG" if DEBUG_VERBOSE else "INFO"

    logger.setLevel(getattr(logging, level.upper()))

    # Remove handlers from a previous call to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    formatter = ReducedDebugFormatter("%(levelname)s %(name)s: %(message)s")
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(_DropEmpty(formatter))
    logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a library logger for a module name."""
    return logging.getLogger(f"django_bulk_dispatch.{name.split('.')[-1]}")


def log_dispatch_start(event: str, entity: str, count: int, **kwargs):
    """Log the start of a dispatch with consistent formatting."""
    if kwargs:
        param_str = ", ".join(f"{k}={v}" for k, v in kwargs.items())
        logger.debug(f"{event} dispatch started for {entity} with {count} records ({param_str})")
    else:
        logger.debug(f"{event} dispatch started for {entity} with {count} records")


def log_dispatch_complete(event: str, entity: str, result):
    """Log the outcome of a dispatch."""
    logger.debug(
        f"{event} dispatch completed for {entity}: {result.rules_run} rules, "
        f"{result.queries} queries, {len(result.mutations)} mutation calls, "
        f"{len(result.errors)} record errors"
    )


def log_rule_execution(rule_name: str, entity: str, count: int):
    """Log one rule execution."""
    logger.debug(f"Running rule {rule_name} for {entity} ({count} records)")


def log_invocation_result(entity: str, result):
    """Log the final outcome of an invocation."""
    outcome = result.__class__.__name__
    if result.committed:
        logger.info(f"Invocation on {entity} committed ({result.batches} batch(es))")
    else:
        logger.info(f"Invocation on {entity} finished as {outcome}")
