"""
Post-commit notifications.

Rules queue notifications through their scope. Nothing is sent while the
invocation is running: once the invocation has committed, the queued
messages are handed to the gateway's ``on_commit`` hook, which for the ORM
gateway is ``django.db.transaction.on_commit``. Delivery happens outside the
invocation's budget, and a failed delivery is logged and dropped.
"""

import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Iterable, Sequence

from django.conf import settings
from django.core.mail import send_mass_mail

from django_bulk_dispatch.results import Notification

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """External mail or notification sender."""

    @abstractmethod
    def send(self, messages: Sequence[Notification]):
        """Deliver ``(recipient, subject, body)`` messages."""


class DjangoMailNotifier(Notifier):
    """Sends notifications with Django's mail framework."""

    def __init__(self, from_email=None, fail_silently=False):
        self.from_email = from_email
        self.fail_silently = fail_silently

    def send(self, messages: Sequence[Notification]):
        from_email = self.from_email or settings.DEFAULT_FROM_EMAIL
        datatuple = [
            (message.subject, message.body, from_email, [message.recipient])
            for message in messages
        ]
        return send_mass_mail(datatuple, fail_silently=self.fail_silently)


def deliver(notifier: Notifier, messages: Sequence[Notification]):
    """
    Send ``messages``, logging and swallowing any failure.

    Notification failures must never fail the operation that queued them,
    which has already committed when this runs.
    """
    try:
        notifier.send(messages)
    except Exception:
        logger.exception(
            f"Failed to deliver {len(messages)} notification(s) with {notifier.__class__.__name__}"
        )
        return False
    logger.debug(f"Delivered {len(messages)} notification(s)")
    return True


def schedule_notifications(gateway, notifier: Notifier, messages: Iterable[Notification]):
    """Queue delivery of ``messages`` for after the enclosing transaction commits."""
    messages = list(messages)
    if not messages:
        return
    gateway.on_commit(partial(deliver, notifier, messages))
