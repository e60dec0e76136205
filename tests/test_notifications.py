"""
Tests for post-commit notification delivery.
"""

from unittest.mock import Mock

from django.core import mail
from django.test import SimpleTestCase, override_settings

from django_bulk_dispatch.notifications import DjangoMailNotifier, deliver, schedule_notifications
from django_bulk_dispatch.results import Notification
from django_bulk_dispatch.testing import RecordingGateway, RecordingNotifier

MESSAGES = [
    Notification("owner@example.com", "Account downgraded", "Acme is now Cold"),
    Notification("sales@example.com", "Account downgraded", "Globex is now Cold"),
]


class TestDjangoMailNotifier(SimpleTestCase):
    def test_send(self):
        DjangoMailNotifier().send(MESSAGES)

        self.assertEqual(len(mail.outbox), 2)
        self.assertEqual(mail.outbox[0].to, ["owner@example.com"])
        self.assertEqual(mail.outbox[0].subject, "Account downgraded")
        self.assertEqual(mail.outbox[0].from_email, "crm@example.com")
        self.assertEqual(mail.outbox[1].body, "Globex is now Cold")

    def test_explicit_sender(self):
        DjangoMailNotifier(from_email="alerts@example.com").send(MESSAGES[:1])
        self.assertEqual(mail.outbox[0].from_email, "alerts@example.com")

    @override_settings(DEFAULT_FROM_EMAIL="noreply@example.com")
    def test_sender_read_at_send_time(self):
        DjangoMailNotifier().send(MESSAGES[:1])
        self.assertEqual(mail.outbox[0].from_email, "noreply@example.com")


class TestDeliver(SimpleTestCase):
    def test_success(self):
        notifier = RecordingNotifier()
        self.assertTrue(deliver(notifier, MESSAGES))
        self.assertEqual(notifier.sent, MESSAGES)

    def test_failure_is_logged_and_swallowed(self):
        notifier = RecordingNotifier(error=ConnectionRefusedError("smtp down"))
        with self.assertLogs("django_bulk_dispatch.notifications", level="ERROR") as logs:
            self.assertFalse(deliver(notifier, MESSAGES))
        self.assertIn("RecordingNotifier", logs.output[0])
        self.assertIn("smtp down", logs.output[0])


class TestScheduleNotifications(SimpleTestCase):
    def test_nothing_scheduled_without_messages(self):
        gateway = Mock()
        schedule_notifications(gateway, RecordingNotifier(), [])
        gateway.on_commit.assert_not_called()

    def test_delivery_waits_for_commit(self):
        gateway = RecordingGateway()
        notifier = RecordingNotifier()

        with gateway.atomic():
            schedule_notifications(gateway, notifier, iter(MESSAGES))
            self.assertEqual(notifier.sent, [])

        self.assertEqual(notifier.sent, MESSAGES)

    def test_rollback_discards_delivery(self):
        gateway = RecordingGateway()
        notifier = RecordingNotifier()

        with self.assertRaises(ValueError):
            with gateway.atomic():
                schedule_notifications(gateway, notifier, MESSAGES)
                raise ValueError

        self.assertEqual(notifier.sent, [])
        self.assertEqual(gateway.rollbacks, 1)
