"""
Tests for the Django ORM gateway, run against the test database.
"""

from django.core import mail
from django.test import TestCase

from django_bulk_dispatch.batch import ChangeBatch
from django_bulk_dispatch.conditions import ChangesTo
from django_bulk_dispatch.config import update_config
from django_bulk_dispatch.context import AFTER_UPDATE
from django_bulk_dispatch.decorators import after_insert, after_update, before_delete
from django_bulk_dispatch.engine import RuleEngine
from django_bulk_dispatch.enums import MutationKind
from django_bulk_dispatch.exceptions import ConfigurationError, ExternalCallError
from django_bulk_dispatch.gateway import QuerySpec
from django_bulk_dispatch.invocation import RawChangeSet, invoke
from django_bulk_dispatch.orm import (
    OrmGateway,
    change_set_for_instances,
    entity_for_model,
    instance_values,
    schema_for_model,
)
from django_bulk_dispatch.records import Record
from django_bulk_dispatch.registry import RuleRegistry
from django_bulk_dispatch.results import Committed, Fatal, RejectedWithFieldErrors
from django_bulk_dispatch.rules import FunctionRule
from tests.models import Account, Contact, Opportunity
from tests.utils import ACCOUNT, CONTACT


def contacts_of(batch, context):
    return QuerySpec.build(CONTACT, fields=["account_id"], account_id__in=batch.ids)


class TestModelHelpers(TestCase):
    def test_entity_for_model(self):
        self.assertEqual(entity_for_model(Account), ACCOUNT)

    def test_schema_for_model(self):
        schema = schema_for_model(Contact)
        self.assertEqual(schema.entity, CONTACT)
        for field in ("id", "account", "account_id", "last_name", "email"):
            self.assertTrue(schema.knows(field), field)
        self.assertTrue(schema.knows("region__c"))
        self.assertFalse(schema.knows("first_name"))

    def test_schema_without_custom_fields(self):
        self.assertFalse(schema_for_model(Contact, custom_suffix="").knows("region__c"))

    def test_instance_values(self):
        account = Account.objects.create(name="Acme", rating="Hot")
        values = instance_values(account)
        self.assertEqual(values["id"], account.pk)
        self.assertEqual(values["name"], "Acme")
        self.assertEqual(values["rating"], "Hot")

    def test_change_set_for_instances(self):
        account = Account.objects.create(name="Acme", rating="Hot")
        original = Account.objects.get(pk=account.pk)
        account.rating = "Cold"

        raw = change_set_for_instances([account], [original])
        self.assertEqual(raw.entity, ACCOUNT)
        self.assertEqual(raw.new[0]["rating"], "Cold")
        self.assertEqual(raw.old[0]["rating"], "Hot")

    def test_change_set_needs_instances(self):
        with self.assertRaises(ValueError):
            change_set_for_instances([])


class TestOrmGateway(TestCase):
    def setUp(self):
        self.gateway = OrmGateway()
        self.acme = Account.objects.create(name="Acme")
        self.globex = Account.objects.create(name="Globex")
        Contact.objects.create(account=self.acme, last_name="Doe")
        Contact.objects.create(account=self.acme, last_name="Roe")
        Contact.objects.create(account=self.globex, last_name="Poe")

    def test_unknown_entity(self):
        with self.assertRaises(ConfigurationError):
            self.gateway.query(QuerySpec.build("tests.Invoice"))

    def test_query_with_fields(self):
        spec = QuerySpec.build(CONTACT, fields=["account_id"], account_id__in=[self.acme.pk])
        with self.assertNumQueries(1):
            records = self.gateway.query(spec)

        self.assertEqual(len(records), 2)
        self.assertEqual({record["account_id"] for record in records}, {self.acme.pk})
        self.assertTrue(all(record.id is not None for record in records))
        self.assertEqual(set(records[0]), {"id", "account_id"})

    def test_query_all_columns(self):
        records = self.gateway.query(QuerySpec.build(CONTACT, last_name="Poe"))
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0]["account_id"], self.globex.pk)
        self.assertEqual(records[0]["last_name"], "Poe")
        self.assertEqual(records[0].entity, CONTACT)

    def test_insert(self):
        records = [
            Record(CONTACT, {"account_id": self.globex.pk, "last_name": "New"}),
            Record(CONTACT, {"account": self.globex.pk, "last_name": "Newer"}),
        ]
        result = self.gateway.mutate(MutationKind.INSERT, CONTACT, records)

        self.assertTrue(result.succeeded)
        self.assertEqual(result.count, 2)
        self.assertEqual(Contact.objects.filter(account=self.globex).count(), 3)

    def test_update_touches_only_given_fields(self):
        record = Record(ACCOUNT, {"rating": "Hot"}, id=self.acme.pk)
        result = self.gateway.mutate(MutationKind.UPDATE, ACCOUNT, [record])

        self.acme.refresh_from_db()
        self.assertEqual(self.acme.rating, "Hot")
        self.assertEqual(self.acme.name, "Acme")
        self.assertTrue(result.succeeded)

    def test_update_without_id_is_unattributable(self):
        records = [Record(ACCOUNT, {"rating": "Hot"}, id=self.acme.pk), Record(ACCOUNT, {"rating": "Hot"})]
        with self.assertRaises(ExternalCallError) as cm:
            self.gateway.mutate(MutationKind.UPDATE, ACCOUNT, records)

        self.assertEqual(cm.exception.record_ids, [])
        self.acme.refresh_from_db()
        self.assertEqual(self.acme.rating, "")

    def test_delete_without_id_is_unattributable(self):
        with self.assertRaises(ExternalCallError) as cm:
            self.gateway.mutate(MutationKind.DELETE, ACCOUNT, [Record(ACCOUNT, {"name": "Acme"})])
        self.assertEqual(cm.exception.record_ids, [])
        self.assertEqual(Account.objects.count(), 2)

    def test_unknown_column(self):
        with self.assertRaises(ConfigurationError):
            self.gateway.mutate(MutationKind.UPDATE, ACCOUNT, [Record(ACCOUNT, {"colour": "red"}, id=self.acme.pk)])

    def test_delete_cascades(self):
        self.gateway.mutate(MutationKind.DELETE, ACCOUNT, [Record(ACCOUNT, id=self.acme.pk)])
        self.assertFalse(Account.objects.filter(pk=self.acme.pk).exists())
        self.assertEqual(Contact.objects.count(), 1)

    def test_protected_delete_becomes_external_call_error(self):
        Opportunity.objects.create(account=self.globex, name="Big deal")
        with self.assertRaises(ExternalCallError):
            self.gateway.mutate(MutationKind.DELETE, ACCOUNT, [Record(ACCOUNT, id=self.globex.pk)])
        self.assertTrue(Account.objects.filter(pk=self.globex.pk).exists())

    def test_one_query_for_the_whole_batch(self):
        registry = RuleRegistry()
        seen = []
        registry.register(
            FunctionRule(lambda scope: seen.append(len(scope.fetched(contacts_of(scope.batch, scope.context)))),
                         ACCOUNT, [AFTER_UPDATE], fetch=[contacts_of])
        )
        for i in range(20):
            Account.objects.create(name=f"Filler {i}")
        old = [Record(ACCOUNT, values) for values in Account.objects.values()]
        new = [record.snapshot() for record in old]
        engine = RuleEngine(registry, self.gateway)

        with self.assertNumQueries(1):
            engine.dispatch(ChangeBatch(ACCOUNT, new, old), AFTER_UPDATE)
        self.assertEqual(seen, [3])


class TestInvokeWithOrm(TestCase):
    def test_after_update_sends_mail_after_commit(self):
        accounts = [Account.objects.create(name=f"Account {i}", rating="Hot") for i in range(5)]
        originals = list(Account.objects.order_by("pk"))
        accounts[3].rating = "Cold"

        @after_update(ACCOUNT, condition=ChangesTo("rating", "Cold"))
        def notify_downgrade(scope):
            names = ", ".join(record["name"] for record in scope.records)
            scope.notify("sales@example.com", "Accounts downgraded", f"Now rated Cold: {names}")

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            result = invoke(change_set_for_instances(accounts, originals), {"is_update": True, "is_after": True})
            self.assertEqual(len(mail.outbox), 0)

        self.assertIsInstance(result, Committed)
        self.assertEqual(len(callbacks), 1)
        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["sales@example.com"])
        self.assertEqual(mail.outbox[0].from_email, "crm@example.com")
        self.assertEqual(mail.outbox[0].body, "Now rated Cold: Account 3")

    def test_before_delete_rejects_accounts_with_contacts(self):
        accounts = [Account.objects.create(name=f"Account {i}") for i in range(10)]
        Contact.objects.create(account=accounts[2], last_name="Doe")
        Contact.objects.create(account=accounts[7], last_name="Roe")

        @before_delete(ACCOUNT, fetch=[contacts_of])
        def protect_referenced(scope):
            referenced = {c["account_id"] for c in scope.fetched(contacts_of(scope.batch, scope.context))}
            for record in scope.records:
                if record.id in referenced:
                    scope.add_error(record, "Account has contacts")

        raw = RawChangeSet(ACCOUNT, old=[instance_values(account) for account in accounts])
        result = invoke(raw, {"is_delete": True, "is_before": True})

        self.assertIsInstance(result, RejectedWithFieldErrors)
        self.assertEqual(sorted(result.record_ids), [accounts[2].pk, accounts[7].pk])

    def test_rejection_rolls_back_earlier_batches(self):
        update_config(batch_size=2)
        accounts = [Account.objects.create(name=name) for name in ("Acme", "Globex", "Bad")]

        @after_insert(ACCOUNT)
        def create_primary_contact(scope):
            scope.request_insert(
                [Record(CONTACT, {"account_id": r.id, "last_name": "Primary"}) for r in scope.records]
            )
            for record in scope.records:
                if record["name"] == "Bad":
                    scope.add_error(record, "Bad account name", field="name")

        result = invoke(change_set_for_instances(accounts), {"is_insert": True, "is_after": True})

        self.assertIsInstance(result, RejectedWithFieldErrors)
        self.assertEqual(result.errors, [(accounts[2].pk, "name", "Bad account name")])
        self.assertEqual(Contact.objects.count(), 0)

    def test_committed_mutations_are_persisted(self):
        accounts = [Account.objects.create(name=name) for name in ("Acme", "Globex")]

        @after_insert(ACCOUNT)
        def create_primary_contact(scope):
            scope.request_insert(
                [Record(CONTACT, {"account_id": r.id, "last_name": "Primary"}) for r in scope.records]
            )

        result = invoke(change_set_for_instances(accounts), {"is_insert": True, "is_after": True})

        self.assertIsInstance(result, Committed)
        self.assertEqual(Contact.objects.filter(last_name="Primary").count(), 2)

    def test_update_request_without_id_is_fatal(self):
        accounts = [Account.objects.create(name="Acme")]

        @after_insert(ACCOUNT)
        def touch_unsaved_contact(scope):
            scope.request_update([Record(CONTACT, {"last_name": "Nobody"})])

        result = invoke(change_set_for_instances(accounts), {"is_insert": True, "is_after": True})

        self.assertIsInstance(result, Fatal)
        self.assertIsInstance(result.error, ExternalCallError)
