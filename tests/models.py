"""
Test models for django-bulk-dispatch testing.
"""

from django.db import models


class Account(models.Model):
    name = models.CharField(max_length=100)
    rating = models.CharField(max_length=20, blank=True, default="")
    owner_email = models.EmailField(blank=True, default="")
    billing_postal_code = models.CharField(max_length=20, blank=True, default="")
    shipping_postal_code = models.CharField(max_length=20, blank=True, default="")
    match_billing_address = models.BooleanField(default=False)

    class Meta:
        app_label = "tests"

    def __str__(self):
        return self.name


class Contact(models.Model):
    account = models.ForeignKey(Account, on_delete=models.CASCADE, related_name="contacts")
    last_name = models.CharField(max_length=100)
    email = models.EmailField(blank=True, default="")

    class Meta:
        app_label = "tests"

    def __str__(self):
        return self.last_name


class Opportunity(models.Model):
    account = models.ForeignKey(Account, on_delete=models.PROTECT, related_name="opportunities")
    name = models.CharField(max_length=100)
    stage = models.CharField(max_length=40, default="Prospecting")

    class Meta:
        app_label = "tests"

    def __str__(self):
        return self.name
