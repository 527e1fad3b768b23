"""
Base models and runtime settings storage.
"""

import uuid

from django.db import models


class UUIDModel(models.Model):
    """
    Abstract model that uses a UUID primary key.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class TimestampedModel(models.Model):
    """
    Abstract model with created/updated timestamps.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['-created_at']


class SystemSetting(TimestampedModel):
    """
    Administrator-editable override for an access-control tunable.

    Keys are lowercase (``account_lock_attempts``); values are stored as
    text and cast to the type of the built-in default when read.
    """
    key = models.CharField(max_length=100, unique=True)
    value = models.TextField()
    description = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ['key']

    def __str__(self):
        return f"{self.key}={self.value}"
