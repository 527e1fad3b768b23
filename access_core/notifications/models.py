"""
Administrator alerts raised by access-control events.
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from access_core.core.models import TimestampedModel, UUIDModel


class Notification(UUIDModel):
    """In-app alert for one administrator"""

    class Type(models.TextChoices):
        ACCOUNT_LOCKED = 'account_locked', 'Account Locked'
        SESSION_TERMINATED = 'session_terminated', 'Session Terminated'
        SYSTEM_ALERT = 'system_alert', 'System Alert'

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='notifications',
    )
    type = models.CharField(max_length=30, choices=Type.choices)
    title = models.CharField(max_length=255)
    message = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        db_table = 'admin_notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read'], name='notif_recipient_unread_idx'),
        ]

    def __str__(self):
        return f"{self.get_type_display()}: {self.title}"

    def mark_as_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=['is_read', 'read_at'])


class EmailNotification(UUIDModel, TimestampedModel):
    """Email copy of a notification and its delivery outcome"""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        SENT = 'sent', 'Sent'
        FAILED = 'failed', 'Failed'

    notification = models.OneToOneField(
        Notification,
        on_delete=models.CASCADE,
        related_name='email',
    )
    recipient_email = models.EmailField()
    subject = models.CharField(max_length=255)
    body = models.TextField()

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True)

    class Meta:
        db_table = 'notification_emails'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.subject} to {self.recipient_email} ({self.status})"

    def mark_sent(self):
        self.status = self.Status.SENT
        self.sent_at = timezone.now()
        self.save(update_fields=['status', 'sent_at', 'updated_at'])

    def mark_failed(self, error):
        self.status = self.Status.FAILED
        self.error_message = str(error)
        self.save(update_fields=['status', 'error_message', 'updated_at'])
