"""
Login attempt history and account lock records.

Lock state is never stored as a flag: it is derived from the lock's
timestamps at read time, so an expired lock needs no background job to
release it.
"""

import math

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from access_core.core.models import TimestampedModel, UUIDModel


def normalize_email(email):
    return (email or '').strip().lower()


class LockState(models.TextChoices):
    UNLOCKED = 'unlocked', 'Unlocked'
    LOCKED = 'locked', 'Locked'
    LOCKED_INDEFINITELY = 'locked_indefinitely', 'Locked Indefinitely'


class LoginAttemptQuerySet(models.QuerySet):

    def failures(self, email, attempt_type):
        return self.filter(email=normalize_email(email), attempt_type=attempt_type, success=False)

    def between(self, start, end):
        return self.filter(created_at__gte=start, created_at__lte=end)


class LoginAttempt(UUIDModel):
    """Append-only record of a credential submission"""

    class AttemptType(models.TextChoices):
        PASSWORD = 'password', 'Password'
        TWO_FACTOR = 'two_factor', 'Two-Factor Code'

    email = models.EmailField(db_index=True)
    success = models.BooleanField(default=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='login_attempts',
    )
    attempt_type = models.CharField(
        max_length=20,
        choices=AttemptType.choices,
        default=AttemptType.PASSWORD,
    )
    failure_reason = models.CharField(max_length=100, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True, editable=False)

    objects = LoginAttemptQuerySet.as_manager()

    class Meta:
        db_table = 'login_attempts'
        ordering = ['-created_at']

    def __str__(self):
        outcome = 'success' if self.success else 'failure'
        return f"{self.email} {self.attempt_type} {outcome} at {self.created_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Login attempts are append-only and cannot be modified")
        self.email = normalize_email(self.email)
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Login attempts are append-only and cannot be deleted")


class AccountLockQuerySet(models.QuerySet):

    def for_user(self, user, scope):
        return self.filter(user=user, scope=scope)

    def unreleased(self):
        return self.filter(unlocked_at__isnull=True)

    def open_at(self, now):
        return self.unreleased().filter(Q(locked_until__isnull=True) | Q(locked_until__gt=now))

    def expired_at(self, now):
        return self.unreleased().filter(locked_until__lte=now)


class AccountLock(UUIDModel, TimestampedModel):
    """
    A period during which an account may not authenticate.

    ``locked_until`` of None means the lock only ends by manual unlock.
    At most one unreleased lock exists per (user, scope).
    """

    class Scope(models.TextChoices):
        LOGIN = 'login', 'Password Login'
        TWO_FACTOR = 'two_factor', 'Two-Factor Verification'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='account_locks',
    )
    email = models.EmailField(db_index=True)
    scope = models.CharField(max_length=20, choices=Scope.choices, default=Scope.LOGIN)
    locked_at = models.DateTimeField(default=timezone.now)
    locked_until = models.DateTimeField(null=True, blank=True)
    reason = models.TextField(blank=True)
    unlocked_at = models.DateTimeField(null=True, blank=True)
    unlocked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    objects = AccountLockQuerySet.as_manager()

    class Meta:
        db_table = 'account_locks'
        ordering = ['-locked_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'scope'],
                condition=Q(unlocked_at__isnull=True),
                name='unique_unreleased_lock_per_scope',
            ),
        ]

    def __str__(self):
        return f"{self.email} {self.scope} lock at {self.locked_at}"

    def state_at(self, now=None) -> LockState:
        now = now or timezone.now()
        if self.unlocked_at is not None:
            return LockState.UNLOCKED
        if self.locked_until is None:
            return LockState.LOCKED_INDEFINITELY
        if self.locked_until > now:
            return LockState.LOCKED
        return LockState.UNLOCKED

    def seconds_remaining(self, now=None):
        """Seconds until the lock lapses; None while indefinite."""
        if self.locked_until is None:
            return None
        now = now or timezone.now()
        remaining = (self.locked_until - now).total_seconds()
        return max(math.ceil(remaining), 0)
