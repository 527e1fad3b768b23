"""
Attempt log and lockout state machine.

Both password logins and two-factor code submissions are throttled by the
same machine; a ``ThrottlePolicy`` selects the lock scope, attempt type
and limits.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from access_core.accounts.models import SecurityEvent
from access_core.core.conf import access_settings
from access_core.core.exceptions import UpstreamFailure
from access_core.notifications.services import admin_notifier

from .models import AccountLock, LockState, LoginAttempt, normalize_email

logger = logging.getLogger(__name__)

User = get_user_model()

LOGIN_LOCK_REASON = 'Too many failed login attempts'
TWO_FACTOR_LOCK_REASON = 'Too many failed two-factor verification attempts'


@dataclass(frozen=True)
class ThrottlePolicy:
    scope: str
    attempt_type: str
    threshold: int
    window_minutes: int
    lock_minutes: int
    reason: str
    notify_admins: bool = False

    @classmethod
    def for_login(cls):
        return cls(
            scope=AccountLock.Scope.LOGIN,
            attempt_type=LoginAttempt.AttemptType.PASSWORD,
            threshold=access_settings.LOCKOUT_THRESHOLD,
            window_minutes=access_settings.LOCKOUT_WINDOW_MINUTES,
            lock_minutes=access_settings.LOCKOUT_AUTO_UNLOCK_MINUTES,
            reason=LOGIN_LOCK_REASON,
            notify_admins=True,
        )

    @classmethod
    def for_two_factor(cls):
        return cls(
            scope=AccountLock.Scope.TWO_FACTOR,
            attempt_type=LoginAttempt.AttemptType.TWO_FACTOR,
            threshold=access_settings.TWO_FACTOR_MAX_ATTEMPTS,
            window_minutes=access_settings.TWO_FACTOR_WINDOW_MINUTES,
            lock_minutes=access_settings.TWO_FACTOR_LOCK_MINUTES,
            reason=TWO_FACTOR_LOCK_REASON,
        )


class AttemptLog:
    """Append-only login attempt history"""

    def log_attempt(
        self,
        email,
        success,
        user=None,
        context=None,
        attempt_type=LoginAttempt.AttemptType.PASSWORD,
        failure_reason='',
        now=None,
    ) -> LoginAttempt:
        try:
            return LoginAttempt.objects.create(
                email=normalize_email(email),
                success=success,
                user=user,
                attempt_type=attempt_type,
                failure_reason=failure_reason,
                ip_address=getattr(context, 'ip_address', None),
                user_agent=getattr(context, 'user_agent', '') or '',
                created_at=now or timezone.now(),
            )
        except DatabaseError as exc:
            logger.exception("Failed to record %s attempt for %s", attempt_type, email)
            raise UpstreamFailure('Login attempt could not be recorded') from exc

    def count_recent_failures(
        self,
        email,
        window_minutes=None,
        attempt_type=LoginAttempt.AttemptType.PASSWORD,
        now=None,
        since=None,
    ) -> int:
        """
        Count failed attempts for ``email`` within the trailing window.

        ``since`` narrows the window further, e.g. to ignore failures that
        preceded a manual unlock.
        """
        now = now or timezone.now()
        if window_minutes is None:
            window_minutes = access_settings.LOCKOUT_WINDOW_MINUTES

        start = now - timedelta(minutes=window_minutes)
        if since is not None and since > start:
            start = since

        try:
            return LoginAttempt.objects.failures(email, attempt_type).between(start, now).count()
        except DatabaseError as exc:
            logger.exception("Failed to count recent failures for %s", email)
            raise UpstreamFailure('Login history is unavailable') from exc


class LockoutStateMachine:
    """
    Per-account lock state: UNLOCKED -> LOCKED(until) -> UNLOCKED.

    Expiry is lazy; an elapsed lock is released the next time a lock is
    written for the same account and scope.
    """

    def __init__(self, attempt_log=None, notifier=None):
        self.attempt_log = attempt_log or AttemptLog()
        self.notifier = notifier or admin_notifier

    def get_open_lock(self, user, scope=AccountLock.Scope.LOGIN, now=None) -> Optional[AccountLock]:
        now = now or timezone.now()
        try:
            return AccountLock.objects.for_user(user, scope).open_at(now).first()
        except DatabaseError as exc:
            logger.exception("Lock lookup failed for %s", user.email)
            raise UpstreamFailure('Lock state is unavailable') from exc

    def state(self, user, scope=AccountLock.Scope.LOGIN, now=None) -> LockState:
        now = now or timezone.now()
        lock = self.get_open_lock(user, scope, now)
        return lock.state_at(now) if lock else LockState.UNLOCKED

    def is_locked(self, user, scope=AccountLock.Scope.LOGIN, now=None) -> bool:
        return self.state(user, scope, now) != LockState.UNLOCKED

    def find_lock(self, email, scope=AccountLock.Scope.LOGIN, now=None) -> Optional[AccountLock]:
        user = User.objects.filter(email=normalize_email(email)).first()
        if user is None:
            return None
        return self.get_open_lock(user, scope, now)

    def lock(self, user, reason, minutes=None, scope=AccountLock.Scope.LOGIN, actor=None, now=None):
        """
        Lock ``user`` for ``minutes`` (indefinitely when falsy).

        Returns ``(lock, created)``. When an unreleased lock already exists
        the existing row is returned with ``created`` False.
        """
        now = now or timezone.now()
        locked_until = now + timedelta(minutes=minutes) if minutes else None

        AccountLock.objects.for_user(user, scope).expired_at(now).update(
            unlocked_at=F('locked_until'),
            unlocked_by=None,
        )

        try:
            with transaction.atomic():
                lock = AccountLock.objects.create(
                    user=user,
                    email=user.email,
                    scope=scope,
                    locked_at=now,
                    locked_until=locked_until,
                    reason=reason,
                )
        except IntegrityError:
            logger.info("Account %s already has an open %s lock", user.email, scope)
            return AccountLock.objects.for_user(user, scope).unreleased().first(), False

        logger.warning(
            "Locked %s (%s) until %s: %s",
            user.email, scope, locked_until.isoformat() if locked_until else 'manual unlock', reason
        )
        SecurityEvent.record(
            user,
            SecurityEvent.EventType.ACCOUNT_LOCKED,
            description=reason,
            actor=actor,
            scope=scope,
            locked_until=locked_until.isoformat() if locked_until else None,
        )
        return lock, True

    def unlock(self, user, unlocked_by=None, scope=AccountLock.Scope.LOGIN, now=None) -> int:
        """Release the open lock, if any. Returns the number of locks released."""
        now = now or timezone.now()
        released = AccountLock.objects.for_user(user, scope).open_at(now).update(
            unlocked_at=now,
            unlocked_by=unlocked_by,
        )
        if released:
            logger.info(
                "Unlocked %s (%s) by %s",
                user.email, scope, unlocked_by.email if unlocked_by else 'system'
            )
            SecurityEvent.record(
                user,
                SecurityEvent.EventType.ACCOUNT_UNLOCKED,
                actor=unlocked_by,
                scope=scope,
            )
        return released

    def last_released_at(self, user, scope, now=None):
        """When the most recent lock for (user, scope) ended, if it has."""
        now = now or timezone.now()
        lock = AccountLock.objects.for_user(user, scope).order_by('-locked_at').first()
        if lock is None or lock.state_at(now) != LockState.UNLOCKED:
            return None
        return lock.unlocked_at or lock.locked_until

    def evaluate_lockout(self, email, policy=None, context=None, now=None) -> Optional[AccountLock]:
        """
        Lock the account behind ``email`` if its recent failures reached the
        policy threshold. Unknown emails are counted but never locked.
        """
        policy = policy or ThrottlePolicy.for_login()
        now = now or timezone.now()

        user = User.objects.filter(email=normalize_email(email)).first()
        since = self.last_released_at(user, policy.scope, now) if user else None
        failures = self.attempt_log.count_recent_failures(
            email, policy.window_minutes, policy.attempt_type, now=now, since=since
        )
        if failures < policy.threshold:
            return None

        if user is None:
            logger.info("Failure threshold reached for unknown account %s", email)
            return None

        lock, created = self.lock(user, policy.reason, policy.lock_minutes, policy.scope, now=now)
        if created and policy.notify_admins:
            self.notifier.account_locked(lock, ip_address=getattr(context, 'ip_address', None))
        return lock

    def remaining_attempts(self, email, policy=None, now=None) -> int:
        policy = policy or ThrottlePolicy.for_login()
        now = now or timezone.now()
        user = User.objects.filter(email=normalize_email(email)).first()
        since = self.last_released_at(user, policy.scope, now) if user else None
        failures = self.attempt_log.count_recent_failures(
            email, policy.window_minutes, policy.attempt_type, now=now, since=since
        )
        return max(policy.threshold - failures, 0)


attempt_log = AttemptLog()
lockout_machine = LockoutStateMachine(attempt_log)
