"""
Credential gate: password login with lockout enforcement.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.contrib.auth import authenticate, get_user_model
from django.db import DatabaseError
from django.utils import timezone

from access_core.accounts.identity import SessionTokens, identity_store
from access_core.accounts.models import SecurityEvent
from access_core.core.exceptions import RateLimited, Unauthorized, UpstreamFailure
from access_core.twofactor.services import two_factor_manager

from .models import AccountLock, LockState, normalize_email
from .services import ThrottlePolicy, attempt_log, lockout_machine

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass(frozen=True)
class LoginResult:
    user: object
    tokens: SessionTokens
    two_factor_required: bool


@dataclass(frozen=True)
class AttemptOutcome:
    state: LockState
    lock: Optional[AccountLock] = None

    @property
    def locked(self):
        return self.state != LockState.UNLOCKED


def locked_error(lock, now=None):
    retry_after = lock.seconds_remaining(now)
    if retry_after is None:
        return RateLimited(
            'Account is locked. An administrator must unlock it.',
            code='account_locked',
        )
    return RateLimited(
        'Account is temporarily locked due to too many failed login attempts.',
        retry_after=retry_after,
        code='account_locked',
        locked_until=lock.locked_until.isoformat(),
    )


class CredentialGate:

    def __init__(self, attempt_log=attempt_log, lockout=lockout_machine,
                 identity=identity_store, two_factor=two_factor_manager):
        self.attempt_log = attempt_log
        self.lockout = lockout
        self.identity = identity
        self.two_factor = two_factor

    def login(self, email, password, context=None, now=None) -> LoginResult:
        """
        Authenticate ``email``/``password`` and issue session tokens.

        Raises RateLimited while the account is locked, Unauthorized for
        bad credentials and UpstreamFailure when lock state is unreadable.
        """
        now = now or timezone.now()
        email = normalize_email(email)
        policy = ThrottlePolicy.for_login()

        try:
            user = User.objects.filter(email=email).first()
        except DatabaseError as exc:
            logger.exception("User lookup failed during login for %s", email)
            raise UpstreamFailure('Login is temporarily unavailable') from exc

        if user is not None:
            lock = self.lockout.get_open_lock(user, AccountLock.Scope.LOGIN, now)
            if lock is not None:
                self.attempt_log.log_attempt(
                    email, False, user=user, context=context,
                    failure_reason='account_locked', now=now,
                )
                raise locked_error(lock, now)
        elif self.attempt_log.count_recent_failures(email, policy.window_minutes, now=now) >= policy.threshold:
            raise RateLimited(
                'Too many failed login attempts. Try again later.',
                retry_after=policy.window_minutes * 60,
            )

        authenticated = authenticate(None, username=email, password=password)
        if authenticated is None:
            self.attempt_log.log_attempt(
                email, False, user=user, context=context,
                failure_reason='invalid_credentials', now=now,
            )
            if user is not None:
                SecurityEvent.record(user, SecurityEvent.EventType.LOGIN_FAILED, context=context)

            lock = self.lockout.evaluate_lockout(email, policy, context=context, now=now)
            if lock is not None:
                raise locked_error(lock, now)

            remaining = self.lockout.remaining_attempts(email, policy, now=now)
            extra = {'attempts_remaining': remaining} if remaining > 0 else {}
            raise Unauthorized('Invalid email or password', code='invalid_credentials', **extra)

        self.attempt_log.log_attempt(email, True, user=authenticated, context=context, now=now)

        authenticated.last_login_at = now
        authenticated.save(update_fields=['last_login_at', 'updated_at'])
        SecurityEvent.record(authenticated, SecurityEvent.EventType.LOGIN_SUCCESS, context=context)

        tokens = self.identity.issue_session_tokens(authenticated)
        logger.info("Login succeeded for %s (session %s)", email, tokens.session_id)

        return LoginResult(
            user=authenticated,
            tokens=tokens,
            two_factor_required=self.two_factor.needs_verification(authenticated, tokens.session_id, now),
        )

    def record_login_attempt(self, email, success, context=None, now=None) -> AttemptOutcome:
        """
        Record an attempt reported by a client and evaluate lockout after a
        failure. Returns the resulting lock state.
        """
        now = now or timezone.now()
        email = normalize_email(email)
        user = User.objects.filter(email=email).first()

        self.attempt_log.log_attempt(
            email, success, user=user, context=context,
            failure_reason='' if success else 'invalid_credentials', now=now,
        )
        if not success:
            self.lockout.evaluate_lockout(email, context=context, now=now)

        if user is None:
            return AttemptOutcome(LockState.UNLOCKED)
        lock = self.lockout.get_open_lock(user, AccountLock.Scope.LOGIN, now)
        if lock is None:
            return AttemptOutcome(LockState.UNLOCKED)
        return AttemptOutcome(lock.state_at(now), lock)


credential_gate = CredentialGate()
