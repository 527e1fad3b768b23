"""
Tests for TOTP verification, recovery codes and session verification.
"""

from datetime import datetime, timedelta, timezone as dt_timezone
from unittest.mock import MagicMock, patch

import pyotp
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase

from access_core.accounts.models import SecurityEvent
from access_core.core.exceptions import Forbidden, ValidationError
from access_core.lockout.models import AccountLock, LoginAttempt
from access_core.lockout.services import AttemptLog, LockoutStateMachine
from access_core.twofactor.models import RecoveryCode, SessionVerification, TwoFactorCredential, VerificationState
from access_core.twofactor.services import (
    INVALID_CODE, TWO_FACTOR_LOCKED, TwoFactorManager, hash_recovery_code, normalize_recovery_code,
)

User = get_user_model()

SECRET = 'JBSWY3DPEHPK3PXPJBSWY3DP'
# Mid-step so that neighbouring steps are unambiguous.
NOW = datetime(2024, 3, 1, 12, 0, 15, tzinfo=dt_timezone.utc)


class TwoFactorManagerTestCase(TestCase):

    def setUp(self):
        self.user = User.objects.create_user(
            username='member', email='member@example.com', password='testpass123'
        )
        self.admin = User.objects.create_user(
            username='root', email='root@example.com', password='testpass123',
            role=User.Role.SUPER_ADMIN,
        )
        log = AttemptLog()
        self.manager = TwoFactorManager(
            attempt_log=log, lockout=LockoutStateMachine(log, notifier=MagicMock())
        )
        self.totp = pyotp.TOTP(SECRET)

    def enable(self):
        return self.manager.enable(self.user, SECRET, now=NOW - timedelta(days=1))


class SecretLifecycleTests(TwoFactorManagerTestCase):

    def test_generate_secret_returns_provisioning_data(self):
        provisioning = self.manager.generate_secret(self.user)

        self.assertEqual(len(provisioning.secret), 32)
        self.assertIn('otpauth://totp/', provisioning.provisioning_uri)
        self.assertIn('member%40example.com', provisioning.provisioning_uri)
        self.assertTrue(provisioning.qr_code.startswith('data:image/png;base64,'))
        self.assertFalse(TwoFactorCredential.objects.exists())

    def test_enable_stores_secret(self):
        credential = self.enable()

        self.assertTrue(credential.enabled)
        self.assertEqual(credential.secret, SECRET)
        self.assertTrue(self.manager.is_enabled(self.user))
        self.assertTrue(
            SecurityEvent.objects.filter(event_type=SecurityEvent.EventType.MFA_ENABLED).exists()
        )

    def test_re_enable_overwrites_secret(self):
        self.enable()
        other = pyotp.random_base32()

        self.manager.enable(self.user, other)

        self.assertEqual(TwoFactorCredential.objects.get(user=self.user).secret, other)
        self.assertEqual(TwoFactorCredential.objects.count(), 1)

    def test_enable_rejects_malformed_secret(self):
        with self.assertRaises(ValidationError):
            self.manager.enable(self.user, 'not a secret!')
        with self.assertRaises(ValidationError):
            self.manager.enable(self.user, 'ABC')

    def test_enable_with_wrong_confirmation_code(self):
        wrong = str((int(self.totp.at(NOW)) + 1) % 1000000).zfill(6)

        with self.assertRaises(ValidationError):
            self.manager.enable(self.user, SECRET, code=wrong, now=NOW)

    def test_disable_clears_secret_and_recovery_codes(self):
        self.enable()
        self.manager.generate_recovery_codes(self.user)
        SessionVerification.objects.create(
            user=self.user, session_id='s1', verified_at=NOW, expires_at=NOW + timedelta(hours=1)
        )

        self.manager.disable(self.user, by_user=self.user)

        credential = TwoFactorCredential.objects.get(user=self.user)
        self.assertFalse(credential.enabled)
        self.assertEqual(credential.secret, '')
        self.assertFalse(RecoveryCode.objects.filter(user=self.user).exists())
        self.assertTrue(SessionVerification.objects.filter(user=self.user).exists())

    def test_disable_for_other_user_requires_administrator(self):
        self.enable()
        peer = User.objects.create_user(
            username='peer', email='peer@example.com', password='testpass123'
        )

        with self.assertRaises(Forbidden):
            self.manager.disable(self.user, by_user=peer)

        self.manager.disable(self.user, by_user=self.admin)
        self.assertFalse(self.manager.is_enabled(self.user))

    def test_status(self):
        self.enable()
        self.manager.generate_recovery_codes(self.user, count=3)

        status = self.manager.status(self.user)

        self.assertTrue(status['enabled'])
        self.assertEqual(status['recovery_codes_remaining'], 3)


class TotpVerificationTests(TwoFactorManagerTestCase):

    def setUp(self):
        super().setUp()
        self.enable()

    def verify(self, code, **kwargs):
        return self.manager.verify('member@example.com', code, now=NOW, **kwargs)

    def test_accepts_current_and_adjacent_steps(self):
        for offset in (-1, 0, 1):
            with self.subTest(offset=offset):
                result = self.verify(self.totp.at(NOW, offset))
                self.assertTrue(result.verified)
                self.assertIsNone(result.error)

    def test_rejects_codes_two_steps_away(self):
        for offset in (-2, 2):
            with self.subTest(offset=offset):
                result = self.verify(self.totp.at(NOW, offset))
                self.assertFalse(result.verified)
                self.assertEqual(result.error, INVALID_CODE)

    def test_rejects_malformed_code(self):
        self.assertEqual(self.verify('12ab56').error, INVALID_CODE)
        self.assertEqual(self.verify('').error, INVALID_CODE)

    def test_every_attempt_is_logged(self):
        self.verify(self.totp.at(NOW))
        self.verify('000000' if self.totp.at(NOW) != '000000' else '111111')

        attempts = LoginAttempt.objects.filter(attempt_type=LoginAttempt.AttemptType.TWO_FACTOR)
        self.assertEqual(attempts.count(), 2)
        self.assertEqual(attempts.filter(success=True).count(), 1)

    def test_unknown_email_and_disabled_two_factor_are_invalid(self):
        result = self.manager.verify('ghost@example.com', self.totp.at(NOW), now=NOW)
        self.assertEqual(result.error, INVALID_CODE)

        self.manager.disable(self.user)
        result = self.verify(self.totp.at(NOW))
        self.assertEqual(result.error, INVALID_CODE)

    def test_success_marks_session_verified(self):
        self.assertTrue(self.manager.needs_verification(self.user, 'session-1', now=NOW))

        self.verify(self.totp.at(NOW), session_id='session-1')

        verification = SessionVerification.objects.get(user=self.user, session_id='session-1')
        self.assertEqual(verification.expires_at, NOW + timedelta(minutes=720))
        self.assertEqual(verification.state_at(NOW), VerificationState.VERIFIED)
        self.assertFalse(self.manager.needs_verification(self.user, 'session-1', now=NOW))
        self.assertTrue(self.manager.needs_verification(self.user, 'session-2', now=NOW))

    def test_verification_expires(self):
        self.verify(self.totp.at(NOW), session_id='session-1')
        later = NOW + timedelta(minutes=721)

        self.assertTrue(self.manager.needs_verification(self.user, 'session-1', now=later))

    def test_repeat_verification_upserts(self):
        self.verify(self.totp.at(NOW), session_id='session-1')
        self.verify(self.totp.at(NOW, 1), session_id='session-1')

        self.assertEqual(SessionVerification.objects.filter(user=self.user).count(), 1)

    def test_needs_verification_fails_closed(self):
        with patch.object(TwoFactorCredential.objects, 'filter', side_effect=DatabaseError('down')):
            self.assertTrue(self.manager.needs_verification(self.user, 'session-1', now=NOW))

    def test_user_without_two_factor_never_needs_verification(self):
        self.manager.disable(self.user)

        self.assertFalse(self.manager.needs_verification(self.user, None, now=NOW))

    def test_repeated_failures_lock_two_factor(self):
        wrong = str((int(self.totp.at(NOW)) + 500000) % 1000000).zfill(6)
        for _ in range(10):
            self.assertEqual(self.verify(wrong).error, INVALID_CODE)

        result = self.verify(self.totp.at(NOW))

        self.assertEqual(result.error, TWO_FACTOR_LOCKED)
        lock = AccountLock.objects.get(user=self.user)
        self.assertEqual(lock.scope, AccountLock.Scope.TWO_FACTOR)
        self.assertEqual(lock.locked_until, NOW + timedelta(minutes=10))

    def test_two_factor_lock_lapses(self):
        self.manager.lockout.lock(self.user, 'test', 10, scope=AccountLock.Scope.TWO_FACTOR, now=NOW)

        later = NOW + timedelta(minutes=11)
        result = self.manager.verify('member@example.com', self.totp.at(later), now=later)

        self.assertTrue(result.verified)


class RecoveryCodeTests(TwoFactorManagerTestCase):

    def setUp(self):
        super().setUp()
        self.enable()

    def test_generates_formatted_codes_and_stores_hashes(self):
        codes = self.manager.generate_recovery_codes(self.user)

        self.assertEqual(len(codes), 8)
        self.assertEqual(len(set(codes)), 8)
        for code in codes:
            self.assertRegex(code, r'^[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}-[A-Z0-9]{4}$')
        stored = set(RecoveryCode.objects.filter(user=self.user).values_list('code_hash', flat=True))
        self.assertEqual(stored, {hash_recovery_code(code) for code in codes})

    def test_regenerating_replaces_previous_codes(self):
        old = self.manager.generate_recovery_codes(self.user)
        self.manager.generate_recovery_codes(self.user)

        result = self.manager.verify('member@example.com', old[0], is_recovery_code=True, now=NOW)

        self.assertFalse(result.verified)
        self.assertEqual(RecoveryCode.objects.filter(user=self.user).count(), 8)

    def test_code_works_exactly_once(self):
        code = self.manager.generate_recovery_codes(self.user)[0]

        first = self.manager.verify('member@example.com', code, is_recovery_code=True, now=NOW)
        second = self.manager.verify('member@example.com', code, is_recovery_code=True, now=NOW)

        self.assertTrue(first.verified)
        self.assertFalse(second.verified)
        self.assertEqual(second.error, INVALID_CODE)
        self.assertEqual(RecoveryCode.objects.filter(user=self.user).count(), 7)

    def test_input_is_normalized(self):
        code = self.manager.generate_recovery_codes(self.user)[0]
        typed = ' ' + code.replace('-', '').lower() + ' '

        result = self.manager.verify('member@example.com', typed, is_recovery_code=True, now=NOW)

        self.assertTrue(result.verified)

    def test_normalize_recovery_code(self):
        self.assertEqual(normalize_recovery_code('abcd efgh-ijkl mnop'), 'ABCD-EFGH-IJKL-MNOP')

    def test_count_bounds(self):
        with self.assertRaises(ValidationError):
            self.manager.generate_recovery_codes(self.user, count=21)
