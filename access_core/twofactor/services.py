"""
Two-factor verification: TOTP secrets, recovery codes and the per-session
verification cache.
"""

import base64
import binascii
import hashlib
import io
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import pyotp
import qrcode
from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.utils import timezone

from access_core.accounts.models import SecurityEvent
from access_core.core.conf import access_settings
from access_core.core.exceptions import Forbidden, UpstreamFailure, ValidationError
from access_core.lockout.models import AccountLock, LoginAttempt, normalize_email
from access_core.lockout.services import ThrottlePolicy, attempt_log, lockout_machine

from .models import RecoveryCode, SessionVerification, TwoFactorCredential

logger = logging.getLogger(__name__)

User = get_user_model()

INVALID_CODE = 'invalid_code'
TWO_FACTOR_LOCKED = 'two_factor_locked'

# 30-second steps; codes from the adjacent step on either side are accepted.
TOTP_VALID_WINDOW = 1

RECOVERY_CODE_ALPHABET = string.ascii_uppercase + string.digits
RECOVERY_CODE_GROUPS = 4
RECOVERY_CODE_GROUP_LENGTH = 4
MAX_RECOVERY_CODES = 20

BASE32_SECRET = re.compile(r'^[A-Z2-7]{16,64}$')


@dataclass(frozen=True)
class SecretProvisioning:
    secret: str
    provisioning_uri: str
    qr_code: str


@dataclass(frozen=True)
class VerificationResult:
    verified: bool
    error: Optional[str] = None


def normalize_recovery_code(code):
    """Canonical ``XXXX-XXXX-XXXX-XXXX`` form of user input."""
    compact = re.sub(r'[^A-Z0-9]', '', (code or '').upper())
    return '-'.join(
        compact[i:i + RECOVERY_CODE_GROUP_LENGTH]
        for i in range(0, len(compact), RECOVERY_CODE_GROUP_LENGTH)
    )


def hash_recovery_code(code):
    return hashlib.sha256(normalize_recovery_code(code).encode()).hexdigest()


def generate_recovery_code():
    return '-'.join(
        ''.join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(RECOVERY_CODE_GROUP_LENGTH))
        for _ in range(RECOVERY_CODE_GROUPS)
    )


def render_qr_code(data):
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return f"data:image/png;base64,{base64.b64encode(buffer.getvalue()).decode()}"


class TwoFactorManager:
    """
    Owns TOTP credentials and decides, per session, whether a second
    factor is still required.
    """

    def __init__(self, attempt_log=attempt_log, lockout=lockout_machine):
        self.attempt_log = attempt_log
        self.lockout = lockout

    def generate_secret(self, user) -> SecretProvisioning:
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret).provisioning_uri(
            name=user.email,
            issuer_name=access_settings.TOTP_ISSUER,
        )
        return SecretProvisioning(secret=secret, provisioning_uri=uri, qr_code=render_qr_code(uri))

    def enable(self, user, secret, code=None, now=None) -> TwoFactorCredential:
        """
        Store ``secret`` and turn two-factor on. Re-enabling replaces the
        previous secret. When ``code`` is given it must be valid for the
        new secret.
        """
        now = now or timezone.now()
        secret = (secret or '').strip().replace(' ', '').upper()
        if not BASE32_SECRET.match(secret):
            raise ValidationError('Secret must be a base32 string of at least 16 characters')
        try:
            base64.b32decode(secret + '=' * (-len(secret) % 8))
        except binascii.Error:
            raise ValidationError('Secret must be a base32 string of at least 16 characters')

        if code is not None and not self._verify_totp(secret, code, now):
            raise ValidationError('Verification code does not match the secret', code=INVALID_CODE)

        credential, _ = TwoFactorCredential.objects.update_or_create(
            user=user,
            defaults={'secret': secret, 'enabled': True, 'enabled_at': now},
        )
        SecurityEvent.record(user, SecurityEvent.EventType.MFA_ENABLED, actor=user)
        logger.info("Two-factor enabled for %s", user.email)
        return credential

    def disable(self, user, by_user=None):
        """
        Clear the secret and recovery codes. Existing session
        verifications are left to expire.
        """
        if by_user is not None and by_user.pk != user.pk and not by_user.can_administer(user):
            raise Forbidden("Only an administrator can disable another user's two-factor authentication")

        with transaction.atomic():
            TwoFactorCredential.objects.filter(user=user).update(
                secret='', enabled=False, enabled_at=None, updated_at=timezone.now()
            )
            RecoveryCode.objects.filter(user=user).delete()
            SecurityEvent.record(user, SecurityEvent.EventType.MFA_DISABLED, actor=by_user or user)
        logger.info(
            "Two-factor disabled for %s by %s", user.email, (by_user or user).email
        )

    def is_enabled(self, user) -> bool:
        return TwoFactorCredential.objects.filter(user=user, enabled=True).exclude(secret='').exists()

    def status(self, user) -> dict:
        credential = TwoFactorCredential.objects.filter(user=user).first()
        enabled = bool(credential and credential.enabled and credential.secret)
        return {
            'enabled': enabled,
            'enabled_at': credential.enabled_at if enabled else None,
            'recovery_codes_remaining': RecoveryCode.objects.filter(user=user).count(),
        }

    def verify(
        self,
        email,
        code,
        is_recovery_code=False,
        session_id=None,
        context=None,
        now=None,
    ) -> VerificationResult:
        """
        Check a TOTP or recovery code for the account behind ``email``.

        Failures are reported as ``invalid_code`` whatever the cause, or
        ``two_factor_locked`` while too many recent failures lock the
        account. A verified code marks ``session_id`` as verified.
        """
        now = now or timezone.now()
        email = normalize_email(email)
        policy = ThrottlePolicy.for_two_factor()

        try:
            user = User.objects.filter(email=email, is_active=True).first()
            if user is None:
                return VerificationResult(False, INVALID_CODE)

            if self.lockout.is_locked(user, AccountLock.Scope.TWO_FACTOR, now):
                return VerificationResult(False, TWO_FACTOR_LOCKED)

            code = '' if code is None else str(code).strip()
            if not code:
                return VerificationResult(False, INVALID_CODE)

            credential = TwoFactorCredential.objects.filter(user=user, enabled=True).first()
            if credential is None or not credential.secret:
                verified = False
            elif is_recovery_code:
                verified = self._consume_recovery_code(user, code)
            else:
                verified = self._verify_totp(credential.secret, code, now)

            self.attempt_log.log_attempt(
                email,
                verified,
                user=user,
                context=context,
                attempt_type=LoginAttempt.AttemptType.TWO_FACTOR,
                failure_reason='' if verified else INVALID_CODE,
                now=now,
            )

            if not verified:
                logger.warning("Failed two-factor verification for %s", email)
                SecurityEvent.record(
                    user, SecurityEvent.EventType.MFA_FAILED, context=context,
                    recovery_code=bool(is_recovery_code),
                )
                self.lockout.evaluate_lockout(email, policy, context=context, now=now)
                return VerificationResult(False, INVALID_CODE)

            if session_id:
                self.mark_session_verified(user, session_id, now)
        except DatabaseError as exc:
            logger.exception("Two-factor verification failed for %s", email)
            raise UpstreamFailure('Two-factor verification is unavailable') from exc

        return VerificationResult(True)

    def mark_session_verified(self, user, session_id, now=None) -> SessionVerification:
        now = now or timezone.now()
        ttl = timedelta(minutes=access_settings.TWO_FACTOR_SESSION_TTL_MINUTES)
        verification, _ = SessionVerification.objects.update_or_create(
            user=user,
            session_id=session_id,
            defaults={'verified_at': now, 'expires_at': now + ttl},
        )
        return verification

    def needs_verification(self, user, session_id, now=None) -> bool:
        now = now or timezone.now()
        try:
            if not self.is_enabled(user):
                return False
            if not session_id:
                return True
            return not SessionVerification.objects.filter(
                user=user, session_id=session_id, expires_at__gt=now
            ).exists()
        except DatabaseError:
            logger.exception("Could not read two-factor state for %s, requiring verification", user.email)
            return True

    def generate_recovery_codes(self, user, count=None) -> list:
        """
        Replace the user's recovery codes. The plaintext codes are only
        ever returned here.
        """
        count = count or access_settings.RECOVERY_CODE_COUNT
        if not 1 <= count <= MAX_RECOVERY_CODES:
            raise ValidationError(f'Recovery code count must be between 1 and {MAX_RECOVERY_CODES}')

        codes = [generate_recovery_code() for _ in range(count)]
        with transaction.atomic():
            RecoveryCode.objects.filter(user=user).delete()
            RecoveryCode.objects.bulk_create(
                [RecoveryCode(user=user, code_hash=hash_recovery_code(code)) for code in codes]
            )
            SecurityEvent.record(user, SecurityEvent.EventType.RECOVERY_CODES_GENERATED, count=count)
        return codes

    def _verify_totp(self, secret, code, now):
        code = code.replace(' ', '')
        if len(code) != 6 or not code.isdigit():
            return False
        return pyotp.TOTP(secret).verify(code, for_time=now, valid_window=TOTP_VALID_WINDOW)

    def _consume_recovery_code(self, user, code):
        deleted, _ = RecoveryCode.objects.filter(
            user=user, code_hash=hash_recovery_code(code)
        ).delete()
        return deleted > 0


two_factor_manager = TwoFactorManager()
