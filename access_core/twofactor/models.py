from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from access_core.core.models import TimestampedModel, UUIDModel


class VerificationState(models.TextChoices):
    UNVERIFIED = 'unverified', 'Unverified'
    VERIFIED = 'verified', 'Verified'


class TwoFactorCredential(UUIDModel, TimestampedModel):
    """TOTP secret for a user; cleared rather than deleted on disable"""
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='two_factor',
    )
    secret = models.CharField(max_length=64, blank=True)
    enabled = models.BooleanField(default=False)
    enabled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'two_factor_credentials'

    def __str__(self):
        state = 'enabled' if self.enabled else 'disabled'
        return f"2FA for {self.user.email} ({state})"


class RecoveryCode(UUIDModel):
    """
    One-time recovery code. Only the sha256 of the normalized code is kept.
    """
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='recovery_codes',
    )
    code_hash = models.CharField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'two_factor_recovery_codes'


class SessionVerification(UUIDModel):
    """Records that a session passed two-factor verification"""
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='session_verifications',
    )
    session_id = models.CharField(max_length=64)
    verified_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()

    class Meta:
        db_table = 'session_2fa_verifications'
        ordering = ['-verified_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'session_id'], name='unique_session_verification'),
            models.CheckConstraint(
                condition=Q(expires_at__gt=F('verified_at')),
                name='session_verification_expires_after_verified',
            ),
        ]

    def __str__(self):
        return f"{self.user_id}:{self.session_id} verified until {self.expires_at}"

    def state_at(self, now=None) -> VerificationState:
        now = now or timezone.now()
        if self.expires_at > now:
            return VerificationState.VERIFIED
        return VerificationState.UNVERIFIED
