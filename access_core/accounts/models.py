import uuid

from django.contrib.auth.models import AbstractUser
from django.db import models

from access_core.core.models import TimestampedModel, UUIDModel


class Company(UUIDModel, TimestampedModel):
    """Tenant that users and a license belong to"""
    name = models.CharField(max_length=200)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'companies'
        verbose_name_plural = 'companies'
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class User(AbstractUser):
    """Custom user model with role-based access control"""

    class Role(models.TextChoices):
        SUPER_ADMIN = 'super_admin', 'Super Admin'
        ADMIN = 'admin', 'Admin'
        USER = 'user', 'User'
        READ_ONLY = 'read_only', 'Read Only'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.USER)
    company = models.ForeignKey(
        Company,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='users',
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    last_login_at = models.DateTimeField(null=True, blank=True)

    # Tokens issued at or before this instant are rejected.
    sessions_invalidated_at = models.DateTimeField(null=True, blank=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.email} ({self.get_role_display()})"

    @property
    def is_super_admin(self):
        return self.role == self.Role.SUPER_ADMIN

    @property
    def is_administrator(self):
        return self.role in [self.Role.SUPER_ADMIN, self.Role.ADMIN]

    def can_administer(self, other):
        """
        Super admins administer everyone; company admins administer users
        of their own company.
        """
        if self.is_super_admin:
            return True
        if self.role == self.Role.ADMIN:
            return self.company_id is not None and self.company_id == other.company_id
        return False


class SecurityEvent(UUIDModel):
    """Audit trail of security-relevant actions"""

    class EventType(models.TextChoices):
        LOGIN_SUCCESS = 'login_success', 'Login Success'
        LOGIN_FAILED = 'login_failed', 'Login Failed'
        ACCOUNT_LOCKED = 'account_locked', 'Account Locked'
        ACCOUNT_UNLOCKED = 'account_unlocked', 'Account Unlocked'
        MFA_ENABLED = 'mfa_enabled', 'MFA Enabled'
        MFA_DISABLED = 'mfa_disabled', 'MFA Disabled'
        MFA_FAILED = 'mfa_failed', 'MFA Failed'
        RECOVERY_CODES_GENERATED = 'recovery_codes', 'Recovery Codes Generated'
        SESSION_TERMINATED = 'session_terminated', 'Session Terminated'
        LICENSE_ACTIVATED = 'license_activated', 'License Activated'

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name='security_events',
    )
    actor = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    event_type = models.CharField(max_length=30, choices=EventType.choices, db_index=True)
    description = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'security_events'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.get_event_type_display()} - {self.created_at}"

    @classmethod
    def record(cls, user, event_type, description='', actor=None, context=None, **metadata):
        return cls.objects.create(
            user=user,
            actor=actor,
            event_type=event_type,
            description=description,
            ip_address=getattr(context, 'ip_address', None),
            user_agent=getattr(context, 'user_agent', '') or '',
            metadata=metadata,
        )
