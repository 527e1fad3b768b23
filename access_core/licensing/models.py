from django.db import models
from django.db.models import F, Q

from access_core.core.models import TimestampedModel, UUIDModel


class Feature(models.TextChoices):
    PARTNERS = 'partners', 'Partners'
    PROJECTS = 'projects', 'Projects'
    SALES = 'sales', 'Sales'
    DOCUMENTS = 'documents', 'Documents'
    CALENDAR = 'calendar', 'Calendar'
    MY_ITEMS = 'my_items', 'My Items'
    AUDIT = 'audit', 'Audit'


class LicenseStatus(models.TextChoices):
    NO_LICENSE = 'no_license', 'No License'
    PENDING = 'pending', 'Pending'
    ACTIVE = 'active', 'Active'
    EXPIRED = 'expired', 'Expired'
    INACTIVE = 'inactive', 'Inactive'


class License(UUIDModel, TimestampedModel):
    """
    A company's entitlement: validity period, seat count and features.

    Whether a license is currently usable is derived from these fields
    at read time; see ``services.license_status``.
    """

    class Type(models.TextChoices):
        TRIAL = 'trial', 'Trial'
        STANDARD = 'standard', 'Standard'
        ENTERPRISE = 'enterprise', 'Enterprise'

    company = models.OneToOneField(
        'accounts.Company',
        on_delete=models.CASCADE,
        related_name='license',
    )
    key = models.CharField(max_length=64, unique=True)
    license_type = models.CharField(max_length=20, choices=Type.choices, default=Type.STANDARD)
    max_users = models.PositiveIntegerField()
    valid_from = models.DateTimeField()
    valid_until = models.DateTimeField()
    is_active = models.BooleanField(default=True)
    features = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = 'company_licenses'
        constraints = [
            models.CheckConstraint(
                condition=Q(valid_from__lte=F('valid_until')),
                name='license_valid_from_before_valid_until',
            ),
        ]

    def __str__(self):
        return f"{self.company} {self.license_type} license"
