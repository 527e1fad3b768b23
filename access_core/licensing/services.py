"""
License enforcement: status classification, feature guard, seat usage,
key validation and activation.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone as dt_timezone
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import DatabaseError, transaction
from django.utils import timezone

from access_core.accounts.models import Company, SecurityEvent
from access_core.core.conf import access_settings
from access_core.core.exceptions import Conflict, Forbidden, NotFound, UpstreamFailure, ValidationError

from .client import LicenseAuthorityClient
from .keys import LicenseKeyError, decode_license_key, format_license_key
from .models import License, LicenseStatus

logger = logging.getLogger(__name__)

User = get_user_model()

FEATURE_NOT_INCLUDED = 'feature_not_included'

DENIAL_REASONS = {
    LicenseStatus.NO_LICENSE: 'no_license',
    LicenseStatus.PENDING: 'not_yet_valid',
    LicenseStatus.EXPIRED: 'expired',
    LicenseStatus.INACTIVE: 'inactive',
}

VALIDATION_MESSAGES = {
    LicenseStatus.NO_LICENSE: 'Invalid license key',
    LicenseStatus.PENDING: 'License not yet valid',
    LicenseStatus.EXPIRED: 'License has expired',
    LicenseStatus.INACTIVE: 'License is inactive',
}


def license_status(license: Optional[License], now=None) -> LicenseStatus:
    if license is None:
        return LicenseStatus.NO_LICENSE
    if not license.is_active:
        return LicenseStatus.INACTIVE
    now = now or timezone.now()
    if now < license.valid_from:
        return LicenseStatus.PENDING
    if now > license.valid_until:
        return LicenseStatus.EXPIRED
    return LicenseStatus.ACTIVE


def days_until_expiry(license: Optional[License], now=None) -> Optional[int]:
    if license is None:
        return None
    now = now or timezone.now()
    return math.ceil((license.valid_until - now).total_seconds() / 86400)


def feature_enabled(license: Optional[License], feature: str) -> bool:
    if license is None:
        return False
    return feature in (license.features or [])


@dataclass(frozen=True)
class GuardDecision:
    permitted: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class SeatUsage:
    used: int
    allowed: int

    @property
    def ratio(self) -> float:
        if not self.allowed:
            return 1.0 if self.used else 0.0
        return self.used / self.allowed

    @property
    def exceeded(self) -> bool:
        return self.used > self.allowed

    def as_dict(self):
        return {
            'used': self.used,
            'allowed': self.allowed,
            'ratio': round(self.ratio, 4),
            'exceeded': self.exceeded,
        }


@dataclass(frozen=True)
class KeyValidation:
    status: LicenseStatus
    reason: str = ''
    payload: dict = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return self.status == LicenseStatus.ACTIVE

    def as_dict(self):
        body = {'valid': self.valid, 'status': self.status.value}
        if self.reason:
            body['reason'] = self.reason
        body.update(self.payload)
        return body

    @classmethod
    def from_response(cls, data: dict) -> 'KeyValidation':
        status = data.get('status')
        if status in LicenseStatus.values:
            status = LicenseStatus(status)
        else:
            status = LicenseStatus.ACTIVE if data.get('valid') else LicenseStatus.NO_LICENSE
        payload = {k: v for k, v in data.items() if k not in ('valid', 'status', 'reason')}
        return cls(status=status, reason=data.get('reason', ''), payload=payload)


def license_payload(license: License) -> dict:
    return {
        'company_id': str(license.company_id),
        'company_name': license.company.name,
        'license_type': license.license_type,
        'max_users': license.max_users,
        'valid_from': license.valid_from.isoformat(),
        'valid_until': license.valid_until.isoformat(),
        'features': list(license.features or []),
    }


def end_of_day(value):
    return datetime.combine(value, time(23, 59, 59), tzinfo=dt_timezone.utc)


def start_of_day(value):
    return datetime.combine(value, time.min, tzinfo=dt_timezone.utc)


class LicenseEngine:
    """
    Resolves company licenses and answers whether a feature may be used.
    """

    status = staticmethod(license_status)
    days_until_expiry = staticmethod(days_until_expiry)
    feature_enabled = staticmethod(feature_enabled)

    def __init__(self, authority_client=None):
        self.authority_client = authority_client or LicenseAuthorityClient()

    def resolve(self, company_id) -> License:
        try:
            return License.objects.select_related('company').get(company_id=company_id)
        except License.DoesNotExist:
            raise NotFound('No license found for this company', code='no_license')
        except DatabaseError as exc:
            logger.exception("License lookup failed for company %s", company_id)
            raise UpstreamFailure('License store is unavailable') from exc

    def resolve_or_none(self, company_id) -> Optional[License]:
        if company_id is None:
            return None
        try:
            return self.resolve(company_id)
        except NotFound:
            return None

    def check(self, license: Optional[License], feature: Optional[str] = None, now=None) -> GuardDecision:
        status = license_status(license, now)
        if status != LicenseStatus.ACTIVE:
            return GuardDecision(False, DENIAL_REASONS[status])
        if feature is not None and not feature_enabled(license, feature):
            return GuardDecision(False, FEATURE_NOT_INCLUDED)
        return GuardDecision(True)

    def require(self, company_id, feature: Optional[str] = None, now=None) -> Optional[License]:
        """
        Return the company's license if it permits ``feature``; raise
        Forbidden otherwise, including when the license cannot be read.
        """
        try:
            license = self.resolve_or_none(company_id)
        except UpstreamFailure:
            raise Forbidden('License could not be verified', code='license_required', reason='license_unavailable')

        decision = self.check(license, feature, now)
        if not decision.permitted:
            raise Forbidden(
                'Your license does not permit this action',
                code='license_required',
                reason=decision.reason,
                feature=feature,
            )
        return license

    def seats_used(self, company_id) -> int:
        return User.objects.filter(company_id=company_id, is_active=True).count()

    def seats_allowed(self, license: Optional[License]) -> int:
        return license.max_users if license is not None else 0

    def seat_usage(self, company_id, license: Optional[License] = None) -> SeatUsage:
        """Advisory seat count; exceeding the limit is reported, not enforced."""
        if license is None:
            license = self.resolve_or_none(company_id)
        usage = SeatUsage(used=self.seats_used(company_id), allowed=self.seats_allowed(license))
        if usage.exceeded:
            logger.warning(
                "Company %s uses %d seats but its license allows %d",
                company_id, usage.used, usage.allowed
            )
        return usage

    def validate_key(self, key: str, now=None) -> KeyValidation:
        """
        Authoritative key check: the remote authority when one is
        configured, the local license table otherwise.
        """
        if access_settings.LICENSE_AUTHORITY_URL:
            return KeyValidation.from_response(self.authority_client.validate(format_license_key(key)))
        return self.lookup_key(key, now)

    def lookup_key(self, key: str, now=None) -> KeyValidation:
        try:
            license = License.objects.select_related('company').filter(key=format_license_key(key)).first()
        except DatabaseError as exc:
            logger.exception("License key lookup failed")
            raise UpstreamFailure('License store is unavailable') from exc

        if license is None:
            return KeyValidation(LicenseStatus.NO_LICENSE, VALIDATION_MESSAGES[LicenseStatus.NO_LICENSE])
        if license.company.is_deleted:
            return KeyValidation(LicenseStatus.INACTIVE, 'Company no longer exists')

        status = license_status(license, now)
        if status != LicenseStatus.ACTIVE:
            return KeyValidation(status, VALIDATION_MESSAGES[status])
        return KeyValidation(status, payload=license_payload(license))

    def activate(self, company_id, key: str, by_user, license_type=License.Type.STANDARD) -> License:
        """
        Bind a signed key to a company, replacing its current license.
        """
        company = Company.objects.filter(pk=company_id, deleted_at__isnull=True).first()
        if company is None:
            raise NotFound('Company not found')
        if not (by_user.is_super_admin or (by_user.is_administrator and by_user.company_id == company.pk)):
            raise Forbidden('Only an administrator can activate a license')

        try:
            decoded = decode_license_key(key)
        except LicenseKeyError as exc:
            raise ValidationError(str(exc), code='invalid_license_key')

        formatted = format_license_key(key)
        if License.objects.filter(key=formatted).exclude(company=company).exists():
            raise Conflict('This license key is already in use by another company')

        with transaction.atomic():
            license, created = License.objects.update_or_create(
                company=company,
                defaults={
                    'key': formatted,
                    'license_type': license_type,
                    'max_users': decoded.max_users,
                    'valid_from': start_of_day(decoded.valid_from),
                    'valid_until': end_of_day(decoded.valid_until),
                    'features': list(decoded.features),
                    'is_active': True,
                },
            )
            SecurityEvent.record(
                by_user,
                SecurityEvent.EventType.LICENSE_ACTIVATED,
                actor=by_user,
                company_id=str(company.pk),
                valid_until=license.valid_until.isoformat(),
            )

        logger.info(
            "%s license for %s (%d users, until %s)",
            'Activated' if created else 'Replaced', company.name, license.max_users,
            license.valid_until.date().isoformat()
        )
        return license


license_engine = LicenseEngine()
