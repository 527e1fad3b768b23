"""
Tests for license status, the feature guard, seat usage and key validation.
"""

from datetime import date, datetime, timedelta, timezone as dt_timezone
from unittest.mock import MagicMock

import requests
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings

from access_core.accounts.models import Company, SecurityEvent
from access_core.core.exceptions import Conflict, Forbidden, NotFound, UpstreamFailure, ValidationError
from access_core.integrations.circuit_breaker import CircuitBreaker
from access_core.licensing.client import LicenseAuthorityClient
from access_core.licensing.keys import generate_license_key
from access_core.licensing.models import License, LicenseStatus
from access_core.licensing.services import (
    FEATURE_NOT_INCLUDED, KeyValidation, LicenseEngine, days_until_expiry, feature_enabled, license_status,
)

User = get_user_model()

VALID_FROM = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)
VALID_UNTIL = datetime(2024, 12, 31, 23, 59, 59, tzinfo=dt_timezone.utc)
MIDYEAR = datetime(2024, 6, 1, tzinfo=dt_timezone.utc)

REMOTE_AUTHORITY = {
    'LICENSE_SIGNING_SECRET': 'test-license-signing-secret',
    'LICENSE_AUTHORITY_URL': 'https://licenses.example.com/validate/',
}


def make_license(company, **kwargs):
    fields = {
        'key': generate_license_key(10, date(2024, 1, 1), date(2024, 12, 31), ['partners', 'audit']),
        'max_users': 10,
        'valid_from': VALID_FROM,
        'valid_until': VALID_UNTIL,
        'features': ['partners', 'audit'],
    }
    fields.update(kwargs)
    return License.objects.create(company=company, **fields)


class LicenseStatusTests(SimpleTestCase):

    def make(self, **kwargs):
        fields = {'valid_from': VALID_FROM, 'valid_until': VALID_UNTIL, 'is_active': True, 'features': ['audit']}
        fields.update(kwargs)
        return License(**fields)

    def test_status_over_time(self):
        license = self.make()
        cases = [
            (VALID_FROM - timedelta(seconds=1), LicenseStatus.PENDING),
            (VALID_FROM, LicenseStatus.ACTIVE),
            (MIDYEAR, LicenseStatus.ACTIVE),
            (VALID_UNTIL, LicenseStatus.ACTIVE),
            (VALID_UNTIL + timedelta(seconds=1), LicenseStatus.EXPIRED),
        ]
        for now, expected in cases:
            with self.subTest(now=now):
                self.assertEqual(license_status(license, now), expected)

    def test_missing_license(self):
        self.assertEqual(license_status(None), LicenseStatus.NO_LICENSE)
        self.assertIsNone(days_until_expiry(None))
        self.assertFalse(feature_enabled(None, 'audit'))

    def test_inactive_takes_precedence_over_dates(self):
        license = self.make(is_active=False)

        self.assertEqual(license_status(license, MIDYEAR), LicenseStatus.INACTIVE)
        self.assertEqual(license_status(license, VALID_UNTIL + timedelta(days=1)), LicenseStatus.INACTIVE)

    def test_days_until_expiry(self):
        license = self.make()

        self.assertEqual(days_until_expiry(license, VALID_UNTIL - timedelta(days=2)), 2)
        self.assertEqual(days_until_expiry(license, VALID_UNTIL - timedelta(hours=1)), 1)
        self.assertEqual(days_until_expiry(license, VALID_UNTIL + timedelta(days=3)), -3)

    def test_feature_enabled(self):
        license = self.make()

        self.assertTrue(feature_enabled(license, 'audit'))
        self.assertFalse(feature_enabled(license, 'sales'))


class LicenseEngineTests(TestCase):

    def setUp(self):
        self.company = Company.objects.create(name='Acme')
        self.engine = LicenseEngine(authority_client=MagicMock())

    def test_resolve(self):
        license = make_license(self.company)

        self.assertEqual(self.engine.resolve(self.company.pk), license)
        other = Company.objects.create(name='Other')
        with self.assertRaises(NotFound):
            self.engine.resolve(other.pk)
        self.assertIsNone(self.engine.resolve_or_none(other.pk))
        self.assertIsNone(self.engine.resolve_or_none(None))

    def test_check_decisions(self):
        license = make_license(self.company)

        self.assertTrue(self.engine.check(license, 'audit', MIDYEAR).permitted)
        self.assertTrue(self.engine.check(license, None, MIDYEAR).permitted)

        decision = self.engine.check(license, 'sales', MIDYEAR)
        self.assertFalse(decision.permitted)
        self.assertEqual(decision.reason, FEATURE_NOT_INCLUDED)

        decision = self.engine.check(license, 'audit', VALID_UNTIL + timedelta(days=1))
        self.assertEqual(decision.reason, 'expired')

        decision = self.engine.check(None, 'audit', MIDYEAR)
        self.assertEqual(decision.reason, 'no_license')

    def test_require_raises_forbidden(self):
        make_license(self.company)

        self.assertIsNotNone(self.engine.require(self.company.pk, 'audit', MIDYEAR))
        with self.assertRaises(Forbidden) as cm:
            self.engine.require(self.company.pk, 'sales', MIDYEAR)
        self.assertEqual(cm.exception.extra['reason'], FEATURE_NOT_INCLUDED)
        self.assertEqual(cm.exception.code, 'license_required')

    def test_seat_usage_is_advisory(self):
        make_license(self.company, max_users=2)
        for index in range(3):
            User.objects.create_user(
                username=f'user{index}', email=f'user{index}@acme.com', password='testpass123',
                company=self.company,
            )
        User.objects.create_user(
            username='gone', email='gone@acme.com', password='testpass123',
            company=self.company, is_active=False,
        )

        usage = self.engine.seat_usage(self.company.pk)

        self.assertEqual(usage.used, 3)
        self.assertEqual(usage.allowed, 2)
        self.assertTrue(usage.exceeded)
        self.assertEqual(usage.as_dict()['ratio'], 1.5)
        self.assertIsNotNone(self.engine.require(self.company.pk, 'audit', MIDYEAR))

    def test_seat_usage_without_license(self):
        usage = self.engine.seat_usage(self.company.pk)

        self.assertEqual(usage.allowed, 0)
        self.assertEqual(usage.ratio, 0.0)

    def test_lookup_key(self):
        license = make_license(self.company)

        result = self.engine.validate_key(license.key.lower(), now=MIDYEAR)

        self.assertTrue(result.valid)
        body = result.as_dict()
        self.assertEqual(body['company_name'], 'Acme')
        self.assertEqual(body['max_users'], 10)
        self.assertEqual(body['status'], 'active')

    def test_lookup_unknown_and_expired_keys(self):
        license = make_license(self.company)

        unknown = self.engine.validate_key('AAAAA-BBBBB-CCCCC-DDDDD-EEEEE', now=MIDYEAR)
        self.assertFalse(unknown.valid)
        self.assertEqual(unknown.reason, 'Invalid license key')

        expired = self.engine.validate_key(license.key, now=VALID_UNTIL + timedelta(days=1))
        self.assertEqual(expired.status, LicenseStatus.EXPIRED)
        self.assertEqual(expired.reason, 'License has expired')

    def test_lookup_key_for_deleted_company(self):
        license = make_license(self.company)
        self.company.deleted_at = MIDYEAR
        self.company.save()

        result = self.engine.validate_key(license.key, now=MIDYEAR)

        self.assertFalse(result.valid)
        self.assertEqual(result.status, LicenseStatus.INACTIVE)

    @override_settings(ACCESS_CONTROL=REMOTE_AUTHORITY)
    def test_validate_key_uses_remote_authority(self):
        self.engine.authority_client.validate.return_value = {
            'valid': True, 'status': 'active', 'company_name': 'Remote Co',
        }

        result = self.engine.validate_key('aaaaabbbbbcccccdddddeeeee')

        self.engine.authority_client.validate.assert_called_once_with('AAAAA-BBBBB-CCCCC-DDDDD-EEEEE')
        self.assertTrue(result.valid)
        self.assertEqual(result.payload, {'company_name': 'Remote Co'})

    @override_settings(ACCESS_CONTROL=REMOTE_AUTHORITY)
    def test_validate_key_propagates_authority_failure(self):
        self.engine.authority_client.validate.side_effect = UpstreamFailure('down')

        with self.assertRaises(UpstreamFailure):
            self.engine.validate_key('AAAAA-BBBBB-CCCCC-DDDDD-EEEEE')


class KeyValidationTests(SimpleTestCase):

    def test_from_response_without_status(self):
        self.assertTrue(KeyValidation.from_response({'valid': True}).valid)

        result = KeyValidation.from_response({'valid': False, 'reason': 'Invalid license key'})
        self.assertEqual(result.status, LicenseStatus.NO_LICENSE)
        self.assertEqual(result.as_dict(), {'valid': False, 'status': 'no_license', 'reason': 'Invalid license key'})


class LicenseActivationTests(TestCase):

    def setUp(self):
        self.company = Company.objects.create(name='Acme')
        self.admin = User.objects.create_user(
            username='admin', email='admin@acme.com', password='testpass123',
            role=User.Role.ADMIN, company=self.company,
        )
        self.key = generate_license_key(25, date(2024, 1, 1), date(2024, 12, 31), ['projects'])
        self.engine = LicenseEngine(authority_client=MagicMock())

    def test_activate_creates_license_from_key(self):
        license = self.engine.activate(self.company.pk, self.key.lower(), self.admin)

        self.assertEqual(license.key, self.key)
        self.assertEqual(license.max_users, 25)
        self.assertEqual(license.features, ['projects'])
        self.assertEqual(license.valid_from, VALID_FROM)
        self.assertEqual(license.valid_until, VALID_UNTIL)
        self.assertTrue(
            SecurityEvent.objects.filter(event_type=SecurityEvent.EventType.LICENSE_ACTIVATED).exists()
        )

    def test_activate_replaces_existing_license(self):
        make_license(self.company, is_active=False)

        license = self.engine.activate(self.company.pk, self.key, self.admin)

        self.assertEqual(License.objects.filter(company=self.company).count(), 1)
        self.assertTrue(license.is_active)
        self.assertEqual(license.key, self.key)

    def test_key_in_use_by_another_company(self):
        other = Company.objects.create(name='Other')
        make_license(other, key=self.key)

        with self.assertRaises(Conflict):
            self.engine.activate(self.company.pk, self.key, self.admin)

    def test_forged_key(self):
        forged = generate_license_key(25, date(2024, 1, 1), date(2024, 12, 31), [], secret='forger')

        with self.assertRaises(ValidationError) as cm:
            self.engine.activate(self.company.pk, forged, self.admin)
        self.assertEqual(cm.exception.code, 'invalid_license_key')

    def test_requires_administrator_of_company(self):
        member = User.objects.create_user(
            username='member', email='member@acme.com', password='testpass123', company=self.company,
        )
        outsider = User.objects.create_user(
            username='outsider', email='admin@other.com', password='testpass123', role=User.Role.ADMIN,
        )

        with self.assertRaises(Forbidden):
            self.engine.activate(self.company.pk, self.key, member)
        with self.assertRaises(Forbidden):
            self.engine.activate(self.company.pk, self.key, outsider)

    def test_deleted_company(self):
        self.company.deleted_at = MIDYEAR
        self.company.save()

        with self.assertRaises(NotFound):
            self.engine.activate(self.company.pk, self.key, self.admin)


class LicenseAuthorityClientTests(SimpleTestCase):

    def setUp(self):
        self.session = MagicMock()
        self.breaker = CircuitBreaker(
            failure_threshold=2, recovery_timeout=60,
            expected_exception=requests.RequestException, name='test-authority',
        )
        self.client = LicenseAuthorityClient(
            base_url='https://licenses.example.com/validate/',
            timeout=3,
            breaker=self.breaker,
            session=self.session,
        )

    def test_returns_authority_body(self):
        self.session.post.return_value = MagicMock(status_code=200, json=MagicMock(return_value={'valid': True}))

        self.assertEqual(self.client.validate('KEY'), {'valid': True})
        self.session.post.assert_called_once_with(
            'https://licenses.example.com/validate/', json={'license_key': 'KEY'}, timeout=3
        )

    def test_not_found_body_is_returned(self):
        self.session.post.return_value = MagicMock(
            status_code=404, json=MagicMock(return_value={'valid': False, 'reason': 'Invalid license key'})
        )

        self.assertFalse(self.client.validate('KEY')['valid'])

    def test_server_error_is_upstream_failure(self):
        response = MagicMock(status_code=503)
        response.raise_for_status.side_effect = requests.HTTPError('503')
        self.session.post.return_value = response

        with self.assertRaises(UpstreamFailure):
            self.client.validate('KEY')

    def test_non_json_body_is_upstream_failure(self):
        self.session.post.return_value = MagicMock(status_code=200, json=MagicMock(side_effect=ValueError))

        with self.assertRaises(UpstreamFailure):
            self.client.validate('KEY')

    def test_circuit_opens_after_repeated_failures(self):
        self.session.post.side_effect = requests.ConnectionError('refused')

        for _ in range(3):
            with self.assertRaises(UpstreamFailure):
                self.client.validate('KEY')

        self.assertEqual(self.session.post.call_count, 2)
        self.assertTrue(self.breaker.is_open)
