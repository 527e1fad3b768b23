"""
Tests for the license endpoints, the feature guard and the key command.
"""

import re
from datetime import date, timedelta
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.management import CommandError, call_command
from django.test import TestCase, override_settings
from django.urls import path, reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.test import APITestCase
from rest_framework.views import APIView

from access_core.accounts.models import Company
from access_core.licensing.keys import decode_license_key, generate_license_key
from access_core.licensing.models import License
from access_core.licensing.permissions import LicenseFeaturePermission, license_required

User = get_user_model()

KEY_PATTERN = re.compile(r'[0-9A-Z]{5}(?:-[0-9A-Z]{5}){4}')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@license_required('audit')
def audit_report(request):
    return Response({'ok': True})


class SalesView(APIView):
    permission_classes = [IsAuthenticated, LicenseFeaturePermission]
    license_feature = 'sales'

    def get(self, request):
        return Response({'ok': True})


urlpatterns = [
    path('audit/', audit_report),
    path('sales/', SalesView.as_view()),
]


def current_license(company, features=('audit',), **kwargs):
    today = timezone.now().date()
    fields = {
        'key': generate_license_key(5, today, today + timedelta(days=30), list(features)),
        'max_users': 5,
        'valid_from': timezone.now() - timedelta(days=1),
        'valid_until': timezone.now() + timedelta(days=30),
        'features': list(features),
    }
    fields.update(kwargs)
    return License.objects.create(company=company, **fields)


class LicenseEndpointTests(APITestCase):

    def setUp(self):
        self.company = Company.objects.create(name='Acme')
        self.user = User.objects.create_user(
            username='member', email='member@acme.com', password='testpass123', company=self.company,
        )
        self.admin = User.objects.create_user(
            username='admin', email='admin@acme.com', password='testpass123',
            role=User.Role.ADMIN, company=self.company,
        )

    def test_current_license(self):
        license = current_license(self.company)
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse('licensing:current'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'active')
        self.assertEqual(response.data['license']['key'], license.key)
        self.assertEqual(response.data['days_until_expiry'], 30)
        self.assertEqual(response.data['seats']['used'], 2)
        self.assertEqual(response.data['seats']['allowed'], 5)

    def test_current_license_without_license(self):
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse('licensing:current'))

        self.assertEqual(response.data['status'], 'no_license')
        self.assertIsNone(response.data['license'])

    def test_other_company_license_is_forbidden(self):
        other = Company.objects.create(name='Other')
        current_license(other)
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse('licensing:detail', args=[other.pk]))

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_validate_key_is_public(self):
        license = current_license(self.company)

        response = self.client.post(
            reverse('licensing:validate'), {'license_key': license.key}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['valid'])
        self.assertEqual(response.data['company_name'], 'Acme')

    def test_validate_unknown_key(self):
        response = self.client.post(
            reverse('licensing:validate'), {'license_key': 'AAAAA-BBBBB-CCCCC-DDDDD-EEEEE'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['valid'])

    def test_validate_inactive_key(self):
        license = current_license(self.company, is_active=False)

        response = self.client.post(
            reverse('licensing:validate'), {'license_key': license.key}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'valid': False, 'status': 'inactive', 'reason': 'License is inactive'})

    def test_activate(self):
        key = generate_license_key(20, date(2024, 1, 1), date(2089, 1, 1), ['sales'])
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            reverse('licensing:activate', args=[self.company.pk]),
            {'license_key': key, 'license_type': 'enterprise'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['license']['license_type'], 'enterprise')
        self.assertEqual(response.data['status'], 'active')

    def test_activate_forged_key(self):
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            reverse('licensing:activate', args=[self.company.pk]),
            {'license_key': 'AAAAA-BBBBB-CCCCC-DDDDD-EEEEE'},
            format='json',
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'invalid_license_key')


@override_settings(ROOT_URLCONF=__name__)
class LicenseGuardTests(APITestCase):

    def setUp(self):
        self.company = Company.objects.create(name='Acme')
        self.user = User.objects.create_user(
            username='member', email='member@acme.com', password='testpass123', company=self.company,
        )
        self.client.force_authenticate(self.user)

    def test_feature_included(self):
        current_license(self.company, features=('audit', 'sales'))

        self.assertEqual(self.client.get('/audit/').status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get('/sales/').status_code, status.HTTP_200_OK)

    def test_feature_not_included(self):
        current_license(self.company, features=('audit',))

        response = self.client.get('/sales/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'license_required')
        self.assertEqual(response.data['reason'], 'feature_not_included')

    def test_expired_license(self):
        current_license(
            self.company,
            valid_from=timezone.now() - timedelta(days=60),
            valid_until=timezone.now() - timedelta(days=1),
        )

        response = self.client.get('/audit/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['reason'], 'expired')

    def test_no_license(self):
        response = self.client.get('/audit/')

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['reason'], 'no_license')


class GenerateLicenseKeyCommandTests(TestCase):

    def test_generates_decodable_key(self):
        out = StringIO()

        call_command(
            'generate_license_key',
            '--max-users', '25',
            '--valid-from', '2024-01-01',
            '--valid-until', '2024-12-31',
            '--feature', 'audit',
            '--feature', 'sales',
            stdout=out,
            no_color=True,
        )

        key = KEY_PATTERN.search(out.getvalue()).group(0)
        payload = decode_license_key(key)
        self.assertEqual(payload.max_users, 25)
        self.assertEqual(payload.valid_until, date(2024, 12, 31))
        self.assertEqual(payload.features, ('sales', 'audit'))

    def test_rejects_invalid_terms(self):
        with self.assertRaises(CommandError):
            call_command('generate_license_key', '--max-users', '0', stdout=StringIO())
