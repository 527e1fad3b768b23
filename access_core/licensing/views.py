"""
License endpoints
"""
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from access_core.core.exceptions import Forbidden, NotFound, ValidationError
from access_core.twofactor.permissions import TwoFactorVerified

from .serializers import ActivateSerializer, LicenseSerializer, ValidateKeySerializer
from .services import days_until_expiry, license_engine, license_status


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError('Invalid request data', errors=serializer.errors)
    return serializer.validated_data


def _license_summary(company_id, license):
    now = timezone.now()
    return {
        'license': LicenseSerializer(license).data if license else None,
        'status': license_status(license, now),
        'days_until_expiry': days_until_expiry(license, now),
        'seats': license_engine.seat_usage(company_id, license).as_dict(),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def current_license(request):
    """
    License of the caller's company

    GET /api/licenses/current/
    """
    company_id = request.user.company_id
    if company_id is None:
        raise NotFound('You do not belong to a company')
    return Response(_license_summary(company_id, license_engine.resolve_or_none(company_id)))


@api_view(['GET'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def license_detail(request, company_id):
    """
    GET /api/licenses/<company_id>/
    """
    if not (request.user.is_super_admin or request.user.company_id == company_id):
        raise Forbidden("You cannot view another company's license")
    license = license_engine.resolve(company_id)
    return Response(_license_summary(company_id, license))


@api_view(['POST'])
@permission_classes([AllowAny])
def validate_key(request):
    """
    Authoritative license key validation

    POST /api/licenses/validate/
    {
        "license_key": "XXXXX-XXXXX-XXXXX-XXXXX-XXXXX"
    }
    """
    data = _validated(ValidateKeySerializer, request.data)
    result = license_engine.validate_key(data['license_key'])
    status_code = 404 if result.reason == 'Invalid license key' else 200
    return Response(result.as_dict(), status=status_code)


@api_view(['POST'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def activate(request, company_id):
    """
    POST /api/licenses/<company_id>/activate/
    {
        "license_key": "XXXXX-XXXXX-XXXXX-XXXXX-XXXXX",
        "license_type": "standard"
    }
    """
    data = _validated(ActivateSerializer, request.data)
    license = license_engine.activate(
        company_id, data['license_key'], request.user, license_type=data['license_type']
    )
    return Response(_license_summary(company_id, license))
