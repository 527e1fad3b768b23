"""
Two-factor authentication endpoints
"""
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access_core.accounts.context import RequestContext
from access_core.core.exceptions import ValidationError

from .permissions import TwoFactorVerified
from .serializers import DisableSerializer, EnableSerializer, RecoveryCodesSerializer, VerifySerializer
from .services import TWO_FACTOR_LOCKED, two_factor_manager

User = get_user_model()


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError('Invalid request data', errors=serializer.errors)
    return serializer.validated_data


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def two_factor_status(request):
    """
    GET /api/auth/2fa/status/
    """
    context = RequestContext.from_request(request)
    return Response({
        **two_factor_manager.status(request.user),
        'session_verified': not two_factor_manager.needs_verification(request.user, context.session_id),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def generate_secret(request):
    """
    Generate a TOTP secret to be confirmed through enable

    POST /api/auth/2fa/secret/
    """
    provisioning = two_factor_manager.generate_secret(request.user)
    return Response({
        'secret': provisioning.secret,
        'provisioning_uri': provisioning.provisioning_uri,
        'qr_code': provisioning.qr_code,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def enable(request):
    """
    POST /api/auth/2fa/enable/
    {
        "secret": "BASE32SECRET",
        "code": "123456"
    }
    """
    data = _validated(EnableSerializer, request.data)
    credential = two_factor_manager.enable(request.user, data['secret'], code=data.get('code'))

    # The session that enabled two-factor counts as verified.
    context = RequestContext.from_request(request)
    if context.session_id:
        two_factor_manager.mark_session_verified(request.user, context.session_id)

    return Response({'enabled': credential.enabled, 'enabled_at': credential.enabled_at})


@api_view(['POST'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def disable(request):
    """
    POST /api/auth/2fa/disable/
    {
        "user_id": "<optional, administrators only>"
    }
    """
    data = _validated(DisableSerializer, request.data)
    target = request.user
    if data.get('user_id'):
        target = get_object_or_404(User, pk=data['user_id'])

    two_factor_manager.disable(target, by_user=request.user)
    return Response({'enabled': False, 'user_id': str(target.pk)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def verify(request):
    """
    Verify a TOTP or recovery code for the current session

    POST /api/auth/2fa/verify/
    {
        "code": "123456",
        "is_recovery_code": false
    }
    """
    data = _validated(VerifySerializer, request.data)
    context = RequestContext.from_request(request)
    result = two_factor_manager.verify(
        request.user.email,
        data['code'],
        is_recovery_code=data['is_recovery_code'],
        session_id=context.session_id,
        context=context,
    )
    if result.verified:
        return Response({'valid': True})

    response_status = (
        status.HTTP_429_TOO_MANY_REQUESTS if result.error == TWO_FACTOR_LOCKED
        else status.HTTP_400_BAD_REQUEST
    )
    return Response({'valid': False, 'error': result.error}, status=response_status)


@api_view(['POST'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def recovery_codes(request):
    """
    Replace recovery codes; the plaintext is only returned once

    POST /api/auth/2fa/recovery-codes/
    """
    data = _validated(RecoveryCodesSerializer, request.data)
    codes = two_factor_manager.generate_recovery_codes(request.user, data.get('count'))
    return Response({'codes': codes}, status=status.HTTP_201_CREATED)
