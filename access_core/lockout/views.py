"""
Login, attempt recording and lock administration endpoints
"""
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from access_core.accounts.context import RequestContext
from access_core.accounts.permissions import IsAdministrator
from access_core.accounts.serializers import UserSerializer
from access_core.core.exceptions import Forbidden, ValidationError
from access_core.twofactor.permissions import TwoFactorVerified

from .gate import credential_gate
from .models import AccountLock, LockState, LoginAttempt, normalize_email
from .serializers import (
    AccountLockSerializer, AttemptSerializer, LoginAttemptSerializer, LoginSerializer,
)
from .services import lockout_machine

User = get_user_model()

MAX_LISTED_ATTEMPTS = 100


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise ValidationError('Invalid request data', errors=serializer.errors)
    return serializer.validated_data


@api_view(['POST'])
@permission_classes([AllowAny])
def login(request):
    """
    Password login

    POST /api/auth/login/
    {
        "email": "user@example.com",
        "password": "..."
    }
    """
    data = _validated(LoginSerializer, request.data)
    result = credential_gate.login(
        data['email'], data['password'], RequestContext.from_request(request)
    )
    return Response({
        'user': UserSerializer(result.user).data,
        **result.tokens.as_dict(),
        'two_factor_required': result.two_factor_required,
    })


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdministrator, TwoFactorVerified])
def login_attempts(request):
    """
    GET  /api/auth/attempts/?email=  recent attempts
    POST /api/auth/attempts/         record an attempt observed by a trusted caller
    """
    if request.method == 'POST':
        data = _validated(AttemptSerializer, request.data)
        user = User.objects.filter(email=normalize_email(data['email'])).first()
        if user is not None and not request.user.can_administer(user):
            raise Forbidden('You cannot record attempts for this account.')
        outcome = credential_gate.record_login_attempt(
            data['email'], data['success'], RequestContext.from_request(request)
        )
        return Response(
            {
                'locked': outcome.locked,
                'state': outcome.state,
                'lock': AccountLockSerializer(outcome.lock).data if outcome.lock else None,
            },
            status=status.HTTP_201_CREATED,
        )

    attempts = LoginAttempt.objects.select_related('user')
    if not request.user.is_super_admin:
        attempts = attempts.filter(user__company_id=request.user.company_id)
    email = request.query_params.get('email')
    if email:
        attempts = attempts.filter(email=normalize_email(email))
    return Response(LoginAttemptSerializer(attempts[:MAX_LISTED_ATTEMPTS], many=True).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdministrator, TwoFactorVerified])
def account_locks(request):
    """
    GET /api/auth/locks/           open locks
    GET /api/auth/locks/?email=    lock state of one account
    """
    now = timezone.now()
    email = request.query_params.get('email')
    scope = request.query_params.get('scope', AccountLock.Scope.LOGIN)
    if scope not in AccountLock.Scope.values:
        raise ValidationError(f'Unknown lock scope: {scope}')

    if email:
        user = User.objects.filter(email=normalize_email(email)).first()
        if user is not None and not request.user.can_administer(user):
            raise Forbidden('You cannot view locks for this account.')
        lock = lockout_machine.get_open_lock(user, scope, now) if user else None
        return Response({
            'email': normalize_email(email),
            'state': lock.state_at(now) if lock else LockState.UNLOCKED,
            'lock': AccountLockSerializer(lock, context={'now': now}).data if lock else None,
        })

    locks = AccountLock.objects.open_at(now).filter(scope=scope).select_related('unlocked_by')
    if not request.user.is_super_admin:
        locks = locks.filter(user__company_id=request.user.company_id)
    return Response(AccountLockSerializer(locks, many=True, context={'now': now}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdministrator, TwoFactorVerified])
def unlock_account(request, user_id):
    """
    Release a user's lock

    POST /api/auth/locks/<user_id>/unlock/
    {
        "scope": "login"
    }
    """
    user = get_object_or_404(User, pk=user_id)
    if not request.user.can_administer(user):
        raise Forbidden('You cannot unlock this account.')

    scope = request.data.get('scope', AccountLock.Scope.LOGIN)
    if scope not in AccountLock.Scope.values:
        raise ValidationError(f'Unknown lock scope: {scope}')

    released = lockout_machine.unlock(user, unlocked_by=request.user, scope=scope)
    return Response({'unlocked': bool(released), 'user_id': str(user.pk), 'scope': scope})
