"""
Session administration endpoints
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from access_core.accounts.context import RequestContext
from access_core.twofactor.permissions import TwoFactorVerified

from .services import session_termination


@api_view(['POST'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def terminate_session(request, user_id):
    """
    Force a user to sign out everywhere

    POST /api/sessions/<user_id>/terminate/
    """
    context = RequestContext.from_request(request)
    signal = session_termination.terminate(user_id, request.user, context=context)
    return Response({
        'success': True,
        'user_id': signal.user_id,
        'terminated_at': signal.issued_at.isoformat(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, TwoFactorVerified])
def active_sessions(request):
    """
    GET /api/sessions/active/
    """
    return Response({'sessions': session_termination.active_sessions(request.user)})
