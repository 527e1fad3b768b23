from rest_framework.permissions import BasePermission

from access_core.accounts.context import RequestContext

from .services import two_factor_manager


class TwoFactorVerified(BasePermission):
    """
    Requires the request's session to have passed two-factor
    verification when the user has two-factor enabled.
    """
    message = 'Two-factor verification required for this session.'
    code = 'two_factor_required'

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        context = RequestContext.from_request(request)
        return not two_factor_manager.needs_verification(user, context.session_id)
