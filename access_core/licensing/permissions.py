from functools import wraps

from rest_framework.permissions import BasePermission

from .services import license_engine


class LicenseFeaturePermission(BasePermission):
    """
    Requires the caller's company license to be active and, when the view
    sets ``license_feature``, to include that feature.
    """

    def has_permission(self, request, view):
        user = request.user
        if not (user and user.is_authenticated):
            return False
        license_engine.require(user.company_id, getattr(view, 'license_feature', None))
        return True


def license_required(feature=None):
    """
    Decorator for function views that applies the license guard before
    the view runs.
    """
    def decorator(view_func):
        @wraps(view_func)
        def wrapped(request, *args, **kwargs):
            license_engine.require(getattr(request.user, 'company_id', None), feature)
            return view_func(request, *args, **kwargs)
        return wrapped
    return decorator
