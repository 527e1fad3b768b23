"""
Error taxonomy for access-control operations.

Every error carries a stable machine-readable ``code`` and renders as
``{"error": code, "detail": message, ...extra}`` through
``exception_handler``.
"""

import logging
from typing import Any, Optional

from rest_framework import status
from rest_framework.exceptions import APIException

logger = logging.getLogger(__name__)


class AccessControlError(APIException):
    """Base class for access-control errors"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Request could not be processed.'
    default_code = 'error'

    def __init__(self, detail: Optional[str] = None, code: Optional[str] = None, **extra: Any):
        super().__init__(detail, code)
        self.code = code or self.default_code
        self.extra = extra


class ValidationError(AccessControlError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'validation_error'


class Unauthorized(AccessControlError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Authentication failed.'
    default_code = 'unauthorized'


class Forbidden(AccessControlError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class NotFound(AccessControlError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class Conflict(AccessControlError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Conflicting state.'
    default_code = 'conflict'


class RateLimited(AccessControlError):
    """
    Raised while an account is locked or throttled.

    ``retry_after`` is the number of seconds until the lock lapses; it is
    None for an indefinite lock, in which case ``manual_unlock_required``
    is set.
    """
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = 'Too many attempts.'
    default_code = 'rate_limited'

    def __init__(self, detail: Optional[str] = None, retry_after: Optional[int] = None, **extra: Any):
        extra.setdefault('manual_unlock_required', retry_after is None)
        super().__init__(detail, retry_after=retry_after, **extra)
        self.retry_after = retry_after


class UpstreamFailure(AccessControlError):
    """A backing store or remote authority could not be reached"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'A required service is temporarily unavailable.'
    default_code = 'upstream_failure'


def exception_handler(exc, context):
    """
    DRF exception handler that renders AccessControlError subclasses with
    their code and extra fields.
    """
    # rest_framework.views reads the authentication classes from settings on import.
    from rest_framework.views import exception_handler as drf_exception_handler

    response = drf_exception_handler(exc, context)
    if response is None or not isinstance(exc, AccessControlError):
        return response

    response.data = {'error': exc.code, 'detail': str(exc.detail), **exc.extra}
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        response['Retry-After'] = str(exc.retry_after)
    if response.status_code >= 500:
        logger.error("%s: %s", exc.code, exc.detail)
    return response
