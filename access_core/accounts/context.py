"""
Caller identity threaded explicitly through service calls.
"""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class RequestContext:
    user: Optional[Any] = None
    session_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: str = ''

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.user.is_authenticated

    @classmethod
    def from_request(cls, request) -> 'RequestContext':
        user = getattr(request, 'user', None)
        if user is not None and not user.is_authenticated:
            user = None

        token = getattr(request, 'auth', None)
        session_id = token.get('session_id') if token is not None else None

        return cls(
            user=user,
            session_id=session_id,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )


def get_client_ip(request):
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')
