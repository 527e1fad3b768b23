"""
Identity and session-token store backed by SimpleJWT.

Access tokens are stateless, so revocation is enforced by comparing the
token's ``iat`` claim with ``User.sessions_invalidated_at``; refresh
tokens are additionally blacklisted.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import AccessToken, RefreshToken

from access_core.core.exceptions import Unauthorized

logger = logging.getLogger(__name__)

User = get_user_model()


@dataclass(frozen=True)
class SessionTokens:
    access: str
    refresh: str
    session_id: str

    def as_dict(self):
        return {
            'access': self.access,
            'refresh': self.refresh,
            'session_id': self.session_id,
        }


class IdentityStore:
    """Issues, validates and revokes session tokens"""

    def issue_session_tokens(self, user) -> SessionTokens:
        session_id = uuid.uuid4().hex

        refresh = RefreshToken.for_user(user)
        refresh['session_id'] = session_id
        refresh['email'] = user.email
        refresh['role'] = user.role

        return SessionTokens(
            access=str(refresh.access_token),
            refresh=str(refresh),
            session_id=session_id,
        )

    def validate_token(self, raw_token: str):
        """
        Return the user an access token belongs to.

        Raises Unauthorized for malformed, expired or revoked tokens.
        """
        try:
            token = AccessToken(raw_token)
        except TokenError as exc:
            raise Unauthorized(str(exc), code='invalid_token') from exc

        user = User.objects.filter(pk=token.get('user_id'), is_active=True).first()
        if user is None:
            raise Unauthorized('User not found', code='invalid_token')
        if self.is_revoked(token, user):
            raise Unauthorized('Session has been terminated', code='session_terminated')
        return user

    def is_revoked(self, token, user) -> bool:
        invalidated_at = user.sessions_invalidated_at
        if invalidated_at is None:
            return False

        issued_at = token.get('iat')
        if issued_at is None:
            return True
        return issued_at <= invalidated_at.timestamp()

    def invalidate_all_tokens(self, user, now: datetime = None) -> int:
        """
        Revoke every token issued to ``user`` so far.

        Returns the number of refresh tokens newly blacklisted.
        """
        now = now or timezone.now()
        user.sessions_invalidated_at = now
        user.save(update_fields=['sessions_invalidated_at', 'updated_at'])

        outstanding = OutstandingToken.objects.filter(user=user, blacklistedtoken__isnull=True)
        blacklisted = BlacklistedToken.objects.bulk_create(
            [BlacklistedToken(token=token) for token in outstanding]
        )

        logger.info(
            "Invalidated sessions for %s (%d refresh tokens blacklisted)",
            user.email, len(blacklisted)
        )
        return len(blacklisted)

    def get_current_user(self, context):
        if context is None or not context.is_authenticated:
            raise Unauthorized('Authentication required')
        return context.user


identity_store = IdentityStore()
