"""
JWT authentication that honours server-side session termination.
"""
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed

from .identity import identity_store


class SessionJWTAuthentication(JWTAuthentication):
    """
    Bearer-token authentication that rejects tokens issued before the
    user's sessions were invalidated.
    """

    def get_user(self, validated_token):
        user = super().get_user(validated_token)
        if identity_store.is_revoked(validated_token, user):
            raise AuthenticationFailed('Session has been terminated', code='session_terminated')
        return user
