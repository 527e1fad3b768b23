"""
JWT authentication for WebSocket connections.
"""

import logging
from typing import Optional
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth.models import AnonymousUser

from access_core.accounts.identity import identity_store
from access_core.core.exceptions import Unauthorized

logger = logging.getLogger(__name__)


class JWTAuthMiddleware(BaseMiddleware):
    """
    Sets ``scope['user']`` from a ``?token=`` access token. Revoked or
    invalid tokens yield an anonymous user.
    """

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = self._extract_token(scope.get('query_string', b'').decode())
        scope['user'] = await self.authenticate_jwt(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)

    def _extract_token(self, query_string: str) -> Optional[str]:
        values = parse_qs(query_string).get('token')
        return values[0] if values else None

    @database_sync_to_async
    def authenticate_jwt(self, token: str):
        try:
            return identity_store.validate_token(token)
        except Unauthorized as exc:
            logger.info("Rejected WebSocket token: %s", exc.detail)
            return AnonymousUser()
