"""
WebSocket consumer that delivers forced-logout notices.
"""

import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .signals import user_group_name

logger = logging.getLogger(__name__)

UNAUTHENTICATED_CLOSE_CODE = 4001
TERMINATED_CLOSE_CODE = 4003


class SessionConsumer(AsyncJsonWebsocketConsumer):
    """
    One subscription per connected client, joined to its user's group.
    """

    async def connect(self):
        self.user = self.scope.get('user')
        self.group_name = None

        if not self.user or not self.user.is_authenticated:
            await self.close(code=UNAUTHENTICATED_CLOSE_CODE)
            return

        self.group_name = user_group_name(self.user.pk)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()
        await self.send_json({
            'type': 'connection.established',
            'user_id': str(self.user.pk),
        })

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        if content.get('type') == 'ping':
            await self.send_json({'type': 'pong'})
        else:
            await self.send_json({'type': 'error', 'message': 'Unsupported message type'})

    async def session_terminated(self, event):
        logger.info("Delivering termination notice to user %s", event.get('user_id'))
        await self.send_json({
            'type': 'session.terminated',
            'message': 'Your session was ended by an administrator. Please sign in again.',
            'issued_at': event.get('issued_at'),
        })
        await self.close(code=TERMINATED_CLOSE_CODE)
