"""
Main ASGI Routing Configuration

Combines HTTP and WebSocket routing.
"""
import os

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'access_core.settings')

# Initialise Django before importing consumers that touch models.
django_asgi_app = get_asgi_application()

from access_core.termination.middleware import JWTAuthMiddleware  # noqa: E402
from access_core.termination.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter({
    'http': django_asgi_app,
    'websocket': AllowedHostsOriginValidator(
        JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
    ),
})
