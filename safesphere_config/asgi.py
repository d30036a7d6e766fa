import os
from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack

# Set default settings module
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'safesphere_config.settings')

# Initialize Django application
django_application = get_asgi_application()

# Import routing AFTER Django is set up
from apps.safety_app import routing  # noqa: E402

application = ProtocolTypeRouter({
    "http": django_application,
    "websocket": AuthMiddlewareStack(
        URLRouter(
            routing.websocket_urlpatterns
        )
    ),
})
