from django.apps import AppConfig


class SafetyAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.safety_app'
    label = 'safety_app'

    def ready(self):
        from . import signals  # noqa: F401
