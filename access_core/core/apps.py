from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'access_core.core'
    label = 'core'
    verbose_name = 'Access Core'
