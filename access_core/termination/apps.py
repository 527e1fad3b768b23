from django.apps import AppConfig


class TerminationConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'access_core.termination'
    label = 'termination'
    verbose_name = 'Session Termination'
