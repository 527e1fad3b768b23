from django.apps import AppConfig


class LockoutConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'access_core.lockout'
    label = 'lockout'
    verbose_name = 'Login Lockout'
