from django.apps import AppConfig


class TwoFactorConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'access_core.twofactor'
    label = 'twofactor'
    verbose_name = 'Two-Factor Authentication'
