from django.contrib import admin

from .models import SessionVerification, TwoFactorCredential


@admin.register(TwoFactorCredential)
class TwoFactorCredentialAdmin(admin.ModelAdmin):
    list_display = ['user', 'enabled', 'enabled_at', 'updated_at']
    list_filter = ['enabled']
    search_fields = ['user__email']
    exclude = ['secret']
    readonly_fields = ['user', 'enabled', 'enabled_at']


@admin.register(SessionVerification)
class SessionVerificationAdmin(admin.ModelAdmin):
    list_display = ['user', 'session_id', 'verified_at', 'expires_at']
    search_fields = ['user__email', 'session_id']
