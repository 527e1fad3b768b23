from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Company, SecurityEvent, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'username', 'role', 'company', 'is_active', 'last_login_at']
    list_filter = ['role', 'is_active', 'company']
    search_fields = ['email', 'username', 'first_name', 'last_name']
    ordering = ['email']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Access control', {'fields': ('role', 'company', 'sessions_invalidated_at')}),
    )
    readonly_fields = ['sessions_invalidated_at']


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ['name', 'created_at', 'deleted_at']
    search_fields = ['name']


@admin.register(SecurityEvent)
class SecurityEventAdmin(admin.ModelAdmin):
    list_display = ['event_type', 'user', 'actor', 'ip_address', 'created_at']
    list_filter = ['event_type']
    search_fields = ['user__email', 'description']
    readonly_fields = [f.name for f in SecurityEvent._meta.fields]

    def has_add_permission(self, request):
        return False
