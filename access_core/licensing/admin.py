from django.contrib import admin

from .models import License
from .services import license_status


@admin.register(License)
class LicenseAdmin(admin.ModelAdmin):
    list_display = ['company', 'license_type', 'max_users', 'valid_from', 'valid_until', 'is_active', 'status']
    list_filter = ['license_type', 'is_active']
    search_fields = ['company__name', 'key']

    @admin.display(description='Status')
    def status(self, obj):
        return license_status(obj).label
