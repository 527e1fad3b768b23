from django.contrib import admin
from django.utils import timezone

from .models import AccountLock, LoginAttempt


@admin.register(LoginAttempt)
class LoginAttemptAdmin(admin.ModelAdmin):
    list_display = ['email', 'attempt_type', 'success', 'ip_address', 'created_at']
    list_filter = ['attempt_type', 'success']
    search_fields = ['email', 'ip_address']
    readonly_fields = [f.name for f in LoginAttempt._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(AccountLock)
class AccountLockAdmin(admin.ModelAdmin):
    list_display = ['email', 'scope', 'locked_at', 'locked_until', 'unlocked_at', 'unlocked_by']
    list_filter = ['scope']
    search_fields = ['email', 'reason']
    readonly_fields = ['user', 'email', 'scope', 'locked_at', 'locked_until', 'reason', 'unlocked_at', 'unlocked_by']
    actions = ['release_locks']

    @admin.action(description='Unlock selected accounts')
    def release_locks(self, request, queryset):
        from .services import lockout_machine

        now = timezone.now()
        released = 0
        for lock in queryset.open_at(now).select_related('user'):
            if lock.user is not None:
                released += lockout_machine.unlock(lock.user, unlocked_by=request.user, scope=lock.scope, now=now)
        self.message_user(request, f"Unlocked {released} account(s).")
