from django.contrib import admin

from .models import EmailNotification, Notification


class EmailNotificationInline(admin.StackedInline):
    model = EmailNotification
    extra = 0
    readonly_fields = ['recipient_email', 'subject', 'status', 'sent_at', 'error_message']


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'recipient', 'type', 'is_read', 'created_at']
    list_filter = ['type', 'is_read']
    search_fields = ['title', 'recipient__email']
    inlines = [EmailNotificationInline]


@admin.register(EmailNotification)
class EmailNotificationAdmin(admin.ModelAdmin):
    list_display = ['recipient_email', 'subject', 'status', 'sent_at']
    list_filter = ['status']
