from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
import logging

from access_core.core.conf import access_settings

from .models import EmailNotification, Notification

logger = logging.getLogger(__name__)


def describe_lock_duration(lock):
    if lock.locked_until is None:
        return 'until manually unlocked'
    minutes = round((lock.locked_until - lock.locked_at).total_seconds() / 60)
    return f'for {minutes} minutes'


@shared_task
def notify_account_lock(lock_id, ip_address=None):
    """
    Tell every active super admin that an account was locked.

    Creates an in-app notification per recipient and, when
    ``EMAIL_NOTIFY_ACCOUNT_LOCK`` is enabled, an email.
    """
    from access_core.lockout.models import AccountLock

    try:
        lock = AccountLock.objects.get(id=lock_id)
    except AccountLock.DoesNotExist:
        logger.error(f"Account lock {lock_id} not found")
        return 0

    User = get_user_model()
    recipients = User.objects.filter(role=User.Role.SUPER_ADMIN, is_active=True)

    title = 'Account locked'
    message = (
        f"The account {lock.email} was locked {describe_lock_duration(lock)} "
        f"after repeated failed sign-in attempts"
    )
    if ip_address:
        message += f" from {ip_address}"
    message += '.'

    send_email = access_settings.EMAIL_NOTIFY_ACCOUNT_LOCK
    notified = 0
    for recipient in recipients:
        notification = Notification.objects.create(
            recipient=recipient,
            type=Notification.Type.ACCOUNT_LOCKED,
            title=title,
            message=message,
            metadata={
                'lock_id': str(lock.id),
                'email': lock.email,
                'locked_until': lock.locked_until.isoformat() if lock.locked_until else None,
                'ip_address': ip_address,
            },
        )
        notified += 1

        if send_email:
            email = EmailNotification.objects.create(
                recipient_email=recipient.email,
                subject=f"Security alert: {title.lower()}",
                body=message,
                notification=notification,
            )
            send_email_notification(email)

    logger.info(f"Account lock for {lock.email} notified to {notified} administrators")
    return notified


def send_email_notification(email_notification):
    try:
        send_mail(
            email_notification.subject,
            email_notification.body,
            getattr(settings, 'DEFAULT_FROM_EMAIL', None),
            [email_notification.recipient_email],
        )
    except Exception as e:
        email_notification.mark_failed(e)
        logger.error(f"Failed to send email to {email_notification.recipient_email}: {str(e)}")
        return False

    email_notification.mark_sent()
    return True
