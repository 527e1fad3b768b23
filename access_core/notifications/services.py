"""
Best-effort administrator notifications.

Enqueue failures are logged and never propagate to the caller: a lock
that was written must not be undone because the broker is down.
"""

import logging

from .tasks import notify_account_lock

logger = logging.getLogger(__name__)


class AdminNotifier:

    def account_locked(self, lock, ip_address=None) -> bool:
        try:
            notify_account_lock.delay(str(lock.id), ip_address)
        except Exception:
            logger.exception("Could not enqueue account lock notification for %s", lock.email)
            return False
        return True


admin_notifier = AdminNotifier()
