"""
Access-control runtime configuration.

Values resolve in order: ``SystemSetting`` row, ``settings.ACCESS_CONTROL``,
built-in default. Reads are not cached so administrators' changes apply to
the next request.

    from access_core.core.conf import access_settings
    access_settings.LOCKOUT_THRESHOLD
"""

import logging

from django.conf import settings
from django.db import DatabaseError

logger = logging.getLogger(__name__)

DEFAULTS = {
    'LOCKOUT_THRESHOLD': 5,
    'LOCKOUT_WINDOW_MINUTES': 5,
    'LOCKOUT_AUTO_UNLOCK_MINUTES': 30,
    'TWO_FACTOR_MAX_ATTEMPTS': 10,
    'TWO_FACTOR_WINDOW_MINUTES': 10,
    'TWO_FACTOR_LOCK_MINUTES': 10,
    'TWO_FACTOR_SESSION_TTL_MINUTES': 720,
    'RECOVERY_CODE_COUNT': 8,
    'INACTIVITY_LOGOUT_MINUTES': 5,
    'EMAIL_NOTIFY_ACCOUNT_LOCK': False,
    'LICENSE_AUTHORITY_URL': None,
    'LICENSE_AUTHORITY_TIMEOUT': 10,
    'LICENSE_SIGNING_SECRET': '',
    'TOTP_ISSUER': 'Access Core',
}

# Keys administrators may override at runtime through SystemSetting rows.
SYSTEM_SETTING_KEYS = {
    'LOCKOUT_THRESHOLD': 'account_lock_attempts',
    'LOCKOUT_WINDOW_MINUTES': 'account_lock_window_minutes',
    'LOCKOUT_AUTO_UNLOCK_MINUTES': 'account_lock_auto_unlock_minutes',
    'TWO_FACTOR_MAX_ATTEMPTS': 'two_factor_max_attempts',
    'TWO_FACTOR_WINDOW_MINUTES': 'two_factor_window_minutes',
    'TWO_FACTOR_LOCK_MINUTES': 'two_factor_lock_minutes',
    'TWO_FACTOR_SESSION_TTL_MINUTES': 'two_factor_session_duration_minutes',
    'INACTIVITY_LOGOUT_MINUTES': 'inactivity_logout_minutes',
    'EMAIL_NOTIFY_ACCOUNT_LOCK': 'email_notify_account_lock',
}

TRUE_VALUES = {'true', '1', 'yes', 'on'}


class AccessControlSettings:
    """Attribute access to the access-control tunables"""

    def __getattr__(self, name):
        if name not in DEFAULTS:
            raise AttributeError(f"Invalid access-control setting: '{name}'")
        return self.get(name)

    def get(self, name):
        value = getattr(settings, 'ACCESS_CONTROL', {}).get(name, DEFAULTS[name])

        key = SYSTEM_SETTING_KEYS.get(name)
        if key:
            override = self._read_override(key)
            if override is not None:
                value = self._cast(name, override, value)
        return value

    def _read_override(self, key):
        from .models import SystemSetting

        try:
            return SystemSetting.objects.filter(key=key).values_list('value', flat=True).first()
        except DatabaseError:
            logger.exception("Could not read system setting %s, using configured default", key)
            return None

    @staticmethod
    def _cast(name, raw, fallback):
        if isinstance(fallback, bool):
            return raw.strip().lower() in TRUE_VALUES
        if isinstance(fallback, int):
            try:
                return int(raw)
            except ValueError:
                logger.warning("Ignoring non-integer system setting for %s: %r", name, raw)
                return fallback
        return raw


access_settings = AccessControlSettings()
