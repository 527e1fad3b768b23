"""
Signed offline license keys.

A key packs a 64-bit payload and a truncated HMAC-SHA256 tag into 15
bytes, rendered as 25 base-36 characters in five dash-separated groups::

    version:4 | nonce:12 | max_users:10 | valid_from:15 | valid_until:15 | features:8

Dates are whole days since 2000-01-01 (UTC). Feature bits are assigned
most-significant first in ``FEATURE_ORDER``.
"""

import hashlib
import hmac
import re
import secrets
import string
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Tuple

from django.core.exceptions import ImproperlyConfigured

from access_core.core.conf import access_settings

KEY_VERSION = 1
EPOCH = date(2000, 1, 1)

FEATURE_ORDER = ('partners', 'projects', 'sales', 'documents', 'calendar', 'my_items', 'audit')

MAC_LENGTH = 7
PAYLOAD_LENGTH = 8
KEY_LENGTH = 25
GROUP_LENGTH = 5

MAX_USERS_LIMIT = (1 << 10) - 1
MAX_DAYS = (1 << 15) - 1
LATEST_DATE = EPOCH + timedelta(days=MAX_DAYS)

BASE36_DIGITS = string.digits + string.ascii_uppercase


class LicenseKeyError(ValueError):
    """Key is malformed, forged or carries out-of-range values"""


@dataclass(frozen=True)
class LicenseKeyPayload:
    version: int
    max_users: int
    valid_from: date
    valid_until: date
    features: Tuple[str, ...]


def _signing_secret(secret=None):
    secret = secret or access_settings.LICENSE_SIGNING_SECRET
    if not secret:
        raise ImproperlyConfigured('LICENSE_SIGNING_SECRET must be set to sign license keys')
    return secret.encode() if isinstance(secret, str) else secret


def _sign(payload: bytes, secret) -> bytes:
    return hmac.new(_signing_secret(secret), payload, hashlib.sha256).digest()[:MAC_LENGTH]


def _to_days(value: date) -> int:
    days = (value - EPOCH).days
    if not 0 <= days <= MAX_DAYS:
        raise LicenseKeyError(
            f'Date {value.isoformat()} is outside the encodable range '
            f'{EPOCH.isoformat()} to {LATEST_DATE.isoformat()}'
        )
    return days


def _features_mask(features: Iterable[str]) -> int:
    mask = 0
    for feature in features:
        if feature not in FEATURE_ORDER:
            raise LicenseKeyError(f'Unknown feature: {feature}')
        mask |= 1 << (7 - FEATURE_ORDER.index(feature))
    return mask


def _features_from_mask(mask: int) -> Tuple[str, ...]:
    return tuple(
        feature for index, feature in enumerate(FEATURE_ORDER)
        if mask & (1 << (7 - index))
    )


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return ''.join(reversed(digits)).rjust(KEY_LENGTH, '0')


def normalize_license_key(key: str) -> str:
    return re.sub(r'[^0-9A-Za-z]', '', key or '').upper()


def format_license_key(key: str) -> str:
    """Dash-separated form of a key; input that is not 25 characters is returned normalized."""
    normalized = normalize_license_key(key)
    if len(normalized) != KEY_LENGTH:
        return normalized
    return '-'.join(
        normalized[i:i + GROUP_LENGTH] for i in range(0, KEY_LENGTH, GROUP_LENGTH)
    )


def generate_license_key(max_users, valid_from, valid_until, features, secret=None) -> str:
    if not 1 <= max_users <= MAX_USERS_LIMIT:
        raise LicenseKeyError(f'max_users must be between 1 and {MAX_USERS_LIMIT}')
    if valid_from > valid_until:
        raise LicenseKeyError('valid_from must not be after valid_until')

    nonce = secrets.randbits(12)
    payload = KEY_VERSION
    payload = (payload << 12) | nonce
    payload = (payload << 10) | max_users
    payload = (payload << 15) | _to_days(valid_from)
    payload = (payload << 15) | _to_days(valid_until)
    payload = (payload << 8) | _features_mask(features)

    payload_bytes = payload.to_bytes(PAYLOAD_LENGTH, 'big')
    combined = payload_bytes + _sign(payload_bytes, secret)
    return format_license_key(_to_base36(int.from_bytes(combined, 'big')))


def decode_license_key(key: str, secret=None) -> LicenseKeyPayload:
    """
    Verify the signature of ``key`` and unpack it.

    Raises LicenseKeyError for anything that is not a genuine key.
    """
    normalized = normalize_license_key(key)
    if len(normalized) != KEY_LENGTH:
        raise LicenseKeyError('License key must contain 25 letters or digits')

    value = int(normalized, 36)
    if value >= 1 << (8 * (PAYLOAD_LENGTH + MAC_LENGTH)):
        raise LicenseKeyError('License key is not valid')

    combined = value.to_bytes(PAYLOAD_LENGTH + MAC_LENGTH, 'big')
    payload_bytes, mac = combined[:PAYLOAD_LENGTH], combined[PAYLOAD_LENGTH:]
    if not hmac.compare_digest(mac, _sign(payload_bytes, secret)):
        raise LicenseKeyError('License key signature is not valid')

    payload = int.from_bytes(payload_bytes, 'big')
    features_mask = payload & 0xFF
    until_days = (payload >> 8) & MAX_DAYS
    from_days = (payload >> 23) & MAX_DAYS
    max_users = (payload >> 38) & MAX_USERS_LIMIT
    version = payload >> 60

    if version != KEY_VERSION:
        raise LicenseKeyError(f'Unsupported license key version: {version}')
    if max_users < 1:
        raise LicenseKeyError('License key allows no users')
    if from_days > until_days:
        raise LicenseKeyError('License key validity period is inverted')

    return LicenseKeyPayload(
        version=version,
        max_users=max_users,
        valid_from=EPOCH + timedelta(days=from_days),
        valid_until=EPOCH + timedelta(days=until_days),
        features=_features_from_mask(features_mask),
    )
