"""
HTTP client for a remote license authority.

The authority answers ``POST {LICENSE_AUTHORITY_URL}`` with the same body
the local ``licenses/validate/`` endpoint returns.
"""

import logging

import requests

from access_core.core.conf import access_settings
from access_core.core.exceptions import UpstreamFailure
from access_core.integrations.circuit_breaker import CircuitBreaker, CircuitOpenError

logger = logging.getLogger(__name__)

license_authority_breaker = CircuitBreaker(
    failure_threshold=5,
    recovery_timeout=60,
    expected_exception=requests.RequestException,
    name='license-authority',
)


class LicenseAuthorityClient:

    def __init__(self, base_url=None, timeout=None, breaker=license_authority_breaker, session=None):
        self.base_url = base_url
        self.timeout = timeout
        self.breaker = breaker
        self.session = session or requests.Session()

    def validate(self, key: str) -> dict:
        url = self.base_url or access_settings.LICENSE_AUTHORITY_URL
        timeout = self.timeout or access_settings.LICENSE_AUTHORITY_TIMEOUT
        try:
            with self.breaker:
                response = self.session.post(url, json={'license_key': key}, timeout=timeout)
                if response.status_code >= 500:
                    response.raise_for_status()
        except CircuitOpenError as exc:
            logger.warning("License authority circuit open, refusing validation")
            raise UpstreamFailure('License authority is unavailable') from exc
        except requests.RequestException as exc:
            logger.error("License authority request failed: %s", exc)
            raise UpstreamFailure('License authority is unavailable') from exc

        try:
            return response.json()
        except ValueError as exc:
            logger.error("License authority returned a non-JSON response (%s)", response.status_code)
            raise UpstreamFailure('License authority returned an invalid response') from exc
