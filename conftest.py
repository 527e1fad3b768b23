"""
Test configuration for access-core
"""

import os
import sys

import django
import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'test_settings')


def pytest_configure():
    django.setup()


@pytest.fixture(autouse=True)
def reset_license_authority_breaker():
    """The remote authority breaker is module state shared across tests."""
    from access_core.licensing.client import license_authority_breaker

    license_authority_breaker.reset()
    yield
    license_authority_breaker.reset()
