"""
Access control and license enforcement core.

Loads the Celery app on Django start-up so that ``shared_task`` uses it.
"""

from .celery import app as celery_app

__all__ = ('celery_app',)
