"""
Celery configuration for the payout service.

Celery lets callers enqueue payout work (batch execution, a single retry)
without blocking the request that triggered it. There is no periodic
schedule: every task is enqueued explicitly by a caller.

Tasks are auto-discovered from all installed Django apps.

Usage:
    from payouts.tasks import retry_payout

    retry_payout.delay(str(payout.id))

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
