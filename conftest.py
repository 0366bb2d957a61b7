"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.
"""

import os

import django

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_FILE_NAME", "test.log")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Tests call tasks synchronously and talk to no broker
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True

    # Sequential batches keep every test on the test database connection
    settings.PAYOUT_BATCH_MAX_WORKERS = 1

    settings.STRIPE_SECRET_KEY = "sk_test_payouts"
    settings.ESCROW_WALLET_ID = "escrow-wallet-test"
    settings.COINBASE_API_KEY = "coinbase-test-key"
