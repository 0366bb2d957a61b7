"""
Payouts app configuration.

This app provides operator payout infrastructure including:
- Operator payment method registry
- Payout ledger with a django-fsm state machine
- Provider adapters (Stripe ACH, Coinbase wallet, wire stub)
- Payout orchestration with bounded retries and batch execution
"""

from django.apps import AppConfig


class PayoutsConfig(AppConfig):
    """Configuration for the payouts application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payouts"
    verbose_name = "Payouts"
