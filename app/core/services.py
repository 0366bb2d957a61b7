"""
Base service layer patterns for business logic encapsulation.

Services encapsulate business logic separate from models and from any
transport layer. Each payout component (registry, ledger, orchestrator)
extends BaseService to get a per-class logger and an explicit
transaction boundary helper.

Usage:
    from core.services import BaseService

    class PaymentMethodRegistry(BaseService):
        def set_primary(self, method_id, operator_id):
            with self.atomic():
                ...
            self.get_logger().info("Primary payment method changed")
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator


class BaseService:
    """
    Base class for service layer classes.

    Provides:
    - Logging setup per service
    - Database transaction management

    Note:
        - Collaborators are passed in through __init__
        - Raise domain exceptions (core.exceptions) for failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code. Row locks taken
        with select_for_update() inside the block are held until it exits.
        """
        with transaction.atomic():
            yield
