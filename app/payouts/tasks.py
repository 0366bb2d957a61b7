"""
Celery tasks for payout execution.

These tasks only let callers move payout work off the request path.
Nothing here runs on a schedule: a retry happens when a caller enqueues
one, never on a timer.

The booking and operator collaborators are resolved from settings
(PAYOUT_BOOKING_DIRECTORY, PAYOUT_OPERATOR_DIRECTORY) as dotted paths to
zero-argument callables or classes.

Usage:
    from payouts.tasks import process_payout_batch, retry_payout

    process_payout_batch.delay([
        {"operator_id": str(op_id), "booking_id": str(booking_id)},
    ])
    retry_payout.delay(str(payout_id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from core.exceptions import BaseApplicationError

from payouts.services import PayoutOrchestrator, PayoutRequest

logger = logging.getLogger(__name__)


def build_orchestrator() -> PayoutOrchestrator:
    """
    Orchestrator wired with the collaborators named in settings.

    Raises:
        ImproperlyConfigured: A directory setting is empty
    """
    for name in ("PAYOUT_BOOKING_DIRECTORY", "PAYOUT_OPERATOR_DIRECTORY"):
        if not getattr(settings, name, ""):
            raise ImproperlyConfigured(f"{name} must be set to run payout tasks")

    bookings = import_string(settings.PAYOUT_BOOKING_DIRECTORY)()
    operators = import_string(settings.PAYOUT_OPERATOR_DIRECTORY)()
    return PayoutOrchestrator(bookings=bookings, operators=operators)


def _to_request(item: dict) -> PayoutRequest:
    method_id = item.get("payment_method_id")
    return PayoutRequest(
        operator_id=UUID(str(item["operator_id"])),
        booking_id=UUID(str(item["booking_id"])),
        payment_method_id=UUID(str(method_id)) if method_id else None,
    )


@shared_task(bind=True, acks_late=True)
def process_payout_batch(self, requests: list[dict]) -> dict:
    """
    Process a batch of payout requests.

    Args:
        requests: Dicts with operator_id, booking_id and optional
            payment_method_id (string UUIDs)

    Returns:
        Dict with:
        - total / succeeded / failed: counts
        - results: per-request outcome with its booking_id, in input order
    """
    logger.info(
        "Processing payout batch",
        extra={"batch_size": len(requests), "task_id": self.request.id},
    )

    parsed: list[PayoutRequest | None] = []
    for item in requests:
        try:
            parsed.append(_to_request(item))
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed payout request in batch", extra={"item": item})
            parsed.append(None)

    valid = [request for request in parsed if request is not None]
    outcomes = iter(build_orchestrator().batch_process_payouts(valid)) if valid else iter(())

    results = []
    for item, request in zip(requests, parsed):
        if request is None:
            booking_id = item.get("booking_id") if isinstance(item, dict) else None
            results.append(
                {
                    "success": False,
                    "booking_id": booking_id,
                    "error": "Malformed payout request",
                    "error_code": "VALIDATION_ERROR",
                }
            )
        else:
            results.append(next(outcomes).to_dict())

    succeeded = sum(1 for result in results if result["success"])
    return {
        "total": len(results),
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "results": results,
    }


@shared_task(bind=True, acks_late=True)
def retry_payout(self, payout_id: str) -> dict:
    """
    Retry one failed payout.

    Returns:
        Dict with:
        - status: "retried" or "failed"
        - payout_id: The payout ID processed
        - payout_status: Status after the attempt (when retried)
        - error / error_code: When the retry was refused or failed
    """
    logger.info(
        "Retrying payout",
        extra={"payout_id": payout_id, "task_id": self.request.id},
    )

    try:
        execution = build_orchestrator().retry_payout(UUID(str(payout_id)))
    except ValueError:
        logger.error("Invalid payout_id format", extra={"payout_id": payout_id})
        return {
            "status": "failed",
            "payout_id": payout_id,
            "error": "Invalid UUID format",
            "error_code": "VALIDATION_ERROR",
        }
    except BaseApplicationError as e:
        logger.warning(
            "Payout retry did not succeed",
            extra={"payout_id": payout_id, "error_code": e.error_code},
        )
        return {
            "status": "failed",
            "payout_id": payout_id,
            "error": e.message,
            "error_code": e.error_code,
        }

    return {
        "status": "retried",
        "payout_id": payout_id,
        "payout_status": execution.payout.status,
        "provider_transaction_id": execution.provider_result.provider_transaction_id,
    }
