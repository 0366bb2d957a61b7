"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    MetadataMixin: Flexible JSON metadata storage

Usage:
    from core.models import BaseModel
    from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

    class Payout(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        ...

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Payout and payment method identifiers are handed to external
    providers as metadata, so they must be non-guessable and safe to
    generate before the row exists.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    Flexible JSON metadata storage.

    Fields:
        metadata: JSONField for arbitrary key-value data

    Usage:
        payout.get_meta("booking_reference")
        payout.merge_meta({"tour_name": "Harbour Walk"})
        payout.save(update_fields=["metadata", "updated_at"])
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Get metadata value by key."""
        return (self.metadata or {}).get(key, default)

    def merge_meta(self, values: dict[str, Any]) -> None:
        """
        Merge values into metadata without saving.

        Existing keys are overwritten; keys not present in values are kept.
        The caller decides when and with which update_fields to save.
        """
        merged = dict(self.metadata or {})
        merged.update(values)
        self.metadata = merged
