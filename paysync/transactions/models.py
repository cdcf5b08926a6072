"""Unified transaction model shared by every payment provider."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from paysync.core.constants import PaymentSource
from paysync.normalization.status import TransactionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProviderPayload(BaseModel):
    """Opaque provider specific data, serialized and tagged by source."""

    source: PaymentSource = Field(..., description="Provider that produced the payload")
    data: str = Field(default="{}", description="JSON encoded provider object")

    @classmethod
    def from_object(cls, source: PaymentSource, obj: Any) -> "ProviderPayload":
        """Serialize a decoded provider response."""
        return cls(source=source, data=json.dumps(obj, default=str, sort_keys=True))

    def load(self) -> Any:
        """Decode the payload back into Python objects."""
        return json.loads(self.data)


class Transaction(BaseModel):
    """
    A payment normalized from any provider.

    Amounts are always in major currency units. Adapters convert minor
    units (cents, øre) before constructing an instance.
    """

    id: str = Field(..., description="Internal id, prefixed by provider")
    external_id: str = Field(..., description="Id at the provider")
    source: PaymentSource = Field(..., description="Payment source")

    amount: Decimal = Field(..., description="Amount in major currency units")
    currency: str = Field(default="", description="ISO 4217 currency code")
    status: TransactionStatus = Field(
        default=TransactionStatus.UNKNOWN, description="Unified status"
    )
    created_at: datetime = Field(..., description="Provider event time (UTC)")

    customer_id: str = Field(default="", description="Customer reference at the provider")
    description: str = Field(default="", description="Free text description")
    payment_method: str = Field(default="", description="Payment method tag")
    transaction_type: str = Field(default="", description="e.g. card, mobile_payment")
    receipt_url: str | None = Field(default=None, description="Receipt link if any")
    metadata: dict[str, str] = Field(default_factory=dict, description="Provider metadata")
    provider_payload: ProviderPayload | None = Field(
        default=None, description="Raw provider object"
    )

    cached_at: datetime = Field(default_factory=_utcnow, description="When the record was built")

    # Enrichment from the price list
    product: str | None = Field(default=None, description="Matched product name")
    product_price: Decimal | None = Field(default=None, description="List price of the product")

    @property
    def is_enriched(self) -> bool:
        return self.product is not None


def minor_to_major(amount: int | str | None) -> Decimal:
    """Convert an amount in minor units (cents, øre) to major units."""
    if amount is None:
        return Decimal("0")
    return Decimal(int(amount)) / Decimal(100)
