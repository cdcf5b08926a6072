"""Price list entry model."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class Price(BaseModel):
    """One row of the product price list."""

    model_config = ConfigDict(frozen=True)

    product: str = Field(..., description="Product name")
    price: Decimal = Field(..., description="List price in major currency units")
    currency: str = Field(default="NOK", description="ISO 4217 currency code")
