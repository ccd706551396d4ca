"""Pydantic models for deposit session request bodies."""

from decimal import Decimal

from pydantic import BaseModel, Field


class CartLinePayload(BaseModel):
    """Priced cart line."""

    variant_id: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    price: Decimal = Field(ge=0)


class CartDepositRequest(BaseModel):
    """Cart snapshot to open a deposit session from."""

    customer_id: str | None = None
    lines: list[CartLinePayload]
