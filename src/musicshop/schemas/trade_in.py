"""Trade-in schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from musicshop.schemas.order import TradeInItemCreate


class TradeInCatalogCreate(BaseModel):
    """Schema for adding a catalog entry."""

    product_id: int = Field(..., gt=0)
    reference_price: Decimal = Field(..., ge=0)
    base_discount_amount: Decimal | None = Field(default=None, ge=0)
    activate: bool = False


class TradeInCatalogResponse(BaseModel):
    """Schema for catalog entry response."""

    id: int
    product_id: int
    reference_price: Decimal
    base_discount_amount: Decimal | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TradeInConditionResponse(BaseModel):
    code: str
    percent: Decimal
    label: str | None = None

    model_config = {"from_attributes": True}


class TradeInQuoteRequest(BaseModel):
    """Preview of trade-in discount for a cart."""

    items: list[TradeInItemCreate]
    items_total: Decimal | None = Field(default=None, ge=0)


class TradeInQuoteLine(BaseModel):
    product_id: int
    condition_code: str
    quantity: int
    base_amount: Decimal
    percent: Decimal
    unit_discount: Decimal
    line_discount: Decimal


class TradeInQuoteResponse(BaseModel):
    lines: list[TradeInQuoteLine]
    raw_discount: Decimal
    cap: Decimal | None = None
    discount: Decimal
