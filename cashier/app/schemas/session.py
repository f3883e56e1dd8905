from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator

from cashier.app.schemas.cart import CartLineOut, CartTotals, OrderType, PaymentMethod
from cashier.app.schemas.pricing import AppliedDiscount, AutoPromotion, BogoProgress, DiscountOption


# ─── Request ──────────────────────────────────────────────────────────────────


class CheckoutRequest(BaseModel):
    gcash_reference: str | None = None

    @field_validator("gcash_reference")
    @classmethod
    def strip_reference(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return v.strip() or None


# ─── Response ─────────────────────────────────────────────────────────────────


class SessionStateOut(BaseModel):
    session_id: str
    created_at: datetime
    order_type: OrderType
    payment_method: PaymentMethod
    lines: list[CartLineOut]
    totals: CartTotals
    applied_discounts: list[AppliedDiscount]
    auto_promotion: AutoPromotion | None
    discount_count: int
    promotion_count: int
    catalog_errors: list[str] = []


class AddItemOut(BaseModel):
    index: int
    bogo: BogoProgress | None = None
    state: SessionStateOut


class DiscountOptionsOut(BaseModel):
    options: list[DiscountOption]


class CheckoutOut(BaseModel):
    total: Decimal
    response: dict
    state: SessionStateOut
