from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, field_validator, model_validator


# ─── Completed order (as returned by the Sales service) ─────────────────────


class OrderAddon(BaseModel):
    name: str = ""
    price: Decimal = Decimal("0")
    quantity: int = 1


class RecordedDiscount(BaseModel):
    discount_name: str = ""
    quantity_discounted: int = 0
    discount_amount: Decimal = Decimal("0")


class RecordedPromotion(BaseModel):
    promotion_name: str = ""
    quantity_promoted: int = 0
    promotion_amount: Decimal = Decimal("0")


class OrderItem(BaseModel):
    sale_item_id: int | str
    name: str
    quantity: int
    unit_price: Decimal
    addons: list[OrderAddon] = []
    item_discounts: list[RecordedDiscount] = []
    item_promotions: list[RecordedPromotion] = []
    refunded_quantity: int = 0

    @model_validator(mode="after")
    def refunded_within_quantity(self) -> "OrderItem":
        if self.refunded_quantity < 0 or self.refunded_quantity > self.quantity:
            raise ValueError("refunded_quantity must be between 0 and quantity")
        return self

    @property
    def refundable_quantity(self) -> int:
        return self.quantity - self.refunded_quantity


class CompletedOrder(BaseModel):
    id: int | str
    status: str = "COMPLETED"
    order_type: str | None = None
    payment_method: str | None = None
    date: datetime
    updated_at: datetime | None = None
    subtotal: Decimal = Decimal("0")
    promotional_discount: Decimal = Decimal("0")
    manual_discount: Decimal = Decimal("0")
    order_items: list[OrderItem] = []

    @property
    def completed_at(self) -> datetime:
        return self.updated_at or self.date


class RefundRecordItem(BaseModel):
    item_name: str
    quantity: int


class RefundRecord(BaseModel):
    """A refund previously committed against an order."""

    items: list[RefundRecordItem] = []


# ─── Request ──────────────────────────────────────────────────────────────────


class RefundQuoteRequest(BaseModel):
    # order JSON as returned by the Sales service, camelCase or snake_case
    order: dict[str, Any]
    # item index -> units to refund; empty means full refund
    selection: dict[int, int] = {}
    refunds: list[dict[str, Any]] = []


class FullRefundRequest(BaseModel):
    order: dict[str, Any]
    pin: str
    reason: str = "Cashier requested full refund"
    same_day: bool = False


class PartialRefundRequest(BaseModel):
    order: dict[str, Any]
    pin: str
    selection: dict[int, int]
    reason: str = "Cashier requested partial refund"
    same_day: bool = False

    @field_validator("selection")
    @classmethod
    def at_least_one_item(cls, v: dict[int, int]) -> dict[int, int]:
        if not any(q > 0 for q in v.values()):
            raise ValueError("Please select at least one item to refund")
        return v


# ─── Response ─────────────────────────────────────────────────────────────────


class RefundLineOut(BaseModel):
    item_index: int
    sale_item_id: int | str
    name: str
    refund_quantity: int
    unit_net_value: Decimal
    line_refund: Decimal


class RefundQuoteOut(BaseModel):
    order_id: int | str
    lines: list[RefundLineOut]
    refund_total: Decimal
    window_open: bool
    partial_refund_allowed: bool
    historical_refund_total: Decimal
    displayed_manual_discount: Decimal
    displayed_promotional_discount: Decimal


class RefundResultOut(BaseModel):
    order_id: int | str
    manager_username: str
    refund_total: Decimal
    response: dict
