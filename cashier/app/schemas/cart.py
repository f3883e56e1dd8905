from __future__ import annotations

import uuid
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class LineType(str, Enum):
    PRODUCT = "product"
    MERCHANDISE = "merchandise"


class OrderType(str, Enum):
    DINE_IN = "Dine in"
    TAKE_OUT = "Take out"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    GCASH = "GCash"


# ─── Cart lines ──────────────────────────────────────────────────────────────


class Addon(BaseModel):
    addon_id: int | str
    name: str
    unit_price: Decimal
    quantity: int = 1

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Add-on quantity must be greater than zero")
        return v

    @field_validator("unit_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Add-on price must be non-negative")
        return v


class ProductIn(BaseModel):
    """A menu entry the cashier taps to add to the cart."""

    id: int | str
    name: str
    unit_price: Decimal
    category: str = ""
    type: LineType = LineType.PRODUCT
    # Stock on hand, only supplied for merchandise
    stock: int | None = None
    status: str | None = None

    @field_validator("unit_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must be non-negative")
        return v

    @property
    def is_available(self) -> bool:
        return (self.status or "").lower() not in {"unavailable", "not available"}


def _new_line_id() -> str:
    return uuid.uuid4().hex


class CartLine(BaseModel):
    cart_line_id: str = Field(default_factory=_new_line_id)
    id: int | str
    name: str
    unit_price: Decimal
    quantity: int = 1
    category: str = ""
    type: LineType = LineType.PRODUCT
    addons: list[Addon] = []
    max_quantity: int | None = None
    limited_by: str | None = None

    @property
    def addons_price(self) -> Decimal:
        """Add-on cost carried by one unit of this line."""
        return sum((a.unit_price * a.quantity for a in self.addons), Decimal("0"))

    @property
    def unit_price_with_addons(self) -> Decimal:
        return self.unit_price + self.addons_price

    @property
    def is_product(self) -> bool:
        return self.type == LineType.PRODUCT


# ─── Request ──────────────────────────────────────────────────────────────────


class AddItemRequest(BaseModel):
    product: ProductIn


class QuantityChangeRequest(BaseModel):
    delta: int

    @field_validator("delta")
    @classmethod
    def delta_non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("delta must not be zero")
        return v


class AddonsRequest(BaseModel):
    addons: list[Addon]


class OrderOptionsRequest(BaseModel):
    order_type: OrderType | None = None
    payment_method: PaymentMethod | None = None


# ─── Response ─────────────────────────────────────────────────────────────────


class GroupedDiscountOut(BaseModel):
    name: str
    total_quantity: int
    total_amount: Decimal


class CartLineOut(BaseModel):
    index: int
    cart_line_id: str
    id: int | str
    name: str
    category: str
    type: LineType
    unit_price: Decimal
    quantity: int
    addons: list[Addon]
    addons_price: Decimal
    line_total: Decimal
    max_quantity: int | None
    limited_by: str | None
    discount_amount: Decimal
    discounted_quantity: int
    discounts: list[GroupedDiscountOut]
    promotion_amount: Decimal
    promotion_quantity: int
    promotion_name: str


class CartTotals(BaseModel):
    subtotal: Decimal
    addons_total: Decimal
    promotion_total: Decimal
    manual_discount_total: Decimal
    total: Decimal


# ─── Inventory ────────────────────────────────────────────────────────────────


class InventoryConflict(BaseModel):
    type: str = ""
    name: str = ""
    needed: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    conflicts_with: str = ""

    def describe(self) -> str:
        text = f"{self.type.upper()}: {self.name} needs {self.needed}, only {self.available} available"
        if self.conflicts_with:
            text += f" (conflicts with {self.conflicts_with})"
        return text


class ConflictCheck(BaseModel):
    can_add: bool = True
    conflicts: list[InventoryConflict] = []


class MaxQuantity(BaseModel):
    max_quantity: int
    limited_by: str | None = None
    product_name: str | None = None
