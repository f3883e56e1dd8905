from __future__ import annotations

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, field_validator, model_validator


class ApplicationScope(str, Enum):
    ALL = "all"
    CATEGORY = "category"
    SPECIFIC_PRODUCT = "specific-product"


class ValueType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromotionType(str, Enum):
    BOGO = "bogo"
    PERCENTAGE = "percentage"
    FIXED = "fixed"


# Scope specificity, recorded alongside each promotion candidate
SCOPE_PRIORITY: dict[ApplicationScope, int] = {
    ApplicationScope.SPECIFIC_PRODUCT: 3,
    ApplicationScope.CATEGORY: 2,
    ApplicationScope.ALL: 1,
}


# ─── Manual discounts ────────────────────────────────────────────────────────


class Discount(BaseModel):
    id: int | str
    name: str
    type: ValueType
    value: Decimal
    min_spend: Decimal = Decimal("0")
    application_scope: ApplicationScope = ApplicationScope.ALL
    applicable_names: list[str] = []

    @field_validator("value")
    @classmethod
    def value_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Discount value must be non-negative")
        return v


class ItemDiscount(BaseModel):
    item_index: int
    quantity: int
    discount_amount: Decimal


class AppliedDiscount(BaseModel):
    discount: Discount
    selected_items_qty: dict[int, int]
    selected_subtotal: Decimal
    total_discount: Decimal
    item_discounts: list[ItemDiscount]

    def quantity_for(self, item_index: int) -> int:
        return self.selected_items_qty.get(item_index, 0)

    def item_discount_for(self, item_index: int) -> ItemDiscount | None:
        for item in self.item_discounts:
            if item.item_index == item_index:
                return item
        return None


class DiscountOption(BaseModel):
    """A catalog discount annotated against the current cart."""

    discount: Discount
    potential_discount: Decimal
    meets_min_spend: bool
    has_eligible_items: bool
    is_better_than_promo: bool
    is_enabled: bool


# ─── Automatic promotions ────────────────────────────────────────────────────


class Promotion(BaseModel):
    id: int | str
    name: str
    promotion_type: PromotionType
    application_scope: ApplicationScope = ApplicationScope.SPECIFIC_PRODUCT
    scope_names: list[str] = []
    buy_quantity: int = 1
    get_quantity: int = 1
    discount_value: Decimal = Decimal("0")
    discount_value_type: ValueType = ValueType.PERCENTAGE
    priority: int = 0

    @model_validator(mode="after")
    def fill_priority(self) -> "Promotion":
        if not self.priority:
            self.priority = SCOPE_PRIORITY[self.application_scope]
        return self

    @property
    def buy_item_name(self) -> str | None:
        return self.scope_names[0] if self.scope_names else None

    @property
    def get_item_name(self) -> str | None:
        if len(self.scope_names) > 1:
            return self.scope_names[1]
        return self.buy_item_name


class ItemPromotion(BaseModel):
    item_index: int
    quantity: int
    promotion_amount: Decimal
    promotion_name: str
    promotion_id: int | str | None = None
    priority: int = 0


class AutoPromotion(BaseModel):
    id: int | str | None = None
    name: str
    discount_amount: Decimal
    item_promotions: list[ItemPromotion]
    is_multi_promotion: bool = False
    promotions_used: list[str] = []

    def for_item(self, item_index: int) -> ItemPromotion | None:
        for item in self.item_promotions:
            if item.item_index == item_index:
                return item
        return None


class BogoProgress(BaseModel):
    """Whether adding a line started or completed a BOGO bundle."""

    promotion: Promotion
    started: bool
    completed: bool


# ─── Request ──────────────────────────────────────────────────────────────────


class DiscountSelectionRequest(BaseModel):
    discount_id: int | str
    items: dict[int, int]


class ApplyDiscountRequest(DiscountSelectionRequest):
    pin: str

    @field_validator("items")
    @classmethod
    def at_least_one_item(cls, v: dict[int, int]) -> dict[int, int]:
        if not any(q > 0 for q in v.values()):
            raise ValueError("Select at least one item with quantity")
        return v
