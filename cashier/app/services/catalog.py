"""Translate raw collaborator JSON into typed catalog and order records.

The discount and promotion services describe values as display strings
(``"10%"``, ``"₱50 off"``, ``"BOGO (2+1)"``); the numbers are recovered here
with regular expressions so the pricing services only ever see structured
records.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError

from cashier.app.core.config import settings
from cashier.app.schemas.orders import (
    CompletedOrder,
    OrderAddon,
    OrderItem,
    RecordedDiscount,
    RecordedPromotion,
    RefundRecord,
    RefundRecordItem,
)
from cashier.app.schemas.pricing import (
    ApplicationScope,
    Discount,
    Promotion,
    PromotionType,
    ValueType,
)

logger = logging.getLogger(__name__)

BOGO_QUANTITIES = re.compile(r"\((\d+)\+(\d+)\)")
NUMBER = re.compile(r"(\d+\.?\d*)")
NON_NUMERIC = re.compile(r"[^0-9.]")

APPLICATION_TYPES: dict[str, ApplicationScope] = {
    "all_products": ApplicationScope.ALL,
    "specific_products": ApplicationScope.SPECIFIC_PRODUCT,
    "specific_categories": ApplicationScope.CATEGORY,
}


def _decimal(value: Any, default: str = "0") -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


def _name_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [name.strip() for name in value.split(",") if name.strip()]
    if isinstance(value, list):
        return [str(name).strip() for name in value if str(name).strip()]
    return []


# ─── Discounts ───────────────────────────────────────────────────────────────


def parse_discount(raw: dict[str, Any]) -> Discount | None:
    """Return a Discount for an active catalog entry, ``None`` otherwise."""
    if raw.get("status") != "active":
        return None

    value_text = NON_NUMERIC.sub("", str(raw.get("discount", raw.get("value", ""))))
    if not value_text:
        logger.warning("Skipping discount %r: no numeric value", raw.get("name"))
        return None

    scope = APPLICATION_TYPES.get(raw.get("application_type") or "all_products")
    if scope is None:
        logger.warning(
            "Skipping discount %r: unknown application type %r",
            raw.get("name"),
            raw.get("application_type"),
        )
        return None

    if scope == ApplicationScope.CATEGORY:
        names = _name_list(raw.get("applicable_categories"))
    elif scope == ApplicationScope.SPECIFIC_PRODUCT:
        names = _name_list(raw.get("applicable_products"))
    else:
        names = []

    try:
        return Discount(
            id=raw["id"],
            name=raw.get("name", ""),
            type=ValueType.FIXED if raw.get("type") in ("fixed_amount", "fixed") else ValueType.PERCENTAGE,
            value=_decimal(value_text),
            min_spend=_decimal(raw.get("minSpend", raw.get("min_spend"))),
            application_scope=scope,
            applicable_names=names,
        )
    except (KeyError, ValidationError) as exc:
        logger.warning("Skipping discount %r: %s", raw.get("name"), exc)
        return None


def parse_discounts(raw_list: list[dict[str, Any]]) -> list[Discount]:
    return [d for d in (parse_discount(raw) for raw in raw_list) if d is not None]


# ─── Promotions ──────────────────────────────────────────────────────────────


def _promotion_type(type_text: str) -> PromotionType | None:
    upper = type_text.upper()
    if "BOGO" in upper:
        return PromotionType.BOGO
    if "PERCENTAGE" in upper or "%" in upper:
        return PromotionType.PERCENTAGE
    if "FIXED" in upper or settings.CURRENCY_SYMBOL in upper:
        return PromotionType.FIXED
    return None


def parse_promotion(raw: dict[str, Any]) -> Promotion | None:
    """Return a Promotion for an active catalog entry, ``None`` otherwise."""
    if raw.get("status") != "active":
        return None

    type_text = str(raw.get("type") or raw.get("promotion_type") or "")
    promotion_type = _promotion_type(type_text)
    if promotion_type is None:
        logger.warning("Skipping promotion %r: unrecognised type %r", raw.get("name"), type_text)
        return None

    buy_quantity, get_quantity = 1, 1
    if promotion_type == PromotionType.BOGO:
        match = BOGO_QUANTITIES.search(type_text)
        if match:
            buy_quantity, get_quantity = int(match.group(1)), int(match.group(2))

    value_text = str(raw.get("value") or "")
    number = NUMBER.search(value_text)
    discount_value = _decimal(number.group(1)) if number else Decimal("0")

    if promotion_type == PromotionType.BOGO:
        value_type = ValueType.PERCENTAGE if "%" in value_text else ValueType.FIXED
    elif promotion_type == PromotionType.PERCENTAGE:
        value_type = ValueType.PERCENTAGE
    else:
        value_type = ValueType.FIXED

    products = raw.get("products") or ""
    if isinstance(products, str) and products.strip().lower() == "all products":
        scope = ApplicationScope.ALL
        names: list[str] = []
    else:
        scope = APPLICATION_TYPES.get(raw.get("application_type") or "", ApplicationScope.SPECIFIC_PRODUCT)
        names = _name_list(products)

    try:
        return Promotion(
            id=raw["id"],
            name=raw.get("name", ""),
            promotion_type=promotion_type,
            application_scope=scope,
            scope_names=names,
            buy_quantity=buy_quantity,
            get_quantity=get_quantity,
            discount_value=discount_value,
            discount_value_type=value_type,
        )
    except (KeyError, ValidationError) as exc:
        logger.warning("Skipping promotion %r: %s", raw.get("name"), exc)
        return None


def parse_promotions(raw_list: list[dict[str, Any]]) -> list[Promotion]:
    return [p for p in (parse_promotion(raw) for raw in raw_list) if p is not None]


# ─── Orders ──────────────────────────────────────────────────────────────────


def _first(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return default


def order_item_from_payload(raw: dict[str, Any]) -> OrderItem:
    return OrderItem(
        sale_item_id=_first(raw, "saleItemId", "sale_item_id", "id", default=0),
        name=_first(raw, "name", "product_name", default=""),
        quantity=int(_first(raw, "quantity", default=0)),
        unit_price=_decimal(_first(raw, "price", "unitPrice", "unit_price")),
        addons=[
            OrderAddon(
                name=_first(a, "name", "addonName", "addon_name", default=""),
                price=_decimal(_first(a, "price", "Price")),
                quantity=int(_first(a, "quantity", default=1)),
            )
            for a in raw.get("addons") or []
        ],
        item_discounts=[
            RecordedDiscount(
                discount_name=_first(d, "discountName", "discount_name", default=""),
                quantity_discounted=int(_first(d, "quantityDiscounted", "quantity_discounted", default=0)),
                discount_amount=_decimal(_first(d, "discountAmount", "discount_amount")),
            )
            for d in _first(raw, "itemDiscounts", "item_discounts", default=[])
        ],
        item_promotions=[
            RecordedPromotion(
                promotion_name=_first(p, "promotionName", "promotion_name", default=""),
                quantity_promoted=int(_first(p, "quantityPromoted", "quantity_promoted", default=0)),
                promotion_amount=_decimal(_first(p, "promotionAmount", "promotion_amount")),
            )
            for p in _first(raw, "itemPromotions", "item_promotions", default=[])
        ],
        refunded_quantity=int(_first(raw, "refundedQuantity", "refunded_quantity", default=0)),
    )


def order_from_payload(raw: dict[str, Any]) -> CompletedOrder:
    """Build a CompletedOrder from the Sales service's camelCase order JSON."""
    missing = [key for key in ("id", "date") if raw.get(key) is None]
    if missing:
        raise ValueError(f"Order is missing {', '.join(missing)}")
    return CompletedOrder(
        id=raw["id"],
        status=str(raw.get("status") or "COMPLETED").upper(),
        order_type=_first(raw, "orderType", "order_type"),
        payment_method=_first(raw, "paymentMethod", "payment_method"),
        date=raw["date"],
        updated_at=_first(raw, "updatedAt", "updated_at"),
        subtotal=_decimal(raw.get("subtotal")),
        promotional_discount=_decimal(_first(raw, "promotionalDiscount", "promotional_discount")),
        manual_discount=_decimal(_first(raw, "manualDiscount", "manual_discount")),
        order_items=[
            order_item_from_payload(item)
            for item in _first(raw, "orderItems", "order_items", default=[])
        ],
    )


def refund_records_from_payload(raw_list: list[dict[str, Any]]) -> list[RefundRecord]:
    """Refund history entries: ``{items: [{itemName | name, quantity}]}``."""
    return [
        RefundRecord(
            items=[
                RefundRecordItem(
                    item_name=_first(item, "itemName", "item_name", "name", default=""),
                    quantity=int(_first(item, "quantity", "refundQuantity", default=0)),
                )
                for item in raw.get("items") or []
            ]
        )
        for raw in raw_list
    ]
