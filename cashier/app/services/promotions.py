"""Automatic promotion resolution.

Every call recomputes from scratch: carts and promotion catalogs are small,
and a full pass keeps the result independent of mutation history.

For each cart line, every applicable promotion produces a candidate
reduction; the largest candidate wins the line (ties keep the first one
found, in catalog order). Units already covered by a manual discount are
never eligible for a promotion.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from cashier.app.schemas.cart import CartLine
from cashier.app.schemas.pricing import (
    AppliedDiscount,
    ApplicationScope,
    AutoPromotion,
    BogoProgress,
    ItemPromotion,
    Promotion,
    PromotionType,
    ValueType,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


# ─── Scope & quantity helpers ────────────────────────────────────────────────


def matches_scope(
    line: CartLine,
    scope: ApplicationScope,
    names: list[str],
    category_fallback: bool = False,
) -> bool:
    """Return True if *line* falls inside a catalog entry's scope.

    Merchandise is never discountable. With *category_fallback*, a
    specific-product scope also accepts the line's category name, which older
    promotion records use interchangeably with product names.
    """
    if not line.is_product:
        return False
    if scope == ApplicationScope.ALL:
        return True
    if scope == ApplicationScope.CATEGORY:
        return line.category in names
    if scope == ApplicationScope.SPECIFIC_PRODUCT:
        if line.name in names:
            return True
        return category_fallback and line.category in names
    return False


def promotion_applies(line: CartLine, promotion: Promotion) -> bool:
    return matches_scope(
        line,
        promotion.application_scope,
        promotion.scope_names,
        category_fallback=True,
    )


def discounted_quantity(applied_discounts: list[AppliedDiscount], item_index: int) -> int:
    """Units of a line already committed to manual discounts."""
    total = 0
    for applied in applied_discounts:
        item = applied.item_discount_for(item_index)
        if item is not None:
            total += item.quantity
    return total


def unit_reduction(unit_price: Decimal, value_type: ValueType, value: Decimal) -> Decimal:
    """Reduction granted on a single unit, never more than the unit itself."""
    if value_type == ValueType.PERCENTAGE:
        return unit_price * (value / HUNDRED)
    return min(value, unit_price)


def _promotion_value_type(promotion: Promotion) -> ValueType:
    if promotion.promotion_type == PromotionType.PERCENTAGE:
        return ValueType.PERCENTAGE
    if promotion.promotion_type == PromotionType.FIXED:
        return ValueType.FIXED
    return promotion.discount_value_type


def _find_product_line(lines: list[CartLine], name: str | None) -> tuple[int, CartLine] | None:
    if name is None:
        return None
    for index, line in enumerate(lines):
        if line.is_product and line.name == name:
            return index, line
    return None


# ─── Candidate computation ───────────────────────────────────────────────────


def _simple_candidates(
    lines: list[CartLine],
    promotion: Promotion,
    applied_discounts: list[AppliedDiscount],
) -> list[ItemPromotion]:
    """Percentage / fixed promotions: every eligible unit is reduced."""
    value_type = _promotion_value_type(promotion)
    candidates: list[ItemPromotion] = []
    for index, line in enumerate(lines):
        if not promotion_applies(line, promotion):
            continue
        eligible_qty = line.quantity - discounted_quantity(applied_discounts, index)
        if eligible_qty <= 0:
            continue
        amount = eligible_qty * unit_reduction(line.unit_price, value_type, promotion.discount_value)
        candidates.append(
            ItemPromotion(
                item_index=index,
                quantity=eligible_qty,
                promotion_amount=amount,
                promotion_name=promotion.name,
                promotion_id=promotion.id,
                priority=promotion.priority,
            )
        )
    return candidates


def _bogo_candidate(
    lines: list[CartLine],
    promotion: Promotion,
    applied_discounts: list[AppliedDiscount],
) -> ItemPromotion | None:
    """Buy-N-get-M: the reduction lands on the "get" line.

    When buy and get name the same product, each bundle consumes
    ``buy + get`` units of that one line.
    """
    if promotion.buy_quantity <= 0 or promotion.get_quantity <= 0:
        return None

    buy = _find_product_line(lines, promotion.buy_item_name)
    get = _find_product_line(lines, promotion.get_item_name)
    if buy is None or get is None:
        return None
    buy_index, buy_line = buy
    get_index, get_line = get

    get_available = get_line.quantity - discounted_quantity(applied_discounts, get_index)
    if buy_index == get_index:
        bundles = get_available // (promotion.buy_quantity + promotion.get_quantity)
        units = bundles * promotion.get_quantity
    else:
        buy_available = buy_line.quantity - discounted_quantity(applied_discounts, buy_index)
        sets = buy_available // promotion.buy_quantity
        units = min(sets * promotion.get_quantity, get_available)

    if units <= 0:
        return None

    amount = units * unit_reduction(
        get_line.unit_price, promotion.discount_value_type, promotion.discount_value
    )
    return ItemPromotion(
        item_index=get_index,
        quantity=units,
        promotion_amount=amount,
        promotion_name=promotion.name,
        promotion_id=promotion.id,
        priority=promotion.priority,
    )


def promotion_candidates(
    lines: list[CartLine],
    promotion: Promotion,
    applied_discounts: list[AppliedDiscount],
) -> list[ItemPromotion]:
    if promotion.promotion_type == PromotionType.BOGO:
        candidate = _bogo_candidate(lines, promotion, applied_discounts)
        return [candidate] if candidate is not None else []
    return _simple_candidates(lines, promotion, applied_discounts)


# ─── Resolution ──────────────────────────────────────────────────────────────


def resolve_best_promotion(
    lines: list[CartLine],
    promotions: list[Promotion],
    applied_discounts: list[AppliedDiscount] | None = None,
) -> AutoPromotion | None:
    """Pick the best automatic promotion per line and aggregate the winners."""
    applied_discounts = applied_discounts or []
    if not lines or not promotions:
        return None

    best: dict[int, ItemPromotion] = {}
    first_winner: dict[int, Promotion] = {}
    for promotion in promotions:
        for candidate in promotion_candidates(lines, promotion, applied_discounts):
            current = best.get(candidate.item_index)
            if current is None or candidate.promotion_amount > current.promotion_amount:
                best[candidate.item_index] = candidate
                first_winner[candidate.item_index] = promotion

    if not best:
        return None

    names: list[str] = []
    for item in best.values():
        if item.promotion_name not in names:
            names.append(item.promotion_name)

    first_promotion = next(iter(first_winner.values()))
    total = sum((item.promotion_amount for item in best.values()), ZERO)
    result = AutoPromotion(
        id=first_promotion.id,
        name=" + ".join(names),
        discount_amount=total,
        item_promotions=list(best.values()),
        is_multi_promotion=len(names) > 1,
        promotions_used=names,
    )
    logger.debug("Resolved promotion %r for %d line(s): %s", result.name, len(best), total)
    return result


def per_unit_promotion(auto_promotion: AutoPromotion | None, item_index: int) -> Decimal:
    """Per-unit reduction the automatic promotion grants on a line."""
    if auto_promotion is None:
        return ZERO
    item = auto_promotion.for_item(item_index)
    if item is None or item.quantity <= 0:
        return ZERO
    return item.promotion_amount / item.quantity


# ─── BOGO progress notices ───────────────────────────────────────────────────


def find_bogo_promotion(promotions: list[Promotion], product_name: str) -> Promotion | None:
    for promotion in promotions:
        if promotion.promotion_type == PromotionType.BOGO and product_name in promotion.scope_names:
            return promotion
    return None


def _line_quantity(lines: list[CartLine], name: str | None) -> int:
    found = _find_product_line(lines, name)
    return found[1].quantity if found else 0


def is_bogo_complete(lines: list[CartLine], promotion: Promotion) -> bool:
    buy_qty = _line_quantity(lines, promotion.buy_item_name)
    if promotion.buy_item_name == promotion.get_item_name:
        return buy_qty >= promotion.buy_quantity + promotion.get_quantity
    get_qty = _line_quantity(lines, promotion.get_item_name)
    return buy_qty >= promotion.buy_quantity and get_qty >= promotion.get_quantity


def bogo_progress(
    before: list[CartLine],
    after: list[CartLine],
    promotions: list[Promotion],
    product_name: str,
) -> BogoProgress | None:
    """Report whether adding *product_name* started or completed a BOGO bundle."""
    promotion = find_bogo_promotion(promotions, product_name)
    if promotion is None:
        return None
    was_complete = is_bogo_complete(before, promotion)
    already_started = (
        _line_quantity(before, promotion.buy_item_name) > 0
        or _line_quantity(before, promotion.get_item_name) > 0
    )
    return BogoProgress(
        promotion=promotion,
        started=not already_started and not was_complete,
        completed=not was_complete and is_bogo_complete(after, promotion),
    )
