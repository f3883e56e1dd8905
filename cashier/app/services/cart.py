from __future__ import annotations

import logging
from decimal import Decimal, ROUND_HALF_UP

from cashier.app.core.config import settings
from cashier.app.schemas.cart import (
    Addon,
    CartLine,
    CartLineOut,
    CartTotals,
    GroupedDiscountOut,
    LineType,
    ProductIn,
)
from cashier.app.schemas.pricing import AppliedDiscount, AutoPromotion, Promotion
from cashier.app.services.promotions import resolve_best_promotion

logger = logging.getLogger(__name__)

Q = Decimal("0.01")
ZERO = Decimal("0")


class CartError(ValueError):
    """A cart mutation that would break a cart invariant."""


def money(value: Decimal) -> Decimal:
    return value.quantize(Q, rounding=ROUND_HALF_UP)


class Cart:
    """Line items plus the reductions currently attached to them.

    Manual discounts reference lines by index. Each line mutation re-runs the
    promotion resolver so the automatic promotion always reflects the lines
    and the units manual discounts leave free.
    """

    def __init__(self, promotions: list[Promotion] | None = None) -> None:
        self.lines: list[CartLine] = []
        self.applied_discounts: list[AppliedDiscount] = []
        self.auto_promotion: AutoPromotion | None = None
        self.promotions: list[Promotion] = list(promotions or [])

    def __len__(self) -> int:
        return len(self.lines)

    # ─── Promotions ──────────────────────────────────────────────────────

    def refresh_promotions(self) -> AutoPromotion | None:
        self.auto_promotion = resolve_best_promotion(
            self.lines, self.promotions, self.applied_discounts
        )
        return self.auto_promotion

    def set_promotions(self, promotions: list[Promotion]) -> None:
        self.promotions = list(promotions)
        self.refresh_promotions()

    # ─── Line mutations ──────────────────────────────────────────────────

    def line(self, index: int) -> CartLine:
        if index < 0 or index >= len(self.lines):
            raise CartError(f"Cart line {index} not found")
        return self.lines[index]

    def find_mergeable(self, product: ProductIn) -> int | None:
        """Index of a line the product can be merged into.

        Lines carrying add-ons are never merged, so a plain tap always
        starts a new plain line next to customised ones.
        """
        for index, line in enumerate(self.lines):
            if line.id != product.id or line.type != product.type:
                continue
            if product.type == LineType.PRODUCT and line.addons:
                continue
            return index
        return None

    def add_line(
        self,
        product: ProductIn,
        max_quantity: int | None = None,
        limited_by: str | None = None,
    ) -> int:
        """Add one unit of *product*; return the index of the affected line."""
        if not product.is_available:
            raise CartError(f"{product.name} is unavailable")

        if product.type == LineType.MERCHANDISE:
            ceiling = product.stock if product.stock is not None else settings.DEFAULT_MAX_QUANTITY
            reached = f"Maximum stock of {ceiling} reached for {product.name}"
        else:
            ceiling = max_quantity if max_quantity is not None else settings.DEFAULT_MAX_QUANTITY
            if ceiling <= 0:
                raise CartError(f"Cannot add {product.name}. {limited_by or 'Insufficient stock'}")
            reached = f"Maximum quantity of {ceiling} reached for {product.name}. {limited_by or ''}".strip()

        index = self.find_mergeable(product)
        if index is not None:
            line = self.lines[index]
            if line.quantity >= ceiling:
                raise CartError(reached)
            line.quantity += 1
            line.max_quantity = ceiling
            line.limited_by = limited_by
        else:
            if ceiling <= 0:
                raise CartError(reached)
            self.lines.append(
                CartLine(
                    id=product.id,
                    name=product.name,
                    unit_price=product.unit_price,
                    category="Merchandise" if product.type == LineType.MERCHANDISE else product.category,
                    type=product.type,
                    max_quantity=ceiling,
                    limited_by=limited_by,
                )
            )
            index = len(self.lines) - 1

        self.refresh_promotions()
        return index

    def update_quantity(self, index: int, delta: int) -> None:
        line = self.line(index)
        new_quantity = line.quantity + delta

        if delta > 0 and line.max_quantity and new_quantity > line.max_quantity:
            raise CartError(f"Maximum quantity of {line.max_quantity} reached for {line.name}.")

        if new_quantity <= 0:
            self.remove_line(index)
            return

        committed = self.discounted_quantity(index)
        if new_quantity < committed:
            raise CartError(f"Cannot reduce quantity below {committed}. Remove discounts first.")

        line.quantity = new_quantity
        self.refresh_promotions()

    def remove_line(self, index: int) -> None:
        """Remove a line and every manual discount that selected units of it."""
        self.line(index)
        kept: list[AppliedDiscount] = []
        for applied in self.applied_discounts:
            if applied.quantity_for(index):
                logger.info(
                    "Dropping discount %r: line %d removed", applied.discount.name, index
                )
                continue
            kept.append(_shift_indices(applied, index))
        self.applied_discounts = kept
        del self.lines[index]
        self.refresh_promotions()

    def set_addons(self, index: int, addons: list[Addon]) -> None:
        self.line(index).addons = list(addons)
        self.refresh_promotions()

    def clear(self) -> None:
        self.lines = []
        self.applied_discounts = []
        self.auto_promotion = None

    # ─── Manual discounts ────────────────────────────────────────────────

    def available_quantity(self, index: int) -> int:
        return self.line(index).quantity - self.discounted_quantity(index)

    def apply_discount(self, applied: AppliedDiscount) -> None:
        """Commit a computed allocation.

        Any applied manual discount replaces the automatic promotion for the
        rest of the current state; it comes back on the next line mutation.
        """
        for index, quantity in applied.selected_items_qty.items():
            if quantity > self.available_quantity(index):
                raise CartError(
                    f"Only {self.available_quantity(index)} unit(s) of "
                    f"{self.lines[index].name} are left to discount"
                )
        self.applied_discounts.append(applied)
        self.auto_promotion = None

    def remove_discount(self, position: int) -> AppliedDiscount:
        if position < 0 or position >= len(self.applied_discounts):
            raise CartError(f"Applied discount {position} not found")
        return self.applied_discounts.pop(position)

    def remove_all_discounts(self) -> None:
        self.applied_discounts = []

    # ─── Per-line views ──────────────────────────────────────────────────

    def discounted_quantity(self, index: int) -> int:
        return sum(applied.quantity_for(index) for applied in self.applied_discounts)

    def item_discount_amount(self, index: int) -> Decimal:
        total = ZERO
        for applied in self.applied_discounts:
            item = applied.item_discount_for(index)
            if item is not None:
                total += item.discount_amount
        return total

    def combined_item_discounts(self, index: int) -> list[GroupedDiscountOut]:
        """Manual discounts on a line, grouped by discount name."""
        groups: dict[str, GroupedDiscountOut] = {}
        for applied in self.applied_discounts:
            item = applied.item_discount_for(index)
            if item is None or item.discount_amount == 0:
                continue
            name = applied.discount.name or "Discount"
            group = groups.setdefault(
                name, GroupedDiscountOut(name=name, total_quantity=0, total_amount=ZERO)
            )
            group.total_quantity += item.quantity
            group.total_amount += item.discount_amount
        return list(groups.values())

    def line_views(self) -> list[CartLineOut]:
        views: list[CartLineOut] = []
        for index, line in enumerate(self.lines):
            promo = self.auto_promotion.for_item(index) if self.auto_promotion else None
            views.append(
                CartLineOut(
                    index=index,
                    cart_line_id=line.cart_line_id,
                    id=line.id,
                    name=line.name,
                    category=line.category,
                    type=line.type,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    addons=line.addons,
                    addons_price=line.addons_price,
                    line_total=money(line.unit_price_with_addons * line.quantity),
                    max_quantity=line.max_quantity,
                    limited_by=line.limited_by,
                    discount_amount=money(self.item_discount_amount(index)),
                    discounted_quantity=self.discounted_quantity(index),
                    discounts=self.combined_item_discounts(index),
                    promotion_amount=money(promo.promotion_amount) if promo else ZERO,
                    promotion_quantity=promo.quantity if promo else 0,
                    promotion_name=promo.promotion_name if promo else "",
                )
            )
        return views

    # ─── Totals ──────────────────────────────────────────────────────────

    def subtotal(self) -> Decimal:
        return sum((line.unit_price * line.quantity for line in self.lines), ZERO)

    def addons_total(self) -> Decimal:
        return sum((line.addons_price * line.quantity for line in self.lines), ZERO)

    def promotion_total(self) -> Decimal:
        return self.auto_promotion.discount_amount if self.auto_promotion else ZERO

    def manual_discount_total(self) -> Decimal:
        return sum((applied.total_discount for applied in self.applied_discounts), ZERO)

    def totals(self) -> CartTotals:
        total = (
            self.subtotal()
            + self.addons_total()
            - self.manual_discount_total()
            - self.promotion_total()
        )
        return CartTotals(
            subtotal=money(self.subtotal()),
            addons_total=money(self.addons_total()),
            promotion_total=money(self.promotion_total()),
            manual_discount_total=money(self.manual_discount_total()),
            total=max(ZERO, money(total)),
        )


def _shift_indices(applied: AppliedDiscount, removed: int) -> AppliedDiscount:
    """Re-point a discount's line indices after line *removed* disappears."""

    def shift(index: int) -> int:
        return index - 1 if index > removed else index

    return applied.model_copy(
        update={
            "selected_items_qty": {
                shift(i): q for i, q in applied.selected_items_qty.items()
            },
            "item_discounts": [
                item.model_copy(update={"item_index": shift(item.item_index)})
                for item in applied.item_discounts
            ],
        }
    )
