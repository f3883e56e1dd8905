"""Manual discount eligibility, selection and allocation."""

from __future__ import annotations

import logging
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP

from cashier.app.schemas.cart import CartLine
from cashier.app.schemas.pricing import (
    AppliedDiscount,
    Discount,
    DiscountOption,
    ItemDiscount,
    ValueType,
)
from cashier.app.services.cart import Cart
from cashier.app.services.promotions import matches_scope, per_unit_promotion, unit_reduction

logger = logging.getLogger(__name__)

Q = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


class DiscountError(ValueError):
    """Invalid discount selection or allocation."""


# ─── Per-line rules ──────────────────────────────────────────────────────────


def is_eligible(line: CartLine, discount: Discount) -> bool:
    return matches_scope(line, discount.application_scope, discount.applicable_names)


def per_unit_discount(line: CartLine, discount: Discount) -> Decimal:
    """Reduction on one unit, add-ons included in the base price."""
    return unit_reduction(line.unit_price_with_addons, discount.type, discount.value)


def is_better_than_promotion(cart: Cart, index: int, discount: Discount) -> bool:
    line = cart.line(index)
    return per_unit_discount(line, discount) > per_unit_promotion(cart.auto_promotion, index)


def available_quantity(cart: Cart, index: int) -> int:
    return cart.available_quantity(index)


def is_selectable(cart: Cart, index: int, discount: Discount) -> bool:
    line = cart.line(index)
    return (
        is_eligible(line, discount)
        and available_quantity(cart, index) > 0
        and is_better_than_promotion(cart, index, discount)
    )


# ─── Catalog evaluation ──────────────────────────────────────────────────────


def evaluate_catalog(cart: Cart, discounts: list[Discount]) -> list[DiscountOption]:
    """Annotate each catalog discount against the cart.

    Only discounts whose minimum spend is met and that have at least one
    eligible line are listed. A listed discount is enabled when it beats the
    automatic promotion on at least one of those lines.
    """
    subtotal = cart.subtotal()
    options: list[DiscountOption] = []
    for discount in discounts:
        meets_min_spend = not discount.min_spend or subtotal >= discount.min_spend
        potential = ZERO
        has_eligible = False
        better = False
        for index, line in enumerate(cart.lines):
            if not is_eligible(line, discount):
                continue
            available = available_quantity(cart, index)
            if available <= 0:
                continue
            has_eligible = True
            potential += per_unit_discount(line, discount) * available
            if is_better_than_promotion(cart, index, discount):
                better = True

        if not (meets_min_spend and has_eligible):
            continue
        options.append(
            DiscountOption(
                discount=discount,
                potential_discount=potential.quantize(Q, rounding=ROUND_HALF_UP),
                meets_min_spend=meets_min_spend,
                has_eligible_items=has_eligible,
                is_better_than_promo=better,
                is_enabled=meets_min_spend and has_eligible and better,
            )
        )
    return options


# ─── Allocation ──────────────────────────────────────────────────────────────


def compute_allocation(
    cart: Cart, discount: Discount, selected: dict[int, int]
) -> AppliedDiscount:
    """Spread a discount across the selected units in proportion to their value.

    Shares are rounded down to the cent and the leftover cents go to the
    largest fractional remainders, later lines winning ties. Shares are never
    negative and always sum to the total.
    """
    selection = {index: qty for index, qty in selected.items() if qty > 0}
    if not selection:
        raise DiscountError("Please select a discount and at least one item with quantity.")

    item_subtotals: dict[int, Decimal] = {}
    for index, qty in selection.items():
        line = cart.line(index)
        if qty > available_quantity(cart, index):
            raise DiscountError(
                f"Only {available_quantity(cart, index)} unit(s) of {line.name} can be discounted"
            )
        item_subtotals[index] = line.unit_price_with_addons * qty

    selected_subtotal = sum(item_subtotals.values(), ZERO)
    if discount.type == ValueType.PERCENTAGE:
        total = selected_subtotal * discount.value / HUNDRED
    else:
        total = min(discount.value, selected_subtotal)
    total = total.quantize(Q, rounding=ROUND_HALF_UP)

    item_discounts = [
        ItemDiscount(item_index=index, quantity=selection[index], discount_amount=share)
        for index, share in _split(total, item_subtotals, selected_subtotal).items()
    ]

    return AppliedDiscount(
        discount=discount,
        selected_items_qty=selection,
        selected_subtotal=selected_subtotal.quantize(Q, rounding=ROUND_HALF_UP),
        total_discount=total,
        item_discounts=item_discounts,
    )


def _split(
    total: Decimal, weights: dict[int, Decimal], weight_total: Decimal
) -> dict[int, Decimal]:
    if not weight_total:
        return {index: ZERO for index in weights}

    exact = {index: weight / weight_total * total for index, weight in weights.items()}
    shares = {index: value.quantize(Q, rounding=ROUND_DOWN) for index, value in exact.items()}
    leftover = int((total - sum(shares.values(), ZERO)) / Q)
    order = sorted(
        enumerate(shares),
        key=lambda pair: (exact[pair[1]] - shares[pair[1]], pair[0]),
        reverse=True,
    )
    for _, index in order[:leftover]:
        shares[index] += Q
    return shares


# ─── Selection state ─────────────────────────────────────────────────────────


class DiscountSelection:
    """Which discount the cashier picked and how many units of each line."""

    def __init__(self, cart: Cart, options: list[DiscountOption]) -> None:
        self.cart = cart
        self.options = options
        self.discount: Discount | None = None
        self.selected: dict[int, int] = {}

    def _option(self, discount_id: int | str) -> DiscountOption:
        for option in self.options:
            if str(option.discount.id) == str(discount_id):
                return option
        raise DiscountError(f"Discount {discount_id} is not available for this cart")

    def select(self, discount_id: int | str) -> Discount | None:
        """Pick a discount; picking the current one again deselects it."""
        option = self._option(discount_id)
        if self.discount is not None and str(self.discount.id) == str(discount_id):
            self.discount = None
            self.selected = {}
            return None
        if not option.meets_min_spend:
            raise DiscountError(
                f"Minimum spend of {option.discount.min_spend} not met for {option.discount.name}"
            )
        if not option.is_enabled:
            raise DiscountError(
                f"{option.discount.name} is not better than the current promotion"
            )
        self.discount = option.discount
        self.selected = {}
        return self.discount

    def _require_discount(self) -> Discount:
        if self.discount is None:
            raise DiscountError("Select a discount first")
        return self.discount

    def selectable_indices(self) -> list[int]:
        discount = self._require_discount()
        return [
            index
            for index in range(len(self.cart.lines))
            if is_selectable(self.cart, index, discount)
        ]

    def select_items(self, index: int, quantity: int) -> None:
        discount = self._require_discount()
        if not is_selectable(self.cart, index, discount):
            raise DiscountError(f"{self.cart.line(index).name} cannot take {discount.name}")
        quantity = max(0, min(quantity, available_quantity(self.cart, index)))
        if quantity == 0:
            self.selected.pop(index, None)
        else:
            self.selected[index] = quantity

    def change_items(self, index: int, delta: int) -> None:
        self.select_items(index, self.selected.get(index, 0) + delta)

    def select_all(self) -> None:
        """Select every available unit, or clear if all are already selected."""
        indices = self.selectable_indices()
        all_selected = all(
            self.selected.get(index) == available_quantity(self.cart, index)
            for index in indices
        )
        if all_selected:
            self.selected = {}
        else:
            self.selected = {index: available_quantity(self.cart, index) for index in indices}

    def allocation(self) -> AppliedDiscount:
        return compute_allocation(self.cart, self._require_discount(), self.selected)
