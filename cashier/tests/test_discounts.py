"""Tests for manual discount eligibility, selection and allocation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from cashier.app.schemas.cart import Addon
from cashier.app.schemas.pricing import ApplicationScope, Discount, Promotion, ValueType
from cashier.app.services.cart import Cart, CartError
from cashier.app.services.discounts import (
    DiscountError,
    DiscountSelection,
    compute_allocation,
    evaluate_catalog,
    is_better_than_promotion,
    per_unit_discount,
)
from cashier.tests.conftest import merchandise, product

ZERO = Decimal("0")


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _cart_with(*entries: tuple[str, str, int], promotions: list[Promotion] | None = None) -> Cart:
    cart = Cart(promotions)
    for pid, (name, price, qty) in enumerate(entries, start=1):
        for _ in range(qty):
            cart.add_line(product(name, price, product_id=pid))
    return cart


def _fixed(value: str, **kw: object) -> Discount:
    return Discount(id="fx", name=f"{value} off", type=ValueType.FIXED, value=Decimal(value), **kw)


# ─── Eligibility against promotions ──────────────────────────────────────────


class TestEligibility:
    def test_ten_percent_not_better_than_latte_bogo(
        self, latte_bogo: Promotion, ten_percent: Discount
    ) -> None:
        cart = _cart_with(("Latte", "100", 3), promotions=[latte_bogo])
        assert cart.auto_promotion is not None
        assert cart.auto_promotion.discount_amount == Decimal("100")

        assert not is_better_than_promotion(cart, 0, ten_percent)
        [option] = evaluate_catalog(cart, [ten_percent])
        assert option.potential_discount == Decimal("30.00")
        assert option.meets_min_spend
        assert option.has_eligible_items
        assert not option.is_enabled

    def test_disabled_discount_cannot_be_selected(
        self, latte_bogo: Promotion, ten_percent: Discount
    ) -> None:
        cart = _cart_with(("Latte", "100", 3), promotions=[latte_bogo])
        selection = DiscountSelection(cart, evaluate_catalog(cart, [ten_percent]))
        with pytest.raises(DiscountError, match="not better"):
            selection.select(ten_percent.id)

    def test_enabled_without_promotion(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 2))
        [option] = evaluate_catalog(cart, [ten_percent])
        assert option.is_enabled
        assert option.potential_discount == Decimal("20.00")

    def test_min_spend_filters_catalog(self) -> None:
        cart = _cart_with(("Latte", "100", 2))
        big = Discount(id="m", name="Big spender", type=ValueType.FIXED, value=Decimal("50"), min_spend=Decimal("500"))
        assert evaluate_catalog(cart, [big]) == []

    def test_min_spend_uses_subtotal_without_addons(self) -> None:
        cart = _cart_with(("Latte", "100", 1))
        cart.set_addons(0, [Addon(addon_id=1, name="Shot", unit_price=Decimal("50"))])
        spend = Discount(id="m", name="Spend 120", type=ValueType.FIXED, value=Decimal("10"), min_spend=Decimal("120"))
        assert evaluate_catalog(cart, [spend]) == []

    def test_merchandise_only_cart_lists_nothing(self, ten_percent: Discount) -> None:
        cart = Cart()
        cart.add_line(merchandise())
        assert evaluate_catalog(cart, [ten_percent]) == []

    def test_specific_product_has_no_category_fallback(self) -> None:
        cart = _cart_with(("Latte", "100", 1))
        by_category_name = Discount(
            id="s",
            name="Coffee only",
            type=ValueType.PERCENTAGE,
            value=Decimal("10"),
            application_scope=ApplicationScope.SPECIFIC_PRODUCT,
            applicable_names=["Coffee"],
        )
        assert evaluate_catalog(cart, [by_category_name]) == []

    def test_per_unit_includes_addons(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 1))
        cart.set_addons(0, [Addon(addon_id=1, name="Shot", unit_price=Decimal("20"), quantity=2)])
        assert per_unit_discount(cart.lines[0], ten_percent) == Decimal("14")


# ─── Allocation ──────────────────────────────────────────────────────────────


class TestAllocation:
    def test_percentage_split_proportionally(self, twenty_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 2), ("Cookie", "50", 1))
        applied = compute_allocation(cart, twenty_percent, {0: 2, 1: 1})
        assert applied.selected_subtotal == Decimal("250.00")
        assert applied.total_discount == Decimal("50.00")
        amounts = {i.item_index: i.discount_amount for i in applied.item_discounts}
        assert amounts == {0: Decimal("40.00"), 1: Decimal("10.00")}

    def test_fixed_capped_at_selection(self) -> None:
        cart = _cart_with(("Cookie", "50", 1))
        applied = compute_allocation(cart, _fixed("80"), {0: 1})
        assert applied.total_discount == Decimal("50.00")

    def test_shares_sum_to_total_with_rounding(self) -> None:
        cart = _cart_with(("A", "10", 1), ("B", "10", 1), ("C", "10", 1))
        applied = compute_allocation(cart, _fixed("10"), {0: 1, 1: 1, 2: 1})
        shares = [i.discount_amount for i in applied.item_discounts]
        assert shares[:2] == [Decimal("3.33"), Decimal("3.33")]
        assert shares[2] == Decimal("3.34")
        assert sum(shares) == applied.total_discount

    def test_tiny_discount_never_negative(self) -> None:
        cart = _cart_with(("A", "1", 1), ("B", "1", 1), ("C", "1", 1), ("D", "1", 1))
        applied = compute_allocation(cart, _fixed("0.02"), {0: 1, 1: 1, 2: 1, 3: 1})
        shares = [i.discount_amount for i in applied.item_discounts]
        assert all(share >= 0 for share in shares)
        assert shares == [ZERO, ZERO, Decimal("0.01"), Decimal("0.01")]
        assert sum(shares) == Decimal("0.02")

    def test_leftover_cent_goes_to_largest_remainder(self) -> None:
        cart = _cart_with(("A", "2", 1), ("B", "1", 1))
        applied = compute_allocation(cart, _fixed("0.01"), {0: 1, 1: 1})
        amounts = {i.item_index: i.discount_amount for i in applied.item_discounts}
        assert amounts == {0: Decimal("0.01"), 1: ZERO}

    def test_empty_selection_rejected(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 1))
        with pytest.raises(DiscountError, match="at least one item"):
            compute_allocation(cart, ten_percent, {0: 0})

    def test_over_selection_rejected(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 1))
        with pytest.raises(DiscountError):
            compute_allocation(cart, ten_percent, {0: 2})

    def test_no_double_allocation_across_discounts(
        self, ten_percent: Discount, twenty_percent: Discount
    ) -> None:
        cart = _cart_with(("Latte", "100", 3))
        cart.apply_discount(compute_allocation(cart, twenty_percent, {0: 2}))
        assert cart.available_quantity(0) == 1
        with pytest.raises(DiscountError):
            compute_allocation(cart, ten_percent, {0: 2})

        cart.apply_discount(compute_allocation(cart, ten_percent, {0: 1}))
        assert cart.discounted_quantity(0) == 3
        assert cart.discounted_quantity(0) <= cart.lines[0].quantity

    def test_stale_allocation_rejected_on_apply(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 2))
        first = compute_allocation(cart, ten_percent, {0: 2})
        second = compute_allocation(cart, ten_percent, {0: 1})
        cart.apply_discount(first)
        with pytest.raises(CartError):
            cart.apply_discount(second)


# ─── Selection state ─────────────────────────────────────────────────────────


class TestSelection:
    def _selection(self, cart: Cart, discount: Discount) -> DiscountSelection:
        selection = DiscountSelection(cart, evaluate_catalog(cart, [discount]))
        selection.select(discount.id)
        return selection

    def test_select_toggles(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 1))
        selection = self._selection(cart, ten_percent)
        assert selection.discount == ten_percent
        assert selection.select(ten_percent.id) is None
        assert selection.discount is None

    def test_quantities_bounded(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 3))
        selection = self._selection(cart, ten_percent)
        selection.select_items(0, 10)
        assert selection.selected == {0: 3}
        selection.change_items(0, -1)
        assert selection.selected == {0: 2}
        selection.select_items(0, 0)
        assert selection.selected == {}

    def test_select_all_toggle_returns_to_empty(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 2), ("Mocha", "120", 1))
        selection = self._selection(cart, ten_percent)
        selection.select_all()
        assert selection.selected == {0: 2, 1: 1}
        selection.select_all()
        assert selection.selected == {}

    def test_allocation_round_trip(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 2), ("Mocha", "120", 1))
        selection = self._selection(cart, ten_percent)
        selection.select_all()
        applied = selection.allocation()
        assert applied.selected_items_qty == selection.selected
        assert sum(i.discount_amount for i in applied.item_discounts) == applied.total_discount
        assert applied.total_discount == Decimal("32.00")

    def test_select_items_requires_discount(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 1))
        selection = DiscountSelection(cart, evaluate_catalog(cart, [ten_percent]))
        with pytest.raises(DiscountError, match="Select a discount"):
            selection.select_items(0, 1)

    def test_unknown_discount(self, ten_percent: Discount) -> None:
        cart = _cart_with(("Latte", "100", 1))
        selection = DiscountSelection(cart, evaluate_catalog(cart, [ten_percent]))
        with pytest.raises(DiscountError, match="not available"):
            selection.select("nope")
