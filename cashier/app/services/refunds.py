from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from cashier.app.core.config import settings
from cashier.app.schemas.orders import (
    CompletedOrder,
    OrderItem,
    RefundLineOut,
    RefundQuoteOut,
    RefundRecord,
    RefundResultOut,
)
from cashier.app.services.clients import AuthClient, SalesClient

logger = logging.getLogger(__name__)

Q = Decimal("0.01")
ZERO = Decimal("0")


class RefundError(ValueError):
    """Refund selection that does not fit the order."""


class RefundWindowExpiredError(RefundError):
    """The order is past the refund window; nothing was sent."""


def _money(value: Decimal) -> Decimal:
    return max(ZERO, value).quantize(Q, rounding=ROUND_HALF_UP)


# ─── Per-unit reconstruction ─────────────────────────────────────────────────


def unit_discount(item: OrderItem) -> Decimal:
    if item.quantity <= 0:
        return ZERO
    return sum((d.discount_amount for d in item.item_discounts), ZERO) / item.quantity


def unit_promotion(item: OrderItem) -> Decimal:
    if item.quantity <= 0:
        return ZERO
    return sum((p.promotion_amount for p in item.item_promotions), ZERO) / item.quantity


def unit_net_value(item: OrderItem) -> Decimal:
    """What one unit actually cost the customer.

    Recorded add-on, discount and promotion totals are spread evenly over
    the item's original quantity.
    """
    if item.quantity <= 0:
        return ZERO
    addons = sum((a.price * a.quantity for a in item.addons), ZERO) / item.quantity
    return item.unit_price + addons - unit_discount(item) - unit_promotion(item)


# ─── Totals ──────────────────────────────────────────────────────────────────


def full_refund_total(order: CompletedOrder) -> Decimal:
    total = sum(
        (unit_net_value(item) * item.refundable_quantity for item in order.order_items),
        ZERO,
    )
    return _money(total)


def validate_selection(order: CompletedOrder, selection: dict[int, int]) -> dict[int, int]:
    """Drop zero entries and check every index and quantity against the order."""
    cleaned: dict[int, int] = {}
    for index, quantity in selection.items():
        if quantity == 0:
            continue
        if index < 0 or index >= len(order.order_items):
            raise RefundError(f"Order item {index} not found")
        item = order.order_items[index]
        if quantity < 0 or quantity > item.refundable_quantity:
            raise RefundError(
                f"Can refund at most {item.refundable_quantity} of {item.name}"
            )
        cleaned[index] = quantity
    return cleaned


def refund_lines(order: CompletedOrder, selection: dict[int, int]) -> list[RefundLineOut]:
    lines: list[RefundLineOut] = []
    for index, quantity in validate_selection(order, selection).items():
        item = order.order_items[index]
        net = unit_net_value(item)
        lines.append(
            RefundLineOut(
                item_index=index,
                sale_item_id=item.sale_item_id,
                name=item.name,
                refund_quantity=quantity,
                unit_net_value=net.quantize(Q, rounding=ROUND_HALF_UP),
                line_refund=_money(net * quantity),
            )
        )
    return lines


def partial_refund_total(order: CompletedOrder, selection: dict[int, int]) -> Decimal:
    selection = validate_selection(order, selection)
    total = sum(
        (unit_net_value(order.order_items[i]) * qty for i, qty in selection.items()),
        ZERO,
    )
    return _money(total)


def removed_reductions(
    order: CompletedOrder, selection: dict[int, int] | None = None
) -> tuple[Decimal, Decimal]:
    """(manual discount, promotion) amounts attached to refunded units.

    Counts units refunded earlier plus the ones in *selection*.
    """
    selection = validate_selection(order, selection or {})
    discount = ZERO
    promotion = ZERO
    for index, item in enumerate(order.order_items):
        units = item.refunded_quantity + selection.get(index, 0)
        discount += unit_discount(item) * units
        promotion += unit_promotion(item) * units
    return discount, promotion


def displayed_reductions(
    order: CompletedOrder, selection: dict[int, int] | None = None
) -> tuple[Decimal, Decimal]:
    """Manual and promotional discount still attributable to kept units."""
    discount, promotion = removed_reductions(order, selection)
    return (
        _money(order.manual_discount - discount),
        _money(order.promotional_discount - promotion),
    )


def historical_refund_total(order: CompletedOrder, records: list[RefundRecord]) -> Decimal:
    """Net value of units refunded by earlier refund records, matched by item name."""
    refunded: dict[str, int] = defaultdict(int)
    for record in records:
        for entry in record.items:
            refunded[entry.item_name] += entry.quantity

    by_name = {item.name: item for item in order.order_items}
    total = ZERO
    for name, quantity in refunded.items():
        item = by_name.get(name)
        if item is None:
            logger.warning("Refund record for %r has no matching item on order %s", name, order.id)
            continue
        total += unit_net_value(item) * min(quantity, item.quantity)
    return _money(total)


# ─── Eligibility ─────────────────────────────────────────────────────────────


def _now_for(moment: datetime, now: datetime | None) -> datetime:
    if now is not None:
        return now
    if moment.tzinfo is None:
        return datetime.now()
    return datetime.now(timezone.utc)


def is_refund_window_open(order: CompletedOrder, now: datetime | None = None) -> bool:
    completed = order.completed_at
    elapsed = _now_for(completed, now) - completed
    return elapsed < timedelta(minutes=settings.REFUND_WINDOW_MINUTES)


def is_same_day(order: CompletedOrder, now: datetime | None = None) -> bool:
    return _now_for(order.date, now).date() == order.date.date()


def can_partial_refund(order: CompletedOrder) -> bool:
    return sum(item.quantity for item in order.order_items) > 1


def ensure_refundable(order: CompletedOrder, same_day: bool, now: datetime | None = None) -> None:
    """Raise unless the order can be refunded through the chosen endpoint."""
    if same_day:
        if not is_same_day(order, now):
            raise RefundError("Same-day refunds are only available for orders placed today")
    elif not is_refund_window_open(order, now):
        raise RefundWindowExpiredError(
            f"Refund window of {settings.REFUND_WINDOW_MINUTES} minutes has expired"
        )
    if all(item.refundable_quantity == 0 for item in order.order_items):
        raise RefundError("Order has already been fully refunded")


def quote(
    order: CompletedOrder,
    selection: dict[int, int] | None = None,
    records: list[RefundRecord] | None = None,
    now: datetime | None = None,
) -> RefundQuoteOut:
    """Preview a refund: an empty selection quotes the full remaining order."""
    if selection and any(q for q in selection.values()):
        lines = refund_lines(order, selection)
        total = partial_refund_total(order, selection)
    else:
        remaining = {
            i: item.refundable_quantity
            for i, item in enumerate(order.order_items)
            if item.refundable_quantity
        }
        lines = refund_lines(order, remaining)
        total = full_refund_total(order)
    manual, promotional = displayed_reductions(order, selection)
    return RefundQuoteOut(
        order_id=order.id,
        lines=lines,
        refund_total=total,
        window_open=is_refund_window_open(order, now),
        partial_refund_allowed=can_partial_refund(order),
        historical_refund_total=historical_refund_total(order, records or []),
        displayed_manual_discount=manual,
        displayed_promotional_discount=promotional,
    )


# ─── Orchestration ───────────────────────────────────────────────────────────


def _refund_item_payload(item: OrderItem, quantity: int) -> dict[str, Any]:
    return {
        "saleItemId": item.sale_item_id,
        "refundQuantity": quantity,
        "itemName": item.name,
        "originalQuantity": item.quantity,
        "unitPrice": float(item.unit_price),
    }


class RefundService:
    """Checks eligibility locally, verifies the manager PIN, then posts."""

    def __init__(self, sales: SalesClient, auth: AuthClient) -> None:
        self.sales = sales
        self.auth = auth

    async def full_refund(
        self,
        order: CompletedOrder,
        pin: str,
        reason: str,
        same_day: bool = False,
        now: datetime | None = None,
    ) -> RefundResultOut:
        ensure_refundable(order, same_day, now)
        manager = await self.auth.verify_pin(pin)
        payload = {
            "managerUsername": manager,
            "refundReason": reason,
            "items": [
                _refund_item_payload(item, item.refundable_quantity)
                for item in order.order_items
                if item.refundable_quantity
            ],
        }
        total = full_refund_total(order)
        response = await self.sales.refund(order.id, payload, partial=False, same_day=same_day)
        logger.info("Order %s refunded in full (%s) by %s", order.id, total, manager)
        return RefundResultOut(
            order_id=order.id, manager_username=manager, refund_total=total, response=response
        )

    async def partial_refund(
        self,
        order: CompletedOrder,
        pin: str,
        selection: dict[int, int],
        reason: str,
        same_day: bool = False,
        now: datetime | None = None,
    ) -> RefundResultOut:
        ensure_refundable(order, same_day, now)
        if not can_partial_refund(order):
            raise RefundError("Partial refund requires more than one item on the order")
        selection = validate_selection(order, selection)
        if not selection:
            raise RefundError("Please select at least one item to refund")

        manager = await self.auth.verify_pin(pin)
        payload = {
            "managerUsername": manager,
            "refundReason": reason,
            "items": [
                _refund_item_payload(order.order_items[i], qty) for i, qty in selection.items()
            ],
        }
        total = partial_refund_total(order, selection)
        response = await self.sales.refund(order.id, payload, partial=True, same_day=same_day)
        logger.info(
            "Order %s partially refunded (%s, %d item(s)) by %s",
            order.id,
            total,
            len(selection),
            manager,
        )
        return RefundResultOut(
            order_id=order.id, manager_username=manager, refund_total=total, response=response
        )
