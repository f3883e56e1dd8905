"""Cashier session: one open cart plus the collaborators it talks to."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from cashier.app.schemas.cart import Addon, CartLine, LineType, OrderType, PaymentMethod, ProductIn
from cashier.app.schemas.pricing import AppliedDiscount, BogoProgress, Discount, DiscountOption
from cashier.app.schemas.session import SessionStateOut
from cashier.app.services.cart import Cart, CartError
from cashier.app.services.catalog import parse_discounts, parse_promotions
from cashier.app.services.clients import (
    AuthClient,
    DiscountsClient,
    PromotionsClient,
    SalesClient,
    ServiceApiError,
)
from cashier.app.services.discounts import DiscountSelection, evaluate_catalog
from cashier.app.services.inventory import HttpInventoryChecker, InventoryChecker
from cashier.app.services.promotions import bogo_progress

logger = logging.getLogger(__name__)


class CashierSession:
    def __init__(
        self,
        token: str | None = None,
        inventory: InventoryChecker | None = None,
        sales: SalesClient | None = None,
        auth: AuthClient | None = None,
        discounts_client: DiscountsClient | None = None,
        promotions_client: PromotionsClient | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.token = token
        self.created_at = datetime.now(timezone.utc)
        self.last_seen = self.created_at
        self.cart = Cart()
        self.discounts: list[Discount] = []
        self.catalog_errors: list[str] = []
        self.order_type = OrderType.DINE_IN
        self.payment_method = PaymentMethod.CASH

        self.inventory = inventory or HttpInventoryChecker(token)
        self.sales = sales or SalesClient(token)
        self.auth = auth or AuthClient(token)
        self.discounts_client = discounts_client or DiscountsClient(token)
        self.promotions_client = promotions_client or PromotionsClient(token)

    # ─── Catalogs ────────────────────────────────────────────────────────

    async def load_catalogs(self) -> None:
        """Refresh discount and promotion catalogs.

        A failing catalog keeps its previous contents; the failure is
        reported in ``catalog_errors`` so checkout can continue without it.
        """
        self.catalog_errors = []
        try:
            self.discounts = parse_discounts(await self.discounts_client.list_discounts())
        except ServiceApiError as exc:
            logger.warning("Could not load discounts: %s", exc)
            self.catalog_errors.append(f"discounts: {exc}")
        try:
            self.cart.set_promotions(parse_promotions(await self.promotions_client.list_promotions()))
        except ServiceApiError as exc:
            logger.warning("Could not load promotions: %s", exc)
            self.catalog_errors.append(f"promotions: {exc}")
        logger.info(
            "Session %s loaded %d discount(s), %d promotion(s)",
            self.id,
            len(self.discounts),
            len(self.cart.promotions),
        )

    # ─── Cart ────────────────────────────────────────────────────────────

    async def add_item(self, product: ProductIn) -> tuple[int, BogoProgress | None]:
        if not product.is_available:
            raise CartError(f"{product.name} is unavailable")

        max_quantity: int | None = None
        limited_by: str | None = None
        if product.type == LineType.PRODUCT:
            check = await self.inventory.check_cart_conflicts(self.cart.lines, product.id)
            if not check.can_add:
                details = "; ".join(c.describe() for c in check.conflicts)
                raise CartError(f"Cannot add {product.name}. {details}".strip())
            limit = await self.inventory.dynamic_max_quantity(product.id, self.cart.lines)
            max_quantity, limited_by = limit.max_quantity, limit.limited_by

        before = [line.model_copy() for line in self.cart.lines]
        index = self.cart.add_line(product, max_quantity, limited_by)
        progress = bogo_progress(before, self.cart.lines, self.cart.promotions, product.name)
        if progress is not None and progress.completed:
            logger.info("Session %s completed BOGO %r", self.id, progress.promotion.name)
        return index, progress

    async def update_quantity(self, index: int, delta: int) -> None:
        line = self.cart.line(index)
        if delta > 0 and line.is_product:
            simulated: list[CartLine] = [
                l.model_copy(update={"quantity": l.quantity + delta}) if i == index else l
                for i, l in enumerate(self.cart.lines)
            ]
            check = await self.inventory.check_quantity_increase(simulated)
            if not check.can_add:
                details = "; ".join(c.describe() for c in check.conflicts)
                raise CartError(f"Cannot increase quantity for {line.name}. {details}".strip())
        self.cart.update_quantity(index, delta)

    def remove_item(self, index: int) -> None:
        self.cart.remove_line(index)

    def set_addons(self, index: int, addons: list[Addon]) -> None:
        self.cart.set_addons(index, addons)

    def set_options(
        self,
        order_type: OrderType | None = None,
        payment_method: PaymentMethod | None = None,
    ) -> None:
        if order_type is not None:
            self.order_type = order_type
        if payment_method is not None:
            self.payment_method = payment_method

    # ─── Discounts ───────────────────────────────────────────────────────

    def discount_options(self) -> list[DiscountOption]:
        return evaluate_catalog(self.cart, self.discounts)

    def preview_discount(self, discount_id: int | str, items: dict[int, int]) -> AppliedDiscount:
        selection = DiscountSelection(self.cart, self.discount_options())
        selection.select(discount_id)
        for index, quantity in items.items():
            selection.select_items(index, quantity)
        return selection.allocation()

    async def apply_discount(
        self, discount_id: int | str, items: dict[int, int], pin: str
    ) -> AppliedDiscount:
        applied = self.preview_discount(discount_id, items)
        manager = await self.auth.verify_pin(pin)
        self.cart.apply_discount(applied)
        logger.info(
            "Session %s: %s applied %r for %s",
            self.id,
            manager,
            applied.discount.name,
            applied.total_discount,
        )
        return applied

    def remove_discount(self, position: int) -> AppliedDiscount:
        return self.cart.remove_discount(position)

    def remove_all_discounts(self) -> None:
        self.cart.remove_all_discounts()

    # ─── Checkout ────────────────────────────────────────────────────────

    def build_sale_payload(self, gcash_reference: str | None = None) -> dict[str, Any]:
        cart = self.cart
        totals = cart.totals()
        promotion = cart.auto_promotion
        return {
            "cartItems": [
                {
                    "id": line.id,
                    "name": line.name,
                    "price": float(line.unit_price),
                    "quantity": line.quantity,
                    "category": line.category,
                    "type": line.type.value,
                    "maxQuantity": line.max_quantity,
                    "addons": [
                        {
                            "addonId": a.addon_id,
                            "addonName": a.name,
                            "price": float(a.unit_price),
                            "quantity": a.quantity,
                        }
                        for a in line.addons
                    ],
                }
                for line in cart.lines
            ],
            "orderType": self.order_type.value,
            "paymentMethod": self.payment_method.value,
            "appliedDiscounts": [
                {
                    "discountName": applied.discount.name,
                    "discountId": applied.discount.id,
                    "itemDiscounts": [
                        {
                            "itemIndex": item.item_index,
                            "quantity": item.quantity,
                            "discountAmount": float(item.discount_amount),
                        }
                        for item in applied.item_discounts
                    ],
                }
                for applied in cart.applied_discounts
            ],
            "appliedPromotions": [
                {
                    "promotionName": promotion.name,
                    "promotionId": promotion.id,
                    "itemPromotions": [
                        {
                            "itemIndex": item.item_index,
                            "quantity": item.quantity,
                            "promotionAmount": float(item.promotion_amount),
                        }
                        for item in promotion.item_promotions
                    ],
                }
            ]
            if promotion
            else [],
            "promotionalDiscountAmount": float(totals.promotion_total),
            "promotionalDiscountName": promotion.name if promotion else None,
            "manualDiscountAmount": float(totals.manual_discount_total),
            "gcashReference": gcash_reference,
        }

    async def checkout(self, gcash_reference: str | None = None) -> dict[str, Any]:
        """Post the sale; the cart is only cleared once the Sales service accepts it."""
        if not self.cart.lines:
            raise CartError("Please add items to your cart before processing.")
        if self.payment_method == PaymentMethod.GCASH and not gcash_reference:
            raise CartError("A GCash reference number is required.")

        payload = self.build_sale_payload(
            gcash_reference if self.payment_method == PaymentMethod.GCASH else None
        )
        total = self.cart.totals().total
        response = await self.sales.create_sale(payload)

        logger.info(
            "Session %s sale completed: %s via %s (%d line(s))",
            self.id,
            total,
            self.payment_method.value,
            len(self.cart.lines),
        )
        self.cart.clear()
        self.order_type = OrderType.DINE_IN
        self.payment_method = PaymentMethod.CASH
        return response

    # ─── State ───────────────────────────────────────────────────────────

    def state(self) -> SessionStateOut:
        return SessionStateOut(
            session_id=self.id,
            created_at=self.created_at,
            order_type=self.order_type,
            payment_method=self.payment_method,
            lines=self.cart.line_views(),
            totals=self.cart.totals(),
            applied_discounts=self.cart.applied_discounts,
            auto_promotion=self.cart.auto_promotion,
            discount_count=len(self.discounts),
            promotion_count=len(self.cart.promotions),
            catalog_errors=self.catalog_errors,
        )
