"""Inventory limits for product lines.

The Products service knows which ingredients and materials products share,
so it decides how many units of a product the current cart can still hold.
When it cannot be reached the checker answers permissively and the sale goes
ahead, bounded only by the default ceiling.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from cashier.app.core.config import settings
from cashier.app.schemas.cart import CartLine, ConflictCheck, InventoryConflict, MaxQuantity
from cashier.app.services.clients import ServiceApiError, ServiceClient

logger = logging.getLogger(__name__)


class InventoryChecker(Protocol):
    async def dynamic_max_quantity(
        self, product_id: int | str, lines: list[CartLine]
    ) -> MaxQuantity: ...

    async def check_cart_conflicts(
        self, lines: list[CartLine], new_product_id: int | str
    ) -> ConflictCheck: ...

    async def check_quantity_increase(self, lines: list[CartLine]) -> ConflictCheck: ...


def cart_items_payload(lines: list[CartLine]) -> list[dict[str, Any]]:
    return [
        {
            "id": line.id,
            "name": line.name,
            "category": line.category,
            "type": line.type.value,
            "quantity": line.quantity,
            "addons": [
                {"addon_id": a.addon_id, "name": a.name, "quantity": a.quantity}
                for a in line.addons
            ],
        }
        for line in lines
        if line.is_product
    ]


def _conflict_check(data: Any) -> ConflictCheck:
    if not isinstance(data, dict):
        return ConflictCheck()
    try:
        return _parse_conflict_check(data)
    except (TypeError, ValueError, AttributeError) as exc:
        logger.warning("Malformed inventory conflict response, allowing: %s", exc)
        return ConflictCheck()


def _parse_conflict_check(data: dict[str, Any]) -> ConflictCheck:
    return ConflictCheck(
        can_add=bool(data.get("canAdd", True)),
        conflicts=[
            InventoryConflict(
                type=c.get("type", ""),
                name=c.get("name", ""),
                needed=c.get("needed", 0),
                available=c.get("available", 0),
                conflicts_with=c.get("conflictsWith", ""),
            )
            for c in data.get("conflicts") or []
        ],
    )


class HttpInventoryChecker(ServiceClient):
    service = "products"

    def __init__(self, token: str | None = None) -> None:
        super().__init__(settings.PRODUCTS_API_URL, token)

    async def _post_or_none(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            return await self._post(path, payload)
        except (ServiceApiError, httpx.HTTPError) as exc:
            logger.warning("Inventory check %s failed, allowing: %s", path, exc)
            return None

    async def dynamic_max_quantity(
        self, product_id: int | str, lines: list[CartLine]
    ) -> MaxQuantity:
        data = await self._post_or_none(
            f"/is_products/products/{product_id}/dynamic-max-quantity",
            {"cart_items": cart_items_payload(lines)},
        )
        if not isinstance(data, dict) or data.get("maxQuantity") is None:
            return MaxQuantity(max_quantity=settings.DEFAULT_MAX_QUANTITY)
        try:
            return MaxQuantity(
                max_quantity=int(data["maxQuantity"]),
                limited_by=data.get("limitedBy"),
                product_name=data.get("productName"),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Malformed max quantity for product %s, allowing: %s", product_id, exc)
            return MaxQuantity(max_quantity=settings.DEFAULT_MAX_QUANTITY)

    async def check_cart_conflicts(
        self, lines: list[CartLine], new_product_id: int | str
    ) -> ConflictCheck:
        data = await self._post_or_none(
            "/is_products/products/check-cart-conflicts",
            {"cart_items": cart_items_payload(lines), "new_product_id": new_product_id},
        )
        return _conflict_check(data)

    async def check_quantity_increase(self, lines: list[CartLine]) -> ConflictCheck:
        data = await self._post_or_none(
            "/is_products/products/check-quantity-increase",
            {"cart_items": cart_items_payload(lines)},
        )
        return _conflict_check(data)
