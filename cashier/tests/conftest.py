"""Shared test fixtures.

Collaborator services are replaced by in-memory fakes so tests never leave
the process; HTTP client tests patch ``httpx.AsyncClient`` directly.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient

from cashier.app.api.deps import SessionRegistry, get_refund_service, get_registry
from cashier.app.main import app
from cashier.app.schemas.cart import CartLine, ConflictCheck, LineType, MaxQuantity, ProductIn
from cashier.app.schemas.pricing import (
    ApplicationScope,
    Discount,
    Promotion,
    PromotionType,
    ValueType,
)
from cashier.app.services.cart import Cart
from cashier.app.services.checkout import CashierSession
from cashier.app.services.clients import PinVerificationError
from cashier.app.services.refunds import RefundService


# ─── Fakes ───────────────────────────────────────────────────────────────────


class FakeInventory:
    """Inventory checker with configurable answers and a call log."""

    def __init__(self, max_quantity: int = 999, limited_by: str | None = None) -> None:
        self.max_quantity = max_quantity
        self.limited_by = limited_by
        self.conflicts = ConflictCheck()
        self.increase = ConflictCheck()
        self.calls: list[str] = []

    async def dynamic_max_quantity(self, product_id: int | str, lines: list[CartLine]) -> MaxQuantity:
        self.calls.append("max")
        return MaxQuantity(max_quantity=self.max_quantity, limited_by=self.limited_by)

    async def check_cart_conflicts(self, lines: list[CartLine], new_product_id: int | str) -> ConflictCheck:
        self.calls.append("conflicts")
        return self.conflicts

    async def check_quantity_increase(self, lines: list[CartLine]) -> ConflictCheck:
        self.calls.append("increase")
        return self.increase


class FakeSales:
    def __init__(self, fail: Exception | None = None) -> None:
        self.fail = fail
        self.sales: list[dict[str, Any]] = []
        self.refunds: list[tuple[Any, dict[str, Any], bool, bool]] = []

    async def create_sale(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.fail is not None:
            raise self.fail
        self.sales.append(payload)
        return {"id": len(self.sales), "status": "completed"}

    async def refund(
        self, order_id: Any, payload: dict[str, Any], partial: bool = False, same_day: bool = False
    ) -> dict[str, Any]:
        self.refunds.append((order_id, payload, partial, same_day))
        return {"message": "Refund processed"}


class FakeAuth:
    def __init__(self, manager: str = "manager1", valid_pin: str = "1234") -> None:
        self.manager = manager
        self.valid_pin = valid_pin
        self.calls = 0

    async def verify_pin(self, pin: str) -> str:
        self.calls += 1
        if pin != self.valid_pin:
            raise PinVerificationError("Invalid Manager PIN.")
        return self.manager


class FakeCatalog:
    def __init__(self, discounts: list[dict[str, Any]] | None = None, promotions: list[dict[str, Any]] | None = None) -> None:
        self.discounts = discounts or []
        self.promotions = promotions or []

    async def list_discounts(self) -> list[dict[str, Any]]:
        return self.discounts

    async def list_promotions(self) -> list[dict[str, Any]]:
        return self.promotions


# ─── Catalog fixtures ────────────────────────────────────────────────────────


def product(
    name: str = "Latte",
    price: str = "100",
    category: str = "Coffee",
    product_id: int | str = 1,
    **kwargs: Any,
) -> ProductIn:
    return ProductIn(id=product_id, name=name, unit_price=Decimal(price), category=category, **kwargs)


def merchandise(name: str = "Mug", price: str = "250", stock: int = 2, product_id: int = 90) -> ProductIn:
    return ProductIn(
        id=product_id, name=name, unit_price=Decimal(price), type=LineType.MERCHANDISE, stock=stock
    )


@pytest.fixture()
def latte_bogo() -> Promotion:
    return Promotion(
        id="p1",
        name="Latte 2+1",
        promotion_type=PromotionType.BOGO,
        scope_names=["Latte"],
        buy_quantity=2,
        get_quantity=1,
        discount_value=Decimal("100"),
        discount_value_type=ValueType.PERCENTAGE,
    )


@pytest.fixture()
def ten_percent() -> Discount:
    return Discount(
        id="d1",
        name="Senior 10%",
        type=ValueType.PERCENTAGE,
        value=Decimal("10"),
        application_scope=ApplicationScope.ALL,
    )


@pytest.fixture()
def twenty_percent() -> Discount:
    return Discount(
        id="d2",
        name="Staff 20%",
        type=ValueType.PERCENTAGE,
        value=Decimal("20"),
        application_scope=ApplicationScope.ALL,
    )


@pytest.fixture()
def cart() -> Cart:
    return Cart()


@pytest.fixture()
def inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture()
def sales() -> FakeSales:
    return FakeSales()


@pytest.fixture()
def auth_client() -> FakeAuth:
    return FakeAuth()


@pytest.fixture()
def raw_catalog() -> FakeCatalog:
    return FakeCatalog(
        discounts=[
            {
                "id": 7,
                "name": "Staff 20%",
                "type": "percentage",
                "discount": "20%",
                "status": "active",
                "application_type": "all_products",
                "minSpend": 0,
            }
        ],
        promotions=[
            {
                "id": 3,
                "name": "Latte 2+1",
                "type": "BOGO (2+1)",
                "value": "100% off",
                "products": "Latte",
                "status": "active",
            }
        ],
    )


@pytest.fixture()
def session(
    inventory: FakeInventory, sales: FakeSales, auth_client: FakeAuth, raw_catalog: FakeCatalog
) -> CashierSession:
    return CashierSession(
        token="test-token",
        inventory=inventory,
        sales=sales,  # type: ignore[arg-type]
        auth=auth_client,  # type: ignore[arg-type]
        discounts_client=raw_catalog,  # type: ignore[arg-type]
        promotions_client=raw_catalog,  # type: ignore[arg-type]
    )


# ─── API client ──────────────────────────────────────────────────────────────


@pytest.fixture()
def client(
    inventory: FakeInventory, sales: FakeSales, auth_client: FakeAuth, raw_catalog: FakeCatalog
) -> Generator[TestClient, None, None]:
    registry = SessionRegistry(
        factory=lambda token: CashierSession(
            token=token,
            inventory=inventory,
            sales=sales,  # type: ignore[arg-type]
            auth=auth_client,  # type: ignore[arg-type]
            discounts_client=raw_catalog,  # type: ignore[arg-type]
            promotions_client=raw_catalog,  # type: ignore[arg-type]
        )
    )
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_refund_service] = lambda: RefundService(sales, auth_client)  # type: ignore[arg-type]
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth(token: str = "test-token") -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
