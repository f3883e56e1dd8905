"""Unit tests for the collaborator HTTP clients and the inventory adapter."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx
import pytest

from cashier.app.core.config import settings
from cashier.app.schemas.cart import CartLine, LineType
from cashier.app.services.clients import (
    AuthClient,
    DiscountsClient,
    PinVerificationError,
    SalesClient,
    ServiceApiError,
)
from cashier.app.services.inventory import HttpInventoryChecker, cart_items_payload


# ─── Helpers ────────────────────────────────────────────────────────────────


def _mock_response(status_code: int, json_data: object, method: str = "POST") -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json=json_data,
        request=httpx.Request(method, "https://test.example.com"),
    )


def _lines() -> list[CartLine]:
    return [
        CartLine(id=1, name="Latte", unit_price=Decimal("100"), quantity=2, category="Coffee"),
        CartLine(id=90, name="Mug", unit_price=Decimal("250"), type=LineType.MERCHANDISE),
    ]


# ─── Tests ──────────────────────────────────────────────────────────────────


class TestSalesClient:
    def test_create_sale_forwards_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        captured: dict = {}

        async def _mock_post(self: httpx.AsyncClient, url: str, **kwargs: object) -> httpx.Response:
            captured["url"] = url
            captured.update(kwargs)
            return _mock_response(201, {"id": 12})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

        result = asyncio.run(SalesClient("tok").create_sale({"cartItems": []}))
        assert result == {"id": 12}
        assert captured["url"] == f"{settings.SALES_API_URL}/auth/sales/"
        assert captured["headers"]["Authorization"] == "Bearer tok"  # type: ignore[index]
        assert captured["json"] == {"cartItems": []}

    @pytest.mark.parametrize(
        ("partial", "same_day", "suffix"),
        [
            (False, False, "refund"),
            (True, False, "partial-refund"),
            (False, True, "refund-today"),
            (True, True, "partial-refund-today"),
        ],
    )
    def test_refund_endpoints(
        self, monkeypatch: pytest.MonkeyPatch, partial: bool, same_day: bool, suffix: str
    ) -> None:
        urls: list[str] = []

        async def _mock_post(self: httpx.AsyncClient, url: str, **kwargs: object) -> httpx.Response:
            urls.append(url)
            return _mock_response(200, {"ok": True})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        asyncio.run(SalesClient("tok").refund(42, {}, partial=partial, same_day=same_day))
        assert urls == [f"{settings.SALES_API_URL}/auth/purchase_orders/42/{suffix}"]

    def test_error_detail_raised(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            return _mock_response(400, {"detail": "Insufficient stock for Latte"})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        with pytest.raises(ServiceApiError, match="Insufficient stock") as exc:
            asyncio.run(SalesClient("tok").create_sale({}))
        assert exc.value.status_code == 400
        assert exc.value.service == "sales"

    def test_unreachable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            raise httpx.ConnectError("refused")

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        with pytest.raises(ServiceApiError) as exc:
            asyncio.run(SalesClient().create_sale({}))
        assert exc.value.status_code == 503


class TestCatalogClients:
    def test_discount_list_unwrapped(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_get(*args: object, **kwargs: object) -> httpx.Response:
            return _mock_response(200, {"discounts": [{"id": 1}]}, method="GET")

        monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get)
        assert asyncio.run(DiscountsClient("tok").list_discounts()) == [{"id": 1}]


class TestAuthClient:
    def test_verify_pin(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            assert kwargs["json"] == {"pin": "1234"}
            return _mock_response(200, {"managerUsername": "ana"})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        assert asyncio.run(AuthClient("tok").verify_pin("1234")) == "ana"

    def test_rejected_pin_uses_detail(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            return _mock_response(401, {"detail": "PIN does not belong to a manager"})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        with pytest.raises(PinVerificationError, match="does not belong"):
            asyncio.run(AuthClient("tok").verify_pin("9999"))

    def test_rejected_pin_default_message(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            return _mock_response(403, {})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        with pytest.raises(PinVerificationError, match="Invalid Manager PIN"):
            asyncio.run(AuthClient("tok").verify_pin("9999"))

    def test_short_pin_never_sent(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            raise AssertionError("should not be called")

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        with pytest.raises(PinVerificationError, match="at least"):
            asyncio.run(AuthClient("tok").verify_pin("12"))


class TestHttpInventoryChecker:
    def test_payload_excludes_merchandise(self) -> None:
        payload = cart_items_payload(_lines())
        assert [item["name"] for item in payload] == ["Latte"]
        assert payload[0]["quantity"] == 2

    def test_max_quantity(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(self: httpx.AsyncClient, url: str, **kwargs: object) -> httpx.Response:
            assert url.endswith("/is_products/products/1/dynamic-max-quantity")
            return _mock_response(200, {"maxQuantity": 3, "limitedBy": "Milk", "productName": "Latte"})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        result = asyncio.run(HttpInventoryChecker("tok").dynamic_max_quantity(1, _lines()))
        assert result.max_quantity == 3
        assert result.limited_by == "Milk"

    def test_degrades_to_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            return _mock_response(500, {"detail": "boom"})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        checker = HttpInventoryChecker("tok")
        limit = asyncio.run(checker.dynamic_max_quantity(1, _lines()))
        conflicts = asyncio.run(checker.check_cart_conflicts(_lines(), 1))
        increase = asyncio.run(checker.check_quantity_increase(_lines()))
        assert limit.max_quantity == settings.DEFAULT_MAX_QUANTITY
        assert conflicts.can_add and conflicts.conflicts == []
        assert increase.can_add and increase.conflicts == []

    def test_malformed_bodies_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(self: httpx.AsyncClient, url: str, **kwargs: object) -> httpx.Response:
            if url.endswith("dynamic-max-quantity"):
                return _mock_response(200, {"maxQuantity": "unlimited"})
            return _mock_response(200, {"canAdd": False, "conflicts": ["Milk"]})

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        checker = HttpInventoryChecker("tok")
        limit = asyncio.run(checker.dynamic_max_quantity(1, _lines()))
        conflicts = asyncio.run(checker.check_cart_conflicts(_lines(), 1))
        increase = asyncio.run(checker.check_quantity_increase(_lines()))
        assert limit.max_quantity == settings.DEFAULT_MAX_QUANTITY
        assert conflicts.can_add and conflicts.conflicts == []
        assert increase.can_add and increase.conflicts == []

    def test_conflicts_parsed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        async def _mock_post(*args: object, **kwargs: object) -> httpx.Response:
            return _mock_response(
                200,
                {
                    "canAdd": False,
                    "conflicts": [
                        {"type": "ingredient", "name": "Milk", "needed": 3, "available": 1, "conflictsWith": "Latte"}
                    ],
                },
            )

        monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
        check = asyncio.run(HttpInventoryChecker("tok").check_cart_conflicts(_lines(), 2))
        assert not check.can_add
        assert check.conflicts[0].conflicts_with == "Latte"
        assert "INGREDIENT: Milk needs 3" in check.conflicts[0].describe()
