"""HTTP clients for the collaborator microservices (sales, catalogs, auth)."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cashier.app.core.config import settings

logger = logging.getLogger(__name__)


class ServiceApiError(Exception):
    """Non-2xx or unreachable collaborator service."""

    def __init__(self, status_code: int, message: str, service: str = "") -> None:
        self.status_code = status_code
        self.service = service
        super().__init__(message)


class PinVerificationError(Exception):
    """The Auth service rejected a manager PIN."""


class ServiceClient:
    """Base client: bearer-token forwarding and response handling."""

    service = "service"

    def __init__(self, base_url: str, token: str | None = None, timeout: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(data, dict):
            return str(data.get("detail") or data.get("message") or data)
        return str(data)

    def _handle_response(self, resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            message = self._error_message(resp)
            logger.error("%s returned %s: %s", self.service, resp.status_code, message)
            raise ServiceApiError(resp.status_code, message, self.service)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            raise ServiceApiError(
                resp.status_code,
                f"Non-JSON response: {resp.text[:200]}",
                self.service,
            )

    async def _get(self, path: str) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}{path}", headers=self._headers())
        except httpx.TransportError as exc:
            logger.error("%s unreachable: %s", self.service, exc)
            raise ServiceApiError(503, f"{self.service} service unreachable", self.service) from exc
        return self._handle_response(resp)

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}{path}", json=payload, headers=self._headers()
                )
        except httpx.TransportError as exc:
            logger.error("%s unreachable: %s", self.service, exc)
            raise ServiceApiError(503, f"{self.service} service unreachable", self.service) from exc
        return self._handle_response(resp)


def _as_list(data: Any, *keys: str) -> list[dict[str, Any]]:
    """Catalog endpoints answer either a bare list or a wrapping object."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


class DiscountsClient(ServiceClient):
    service = "discounts"

    def __init__(self, token: str | None = None) -> None:
        super().__init__(settings.DISCOUNTS_API_URL, token)

    async def list_discounts(self) -> list[dict[str, Any]]:
        return _as_list(await self._get("/api/discounts/"), "discounts", "results")


class PromotionsClient(ServiceClient):
    service = "promotions"

    def __init__(self, token: str | None = None) -> None:
        super().__init__(settings.PROMOTIONS_API_URL, token)

    async def list_promotions(self) -> list[dict[str, Any]]:
        return _as_list(await self._get("/promotions/"), "promotions", "results")


class SalesClient(ServiceClient):
    service = "sales"

    def __init__(self, token: str | None = None) -> None:
        super().__init__(settings.SALES_API_URL, token)

    async def create_sale(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._post("/auth/sales/", payload)

    async def refund(
        self,
        order_id: int | str,
        payload: dict[str, Any],
        partial: bool = False,
        same_day: bool = False,
    ) -> dict[str, Any]:
        """Post a refund to one of the four purchase-order refund endpoints."""
        action = "partial-refund" if partial else "refund"
        if same_day:
            action = f"{action}-today"
        return await self._post(f"/auth/purchase_orders/{order_id}/{action}", payload)


class AuthClient(ServiceClient):
    service = "auth"

    def __init__(self, token: str | None = None) -> None:
        super().__init__(settings.AUTH_API_URL, token)

    async def verify_pin(self, pin: str) -> str:
        """Return the manager username the PIN belongs to."""
        if not pin or len(pin) < settings.MIN_PIN_LENGTH:
            raise PinVerificationError(
                f"Manager PIN must be at least {settings.MIN_PIN_LENGTH} digits."
            )
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/users/verify-pin",
                    json={"pin": pin},
                    headers=self._headers(),
                )
        except httpx.TransportError as exc:
            logger.error("auth unreachable: %s", exc)
            raise ServiceApiError(503, "auth service unreachable", self.service) from exc

        if 400 <= resp.status_code < 500:
            try:
                detail = resp.json().get("detail")
            except (ValueError, AttributeError):
                detail = None
            raise PinVerificationError(detail or "Invalid Manager PIN.")

        data = self._handle_response(resp)
        username = data.get("managerUsername") if isinstance(data, dict) else None
        if not username:
            raise PinVerificationError("Invalid Manager PIN.")
        return username
