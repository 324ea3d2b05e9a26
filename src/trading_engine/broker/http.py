"""HttpBroker — generic JSON REST broker adapter over httpx.

Endpoints (relative to ``base_url``):
    POST   /orders               -> {"orderId": "..."}
    PUT    /orders/{orderId}
    DELETE /orders/{orderId}
    GET    /orders/{orderId}     -> {"orderStatus": "...", "price": ..., "filledQty": ...}
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx
import structlog

from trading_engine.broker.base import map_broker_status
from trading_engine.errors import BrokerCommunicationFailure, BrokerRejected
from trading_engine.models import BrokerOrderStatus, Order

log = structlog.get_logger("http_broker")


class HttpBroker:
    """Async client for a broker's order REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout_s: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout_s = timeout_s
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.access_token:
                headers["access-token"] = self.access_token
            self._http = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers=headers,
                transport=self._transport,
            )
        return self._http

    async def close(self) -> None:
        if self._http and not self._http.is_closed:
            await self._http.aclose()

    async def _request(self, method: str, path: str, payload: dict | None = None) -> Any:
        http = await self._get_http()
        try:
            resp = await http.request(method, f"{self.base_url}{path}", json=payload)
        except httpx.TransportError as exc:
            raise BrokerCommunicationFailure(f"{method} {path}: {exc}") from exc

        if resp.status_code >= 500:
            raise BrokerCommunicationFailure(f"{method} {path}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise BrokerRejected(_error_message(resp))
        if not resp.content:
            return None
        return resp.json()

    @staticmethod
    def _order_path(order: Order) -> str:
        return f"/orders/{order.broker_order_id or order.id}"

    async def place_order(self, order: Order) -> str:
        data = await self._request("POST", "/orders", {
            "correlationId": order.id,
            "transactionType": order.side,
            "orderType": order.order_type,
            "validity": order.validity,
            "securityId": order.symbol,
            "quantity": str(order.quantity),
            "price": str(order.price or 0),
        })
        broker_order_id = (data or {}).get("orderId")
        if not broker_order_id:
            raise BrokerRejected("Broker response did not include an orderId")
        log.info("broker_order_placed", order_id=order.id, broker_order_id=broker_order_id)
        return str(broker_order_id)

    async def cancel_order(self, order: Order) -> None:
        await self._request("DELETE", self._order_path(order))

    async def modify_order(
        self,
        order: Order,
        quantity: Decimal | None = None,
        price: Decimal | None = None,
    ) -> None:
        await self._request("PUT", self._order_path(order), {
            "quantity": str(quantity if quantity is not None else order.quantity),
            "price": str(price if price is not None else (order.price or 0)),
            "orderType": order.order_type,
            "validity": order.validity,
        })

    async def order_status(self, order: Order) -> BrokerOrderStatus | None:
        data = await self._request("GET", self._order_path(order))
        if not data:
            return None
        return BrokerOrderStatus(
            status=map_broker_status(data.get("orderStatus")),
            fill_price=_to_decimal(data.get("price")),
            fill_quantity=_to_decimal(data.get("filledQty")),
        )


def _to_decimal(value: Any) -> Decimal | None:
    if value in (None, ""):
        return None
    dec = Decimal(str(value))
    return dec if dec > 0 else None


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text}"
    if isinstance(body, dict):
        for key in ("errorMessage", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"
