"""Async REST client for the Aster perpetual futures venue.

Signed endpoints follow the Binance futures convention: parameters go in
the query string together with ``timestamp`` and ``recvWindow``, signed
with HMAC-SHA256 over that query string, and the key travels in the
``X-MBX-APIKEY`` header. One client (one connection pool) serves every
account; credentials are passed per call.
"""

import hashlib
import hmac
import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)


class AsterAPIError(Exception):
    """The venue rejected a request or returned something unusable."""

    def __init__(self, message: str, status_code: int | None = None, code: int | None = None):
        self.status_code = status_code
        self.code = code
        super().__init__(message)


def _ts_ms() -> int:
    return int(time.time() * 1000)


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sign_query(params: dict[str, Any], api_secret: str) -> str:
    """Return ``query&signature=...`` for the given params."""
    query = urlencode([(k, _encode_value(v)) for k, v in params.items() if v is not None])
    signature = hmac.new(api_secret.encode(), query.encode(), hashlib.sha256).hexdigest()
    return f"{query}&signature={signature}"


class AsterClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        recv_window: int = 5000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.recv_window = recv_window
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
    ) -> Any:
        params = dict(params or {})
        headers = {}
        if api_secret:
            params.setdefault("recvWindow", self.recv_window)
            params["timestamp"] = _ts_ms()
            url = f"{path}?{sign_query(params, api_secret)}"
        else:
            query = urlencode([(k, _encode_value(v)) for k, v in params.items() if v is not None])
            url = f"{path}?{query}" if query else path
        if api_key:
            headers["X-MBX-APIKEY"] = api_key

        try:
            resp = await self._client.request(method, url, headers=headers)
        except httpx.HTTPError as e:
            raise AsterAPIError(f"{method} {path} failed: {e}") from e

        if resp.status_code >= 400:
            try:
                payload = resp.json()
                msg = payload.get("msg") or resp.text[:200]
                code = payload.get("code")
            except ValueError:
                msg, code = resp.text[:200] or f"HTTP {resp.status_code}", None
            raise AsterAPIError(msg, status_code=resp.status_code, code=code)

        if not resp.content:
            return {}
        return resp.json()

    # --- signed ---

    async def new_order(self, api_key: str, api_secret: str, params: dict[str, Any]) -> dict:
        return await self._request("POST", "/fapi/v1/order", params, api_key, api_secret)

    async def account(self, api_key: str, api_secret: str) -> dict:
        return await self._request("GET", "/fapi/v4/account", None, api_key, api_secret)

    async def open_orders(self, api_key: str, api_secret: str, symbol: str) -> list[dict]:
        return await self._request(
            "GET", "/fapi/v1/openOrders", {"symbol": symbol.upper()}, api_key, api_secret
        )

    async def cancel_all_open_orders(self, api_key: str, api_secret: str, symbol: str) -> dict:
        return await self._request(
            "DELETE", "/fapi/v1/allOpenOrders", {"symbol": symbol.upper()}, api_key, api_secret
        )

    # --- public ---

    async def ticker_prices(self) -> dict[str, float]:
        """Last trade price for every venue symbol."""
        payload = await self._request("GET", "/fapi/v1/ticker/price")
        if isinstance(payload, dict):
            payload = [payload]
        prices = {}
        for item in payload:
            try:
                prices[str(item["symbol"]).upper()] = float(item["price"])
            except (KeyError, TypeError, ValueError):
                continue
        return prices
