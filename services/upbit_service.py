# services/upbit_service.py
from __future__ import annotations
import hashlib
import uuid
from typing import Any, Iterable, List, Optional
from urllib.parse import urlencode

import jwt
import requests

from utils.config import UpbitSettings
from utils.exceptions import TransportError
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class UpbitService:
    """
    Thin client for the Upbit REST API.

    Public endpoints (markets, tickers, order books, candles) need no auth.
    Private endpoints (orders, balances) carry an HS256 JWT with the access key,
    a nonce and, when there are parameters, the SHA512 hash of the query string.
    Every network/HTTP failure surfaces as ``TransportError``.
    """

    def __init__(self, settings: UpbitSettings | None = None, session: requests.Session | None = None) -> None:
        self.settings = settings or UpbitSettings()
        self.base_url = self.settings.rest_url.rstrip("/")
        self.timeout = self.settings.request_timeout
        self.session = session or requests.Session()
        if not self.settings.access_key or not self.settings.secret_key:
            logger.warning("UpbitService without ACCESS/SECRET key; private endpoints will fail.")

    # -------- transport --------
    def _auth_header(self, params: Optional[dict]) -> dict:
        payload: dict[str, Any] = {
            "access_key": self.settings.access_key or "",
            "nonce": str(uuid.uuid4()),
        }
        if params:
            query_hash = hashlib.sha512(urlencode(params).encode("utf-8")).hexdigest()
            payload["query_hash"] = query_hash
            payload["query_hash_alg"] = "SHA512"
        token = jwt.encode(payload, self.settings.secret_key or "", algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    def _request(self, method: str, endpoint: str, params: Optional[dict] = None,
                 private: bool = False) -> Any:
        url = f"{self.base_url}{endpoint}"
        headers = self._auth_header(params) if private else {}
        kwargs: dict[str, Any] = {"headers": headers, "timeout": self.timeout}
        if method == "POST":
            kwargs["json"] = params or {}
        else:
            kwargs["params"] = params or {}
        try:
            r = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"Upbit {method} {endpoint} failed: {e}") from e
        if not r.ok:
            raise TransportError(f"Upbit API Error: {r.status_code} - {r.text}", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise TransportError(f"Upbit {endpoint}: invalid JSON body") from e

    # -------- quotation (public) --------
    @log_function
    def get_markets(self, quote_currency: str = "KRW") -> List[dict]:
        """All listed markets for ``quote_currency`` with market_event metadata."""
        markets = self._request("GET", "/market/all", {"isDetails": "true"})
        prefix = f"{quote_currency}-"
        return [m for m in markets if str(m.get("market", "")).startswith(prefix)]

    @log_function
    def get_ticker(self, markets: str | Iterable[str]) -> List[dict]:
        market_str = markets if isinstance(markets, str) else ",".join(markets)
        return self._request("GET", "/ticker", {"markets": market_str})

    @log_function
    def get_orderbook(self, market: str) -> dict:
        data = self._request("GET", "/orderbook", {"markets": market})
        return data[0] if data else {}

    @log_function
    def get_candles(self, market: str, unit: int = 1, count: int = 200, candle_type: str = "seconds") -> List[dict]:
        """Candles newest-first. ``candle_type`` is 'seconds' or 'minutes'."""
        if candle_type == "seconds":
            return self._request("GET", "/candles/seconds", {"market": market, "count": count})
        return self._request("GET", f"/candles/minutes/{unit}", {"market": market, "count": count})

    # -------- exchange (private) --------
    @log_function
    def get_balance(self) -> List[dict]:
        return self._request("GET", "/accounts", private=True)

    @log_function
    def get_krw_balance(self) -> float:
        accounts = self.get_balance()
        krw = next((a for a in accounts if a.get("currency") == "KRW"), None)
        return float(krw["balance"]) if krw else 0.0

    @log_function
    def buy_limit(self, market: str, price: float, volume: float) -> dict:
        logger.info(f"💰 Limit buy: {market} @ {price} KRW, volume {volume}")
        return self._request("POST", "/orders", {
            "market": market,
            "side": "bid",
            "ord_type": "limit",
            "price": str(price),
            "volume": str(volume),
        }, private=True)

    @log_function
    def buy_market(self, market: str, amount_krw: float) -> dict:
        """Market buy by notional: spends ``amount_krw`` at market."""
        logger.info(f"💰 Market buy: {market}, amount {amount_krw} KRW")
        return self._request("POST", "/orders", {
            "market": market,
            "side": "bid",
            "ord_type": "price",
            "price": str(amount_krw),
        }, private=True)

    @log_function
    def sell_market(self, market: str, volume: float) -> dict:
        logger.info(f"💰 Market sell: {market}, volume {volume}")
        return self._request("POST", "/orders", {
            "market": market,
            "side": "ask",
            "ord_type": "market",
            "volume": str(volume),
        }, private=True)

    @log_function
    def sell_limit(self, market: str, price: float, volume: float) -> dict:
        logger.info(f"💰 Limit sell: {market} @ {price} KRW, volume {volume}")
        return self._request("POST", "/orders", {
            "market": market,
            "side": "ask",
            "ord_type": "limit",
            "price": str(price),
            "volume": str(volume),
        }, private=True)

    @log_function
    def get_order(self, order_uuid: str) -> dict:
        """state: wait | watch | done | cancel"""
        return self._request("GET", "/order", {"uuid": order_uuid}, private=True)

    @log_function
    def cancel_order(self, order_uuid: str) -> dict:
        logger.info(f"Cancel order: {order_uuid}")
        return self._request("DELETE", "/order", {"uuid": order_uuid}, private=True)

    @log_function
    def get_order_chance(self, market: str) -> dict:
        return self._request("GET", "/orders/chance", {"market": market}, private=True)
