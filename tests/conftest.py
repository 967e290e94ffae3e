"""
Shared fakes for the trader tests.

Nothing here touches the network or sleeps for real: exchange, LLM and
mirror are in-memory doubles and time is a FakeClock.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from repositories.trade_repository import TradeRepository
from utils.exceptions import TransportError


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeUpbit:
    """
    Scripted exchange.
      - ``orders[uuid]`` is a list of order views; each get_order pops the
        first one until a single one is left, which then repeats
      - ``prices`` feeds the single-market ticker used while monitoring
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.markets: List[dict] = []
        self.tickers: Dict[str, dict] = {}
        self.candles: Dict[str, List[dict]] = {}
        self.orderbooks: Dict[str, dict] = {}
        self.fail_markets: set = set()
        self.orders: Dict[str, List[dict]] = {}
        self.prices: List[float] = []
        self.buy_limit_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None

    # quotation
    def get_markets(self, quote_currency: str = "KRW") -> List[dict]:
        self.calls.append(("get_markets", quote_currency))
        return list(self.markets)

    def get_ticker(self, markets) -> List[dict]:
        self.calls.append(("get_ticker", markets))
        if isinstance(markets, str):
            if markets in self.fail_markets:
                raise TransportError(f"ticker {markets} down")
            if self.prices:
                price = self.prices.pop(0) if len(self.prices) > 1 else self.prices[0]
                return [{"market": markets, "trade_price": price}]
            return [self.tickers[markets]] if markets in self.tickers else []
        return [self.tickers[m] for m in markets if m in self.tickers]

    def get_orderbook(self, market: str) -> dict:
        self.calls.append(("get_orderbook", market))
        return self.orderbooks.get(market, {"market": market, "orderbook_units": [
            {"ask_price": 1001.0, "bid_price": 999.0, "ask_size": 10.0, "bid_size": 12.0},
        ]})

    def get_candles(self, market: str, unit: int = 1, count: int = 200, candle_type: str = "seconds") -> List[dict]:
        self.calls.append(("get_candles", market, count, candle_type))
        if market in self.fail_markets:
            raise TransportError(f"candles {market} down")
        return self.candles.get(market, [])

    # exchange
    def buy_limit(self, market: str, price: float, volume: float) -> dict:
        self.calls.append(("buy_limit", market, price, volume))
        if self.buy_limit_error:
            raise self.buy_limit_error
        return {"uuid": "limit-1"}

    def buy_market(self, market: str, amount_krw: float) -> dict:
        self.calls.append(("buy_market", market, amount_krw))
        return {"uuid": "market-buy-1"}

    def sell_market(self, market: str, volume: float) -> dict:
        self.calls.append(("sell_market", market, volume))
        return {"uuid": "sell-1"}

    def cancel_order(self, order_uuid: str) -> dict:
        self.calls.append(("cancel_order", order_uuid))
        if self.cancel_error:
            raise self.cancel_error
        return {"uuid": order_uuid, "state": "wait"}

    def get_order(self, order_uuid: str) -> dict:
        self.calls.append(("get_order", order_uuid))
        views = self.orders[order_uuid]
        return views.pop(0) if len(views) > 1 else views[0]

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeLlm:
    """LlmService double: returns scripted replies, records prompts."""

    provider = "fake"

    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.prompts: List[tuple] = []

    def ask(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        self.prompts.append((prompt, system_prompt))
        return self.replies.pop(0)


class FakeMirror:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.saved: List[Any] = []
        self.error = error

    def save_trade(self, record) -> Optional[str]:
        if self.error:
            raise self.error
        self.saved.append(record)
        return f"page-{record.id}"


def make_candles(market: str, closes: List[float]) -> List[dict]:
    """Upbit-shaped candles, newest-first, one per close."""
    return [
        {
            "market": market,
            "candle_date_time_utc": f"2026-02-11T00:{i // 60:02d}:{i % 60:02d}",
            "opening_price": c,
            "high_price": c + 1,
            "low_price": c - 1,
            "trade_price": c,
            "candle_acc_trade_volume": 10.0,
        }
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upbit() -> FakeUpbit:
    return FakeUpbit()


@pytest.fixture
def repo(tmp_path) -> TradeRepository:
    return TradeRepository(db_path=str(tmp_path / "trades.db"))


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: str = "") -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = text or str(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """requests.Session double: scripted responses in call order, every call recorded."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[dict] = []

    def _next(self, **call) -> FakeResponse:
        self.calls.append(call)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        return self._next(method=method, url=url, **kwargs)

    def post(self, url: str, **kwargs) -> FakeResponse:
        return self._next(method="POST", url=url, **kwargs)
