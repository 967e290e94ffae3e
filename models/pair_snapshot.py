"""
Market data for one candidate pair, rebuilt on every scan.

Candles are kept newest-first, exactly as Upbit returns them, so index 0 is
the latest close everywhere in the code base.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from models.indicator_set import IndicatorSet


class Candle(BaseModel):
    market: str = ""
    timestamp: str = ""   # candle_date_time_utc
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def from_upbit(cls, raw: dict) -> "Candle":
        return cls(
            market=raw.get("market", ""),
            timestamp=str(raw.get("candle_date_time_utc", "")),
            open=float(raw.get("opening_price", 0) or 0),
            high=float(raw.get("high_price", 0) or 0),
            low=float(raw.get("low_price", 0) or 0),
            close=float(raw.get("trade_price", 0) or 0),
            volume=float(raw.get("candle_acc_trade_volume", 0) or 0),
        )


class OrderbookLevel(BaseModel):
    ask_price: float
    bid_price: float
    ask_size: float = 0.0
    bid_size: float = 0.0

    @classmethod
    def from_upbit(cls, raw: dict) -> "OrderbookLevel":
        return cls(
            ask_price=float(raw.get("ask_price", 0) or 0),
            bid_price=float(raw.get("bid_price", 0) or 0),
            ask_size=float(raw.get("ask_size", 0) or 0),
            bid_size=float(raw.get("bid_size", 0) or 0),
        )


class PairSnapshot(BaseModel):
    market: str                       # e.g. KRW-BTC
    display_name: str                 # Korean name from the market listing
    candles: List[Candle] = Field(default_factory=list)
    orderbook: List[OrderbookLevel] = Field(default_factory=list)
    current_price: float
    change_rate: float = 0.0          # signed, percent
    volume_24h: float = 0.0           # traded notional over 24h
    indicators: Optional[IndicatorSet] = None

    @property
    def closes(self) -> List[float]:
        return [c.close for c in self.candles]

    @property
    def best_bid(self) -> Optional[float]:
        return self.orderbook[0].bid_price if self.orderbook else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.orderbook[0].ask_price if self.orderbook else None

    @classmethod
    def from_upbit(cls, market: dict, candles: list, orderbook: dict, ticker: dict) -> "PairSnapshot":
        units = (orderbook or {}).get("orderbook_units", []) or []
        return cls(
            market=market.get("market", ""),
            display_name=market.get("korean_name", "") or market.get("english_name", ""),
            candles=[Candle.from_upbit(c) for c in candles or []],
            orderbook=[OrderbookLevel.from_upbit(u) for u in units],
            current_price=float(ticker.get("trade_price", 0) or 0),
            change_rate=float(ticker.get("signed_change_rate", 0) or 0) * 100,
            volume_24h=float(ticker.get("acc_trade_price_24h", 0) or 0),
        )
