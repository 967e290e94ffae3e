"""
Technical indicator values derived from a pair's recent closes.

Every field is optional: a ``None`` means the candle history was too short
for that indicator.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class BollingerBands(BaseModel):
    upper: float
    middle: float
    lower: float
    bandwidth: float  # (upper - lower) / middle * 100


class Macd(BaseModel):
    line: float
    ema12: float
    ema26: float


class IndicatorSet(BaseModel):
    rsi: Optional[float] = None
    sma_short: Optional[float] = None   # SMA(5)
    sma_long: Optional[float] = None    # SMA(20)
    bollinger: Optional[BollingerBands] = None
    macd: Optional[Macd] = None
