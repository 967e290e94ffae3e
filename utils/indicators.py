from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from models.indicator_set import BollingerBands, IndicatorSet, Macd

# All series are ordered newest-first (index 0 = latest close), the way the
# exchange returns candles. Functions never raise on short input: they
# return None instead.


def _as_array(closes: Sequence[float]) -> Optional[np.ndarray]:
    try:
        arr = np.asarray(list(closes), dtype=float)
    except (TypeError, ValueError):
        return None
    if arr.ndim != 1:
        return None
    return arr


def rsi(closes: Sequence[float], period: int = 14) -> Optional[float]:
    """
    RSI over the latest ``period + 1`` closes (simple averages, no smoothing).
    Returns 100 when there was no loss in the window.
    """
    arr = _as_array(closes)
    if arr is None or period <= 0 or len(arr) < period + 1:
        return None
    window = arr[: period + 1]
    changes = window[:-1] - window[1:]  # newer - older
    avg_gain = float(np.sum(changes[changes > 0])) / period
    avg_loss = float(-np.sum(changes[changes < 0])) / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def sma(closes: Sequence[float], period: int) -> Optional[float]:
    arr = _as_array(closes)
    if arr is None or period <= 0 or len(arr) < period:
        return None
    return float(np.mean(arr[:period]))


def bollinger(closes: Sequence[float], period: int = 20, k: float = 2.0) -> Optional[BollingerBands]:
    """
    Bollinger Bands on the latest ``period`` closes, population std (ddof=0).
    """
    arr = _as_array(closes)
    if arr is None or period <= 0 or len(arr) < period:
        return None
    window = arr[:period]
    middle = float(np.mean(window))
    # flat window: exact zero, no float residue from the mean
    std = 0.0 if np.ptp(window) == 0 else float(np.std(window))
    upper = middle + k * std
    lower = middle - k * std
    bandwidth = (upper - lower) / middle * 100.0 if middle != 0 else 0.0
    return BollingerBands(upper=upper, middle=middle, lower=lower, bandwidth=bandwidth)


def ema(closes: Sequence[float], period: int) -> Optional[float]:
    """
    EMA seeded with the mean of the OLDEST ``period`` closes, then walked
    toward the latest close with ``ema = (price - ema) * k + ema``.

    NOTE: this seeding/iteration order is kept as-is for compatibility with the
    MACD values the oracle has always been shown. It does not match a
    conventional EMA over the latest window; see DESIGN.md.
    """
    arr = _as_array(closes)
    if arr is None or period <= 0 or len(arr) < period:
        return None
    series = arr[::-1]  # oldest-first
    k = 2.0 / (period + 1)
    value = float(np.mean(series[:period]))
    for price in series[period:]:
        value = (float(price) - value) * k + value
    return value


def macd(closes: Sequence[float]) -> Optional[Macd]:
    ema12 = ema(closes, 12)
    ema26 = ema(closes, 26)
    if ema12 is None or ema26 is None:
        return None
    return Macd(line=ema12 - ema26, ema12=ema12, ema26=ema26)


def bollinger_position(price: float, bands: Optional[BollingerBands]) -> Optional[float]:
    """Where ``price`` sits inside the bands, 0 = lower, 100 = upper."""
    if bands is None:
        return None
    width = bands.upper - bands.lower
    if width == 0:
        return 50.0
    return (price - bands.lower) / width * 100.0


def compute_indicators(closes: Sequence[float]) -> IndicatorSet:
    return IndicatorSet(
        rsi=rsi(closes, 14),
        sma_short=sma(closes, 5),
        sma_long=sma(closes, 20),
        bollinger=bollinger(closes, 20, 2.0),
        macd=macd(closes),
    )
