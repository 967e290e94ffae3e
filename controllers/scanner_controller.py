# controllers/scanner_controller.py
from __future__ import annotations
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List

from models.pair_snapshot import PairSnapshot
from services.upbit_service import UpbitService
from utils.config import ScanSettings
from utils.exceptions import TransportError
from utils.indicators import bollinger_position, compute_indicators
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

# market_event.caution flags published by Upbit
CAUTION_FLAGS = (
    "PRICE_FLUCTUATIONS",
    "TRADING_VOLUME_SOARING",
    "DEPOSIT_AMOUNT_SOARING",
    "GLOBAL_PRICE_DIFFERENCES",
    "CONCENTRATION_OF_SMALL_ACCOUNTS",
)


def is_flagged(market: dict) -> bool:
    """Upbit investment warning or any caution flag set."""
    event = market.get("market_event") or {}
    if event.get("warning") is True:
        return True
    caution = event.get("caution") or {}
    return any(caution.get(flag) is True for flag in CAUTION_FLAGS)


class ScannerController:
    """
    Finds candidate pairs and builds their PairSnapshot.
      1) flagged markets (warning/caution) first
      2) fallback: top-N listing, |24h change| >= min_volatility
      3) details: candles + orderbook + ticker per pair, indicators on closes
    """

    def __init__(self, upbit: UpbitService, settings: ScanSettings | None = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        self.upbit = upbit
        self.settings = settings or ScanSettings()
        self._sleep = sleep

    @log_function
    def scan_pairs(self) -> List[dict]:
        markets = self.upbit.get_markets(self.settings.quote_currency)
        logger.info(f"🔎 {len(markets)} {self.settings.quote_currency} markets listed")

        flagged = [m for m in markets if is_flagged(m)]
        if flagged:
            logger.info(f"⚠️ Flagged markets: {len(flagged)}")
            return flagged

        top = markets[: self.settings.fallback_top_n]
        if not top:
            return []
        logger.info(f"No flagged markets; volatility fallback on the first {len(top)}")
        tickers = {t.get("market"): t for t in self.upbit.get_ticker([m["market"] for m in top])}
        volatile = []
        for m in top:
            t = tickers.get(m["market"])
            if not t:
                continue
            change = abs(float(t.get("signed_change_rate", 0) or 0) * 100)
            if change >= self.settings.min_volatility:
                volatile.append(m)
        logger.info(f"Volatile markets (>= {self.settings.min_volatility}%): {len(volatile)}")
        return volatile

    def _fetch_one(self, pool: ThreadPoolExecutor, market: dict) -> PairSnapshot:
        code = market["market"]
        s = self.settings
        f_candles = pool.submit(self.upbit.get_candles, code, s.candle_unit, s.candle_count, s.candle_type)
        f_book = pool.submit(self.upbit.get_orderbook, code)
        f_ticker = pool.submit(self.upbit.get_ticker, code)
        # join all three before raising, so no request is left in flight
        results = []
        errors = []
        for fut in (f_candles, f_book, f_ticker):
            try:
                results.append(fut.result())
            except TransportError as e:
                errors.append(e)
        if errors:
            raise errors[0]
        candles, orderbook, tickers = results
        if not tickers:
            raise TransportError(f"{code}: empty ticker")
        snapshot = PairSnapshot.from_upbit(market, candles, orderbook, tickers[0])
        snapshot.indicators = compute_indicators(snapshot.closes)
        snapshot.candles = snapshot.candles[: s.summary_candles]
        return snapshot

    @log_function
    def fetch_pair_details(self, markets: List[dict]) -> List[PairSnapshot]:
        details: List[PairSnapshot] = []
        selected = markets[: self.settings.max_detail_pairs]
        with ThreadPoolExecutor(max_workers=3) as pool:
            for market in selected:
                try:
                    details.append(self._fetch_one(pool, market))
                except TransportError as e:
                    logger.error(f"❌ {market.get('market')} detail fetch failed: {e}")
                self._sleep(self.settings.request_pacing)
        logger.info(f"Pair details ready: {len(details)}/{len(selected)}")
        return details

    @log_function
    def refresh(self, market: str, display_name: str = "") -> PairSnapshot:
        """Fresh snapshot for one pair. TransportError propagates."""
        with ThreadPoolExecutor(max_workers=3) as pool:
            return self._fetch_one(pool, {"market": market, "korean_name": display_name})

    @staticmethod
    def summarize(snapshot: PairSnapshot) -> dict:
        """Compact view of one pair used as oracle input."""
        ind = snapshot.indicators
        position = bollinger_position(snapshot.current_price, ind.bollinger) if ind else None
        return {
            "market": snapshot.market,
            "koreanName": snapshot.display_name,
            "currentPrice": snapshot.current_price,
            "changeRate": round(snapshot.change_rate, 2),
            "volume24h": round(snapshot.volume_24h),
            "rsi": round(ind.rsi, 2) if ind and ind.rsi is not None else None,
            "macd": round(ind.macd.line, 4) if ind and ind.macd else None,
            "bollingerPosition": round(position) if position is not None else None,
        }
