# controllers/order_controller.py
from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, Optional

from enums.trade_result import TradeResult
from enums.trade_status import TradeStatus
from models.decision import TradePlan
from models.trade_record import TradeOutcome
from repositories.trade_repository import TradeRepository
from services.notion_service import NotionService
from services.upbit_service import UpbitService
from utils.config import TradeSettings
from utils.exceptions import OrderNotFilledError, OrderTimeout, PositionAlreadyOpenError, TransportError
from utils.log_config import logger_manager, log_function
from utils.polling import poll_until
from utils.time_utils import to_db_datetime, utcnow

logger = logger_manager.setup_logger(__name__)

ORDER_DONE = "done"
ORDER_CANCEL = "cancel"


def calculate_profit_rate(buy_price: float, sell_price: float, fee_rate: float = 0.0005) -> float:
    """Realized return in %, fees charged on both legs."""
    if buy_price <= 0:
        return 0.0
    profit = sell_price - buy_price - buy_price * fee_rate - sell_price * fee_rate
    return profit / buy_price * 100


@dataclass
class Fill:
    order_uuid: str
    price: float
    volume: float

    @property
    def total(self) -> float:
        return self.price * self.volume


def fill_from_order(order: dict, fallback_price: float) -> Fill:
    """
    Fill price from the exchange's order view:
      - volume-weighted price of the reported trades
      - else the order's own price (limit orders only; for market buys
        'price' is the KRW notional)
      - else ``fallback_price``
    """
    volume = float(order.get("executed_volume") or 0)
    trades = order.get("trades") or []
    traded_volume = sum(float(t.get("volume") or 0) for t in trades)
    if traded_volume > 0:
        notional = sum(float(t.get("price") or 0) * float(t.get("volume") or 0) for t in trades)
        price = notional / traded_volume
        volume = volume or traded_volume
    elif order.get("ord_type") == "limit" and float(order.get("price") or 0) > 0:
        price = float(order["price"])
    else:
        price = fallback_price
    return Fill(order_uuid=str(order.get("uuid", "")), price=price, volume=volume)


class OrderController:
    """
    One trade, start to finish:
      PENDING -> limit buy -> (fill | cancel + market buy) -> BOUGHT
      -> monitor last price -> TAKE_PROFIT | STOP_LOSS -> market sell -> CLOSED
    Exceptions inside the sequence end the attempt as ERROR; the record is
    closed so at most one trade is ever open.
    """

    def __init__(
        self,
        upbit: UpbitService,
        repository: TradeRepository,
        mirror: NotionService | None = None,
        settings: TradeSettings | None = None,
        system_version: str = "",
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.upbit = upbit
        self.repository = repository
        self.mirror = mirror
        self.settings = settings or TradeSettings()
        self.system_version = system_version
        self._sleep = sleep
        self._clock = clock
        self._active_trade_id: Optional[int] = None

    # ---------- buy leg ----------

    def _wait_for_buy_fill(self, order_uuid: str) -> dict:
        """Poll until done/cancel; OrderTimeout when still open after order_timeout."""
        result = poll_until(
            fetch=lambda: self.upbit.get_order(order_uuid),
            done=lambda o: o.get("state") in (ORDER_DONE, ORDER_CANCEL),
            interval=self.settings.fill_poll_interval,
            timeout=self.settings.order_timeout,
            sleep=self._sleep,
            clock=self._clock,
        )
        if result.timed_out:
            self._warn_partial_fill(order_uuid, result.value or {})
            raise OrderTimeout(f"limit buy {order_uuid} not filled in {self.settings.order_timeout}s")
        return result.value or {}

    @staticmethod
    def _warn_partial_fill(order_uuid: str, order: dict) -> None:
        executed = float(order.get("executed_volume") or 0)
        if executed > 0:
            logger.warning(f"Limit buy {order_uuid} partly filled ({executed:.8f}) before cancel; "
                           f"the market buy still spends the full capital")

    def _cancel_limit(self, order_uuid: str) -> Optional[dict]:
        """Cancel the resting limit order. Returns the order if it filled meanwhile."""
        try:
            self.upbit.cancel_order(order_uuid)
            return None
        except TransportError as e:
            order = self.upbit.get_order(order_uuid)
            if order.get("state") == ORDER_DONE:
                logger.info(f"Limit buy {order_uuid} filled while cancelling")
                return order
            raise

    def _market_buy(self, market: str, capital: float, fallback_price: float) -> Fill:
        order = self.upbit.buy_market(market, capital)
        self._sleep(self.settings.settle_delay)
        info = self.upbit.get_order(order["uuid"])
        fill = fill_from_order(info, fallback_price)
        if fill.volume <= 0:
            raise OrderNotFilledError(f"market buy {order['uuid']} reports no executed volume")
        return fill

    def _buy(self, trade_id: int, market: str, plan: TradePlan, capital: float) -> Fill:
        volume = capital * (1 - self.settings.fee_rate) / plan.buy_price
        order = self.upbit.buy_limit(market, plan.buy_price, volume)
        self.repository.update_buy_order_sent(trade_id, order["uuid"])

        logger.info(f"⏳ Waiting for limit buy fill ({self.settings.order_timeout:g}s)...")
        try:
            info = self._wait_for_buy_fill(order["uuid"])
        except OrderTimeout as e:
            logger.warning(f"{e}; cancelling and buying at market")
            info = self._cancel_limit(order["uuid"]) or {}
        else:
            if info.get("state") == ORDER_CANCEL:
                logger.warning(f"Limit buy {order['uuid']} cancelled by the exchange; buying at market")
                self._warn_partial_fill(order["uuid"], info)

        if info.get("state") == ORDER_DONE:
            fill = fill_from_order(info, plan.buy_price)
        else:
            fill = self._market_buy(market, capital, plan.buy_price)

        self.repository.update_buy_complete(
            trade_id,
            buy_total_amount=fill.total,
            buy_unit_price=fill.price,
            buy_volume=fill.volume,
            buy_datetime=to_db_datetime(utcnow()),
            order_uuid=fill.order_uuid or None,
        )
        logger.success(f"✅ Bought {market}: {fill.volume:.8f} @ {fill.price:,.2f} KRW")
        return fill

    # ---------- monitoring ----------

    def _last_price(self, market: str) -> float:
        tickers = self.upbit.get_ticker(market)
        return float(tickers[0]["trade_price"])

    def _monitor(self, market: str, plan: TradePlan, buy_price: float) -> tuple[TradeStatus, float]:
        started = self._clock()

        def _log_pnl(price: float) -> None:
            pnl = (price - buy_price) / buy_price * 100 if buy_price else 0.0
            elapsed = (self._clock() - started) / 60
            logger.debug(f"💹 {market} {price:,.2f} KRW | PnL {pnl:+.2f}% | {elapsed:.1f} min")

        result = poll_until(
            fetch=lambda: self._last_price(market),
            done=lambda p: p >= plan.take_profit or p <= plan.stop_loss,
            interval=self.settings.monitor_interval,
            timeout=None,
            sleep=self._sleep,
            clock=self._clock,
            on_value=_log_pnl,
        )
        price = float(result.value)  # type: ignore[arg-type]
        if price >= plan.take_profit:
            logger.success(f"🎯 Take-profit reached: {price:,.2f} KRW")
            return TradeStatus.TAKE_PROFIT, price
        logger.warning(f"🚨 Stop-loss reached: {price:,.2f} KRW")
        return TradeStatus.STOP_LOSS, price

    # ---------- sell leg ----------

    def _sell(self, market: str, volume: float, trigger_price: float) -> Fill:
        order = self.upbit.sell_market(market, volume)
        self._sleep(self.settings.settle_delay)
        info = self.upbit.get_order(order["uuid"])
        if info.get("state") != ORDER_DONE:
            logger.warning("Sell not confirmed yet; re-checking once")
            self._sleep(self.settings.sell_recheck_delay)
            info = self.upbit.get_order(order["uuid"])
            if info.get("state") != ORDER_DONE:
                logger.warning(f"Sell {order['uuid']} still '{info.get('state')}'; using last known fill data")
        fill = fill_from_order(info, trigger_price)
        # the whole position was sold; price is what varies
        return Fill(order_uuid=fill.order_uuid or order["uuid"], price=fill.price, volume=volume)

    def _mirror(self, trade_id: int) -> None:
        if self.mirror is None:
            return
        try:
            record = self.repository.get_trade(trade_id)
            if record is not None:
                self.mirror.save_trade(record)
        except TransportError as e:
            logger.error(f"❌ Notion mirror failed for trade {trade_id}: {e}")
        except Exception:
            logger.exception(f"❌ Notion mirror failed for trade {trade_id}")

    # ---------- entry point ----------

    @log_function
    def execute(self, market: str, display_name: str, plan: TradePlan, capital: float) -> TradeOutcome:
        """
        Run one full trade. Never raises for trade failures: they come back as
        ``TradeOutcome(ERROR)``. Raises PositionAlreadyOpenError when another
        trade is still open.
        """
        if self._active_trade_id is not None or self.repository.count_open() > 0:
            raise PositionAlreadyOpenError(f"cannot start {market}: a trade is still open")

        trade_id: Optional[int] = None
        try:
            trade_id = self.repository.create_trade(market, display_name, plan, self.system_version)
            self._active_trade_id = trade_id

            fill = self._buy(trade_id, market, plan, capital)

            logger.info(f"👀 Monitoring {market}: TP {plan.take_profit:,.2f} / SL {plan.stop_loss:,.2f}")
            exit_status, trigger_price = self._monitor(market, plan, fill.price)
            self.repository.update_exit_triggered(trade_id, exit_status)

            sold = self._sell(market, fill.volume, trigger_price)
            profit_rate = calculate_profit_rate(fill.price, sold.price, self.settings.fee_rate)
            profit_amount = sold.total - fill.total
            self.repository.update_sell_complete(
                trade_id,
                sell_order_uuid=sold.order_uuid,
                sell_total_amount=sold.total,
                sell_unit_price=sold.price,
                sell_datetime=to_db_datetime(utcnow()),
                profit_rate=profit_rate,
                profit_amount=profit_amount,
            )
        except Exception as e:
            logger.error(f"❌ Trade on {market} failed: {e}", exc_info=True)
            if trade_id is not None:
                try:
                    self.repository.mark_failed(trade_id, "error")
                except Exception as close_err:
                    logger.error(f"❌ Could not close trade {trade_id}: {close_err}")
            return TradeOutcome.error(trade_id)
        finally:
            self._active_trade_id = None

        self._mirror(trade_id)
        logger.success(
            f"💰 Trade done {display_name}({market}): {fill.price:,.2f} -> {sold.price:,.2f} KRW, "
            f"{profit_amount:+,.0f} KRW ({profit_rate:+.2f}%)"
        )
        result = TradeResult.TAKE_PROFIT if exit_status == TradeStatus.TAKE_PROFIT else TradeResult.STOP_LOSS
        return TradeOutcome(result=result, profit_rate=profit_rate, trade_id=trade_id)
