# repositories/trade_repository.py
from __future__ import annotations
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Optional

from enums.trade_status import TradeStatus
from models.decision import TradePlan
from models.trade_record import TradeRecord
from utils.exceptions import StoreInitError
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)

DB_PATH = os.getenv("DB_PATH", str(Path(__file__).resolve().parents[1] / "data" / "trades.db"))

# status -> statuses it may be entered from
_ALLOWED_FROM: dict[TradeStatus, tuple[TradeStatus, ...]] = {
    TradeStatus.BUY_SENT: (TradeStatus.PENDING,),
    TradeStatus.BOUGHT: (TradeStatus.BUY_SENT,),
    TradeStatus.TAKE_PROFIT: (TradeStatus.BOUGHT,),
    TradeStatus.STOP_LOSS: (TradeStatus.BOUGHT,),
    TradeStatus.CLOSED: (TradeStatus.TAKE_PROFIT, TradeStatus.STOP_LOSS),
}


class TradeRepository:
    """
    Persistence of trade round trips (ONE row per trade).
    - Prices in KRW per unit, totals in KRW.
    - Each call opens its own connection and commits immediately; no
      transaction spans two lifecycle transitions.
    - Rows are never deleted here.
    """
    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = str(Path(db_path or DB_PATH).expanduser())
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._ensure_table()
        except (OSError, sqlite3.Error) as e:
            raise StoreInitError(f"Cannot open trade store at {self.db_path}: {e}") from e
        logger.info(f"Trade store ready: {self.db_path}")

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_table(self) -> None:
        with self._conn() as c:
            c.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                market          TEXT NOT NULL,
                display_name    TEXT,
                status          TEXT NOT NULL,
                system_version  TEXT,
                -- oracle plan
                plan_buy_price    REAL,
                plan_take_profit  REAL,
                plan_stop_loss    REAL,
                -- buy leg
                buy_order_uuid    TEXT,
                buy_total_amount  REAL,
                buy_unit_price    REAL,
                buy_volume        REAL,
                buy_datetime      TEXT,
                -- sell leg
                sell_order_uuid   TEXT,
                sell_total_amount REAL,
                sell_unit_price   REAL,
                sell_datetime     TEXT,
                -- result
                exit_reason            TEXT,
                realized_profit_rate   REAL,
                realized_profit_amount REAL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
            """)
            c.commit()

    def _set(self, trade_id: int, status: TradeStatus, fields: dict[str, Any]) -> None:
        allowed = _ALLOWED_FROM[status]
        assignments = ", ".join(["status = ?"] + [f"{k} = ?" for k in fields])
        placeholders = ", ".join("?" for _ in allowed)
        with self._conn() as c:
            cur = c.execute(
                f"UPDATE trades SET {assignments} WHERE id = ? AND status IN ({placeholders})",
                (status.value, *fields.values(), trade_id, *(s.value for s in allowed)),
            )
            c.commit()
            if cur.rowcount == 0:
                raise ValueError(
                    f"trade {trade_id}: cannot move to {status.value} "
                    f"(expected current status in {[s.value for s in allowed]})"
                )

    # -------------------- LIFECYCLE --------------------

    @log_function
    def create_trade(self, market: str, display_name: str, plan: TradePlan, system_version: str = "") -> int:
        """New PENDING row with the oracle's plan. Returns the trade id."""
        with self._conn() as c:
            cur = c.execute("""
                INSERT INTO trades (
                    market, display_name, status, system_version,
                    plan_buy_price, plan_take_profit, plan_stop_loss
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                market, display_name, TradeStatus.PENDING.value, system_version,
                plan.buy_price, plan.take_profit, plan.stop_loss,
            ))
            c.commit()
            trade_id = int(cur.lastrowid)
        logger.info(f"Trade record created: ID {trade_id} ({market})")
        return trade_id

    @log_function
    def update_buy_order_sent(self, trade_id: int, order_uuid: str) -> None:
        self._set(trade_id, TradeStatus.BUY_SENT, {"buy_order_uuid": order_uuid})
        logger.info(f"Trade {trade_id}: buy order sent")

    @log_function
    def update_buy_complete(self, trade_id: int, buy_total_amount: float, buy_unit_price: float,
                            buy_volume: float, buy_datetime: str, order_uuid: Optional[str] = None) -> None:
        fields: dict[str, Any] = {
            "buy_total_amount": buy_total_amount,
            "buy_unit_price": buy_unit_price,
            "buy_volume": buy_volume,
            "buy_datetime": buy_datetime,
        }
        if order_uuid:
            fields["buy_order_uuid"] = order_uuid
        self._set(trade_id, TradeStatus.BOUGHT, fields)
        logger.info(f"Trade {trade_id}: bought ({buy_unit_price} KRW)")

    @log_function
    def update_exit_triggered(self, trade_id: int, status: TradeStatus) -> None:
        if status not in (TradeStatus.TAKE_PROFIT, TradeStatus.STOP_LOSS):
            raise ValueError(f"not an exit status: {status}")
        self._set(trade_id, status, {"exit_reason": status.value})

    @log_function
    def update_sell_complete(self, trade_id: int, sell_order_uuid: str, sell_total_amount: float,
                             sell_unit_price: float, sell_datetime: str,
                             profit_rate: float, profit_amount: float) -> None:
        self._set(trade_id, TradeStatus.CLOSED, {
            "sell_order_uuid": sell_order_uuid,
            "sell_total_amount": sell_total_amount,
            "sell_unit_price": sell_unit_price,
            "sell_datetime": sell_datetime,
            "realized_profit_rate": profit_rate,
            "realized_profit_amount": profit_amount,
        })
        logger.success(f"Trade {trade_id}: sold (profit rate: {profit_rate:.2f}%)")

    @log_function
    def mark_failed(self, trade_id: int, reason: str = "error") -> None:
        """Close an attempt that broke down mid-way, whatever its status."""
        with self._conn() as c:
            c.execute("""
                UPDATE trades SET status = ?, exit_reason = ?
                 WHERE id = ? AND status != ?
            """, (TradeStatus.CLOSED.value, reason, trade_id, TradeStatus.CLOSED.value))
            c.commit()
        logger.warning(f"Trade {trade_id}: closed as failed ({reason})")

    # -------------------- QUERIES --------------------

    def get_trade(self, trade_id: int) -> Optional[TradeRecord]:
        with self._conn() as c:
            row = c.execute("SELECT * FROM trades WHERE id = ?", (trade_id,)).fetchone()
            return TradeRecord.from_row(dict(row)) if row else None

    def get_recent_trades(self, limit: int = 10) -> list[TradeRecord]:
        with self._conn() as c:
            rows = c.execute("SELECT * FROM trades ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return [TradeRecord.from_row(dict(r)) for r in rows]

    def count_open(self) -> int:
        with self._conn() as c:
            row = c.execute("SELECT COUNT(*) FROM trades WHERE status != ?", (TradeStatus.CLOSED.value,)).fetchone()
            return int(row[0])

    def summary(self) -> dict[str, Any]:
        """
        Closed trades with a realized result: count, wins, win rate,
        total KRW profit and mean profit rate.
        """
        with self._conn() as c:
            rows: Iterable[sqlite3.Row] = c.execute("""
                SELECT realized_profit_rate, realized_profit_amount
                  FROM trades
                 WHERE status = ? AND realized_profit_rate IS NOT NULL
            """, (TradeStatus.CLOSED.value,)).fetchall()
            closed = 0
            wins = 0
            total_profit = 0.0
            sum_rate = 0.0
            for r in rows:
                closed += 1
                rate = float(r[0] or 0.0)
                sum_rate += rate
                total_profit += float(r[1] or 0.0)
                if rate > 0:
                    wins += 1
            return {
                "closed_trades": closed,
                "wins": wins,
                "win_rate": (wins / closed) if closed else 0.0,
                "profit_total": total_profit,
                "avg_profit_rate": (sum_rate / closed) if closed else 0.0,
            }
