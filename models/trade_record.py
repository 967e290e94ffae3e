"""
Represents one buy/sell round trip persisted in the ``trades`` table.

Prices are KRW per unit, amounts are KRW totals, volumes are coin units.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from enums.trade_result import TradeResult
from enums.trade_status import TradeStatus


class TradeRecord(BaseModel):
    id: int
    market: str
    display_name: str = ""
    status: TradeStatus = TradeStatus.PENDING
    system_version: str = ""
    # oracle plan
    plan_buy_price: float
    plan_take_profit: float
    plan_stop_loss: float
    # buy leg
    buy_order_uuid: Optional[str] = None
    buy_total_amount: Optional[float] = None
    buy_unit_price: Optional[float] = None
    buy_volume: Optional[float] = None
    buy_datetime: Optional[str] = None
    # sell leg
    sell_order_uuid: Optional[str] = None
    sell_total_amount: Optional[float] = None
    sell_unit_price: Optional[float] = None
    sell_datetime: Optional[str] = None
    # result
    exit_reason: Optional[str] = None
    realized_profit_rate: Optional[float] = None
    realized_profit_amount: Optional[float] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "TradeRecord":
        return cls.model_validate(dict(row))


class TradeOutcome(BaseModel):
    result: TradeResult
    profit_rate: float = 0.0
    trade_id: Optional[int] = None

    @classmethod
    def error(cls, trade_id: Optional[int] = None) -> "TradeOutcome":
        return cls(result=TradeResult.ERROR, profit_rate=0.0, trade_id=trade_id)
