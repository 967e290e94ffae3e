"""
Typed verdicts produced by the decision oracle.

``SelectionVerdict`` is either ``NoEntry`` or ``Entry``; callers branch on the
type, never on raw oracle fields.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field


class NoEntry(BaseModel):
    reason: str = ""


class Entry(BaseModel):
    market: str
    display_name: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    expected_return: float = 0.0  # percent


SelectionVerdict = Union[NoEntry, Entry]


class TradePlan(BaseModel):
    buy_price: float
    take_profit: float
    stop_loss: float
    analysis: str = ""
    expected_hold_time: Optional[str] = None
    risk_reward_ratio: Optional[float] = None

    @property
    def is_ordered(self) -> bool:
        """take_profit > buy_price > stop_loss (expected, not enforced)."""
        return self.take_profit > self.buy_price > self.stop_loss
