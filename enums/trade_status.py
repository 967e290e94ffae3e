"""
Lifecycle states of a persisted trade record.

A record is created PENDING when the oracle hands over a plan, moves to
BUY_SENT once the limit buy is on the book, BOUGHT after a confirmed fill,
TAKE_PROFIT / STOP_LOSS when an exit trigger fires, and CLOSED after the
market sell has been confirmed (or the attempt failed).
"""

from __future__ import annotations

from enum import Enum


class TradeStatus(str, Enum):
    """Possible states for a trade record."""

    PENDING = "pending"
    BUY_SENT = "buy_sent"
    BOUGHT = "bought"
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    CLOSED = "closed"

    @property
    def is_open(self) -> bool:
        return self is not TradeStatus.CLOSED
