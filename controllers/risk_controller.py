# controllers/risk_controller.py
from __future__ import annotations
from dataclasses import replace
from typing import Tuple

from enums.trade_result import BreakerDecision, TradeResult
from models.cycle_state import CycleState
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


class CircuitBreaker:
    """
    Consecutive stop-loss breaker for one pair-selection episode.

    ``apply`` is a pure reducer: it returns a new CycleState and the decision,
    the input state is left untouched. No I/O besides logging.
    """

    def __init__(self, max_consecutive_losses: int = 2) -> None:
        self.max_consecutive_losses = max_consecutive_losses

    def apply(self, state: CycleState, result: TradeResult) -> Tuple[CycleState, BreakerDecision]:
        if result == TradeResult.STOP_LOSS:
            losses = state.consecutive_losses + 1
            new_state = replace(state, consecutive_losses=losses)
            if losses >= self.max_consecutive_losses:
                logger.warning(f"🛑 {losses} consecutive stop-losses: suspending this pair")
                return new_state, BreakerDecision.SUSPEND
            logger.info(f"Stop-loss streak: {losses}/{self.max_consecutive_losses}")
            return new_state, BreakerDecision.CONTINUE

        if result == TradeResult.TAKE_PROFIT:
            return replace(state, consecutive_losses=0), BreakerDecision.CONTINUE

        # error or any non-exit outcome: counter untouched, episode over
        return replace(state), BreakerDecision.END_EPISODE
