from __future__ import annotations

from enum import Enum


class TradeResult(str, Enum):
    """How a single trade attempt ended, as seen by the circuit breaker."""

    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    ERROR = "error"


class BreakerDecision(str, Enum):
    CONTINUE = "continue"          # keep trading the selected pair
    SUSPEND = "suspend"            # loss streak hit: sleep a full cycle, then re-scan
    END_EPISODE = "end_episode"    # error or non-exit outcome: re-scan right away


class CycleOutcome(str, Enum):
    """How one pass of the outer scheduling loop ended."""

    NO_CANDIDATES = "no_candidates"    # empty scan or every detail fetch dropped
    NO_ENTRY = "no_entry"              # oracle declined or low confidence
    CYCLE_ELAPSED = "cycle_elapsed"    # episode ran for the full cycle duration
    SUSPENDED = "suspended"            # breaker tripped on consecutive stop-losses
    EPISODE_ENDED = "episode_ended"    # a trade or the oracle reply failed
    STOPPED = "stopped"                # shutdown requested mid-episode
    FAILED = "failed"                  # uncaught error in the pass, backed off
