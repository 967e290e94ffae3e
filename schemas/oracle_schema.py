"""
Data schema definitions for decision-oracle replies.

These pydantic models describe the JSON objects the oracle is asked to
return. Field names follow the camelCase keys used in the prompts; the
Python attributes are snake_case. Anything missing or of the wrong type is a
validation error, never a silent default.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _OraclePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class PairSelectionPayload(_OraclePayload):
    """Reply to the pair-selection prompt."""

    no_entry: bool = Field(default=False, alias="noEntry")
    selected_pair: Optional[str] = Field(default=None, alias="selectedPair")
    korean_name: Optional[str] = Field(default=None, alias="koreanName")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    reason: str = ""
    expected_return: Optional[float] = Field(default=None, alias="expectedReturn")

    @model_validator(mode="after")
    def _entry_fields_present(self) -> "PairSelectionPayload":
        if self.no_entry:
            return self
        if not self.selected_pair:
            raise ValueError("selectedPair is required unless noEntry is true")
        if self.confidence is None:
            raise ValueError("confidence is required unless noEntry is true")
        return self


class TradePlanPayload(_OraclePayload):
    """Reply to the price-analysis prompt."""

    buy_price: float = Field(alias="buyPrice", gt=0)
    take_profit: float = Field(alias="takeProfit", gt=0)
    stop_loss: float = Field(alias="stopLoss", gt=0)
    expected_hold_time: Optional[str] = Field(default=None, alias="expectedHoldTime")
    risk_reward_ratio: Optional[float] = Field(default=None, alias="riskRewardRatio")
    analysis: str = ""
