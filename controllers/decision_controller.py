# controllers/decision_controller.py
from __future__ import annotations
import json
from typing import List, Protocol, Type

from models.decision import Entry, NoEntry, SelectionVerdict, TradePlan
from models.pair_snapshot import PairSnapshot
from schemas.oracle_schema import PairSelectionPayload, TradePlanPayload
from services.llm_service import LlmService
from utils.config import ScanSettings, TradeSettings
from utils.exceptions import DecisionParseError, ResponseFormatError
from utils.log_config import logger_manager, log_function
from utils.payload_decoder import DecodeErrorKind, M, decode_payload

logger = logger_manager.setup_logger(__name__)


class DecisionOracle(Protocol):
    """Anything that can pick a pair and price a trade."""

    def select_pair(self, summaries: List[dict]) -> SelectionVerdict: ...

    def plan_prices(self, snapshot: PairSnapshot) -> TradePlan: ...


SELECT_SYSTEM_PROMPT = """You are an aggressive crypto scalping trader.
Analyse the given pairs and pick the ONE most likely to rise within the next 30 minutes.
Weigh RSI, MACD, Bollinger Bands, volume and the order book spread together.
If none of them is worth entering, say so with "noEntry": true.
Answer with JSON only."""

PLAN_SYSTEM_PROMPT = """You are an aggressive crypto scalping trader.
Compute a buy price, a take-profit price and a stop-loss price for a very short trade.
The exchange fee is {fee_pct}% per side; the prices you give must be profitable after fees.
The trade must complete within 30 minutes.
Answer with JSON only."""


class LlmDecisionOracle:
    """DecisionOracle over a free-text LLM: JSON prompt in, strict JSON payload out. Single shot."""

    def __init__(self, llm: LlmService, trade_settings: TradeSettings | None = None,
                 scan_settings: ScanSettings | None = None) -> None:
        self.llm = llm
        self.trade_settings = trade_settings or TradeSettings()
        self.scan_settings = scan_settings or ScanSettings()

    @staticmethod
    def _decode(reply: str, schema: Type[M]) -> M:
        decoded = decode_payload(reply, schema)
        if decoded.ok:
            return decoded.payload  # type: ignore[return-value]
        if decoded.error is DecodeErrorKind.FORMAT:
            logger.error(f"❌ Oracle reply without JSON: {reply[:300]!r}")
            raise ResponseFormatError(decoded.detail, raw=reply)
        logger.error(f"❌ Oracle payload rejected: {decoded.detail}")
        raise DecisionParseError(decoded.detail, payload=decoded.raw)

    # ---------- selection ----------

    @staticmethod
    def selection_prompt(summaries: List[dict]) -> str:
        return (
            "Analyse the following crypto pairs and pick the one most likely to rise within 30 minutes.\n\n"
            f"Pair data:\n{json.dumps(summaries, ensure_ascii=False, indent=2)}\n\n"
            "Reply with this JSON only:\n"
            "{\n"
            '  "noEntry": false,\n'
            '  "selectedPair": "KRW-XXX",\n'
            '  "koreanName": "coin name",\n'
            '  "confidence": 0.0-1.0,\n'
            '  "reason": "why this pair",\n'
            '  "expectedReturn": expected return in %\n'
            "}"
        )

    @log_function
    def select_pair(self, summaries: List[dict]) -> SelectionVerdict:
        reply = self.llm.ask(self.selection_prompt(summaries), SELECT_SYSTEM_PROMPT)
        payload = self._decode(reply, PairSelectionPayload)

        if payload.no_entry:
            logger.info(f"Oracle: no entry ({payload.reason})")
            return NoEntry(reason=payload.reason)

        by_market = {s.get("market"): s for s in summaries}
        if payload.selected_pair not in by_market:
            raise DecisionParseError(
                f"selected pair {payload.selected_pair!r} is not among the candidates",
                payload=payload.model_dump(by_alias=True),
            )

        confidence = float(payload.confidence or 0.0)
        if confidence < self.trade_settings.min_confidence:
            logger.info(f"Oracle confidence {confidence:.2f} < {self.trade_settings.min_confidence}: no entry")
            return NoEntry(reason=f"low confidence ({confidence:.2f}): {payload.reason}")

        display_name = payload.korean_name or by_market[payload.selected_pair].get("koreanName", "")
        logger.info(f"🎯 Selected {display_name}({payload.selected_pair}) confidence {confidence:.2f}")
        return Entry(
            market=payload.selected_pair,
            display_name=display_name,
            confidence=confidence,
            reason=payload.reason,
            expected_return=float(payload.expected_return or 0.0),
        )

    # ---------- price planning ----------

    def plan_prompt(self, snapshot: PairSnapshot) -> str:
        fee_pct = self.trade_settings.fee_rate * 100
        candles = [c.model_dump(exclude={"market"}) for c in snapshot.candles[: self.scan_settings.plan_candles]]
        indicators = snapshot.indicators.model_dump() if snapshot.indicators else {}
        return (
            f"Analyse {snapshot.display_name}({snapshot.market}) and give prices for a scalping trade.\n\n"
            f"Current price: {snapshot.current_price} KRW\n"
            f"Fee: {fee_pct:g}% (buy and sell each)\n"
            f"Best bid: {snapshot.best_bid} / best ask: {snapshot.best_ask}\n\n"
            f"Recent candles (newest {len(candles)}):\n{json.dumps(candles, indent=2)}\n\n"
            f"Order book:\n{json.dumps([u.model_dump() for u in snapshot.orderbook], indent=2)}\n\n"
            f"Indicators:\n{json.dumps(indicators, indent=2)}\n\n"
            "Reply with this JSON only:\n"
            "{\n"
            '  "buyPrice": buy price (KRW),\n'
            '  "takeProfit": take-profit price (KRW),\n'
            '  "stopLoss": stop-loss price (KRW),\n'
            '  "expectedHoldTime": "expected hold time",\n'
            '  "riskRewardRatio": risk/reward ratio,\n'
            '  "analysis": "short analysis"\n'
            "}"
        )

    @log_function
    def plan_prices(self, snapshot: PairSnapshot) -> TradePlan:
        system = PLAN_SYSTEM_PROMPT.format(fee_pct=f"{self.trade_settings.fee_rate * 100:g}")
        reply = self.llm.ask(self.plan_prompt(snapshot), system)
        payload = self._decode(reply, TradePlanPayload)
        plan = TradePlan(
            buy_price=payload.buy_price,
            take_profit=payload.take_profit,
            stop_loss=payload.stop_loss,
            analysis=payload.analysis,
            expected_hold_time=payload.expected_hold_time,
            risk_reward_ratio=payload.risk_reward_ratio,
        )
        logger.info(f"📐 Plan {snapshot.market}: buy {plan.buy_price}, TP {plan.take_profit}, SL {plan.stop_loss}")
        if not plan.is_ordered:
            logger.warning(f"Plan prices not ordered TP > buy > SL for {snapshot.market}; accepted as given")
        return plan
