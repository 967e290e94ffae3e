# orchestrators/cycle_orchestrator.py
from __future__ import annotations
import time
from typing import Callable, List, Optional

from controllers.decision_controller import DecisionOracle
from controllers.order_controller import OrderController
from controllers.risk_controller import CircuitBreaker
from controllers.scanner_controller import ScannerController
from enums.trade_result import BreakerDecision, CycleOutcome
from models.cycle_state import CycleState, RunContext
from models.decision import Entry, NoEntry
from models.pair_snapshot import PairSnapshot
from models.trade_record import TradeOutcome
from utils.config import CycleSettings
from utils.exceptions import DecisionParseError, InsufficientCandidates, ResponseFormatError, TraderError
from utils.log_config import logger_manager, log_function

logger = logger_manager.setup_logger(__name__)


class CycleOrchestrator:
    """
    Scan -> select -> trade loop.

    Outer pass: scan candidates, enrich, ask the oracle for one pair.
    Inner episode: trade the selected pair until the cycle duration runs out,
    the circuit breaker trips, a trade errors, or shutdown is requested.

    Waits between steps go through ``wait`` (RunContext.wait by default) so
    a shutdown cuts them short; a trade already in progress always finishes.
    """

    def __init__(
        self,
        scanner: ScannerController,
        oracle: DecisionOracle,
        orders: OrderController,
        ctx: RunContext,
        capital: float,
        cycle_minutes: float,
        settings: CycleSettings | None = None,
        breaker: CircuitBreaker | None = None,
        wait: Optional[Callable[[float], bool]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scanner = scanner
        self.oracle = oracle
        self.orders = orders
        self.ctx = ctx
        self.capital = capital
        self.cycle_seconds = cycle_minutes * 60
        self.settings = settings or CycleSettings()
        self.breaker = breaker or CircuitBreaker(self.settings.max_consecutive_losses)
        self._wait = wait or ctx.wait
        self._clock = clock
        self.state = CycleState(cycle_start_time=clock())

    # ---------- main loop ----------

    def run(self) -> None:
        logger.info(f"🚀 Trading loop started: capital {self.capital:,.0f} KRW, cycle {self.cycle_seconds / 60:g} min")
        while self.ctx.running:
            self.run_once()
        logger.info("🛑 Trading loop stopped.")

    def run_once(self) -> CycleOutcome:
        """One outer pass. Uncaught errors are logged and backed off here."""
        try:
            return self._pass()
        except Exception as e:
            logger.exception(f"❌ Scan cycle failed: {e}")
            self._wait(self.settings.error_backoff)
            return CycleOutcome.FAILED

    def _candidates(self) -> List[PairSnapshot]:
        markets = self.scanner.scan_pairs()
        if not markets:
            raise InsufficientCandidates("scan returned no candidate markets")
        snapshots = self.scanner.fetch_pair_details(markets)
        if not snapshots:
            raise InsufficientCandidates(f"all {len(markets)} candidate detail fetches failed")
        return snapshots

    @log_function
    def _pass(self) -> CycleOutcome:
        logger.info("🔎 Scanning markets...")
        try:
            snapshots = self._candidates()
        except InsufficientCandidates as e:
            logger.warning(f"{e}; retrying in {self.settings.empty_scan_retry:g}s")
            self._wait(self.settings.empty_scan_retry)
            return CycleOutcome.NO_CANDIDATES

        try:
            verdict = self.oracle.select_pair([self.scanner.summarize(s) for s in snapshots])
        except (ResponseFormatError, DecisionParseError) as e:
            logger.error(f"❌ Pair selection rejected: {e}")
            self._wait(self.settings.trade_error_pause)
            return CycleOutcome.EPISODE_ENDED
        if isinstance(verdict, NoEntry):
            logger.info(f"⏸️ No entry ({verdict.reason}); next scan in {self.cycle_seconds / 60:g} min")
            self._wait(self.cycle_seconds)
            return CycleOutcome.NO_ENTRY

        return self._episode(verdict)

    # ---------- episode ----------

    def _episode(self, entry: Entry) -> CycleOutcome:
        self.state.reset(self._clock())
        logger.info(f"{'=' * 20} Trading {entry.display_name} ({entry.market}) {'=' * 20}")

        while self.ctx.running and self.state.elapsed(self._clock()) < self.cycle_seconds:
            outcome = self._trade_once(entry)
            self.state, decision = self.breaker.apply(self.state, outcome.result)

            if decision is BreakerDecision.SUSPEND:
                logger.warning(f"Suspending for {self.cycle_seconds / 60:g} min, then re-scanning")
                self._wait(self.cycle_seconds)
                return CycleOutcome.SUSPENDED
            if decision is BreakerDecision.END_EPISODE:
                self._wait(self.settings.trade_error_pause)
                return CycleOutcome.EPISODE_ENDED

            self._wait(self.settings.between_trades_pause)

        if not self.ctx.running:
            return CycleOutcome.STOPPED
        logger.info(f"⏰ Cycle time over for {entry.market}; re-scanning")
        return CycleOutcome.CYCLE_ELAPSED

    def _trade_once(self, entry: Entry) -> TradeOutcome:
        """Fresh data, fresh plan, one trade. Planning failures count as an errored trade."""
        try:
            snapshot = self.scanner.refresh(entry.market, entry.display_name)
            plan = self.oracle.plan_prices(snapshot)
        except TraderError as e:
            logger.error(f"❌ Planning {entry.market} failed: {e}")
            return TradeOutcome.error()
        except Exception:
            logger.exception(f"❌ Planning {entry.market} failed")
            return TradeOutcome.error()
        return self.orders.execute(entry.market, entry.display_name, plan, self.capital)
