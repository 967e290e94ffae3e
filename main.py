# main.py
from __future__ import annotations
import argparse
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv

# .env before anything reads the environment (logger level, keys)
load_dotenv()

from controllers.decision_controller import LlmDecisionOracle
from controllers.order_controller import OrderController
from controllers.risk_controller import CircuitBreaker
from controllers.scanner_controller import ScannerController
from models.cycle_state import RunContext
from orchestrators.cycle_orchestrator import CycleOrchestrator
from repositories.trade_repository import TradeRepository
from services.llm_service import build_llm_service
from services.notion_service import NotionService, WeeklyMirrorCache
from services.upbit_service import UpbitService
from utils.config import Settings, load_settings
from utils.exceptions import StoreInitError
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent
STREAMLIT_APP = os.getenv("STREAMLIT_APP", str(PROJECT_ROOT / "streamlit_app" / "dashboard.py"))
STREAMLIT_PORT = os.getenv("STREAMLIT_PORT", "8501")


def parse_args(argv: Optional[Sequence[str]], settings: Settings) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upbit scalping trader")
    parser.add_argument("capital", nargs="?", type=float, default=settings.default_capital,
                        help=f"KRW allocated per trade (default {settings.default_capital:,.0f})")
    parser.add_argument("cycle_minutes", nargs="?", type=float, default=settings.default_cycle_minutes,
                        help=f"minutes per pair before re-scanning (default {settings.default_cycle_minutes:g})")
    parser.add_argument("--dashboard", action="store_true", help="also launch the Streamlit dashboard")
    args = parser.parse_args(argv)
    if args.capital <= 0 or args.cycle_minutes <= 0:
        parser.error("capital and cycle_minutes must be positive")
    return args


def build_orchestrator(settings: Settings, ctx: RunContext, capital: float, cycle_minutes: float) -> CycleOrchestrator:
    """Wire collaborators once for the whole process. StoreInitError propagates."""
    repository = TradeRepository(settings.db.path)
    mirror = NotionService(settings.notion, cache=WeeklyMirrorCache())
    upbit = UpbitService(settings.upbit)
    scanner = ScannerController(upbit, settings.scan)
    oracle = LlmDecisionOracle(build_llm_service(settings.llm), settings.trade, settings.scan)
    orders = OrderController(upbit, repository, mirror, settings.trade, system_version=settings.version)
    return CycleOrchestrator(
        scanner, oracle, orders, ctx,
        capital=capital,
        cycle_minutes=cycle_minutes,
        settings=settings.cycle,
        breaker=CircuitBreaker(settings.cycle.max_consecutive_losses),
    )


def start_streamlit_process(db_path: str) -> subprocess.Popen:
    """Launch the dashboard as a separate process."""
    app_path = Path(STREAMLIT_APP)
    if not app_path.exists():
        logger.error(f"Streamlit app not found: {app_path}")
    cmd = [
        sys.executable, "-m", "streamlit", "run", str(app_path),
        "--server.headless=true",
        f"--server.port={STREAMLIT_PORT}",
    ]
    logger.info(f"Launching Streamlit: {' '.join(cmd)}")
    env = dict(os.environ, DB_PATH=db_path)
    return subprocess.Popen(cmd, cwd=str(PROJECT_ROOT), env=env)


def stop_streamlit_process(proc: Optional[subprocess.Popen]) -> None:
    if proc is None or proc.poll() is not None:
        return
    try:
        proc.terminate()
        for _ in range(10):
            if proc.poll() is not None:
                break
            time.sleep(0.3)
        if proc.poll() is None:
            proc.kill()
    except OSError as e:
        logger.error(f"Could not stop Streamlit: {e}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = load_settings()
    args = parse_args(argv, settings)
    ctx = RunContext()

    def shutdown(*_):
        logger.info("🛑 Shutdown signal received; finishing the current step...")
        ctx.request_stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    logger.info(f"🚀 Upbit scalper v{settings.version}")
    try:
        orchestrator = build_orchestrator(settings, ctx, args.capital, args.cycle_minutes)
    except StoreInitError as e:
        logger.critical(f"❌ {e}")
        return 1

    streamlit_proc = start_streamlit_process(settings.db.path) if args.dashboard else None
    try:
        orchestrator.run()
    finally:
        stop_streamlit_process(streamlit_proc)
        logger.info("✅ Shutdown complete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
