"""
Configuration loading for the Upbit scalper.

Defaults live in ``Settings``. ``config.yaml`` next to ``main.py`` overrides
them section by section, and secrets come from the environment (``.env`` is
loaded by ``main.py`` before this runs). A missing YAML file simply means
"use the defaults".
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml  # type: ignore
from pydantic import BaseModel, Field

PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONFIG_PATH = PROJECT_ROOT / "config.yaml"


class UpbitSettings(BaseModel):
    rest_url: str = "https://api.upbit.com/v1"
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    request_timeout: float = 10.0


class LlmSettings(BaseModel):
    provider: str = "gemini"  # 'gemini' | 'claude'
    claude_api_key: Optional[str] = None
    claude_model: str = "claude-opus-4-5-20251101"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-3-flash-preview"
    max_tokens: int = 2048
    request_timeout: float = 60.0


class NotionSettings(BaseModel):
    api_key: Optional[str] = None
    parent_page_id: Optional[str] = None
    api_version: str = "2022-06-28"
    request_timeout: float = 15.0


class ScanSettings(BaseModel):
    quote_currency: str = "KRW"
    min_volatility: float = 5.0          # % abs 24h change for the fallback filter
    fallback_top_n: int = 30
    max_detail_pairs: int = 10
    candle_count: int = 200
    candle_unit: int = 1                 # minutes, ignored for second candles
    candle_type: str = "seconds"         # 'seconds' | 'minutes'
    summary_candles: int = 50
    plan_candles: int = 20
    request_pacing: float = 0.1          # s between detail fetches (10 req/s limit)


class TradeSettings(BaseModel):
    fee_rate: float = 0.0005
    order_timeout: float = 60.0          # s before the limit buy falls back to market
    fill_poll_interval: float = 1.0
    monitor_interval: float = 0.5
    settle_delay: float = 2.0
    sell_recheck_delay: float = 3.0
    min_confidence: float = 0.5


class CycleSettings(BaseModel):
    max_consecutive_losses: int = 2
    empty_scan_retry: float = 300.0
    error_backoff: float = 60.0
    trade_error_pause: float = 5.0
    between_trades_pause: float = 1.0


class DbSettings(BaseModel):
    path: str = str(PROJECT_ROOT / "data" / "trades.db")


class Settings(BaseModel):
    version: str = "1.0.3"
    default_capital: float = 100000.0    # KRW
    default_cycle_minutes: float = 30.0
    upbit: UpbitSettings = Field(default_factory=UpbitSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    notion: NotionSettings = Field(default_factory=NotionSettings)
    scan: ScanSettings = Field(default_factory=ScanSettings)
    trade: TradeSettings = Field(default_factory=TradeSettings)
    cycle: CycleSettings = Field(default_factory=CycleSettings)
    db: DbSettings = Field(default_factory=DbSettings)


# env var -> (section, field)
_ENV_OVERRIDES = {
    "UPBIT_ACCESS_KEY": ("upbit", "access_key"),
    "UPBIT_SECRET_KEY": ("upbit", "secret_key"),
    "CLAUDE_KEY": ("llm", "claude_api_key"),
    "GEMINI_KEY": ("llm", "gemini_api_key"),
    "LLM_PROVIDER": ("llm", "provider"),
    "NOTION_API_KEY": ("notion", "api_key"),
    "NOTION_PARENT_PAGE_ID": ("notion", "parent_page_id"),
    "DB_PATH": ("db", "path"),
}


def load_config(path: Path | str | None = None) -> Dict[str, Any]:
    """Load the raw configuration mapping from ``config.yaml``.

    :returns: A dictionary representing the configuration. Missing files
        quietly yield an empty dictionary.
    """
    config_path = Path(path) if path else CONFIG_PATH
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


def load_settings(path: Path | str | None = None, env: Optional[Dict[str, str]] = None) -> Settings:
    """Build ``Settings`` from defaults, YAML and environment, in that order."""
    raw = load_config(path)
    env = os.environ if env is None else env
    for var, (section, field) in _ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            if not isinstance(raw.get(section), dict):
                raw[section] = {}
            raw[section][field] = value
    return Settings.model_validate(raw)
