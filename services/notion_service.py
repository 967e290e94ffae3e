# services/notion_service.py
from __future__ import annotations
import threading
from datetime import datetime
from typing import Optional

import requests

from enums.trade_status import TradeStatus
from models.trade_record import TradeRecord
from utils.config import NotionSettings
from utils.exceptions import TransportError
from utils.log_config import logger_manager, log_function
from utils.time_utils import week_range

logger = logger_manager.setup_logger(__name__)

NOTION_API = "https://api.notion.com/v1"


def _iso(db_datetime: Optional[str]) -> Optional[str]:
    # 'YYYY-MM-DD HH:MM:SS' (UTC) -> ISO 8601 for Notion date properties
    if not db_datetime:
        return None
    return db_datetime.replace(" ", "T") + "Z" if "T" not in db_datetime else db_datetime


class WeeklyMirrorCache:
    """week label -> database id. One per process, shared by every save."""

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, label: str) -> Optional[str]:
        with self._lock:
            return self._ids.get(label)

    def put(self, label: str, db_id: str) -> None:
        with self._lock:
            self._ids[label] = db_id

    def __len__(self) -> int:
        return len(self._ids)


class NotionService:
    """
    Mirrors closed trades into a weekly Notion database under a parent page.
    Best effort: callers log and swallow any failure.
    """

    def __init__(self, settings: NotionSettings | None = None,
                 cache: WeeklyMirrorCache | None = None,
                 session: requests.Session | None = None) -> None:
        self.settings = settings or NotionSettings()
        self.cache = cache or WeeklyMirrorCache()
        self.session = session or requests.Session()
        if not self.enabled:
            logger.warning("NotionService without API key or parent page; mirroring disabled.")

    @property
    def enabled(self) -> bool:
        return bool(self.settings.api_key and self.settings.parent_page_id)

    def _request(self, method: str, endpoint: str, body: dict | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Notion-Version": self.settings.api_version,
            "Content-Type": "application/json",
        }
        try:
            r = self.session.request(method, f"{NOTION_API}{endpoint}", json=body, headers=headers,
                                     timeout=self.settings.request_timeout)
        except requests.RequestException as e:
            raise TransportError(f"Notion request failed: {e}") from e
        if not r.ok:
            raise TransportError(f"Notion API Error: {r.status_code} - {r.text}", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise TransportError(f"Notion {endpoint}: invalid JSON body") from e

    # ---------- weekly database ----------

    @staticmethod
    def database_title(label: str) -> str:
        return f"Trades {label}"

    @log_function
    def get_or_create_weekly_db(self, now: datetime | None = None) -> str:
        week = week_range(now)
        cached = self.cache.get(week.label)
        if cached:
            return cached

        title = self.database_title(week.label)
        parent = self.settings.parent_page_id
        children = self._request("GET", f"/blocks/{parent}/children")
        for block in children.get("results", []):
            if block.get("type") == "child_database" and (block.get("child_database") or {}).get("title") == title:
                self.cache.put(week.label, block["id"])
                logger.info(f"Weekly database found: {title}")
                return block["id"]

        logger.info(f"🆕 Creating weekly database: {title}")
        created = self._request("POST", "/databases", {
            "parent": {"type": "page_id", "page_id": parent},
            "title": [{"type": "text", "text": {"content": title}}],
            "properties": {
                "Coin": {"title": {}},
                "Status": {"select": {"options": [
                    {"name": "Bought", "color": "blue"},
                    {"name": "Sold", "color": "green"},
                    {"name": "Stop loss", "color": "red"},
                    {"name": "Failed", "color": "gray"},
                ]}},
                "System version": {"rich_text": {}},
                "Buy amount": {"number": {"format": "number"}},
                "Buy date": {"date": {}},
                "Buy price": {"number": {"format": "number"}},
                "Sell amount": {"number": {"format": "number"}},
                "Sell date": {"date": {}},
                "Sell price": {"number": {"format": "number"}},
                "Profit rate": {"number": {"format": "percent"}},
                "Profit (KRW)": {"number": {"format": "number"}},
            },
        })
        self.cache.put(week.label, created["id"])
        return created["id"]

    # ---------- trade pages ----------

    @staticmethod
    def status_label(record: TradeRecord) -> str:
        if record.status != TradeStatus.CLOSED:
            return "Bought"
        if record.exit_reason == TradeStatus.STOP_LOSS.value:
            return "Stop loss"
        if record.exit_reason == TradeStatus.TAKE_PROFIT.value:
            return "Sold"
        return "Failed"

    @classmethod
    def page_properties(cls, record: TradeRecord) -> dict:
        props: dict = {
            "Coin": {"title": [{"text": {"content": record.display_name or record.market}}]},
            "Status": {"select": {"name": cls.status_label(record)}},
            "System version": {"rich_text": [{"text": {"content": record.system_version or ""}}]},
            "Buy amount": {"number": record.buy_total_amount},
            "Buy price": {"number": record.buy_unit_price},
            "Sell amount": {"number": record.sell_total_amount},
            "Sell price": {"number": record.sell_unit_price},
            # Notion percent format: 0.01 shows as 1%
            "Profit rate": {"number": (record.realized_profit_rate / 100) if record.realized_profit_rate is not None else None},
            "Profit (KRW)": {"number": record.realized_profit_amount},
        }
        buy_date = _iso(record.buy_datetime)
        if buy_date:
            props["Buy date"] = {"date": {"start": buy_date}}
        sell_date = _iso(record.sell_datetime)
        if sell_date:
            props["Sell date"] = {"date": {"start": sell_date}}
        return props

    @log_function
    def save_trade(self, record: TradeRecord, now: datetime | None = None) -> Optional[str]:
        """Append one page for ``record``. Returns the page id, None when disabled."""
        if not self.enabled:
            return None
        db_id = self.get_or_create_weekly_db(now)
        page = self._request("POST", "/pages", {
            "parent": {"database_id": db_id},
            "properties": self.page_properties(record),
        })
        logger.success(f"Notion trade saved: {record.display_name or record.market}")
        return page.get("id")
