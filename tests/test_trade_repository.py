import pytest

from enums.trade_status import TradeStatus
from models.decision import TradePlan
from repositories.trade_repository import TradeRepository
from utils.exceptions import StoreInitError

PLAN = TradePlan(buy_price=1000, take_profit=1050, stop_loss=990)


def _close(repo: TradeRepository, trade_id: int, status: TradeStatus, sell_price: float, rate: float, amount: float):
    repo.update_buy_order_sent(trade_id, f"buy-{trade_id}")
    repo.update_buy_complete(trade_id, 99950.0, 1000.0, 99.95, "2026-02-11 00:00:00")
    repo.update_exit_triggered(trade_id, status)
    repo.update_sell_complete(trade_id, f"sell-{trade_id}", sell_price * 99.95, sell_price,
                              "2026-02-11 00:10:00", rate, amount)


def test_full_lifecycle(repo):
    trade_id = repo.create_trade("KRW-XRP", "리플", PLAN, "1.0.3")
    record = repo.get_trade(trade_id)
    assert record.status is TradeStatus.PENDING
    assert record.plan_take_profit == 1050
    assert record.created_at

    repo.update_buy_order_sent(trade_id, "buy-uuid")
    assert repo.get_trade(trade_id).status is TradeStatus.BUY_SENT

    repo.update_buy_complete(trade_id, 99950.0, 1000.0, 99.95, "2026-02-11 00:00:00")
    record = repo.get_trade(trade_id)
    assert record.status is TradeStatus.BOUGHT
    assert record.buy_order_uuid == "buy-uuid"
    assert record.buy_volume == 99.95

    repo.update_exit_triggered(trade_id, TradeStatus.TAKE_PROFIT)
    assert repo.get_trade(trade_id).status is TradeStatus.TAKE_PROFIT

    repo.update_sell_complete(trade_id, "sell-uuid", 104947.5, 1050.0, "2026-02-11 00:10:00", 4.8975, 4997.5)
    record = repo.get_trade(trade_id)
    assert record.status is TradeStatus.CLOSED
    assert record.exit_reason == "take_profit"
    assert record.realized_profit_rate == pytest.approx(4.8975)
    assert repo.count_open() == 0


def test_transitions_cannot_skip_states(repo):
    trade_id = repo.create_trade("KRW-XRP", "리플", PLAN)
    with pytest.raises(ValueError):
        repo.update_buy_complete(trade_id, 1.0, 1.0, 1.0, "2026-02-11 00:00:00")
    with pytest.raises(ValueError):
        repo.update_exit_triggered(trade_id, TradeStatus.CLOSED)


def test_mark_failed_closes_any_open_state(repo):
    trade_id = repo.create_trade("KRW-XRP", "리플", PLAN)
    repo.update_buy_order_sent(trade_id, "buy-uuid")
    assert repo.count_open() == 1

    repo.mark_failed(trade_id, "error")

    record = repo.get_trade(trade_id)
    assert record.status is TradeStatus.CLOSED
    assert record.exit_reason == "error"
    assert repo.count_open() == 0


def test_recent_trades_newest_first(repo):
    ids = [repo.create_trade(m, m, PLAN) for m in ("KRW-A", "KRW-B", "KRW-C")]
    for trade_id in ids:
        repo.mark_failed(trade_id)
    recent = repo.get_recent_trades(limit=2)
    assert [r.id for r in recent] == [ids[2], ids[1]]
    assert repo.get_trade(9999) is None


def test_summary_counts_realized_trades_only(repo):
    win = repo.create_trade("KRW-A", "A", PLAN)
    _close(repo, win, TradeStatus.TAKE_PROFIT, 1050.0, 4.9, 4997.5)
    loss = repo.create_trade("KRW-B", "B", PLAN)
    _close(repo, loss, TradeStatus.STOP_LOSS, 985.0, -1.6, -1499.25)
    failed = repo.create_trade("KRW-C", "C", PLAN)
    repo.mark_failed(failed)

    summary = repo.summary()
    assert summary["closed_trades"] == 2
    assert summary["wins"] == 1
    assert summary["win_rate"] == pytest.approx(0.5)
    assert summary["profit_total"] == pytest.approx(3498.25)
    assert summary["avg_profit_rate"] == pytest.approx(1.65)


def test_empty_summary(repo):
    assert repo.summary() == {
        "closed_trades": 0, "wins": 0, "win_rate": 0.0, "profit_total": 0.0, "avg_profit_rate": 0.0,
    }


def test_reopening_keeps_existing_trades(tmp_path):
    db = str(tmp_path / "trades.db")
    first = TradeRepository(db_path=db)
    trade_id = first.create_trade("KRW-XRP", "리플", PLAN)
    first.update_buy_order_sent(trade_id, "buy-1")

    reopened = TradeRepository(db_path=db)
    record = reopened.get_trade(trade_id)
    assert record.status is TradeStatus.BUY_SENT
    assert record.buy_order_uuid == "buy-1"
    assert reopened.count_open() == 1


def test_unopenable_store_is_fatal(tmp_path):
    with pytest.raises(StoreInitError):
        TradeRepository(db_path=str(tmp_path))  # a directory, not a file
