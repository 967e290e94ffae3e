import pytest
from conftest import FakeClock, FakeUpbit, make_candles

from controllers.scanner_controller import ScannerController, is_flagged
from utils.config import ScanSettings
from utils.exceptions import TransportError


def _market(code, warning=False, **caution):
    return {"market": code, "korean_name": code.split("-")[1].lower(),
            "market_event": {"warning": warning, "caution": caution}}


def _ticker(code, change_rate, price=1000.0):
    return {"market": code, "trade_price": price, "signed_change_rate": change_rate,
            "acc_trade_price_24h": 5e9}


def test_is_flagged():
    assert is_flagged(_market("KRW-A", warning=True))
    assert is_flagged(_market("KRW-B", PRICE_FLUCTUATIONS=True))
    assert is_flagged(_market("KRW-C", TRADING_VOLUME_SOARING=True, PRICE_FLUCTUATIONS=False))
    assert is_flagged(_market("KRW-D", DEPOSIT_AMOUNT_SOARING=True))
    assert not is_flagged(_market("KRW-E", PRICE_FLUCTUATIONS=False))
    assert not is_flagged({"market": "KRW-F"})


def test_scan_keeps_flagged_markets(upbit):
    upbit.markets = [_market("KRW-A"), _market("KRW-B", warning=True), _market("KRW-C", PRICE_FLUCTUATIONS=True)]
    result = ScannerController(upbit).scan_pairs()
    assert [m["market"] for m in result] == ["KRW-B", "KRW-C"]
    assert upbit.called("get_ticker") == []


def test_scan_falls_back_to_volatility(upbit):
    upbit.markets = [_market(f"KRW-{i}") for i in range(40)]
    upbit.tickers = {m["market"]: _ticker(m["market"], 0.01) for m in upbit.markets}
    upbit.tickers["KRW-3"] = _ticker("KRW-3", 0.06)
    upbit.tickers["KRW-7"] = _ticker("KRW-7", -0.05)
    upbit.tickers["KRW-35"] = _ticker("KRW-35", 0.2)  # outside the top 30

    result = ScannerController(upbit).scan_pairs()

    assert [m["market"] for m in result] == ["KRW-3", "KRW-7"]
    _, requested = upbit.called("get_ticker")[0]
    assert len(requested) == 30


def test_scan_may_return_nothing(upbit):
    upbit.markets = [_market("KRW-A")]
    upbit.tickers = {"KRW-A": _ticker("KRW-A", 0.001)}
    assert ScannerController(upbit).scan_pairs() == []


def test_fetch_details_enriches_and_drops_failures(upbit):
    clock = FakeClock()
    markets = [_market(f"KRW-{i}") for i in range(12)]
    for m in markets:
        upbit.tickers[m["market"]] = _ticker(m["market"], 0.07, price=1005.0)
        upbit.candles[m["market"]] = make_candles(m["market"], [1000.0 + (i % 7) for i in range(200)])
    upbit.fail_markets = {"KRW-2"}

    snapshots = ScannerController(upbit, ScanSettings(), sleep=clock.sleep).fetch_pair_details(markets)

    assert [s.market for s in snapshots] == [f"KRW-{i}" for i in range(10) if i != 2]
    assert clock.sleeps == [0.1] * 10
    first = snapshots[0]
    assert len(first.candles) == 50
    assert first.indicators.macd is not None
    assert first.indicators.rsi is not None
    assert first.change_rate == pytest.approx(7.0)
    assert first.best_bid == 999.0


def test_refresh_single_pair(upbit):
    upbit.tickers["KRW-A"] = _ticker("KRW-A", 0.01)
    upbit.candles["KRW-A"] = make_candles("KRW-A", [1000.0] * 30)
    snapshot = ScannerController(upbit).refresh("KRW-A", "에이")
    assert snapshot.display_name == "에이"
    assert snapshot.current_price == 1000.0


def test_refresh_propagates_transport_errors(upbit):
    upbit.fail_markets = {"KRW-A"}
    with pytest.raises(TransportError):
        ScannerController(upbit).refresh("KRW-A")


def test_summarize(upbit):
    upbit.tickers["KRW-A"] = _ticker("KRW-A", 0.0123, price=1000.0)
    upbit.candles["KRW-A"] = make_candles("KRW-A", [1000.0] * 30)
    summary = ScannerController.summarize(ScannerController(upbit).refresh("KRW-A", "에이"))
    assert summary == {
        "market": "KRW-A",
        "koreanName": "에이",
        "currentPrice": 1000.0,
        "changeRate": 1.23,
        "volume24h": 5000000000,
        "rsi": 100.0,
        "macd": 0.0,
        "bollingerPosition": 50,
    }
