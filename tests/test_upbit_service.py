import hashlib
from urllib.parse import urlencode

import jwt
import pytest
import requests
from conftest import FakeResponse, FakeSession

from services.upbit_service import UpbitService
from utils.config import UpbitSettings
from utils.exceptions import TransportError

SECRET = "upbit-test-secret-key-0123456789abcdef"
SETTINGS = UpbitSettings(access_key="access", secret_key=SECRET)


def _claims(call) -> dict:
    token = call["headers"]["Authorization"].split(" ", 1)[1]
    return jwt.decode(token, SECRET, algorithms=["HS256"])


def test_get_markets_keeps_quote_currency():
    session = FakeSession(FakeResponse([
        {"market": "KRW-BTC", "korean_name": "비트코인"},
        {"market": "BTC-ETH", "korean_name": "이더리움"},
        {"market": "KRW-XRP", "korean_name": "리플"},
    ]))
    markets = UpbitService(SETTINGS, session=session).get_markets("KRW")

    assert [m["market"] for m in markets] == ["KRW-BTC", "KRW-XRP"]
    call = session.calls[0]
    assert call["url"].endswith("/market/all")
    assert call["params"] == {"isDetails": "true"}
    assert "Authorization" not in call["headers"]


def test_private_call_signs_query_hash():
    session = FakeSession(FakeResponse({"uuid": "u-1", "state": "wait"}))
    UpbitService(SETTINGS, session=session).get_order("u-1")

    claims = _claims(session.calls[0])
    assert claims["access_key"] == "access"
    assert claims["nonce"]
    assert claims["query_hash_alg"] == "SHA512"
    assert claims["query_hash"] == hashlib.sha512(urlencode({"uuid": "u-1"}).encode()).hexdigest()


def test_private_call_without_params_has_no_query_hash():
    session = FakeSession(FakeResponse([{"currency": "KRW", "balance": "150000.5"}]))
    service = UpbitService(SETTINGS, session=session)
    assert service.get_krw_balance() == 150000.5
    assert "query_hash" not in _claims(session.calls[0])


def test_market_buy_is_a_price_order_in_the_body():
    session = FakeSession(FakeResponse({"uuid": "m-1"}))
    UpbitService(SETTINGS, session=session).buy_market("KRW-XRP", 100000)

    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["json"] == {"market": "KRW-XRP", "side": "bid", "ord_type": "price", "price": "100000"}
    assert _claims(call)["query_hash"] == hashlib.sha512(urlencode(call["json"]).encode()).hexdigest()


def test_candle_endpoints():
    session = FakeSession(FakeResponse([]), FakeResponse([]))
    service = UpbitService(SETTINGS, session=session)
    service.get_candles("KRW-XRP", count=200, candle_type="seconds")
    service.get_candles("KRW-XRP", unit=3, count=50, candle_type="minutes")
    assert session.calls[0]["url"].endswith("/candles/seconds")
    assert session.calls[1]["url"].endswith("/candles/minutes/3")
    assert session.calls[1]["params"] == {"market": "KRW-XRP", "count": 50}


def test_http_error_becomes_transport_error():
    session = FakeSession(FakeResponse({"error": {"name": "insufficient_funds_bid"}}, status_code=400))
    with pytest.raises(TransportError) as exc:
        UpbitService(SETTINGS, session=session).buy_limit("KRW-XRP", 1000, 99.95)
    assert exc.value.status_code == 400


def test_network_error_becomes_transport_error():
    session = FakeSession(requests.ConnectionError("connection reset"))
    with pytest.raises(TransportError):
        UpbitService(SETTINGS, session=session).get_ticker(["KRW-XRP", "KRW-BTC"])


def test_ticker_joins_markets():
    session = FakeSession(FakeResponse([]))
    UpbitService(SETTINGS, session=session).get_ticker(["KRW-XRP", "KRW-BTC"])
    assert session.calls[0]["params"] == {"markets": "KRW-XRP,KRW-BTC"}
