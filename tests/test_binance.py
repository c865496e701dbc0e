"""Binance gateway: error mapping, exchange-info parsing and request shaping."""

import asyncio
import json
import logging
from unittest.mock import AsyncMock

import aiohttp
import pytest

from liquidbook.connectors.base import ErrorKind, Side, VenueError
from liquidbook.connectors.binance import (
    BinanceConnector,
    classify_binance_error,
    normalize_symbol,
    parse_market_rules,
)
from conftest import make_rules

KEY = "A" * 64
SECRET = "b" * 64

SYMBOL_INFO = {
    "symbol": "BTCUSDT",
    "baseAsset": "BTC",
    "quoteAsset": "USDT",
    "filters": [
        {"filterType": "PRICE_FILTER", "minPrice": "0.01", "maxPrice": "1000000", "tickSize": "0.10"},
        {"filterType": "LOT_SIZE", "minQty": "0.001", "maxQty": "1000", "stepSize": "0.001"},
        {"filterType": "MIN_NOTIONAL", "notional": "100"},
    ],
}


def connector(market_type="future", **extra) -> BinanceConnector:
    config = {"api_key": KEY, "api_secret": SECRET, "market_type": market_type, "testnet": True}
    config.update(extra)
    conn = BinanceConnector(config, "BTC/USDT", logger=logging.getLogger("test.binance"))
    conn._rules = make_rules()
    return conn


class TestErrorMapping:
    @pytest.mark.parametrize(
        "code,kind",
        [
            (-2011, ErrorKind.NOT_FOUND),
            (-2013, ErrorKind.NOT_FOUND),
            (-5027, ErrorKind.NO_OP_UNCHANGED),
            (-2015, ErrorKind.FATAL),
            (-1022, ErrorKind.FATAL),
            (-1003, ErrorKind.TRANSIENT),
            (-1021, ErrorKind.TRANSIENT),
            (-2019, ErrorKind.REJECTED),  # margin is insufficient
        ],
    )
    def test_codes(self, code, kind):
        assert classify_binance_error(400, code) is kind

    @pytest.mark.parametrize(
        "status,kind",
        [(401, ErrorKind.FATAL), (429, ErrorKind.TRANSIENT), (418, ErrorKind.TRANSIENT),
         (503, ErrorKind.TRANSIENT), (400, ErrorKind.REJECTED)],
    )
    def test_status_fallback(self, status, kind):
        assert classify_binance_error(status, None) is kind


class TestMarketRules:
    def test_parse_futures_filters(self):
        rules = parse_market_rules(SYMBOL_INFO)
        assert rules.tick_size == pytest.approx(0.1)
        assert rules.step_size == pytest.approx(0.001)
        assert rules.min_amount == pytest.approx(0.001)
        assert rules.min_notional == pytest.approx(100)
        assert rules.price_precision == 1
        assert rules.amount_precision == 3
        assert rules.quote_asset == "USDT"

    def test_spot_notional_filter(self):
        info = dict(SYMBOL_INFO, filters=[{"filterType": "NOTIONAL", "minNotional": "5.0"}])
        rules = parse_market_rules(info)
        assert rules.min_notional == 5.0
        assert rules.tick_size is None

    @pytest.mark.parametrize("raw", ["BTC/USDT", "btc-usdt", "BTCUSDT"])
    def test_normalize_symbol(self, raw):
        assert normalize_symbol(raw) == "BTCUSDT"


class TestConnector:
    def test_credentials_required(self):
        with pytest.raises(ValueError):
            BinanceConnector({"api_key": "", "api_secret": SECRET}, "BTCUSDT", logger=logging.getLogger("t"))

    def test_unknown_market_type(self):
        with pytest.raises(ValueError):
            connector(market_type="margin")

    def test_edit_capability(self):
        assert connector("future").supports_edit
        assert not connector("spot").supports_edit

    def test_spot_edit_is_unsupported(self):
        with pytest.raises(VenueError) as exc_info:
            asyncio.run(connector("spot").edit_order("1", Side.BUY, 0.1, 100.0))
        assert exc_info.value.kind is ErrorKind.UNSUPPORTED

    def test_place_formats_to_precision(self):
        conn = connector()
        conn._rest = AsyncMock(return_value={"orderId": 42})
        order_id = asyncio.run(conn.place_limit_order(Side.SELL, 0.5, 100.1))

        assert order_id == "42"
        method, path, params = conn._rest.await_args.args
        assert (method, path) == ("POST", "/fapi/v1/order")
        assert params["side"] == "SELL"
        assert params["price"] == "100.1"
        assert params["quantity"] == "0.500"
        assert params["timeInForce"] == "GTC"
        assert conn._rest.await_args.kwargs["requires_auth"]

    def test_cancel_all_ignores_nothing_to_cancel(self):
        conn = connector("spot")
        conn._rest = AsyncMock(side_effect=VenueError(ErrorKind.NOT_FOUND, code=-2011))
        asyncio.run(conn.cancel_all_orders())

    def test_cancel_all_propagates_other_errors(self):
        conn = connector()
        conn._rest = AsyncMock(side_effect=VenueError(ErrorKind.TRANSIENT))
        with pytest.raises(VenueError):
            asyncio.run(conn.cancel_all_orders())

    def test_spot_trades_sorted_with_side(self):
        conn = connector("spot")
        conn._rest = AsyncMock(
            return_value=[
                {"id": 2, "time": 2000, "qty": "0.2", "price": "100", "isBuyer": False},
                {"id": 1, "time": 1000, "qty": "0.1", "price": "99", "isBuyer": True},
            ]
        )
        trades = asyncio.run(conn.fetch_trades_since(500))

        assert [t.trade_id for t in trades] == ["1", "2"]
        assert trades[0].side is Side.BUY and trades[1].side is Side.SELL
        params = conn._rest.await_args.args[2]
        assert params["startTime"] == 500
        assert conn._rest.await_args.args[1] == "/api/v3/myTrades"

    def test_first_trade_fetch_has_no_start_time(self):
        conn = connector()
        conn._rest = AsyncMock(return_value=[])
        asyncio.run(conn.fetch_trades_since(0))
        assert "startTime" not in conn._rest.await_args.args[2]

    def test_spot_has_no_position(self):
        assert asyncio.run(connector("spot").fetch_position()) is None

    def test_depth_limit_snaps_to_allowed_value(self):
        conn = connector()
        conn._rest = AsyncMock(return_value={"bids": [["100", "1"]], "asks": [["101", "2"]]})
        book = asyncio.run(conn.fetch_order_book(12))
        assert conn._rest.await_args.args[2]["limit"] == 20
        assert book.bids[0].price == 100.0 and book.asks[0].size == 2.0


class FakeResponse:
    """Async context manager standing in for an aiohttp response."""

    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        return json.loads(self._body)

    async def text(self):
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self._response = response
        self._error = error
        self.requests = []
        self.closed = False

    def request(self, method, url, params=None, headers=None):
        self.requests.append((method, url, params, headers))
        if self._error is not None:
            raise self._error
        return self._response


class TestRest:
    def call(self, session, **kwargs):
        conn = connector()
        conn._session = session
        return conn, asyncio.run(conn._rest("DELETE", "/fapi/v1/order", {"orderId": "1"}, **kwargs))

    def expect_error(self, session):
        with pytest.raises(VenueError) as exc_info:
            self.call(session)
        return exc_info.value

    def test_success_returns_json(self):
        _, data = self.call(FakeSession(FakeResponse(200, '{"orderId": 7}')))
        assert data == {"orderId": 7}

    def test_signed_request_carries_key_and_signature(self):
        session = FakeSession(FakeResponse(200, "{}"))
        self.call(session, requires_auth=True)
        method, url, params, headers = session.requests[0]
        assert method == "DELETE"
        assert url == "https://testnet.binancefuture.com/fapi/v1/order"
        assert headers["X-MBX-APIKEY"] == KEY
        assert {"timestamp", "recvWindow", "signature"} <= set(params)
        assert len(params["signature"]) == 64

    def test_error_body_code_is_classified(self):
        body = '{"code": -2011, "msg": "Unknown order sent."}'
        err = self.expect_error(FakeSession(FakeResponse(400, body)))
        assert err.kind is ErrorKind.NOT_FOUND
        assert err.code == -2011
        assert "Unknown order sent." in str(err)

    def test_unchanged_amend_is_classified(self):
        err = self.expect_error(FakeSession(FakeResponse(400, '{"code": -5027, "msg": "No need to modify"}')))
        assert err.kind is ErrorKind.NO_OP_UNCHANGED

    def test_plain_text_body_falls_back_to_status(self):
        err = self.expect_error(FakeSession(FakeResponse(503, "Service Unavailable")))
        assert err.kind is ErrorKind.TRANSIENT
        assert err.code is None

    def test_unauthorized_status_is_fatal(self):
        err = self.expect_error(FakeSession(FakeResponse(401, "<html>denied</html>")))
        assert err.fatal

    def test_unknown_code_is_rejected(self):
        err = self.expect_error(FakeSession(FakeResponse(400, '{"code": -2019, "msg": "Margin is insufficient."}')))
        assert err.kind is ErrorKind.REJECTED
        assert not err.fatal

    @pytest.mark.parametrize(
        "error",
        [aiohttp.ClientConnectionError("connection reset"), asyncio.TimeoutError()],
    )
    def test_transport_failures_are_transient(self, error):
        err = self.expect_error(FakeSession(error=error))
        assert err.kind is ErrorKind.TRANSIENT
        assert isinstance(err.__cause__, type(error))
