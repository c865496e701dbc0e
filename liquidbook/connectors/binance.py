"""Binance Spot / USD‑M Futures gateway implementing the BaseConnector interface."""

from __future__ import annotations

import asyncio
import hmac
import itertools
import json
import time
import urllib.parse
import uuid
from hashlib import sha256
from typing import Any, Dict, List, Optional

import aiohttp

from liquidbook.connectors.base import (
    BaseConnector,
    ErrorKind,
    MarketRules,
    OrderBookSnapshot,
    Side,
    Ticker,
    Trade,
    VenueError,
)
from liquidbook.strategy.pricing import decimals_from_increment, format_decimal

_SPOT_PATH = "/api/v3"
_FUTURES_PATH = "/fapi/v1"
_FUTURES_V2_PATH = "/fapi/v2"

_BASE_URLS = {
    ("spot", False): "https://api.binance.com",
    ("spot", True): "https://testnet.binance.vision",
    ("future", False): "https://fapi.binance.com",
    ("future", True): "https://testnet.binancefuture.com",
}

_SPOT_DEPTH_LIMITS = (5, 10, 20, 50, 100, 500, 1000, 5000)
_FUTURES_DEPTH_LIMITS = (5, 10, 20, 50, 100, 500, 1000)

# Venue error code -> stable kind. Codes not listed fall back to the HTTP status.
BINANCE_ERROR_KINDS: Dict[int, ErrorKind] = {
    -1001: ErrorKind.TRANSIENT,        # internal error; unable to process
    -1003: ErrorKind.TRANSIENT,        # too many requests
    -1007: ErrorKind.TRANSIENT,        # timeout waiting for backend
    -1008: ErrorKind.TRANSIENT,        # server busy
    -1015: ErrorKind.TRANSIENT,        # too many new orders
    -1021: ErrorKind.TRANSIENT,        # timestamp outside recvWindow
    -1002: ErrorKind.FATAL,            # unauthorized
    -1022: ErrorKind.FATAL,            # invalid signature
    -2014: ErrorKind.FATAL,            # API-key format invalid
    -2015: ErrorKind.FATAL,            # invalid API-key, IP, or permissions
    -2011: ErrorKind.NOT_FOUND,        # unknown order sent
    -2013: ErrorKind.NOT_FOUND,        # order does not exist
    -5027: ErrorKind.NO_OP_UNCHANGED,  # no need to modify the order
}

_HTTP_STATUS_KINDS: Dict[int, ErrorKind] = {
    401: ErrorKind.FATAL,
    403: ErrorKind.TRANSIENT,  # WAF limit
    418: ErrorKind.TRANSIENT,  # temporary IP ban
    429: ErrorKind.TRANSIENT,
}


def classify_binance_error(status: int, code: Optional[int]) -> ErrorKind:
    """Map an HTTP status and Binance error code onto an :class:`ErrorKind`."""
    if code is not None and code in BINANCE_ERROR_KINDS:
        return BINANCE_ERROR_KINDS[code]
    if status in _HTTP_STATUS_KINDS:
        return _HTTP_STATUS_KINDS[status]
    if status >= 500:
        return ErrorKind.TRANSIENT
    return ErrorKind.REJECTED


def normalize_symbol(symbol: str) -> str:
    return symbol.replace("/", "").replace("-", "").upper()


def parse_market_rules(info: Dict[str, Any]) -> MarketRules:
    """Build :class:`MarketRules` from one ``exchangeInfo`` symbol entry."""
    tick_size = step_size = None
    min_amount = min_notional = 0.0
    for f in info.get("filters", []):
        kind = f.get("filterType")
        if kind == "PRICE_FILTER":
            tick_size = float(f["tickSize"])
        elif kind == "LOT_SIZE":
            step_size = float(f["stepSize"])
            min_amount = float(f.get("minQty", 0.0))
        elif kind == "MIN_NOTIONAL":
            # spot uses "minNotional", futures "notional"
            min_notional = float(f.get("minNotional", f.get("notional", 0.0)))
        elif kind == "NOTIONAL":
            min_notional = float(f.get("minNotional", 0.0))

    return MarketRules(
        symbol=info["symbol"],
        base_asset=info.get("baseAsset", ""),
        quote_asset=info.get("quoteAsset", ""),
        tick_size=tick_size or None,
        step_size=step_size or None,
        min_amount=min_amount,
        min_notional=min_notional,
        price_precision=decimals_from_increment(tick_size),
        amount_precision=decimals_from_increment(step_size),
    )


class BinanceConnector(BaseConnector):
    """Thin async wrapper around the Binance REST API for a single symbol."""

    def __init__(self, config: Dict[str, Any], symbol: str, logger):
        super().__init__(config, logger)
        self._api_key = (config.get("api_key") or "").strip()
        self._api_secret = (config.get("api_secret") or "").strip()
        if not self._api_key or not self._api_secret:
            raise ValueError("Binance API key and secret are required")

        self._market_type = config.get("market_type", "future").lower()
        if self._market_type not in ("spot", "future"):
            raise ValueError(f"Unsupported market_type {self._market_type!r}")
        testnet = bool(config.get("testnet", True))
        base_url = config.get("base_url") or _BASE_URLS[(self._market_type, testnet)]
        self._base_url = base_url.rstrip("/")

        self._symbol = normalize_symbol(symbol)
        self._recv_window = int(config.get("recv_window", 5000))
        self._timeout = aiohttp.ClientTimeout(total=float(config.get("request_timeout_sec", 10)))
        self._session: Optional[aiohttp.ClientSession] = None
        self._time_offset_ms = 0
        self._rules: Optional[MarketRules] = None
        self._id_seq = itertools.count(1)

        self.logger.debug("Initializing BinanceConnector (%s, testnet=%s)", self._market_type, testnet)
        self.logger.debug("API key first/last 4 chars: %s...%s", self._api_key[:4], self._api_key[-4:])
        self.logger.debug("Base URL: %s", self._base_url)

    @property
    def futures(self) -> bool:
        return self._market_type == "future"

    @property
    def supports_edit(self) -> bool:
        # Spot has no in-place amend for GTC limit orders.
        return self.futures

    @property
    def _path(self) -> str:
        return _FUTURES_PATH if self.futures else _SPOT_PATH

    def _generate_signature(self, params: Dict[str, Any]) -> str:
        """HMAC SHA256 of the urlencoded query string."""
        query_string = urllib.parse.urlencode(params)
        return hmac.new(
            self._api_secret.encode("utf-8"),
            query_string.encode("utf-8"),
            sha256,
        ).hexdigest()

    def _now_ms(self) -> int:
        return int(time.time() * 1000) + self._time_offset_ms

    async def _sync_server_time(self) -> None:
        data = await self._rest("GET", f"{self._path}/time")
        self._time_offset_ms = int(data["serverTime"]) - int(time.time() * 1000)
        self.logger.debug("Server time offset: %d ms", self._time_offset_ms)

    # ------------------- REST helpers ------------------- #

    async def _rest(
        self,
        method: str,
        path: str,
        params: Dict[str, Any] | None = None,
        requires_auth: bool = False,
    ) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession(json_serialize=json.dumps, timeout=self._timeout)

        url = self._base_url + path
        headers = {}
        request_params = dict(params or {})

        if requires_auth:
            headers["X-MBX-APIKEY"] = self._api_key
            request_params["recvWindow"] = self._recv_window
            request_params["timestamp"] = self._now_ms()
            request_params["signature"] = self._generate_signature(request_params)

        try:
            async with self._session.request(method, url, params=request_params, headers=headers) as resp:
                if resp.status == 200:
                    return await resp.json(content_type=None)
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise VenueError(ErrorKind.TRANSIENT, f"{method} {path}: {exc!r}") from exc

        code = None
        message = text
        try:
            payload = json.loads(text)
            code = int(payload.get("code"))
            message = payload.get("msg", text)
        except (ValueError, TypeError, AttributeError):
            pass
        kind = classify_binance_error(resp.status, code)
        self.logger.debug("Request failed: %s %s -> %s %s (%s)", method, path, resp.status, text, kind.value)
        raise VenueError(kind, f"Binance API error {resp.status}: {message}", code=code)

    def _fmt_price(self, price: float) -> str:
        return format_decimal(price, self._rules.price_precision if self._rules else None)

    def _fmt_amount(self, amount: float) -> str:
        return format_decimal(amount, self._rules.amount_precision if self._rules else None)

    # ------------------- Market‑data ------------------- #

    async def load_market(self) -> MarketRules:
        await self._sync_server_time()
        params = {} if self.futures else {"symbol": self._symbol}
        data = await self._rest("GET", f"{self._path}/exchangeInfo", params)
        for s in data["symbols"]:
            if s["symbol"] == self._symbol:
                self._rules = parse_market_rules(s)
                self.logger.info(
                    "Market %s loaded - tick %s, step %s, min qty %s, min notional %s",
                    self._symbol,
                    self._rules.tick_size,
                    self._rules.step_size,
                    self._rules.min_amount,
                    self._rules.min_notional,
                )
                return self._rules
        raise ValueError(f"Symbol {self._symbol} not found in exchange info")

    async def fetch_ticker(self) -> Optional[Ticker]:
        data = await self._rest("GET", f"{self._path}/ticker/price", {"symbol": self._symbol})
        return Ticker(last=float(data["price"])) if data.get("price") else None

    async def fetch_order_book(self, depth: int) -> OrderBookSnapshot:
        limits = _FUTURES_DEPTH_LIMITS if self.futures else _SPOT_DEPTH_LIMITS
        limit = next((lim for lim in limits if lim >= depth), limits[-1])
        data = await self._rest("GET", f"{self._path}/depth", {"symbol": self._symbol, "limit": limit})
        return OrderBookSnapshot.from_pairs(data["bids"], data["asks"], timestamp=data.get("T"))

    async def fetch_quote_balance(self) -> float:
        quote = self._rules.quote_asset if self._rules else ""
        if self.futures:
            balances = await self._rest("GET", f"{_FUTURES_V2_PATH}/balance", requires_auth=True)
            for b in balances:
                if b["asset"] == quote:
                    return float(b["availableBalance"])
            return 0.0

        account = await self._rest("GET", f"{_SPOT_PATH}/account", requires_auth=True)
        for b in account["balances"]:
            if b["asset"] == quote:
                return float(b["free"])
        return 0.0

    async def fetch_position(self) -> Optional[float]:
        if not self.futures:
            return None
        positions = await self._rest(
            "GET", f"{_FUTURES_V2_PATH}/positionRisk", {"symbol": self._symbol}, requires_auth=True
        )
        for p in positions:
            if p["symbol"] == self._symbol:
                return float(p["positionAmt"])
        return None

    # ------------------- Trading ------------------- #

    async def place_limit_order(self, side: Side, amount: float, price: float) -> str:
        params = {
            "symbol": self._symbol,
            "side": Side(side).value.upper(),
            "type": "LIMIT",
            "timeInForce": "GTC",
            "price": self._fmt_price(price),
            "quantity": self._fmt_amount(amount),
            "newClientOrderId": f"lbmm-{next(self._id_seq)}-{uuid.uuid4().hex[:8]}",
        }
        data = await self._rest("POST", f"{self._path}/order", params, requires_auth=True)
        self.logger.debug("Order placement response: %s", data)
        try:
            return str(data["orderId"])
        except KeyError as e:
            raise VenueError(ErrorKind.REJECTED, f"Invalid order response: missing field {e}") from e

    async def edit_order(self, order_id: str, side: Side, amount: float, price: float) -> str:
        if not self.supports_edit:
            raise VenueError(ErrorKind.UNSUPPORTED, "order amend is not available on spot")
        params = {
            "symbol": self._symbol,
            "orderId": order_id,
            "side": Side(side).value.upper(),
            "price": self._fmt_price(price),
            "quantity": self._fmt_amount(amount),
        }
        data = await self._rest("PUT", f"{_FUTURES_PATH}/order", params, requires_auth=True)
        return str(data.get("orderId", order_id))

    async def cancel_order(self, order_id: str) -> None:
        params = {"symbol": self._symbol, "orderId": order_id}
        await self._rest("DELETE", f"{self._path}/order", params, requires_auth=True)

    async def cancel_all_orders(self) -> None:
        path = f"{_FUTURES_PATH}/allOpenOrders" if self.futures else f"{_SPOT_PATH}/openOrders"
        try:
            await self._rest("DELETE", path, {"symbol": self._symbol}, requires_auth=True)
        except VenueError as exc:
            # spot answers -2011 when there is nothing to cancel
            if exc.kind is not ErrorKind.NOT_FOUND:
                raise

    async def fetch_trades_since(self, timestamp: int) -> List[Trade]:
        params: Dict[str, Any] = {"symbol": self._symbol}
        if timestamp > 0:
            params["startTime"] = int(timestamp)
        path = f"{_FUTURES_PATH}/userTrades" if self.futures else f"{_SPOT_PATH}/myTrades"
        rows = await self._rest("GET", path, params, requires_auth=True)

        trades = []
        for row in rows:
            if "side" in row:
                side = Side(row["side"].lower())
            else:
                side = Side.BUY if row.get("isBuyer") else Side.SELL
            trades.append(
                Trade(
                    trade_id=str(row["id"]),
                    timestamp=int(row["time"]),
                    amount=float(row["qty"]),
                    price=float(row["price"]),
                    side=side,
                )
            )
        trades.sort(key=lambda t: t.timestamp)
        return trades

    # ------------------- Housekeeping ------------------- #

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
