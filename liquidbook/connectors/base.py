"""Abstract venue gateway interface and the data it exchanges with the core."""

from __future__ import annotations

import abc
import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class Side(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class ErrorKind(str, enum.Enum):
    """Stable error classes the core branches on (never on message text)."""

    NOT_FOUND = "not_found"
    NO_OP_UNCHANGED = "no_op_unchanged"
    UNSUPPORTED = "unsupported"
    TRANSIENT = "transient"   # rate limit, venue unavailable, network, timeout
    FATAL = "fatal"           # authentication / permissions
    REJECTED = "rejected"     # any other venue rejection


class VenueError(Exception):
    """Raised by a connector with the error already classified."""

    def __init__(self, kind: ErrorKind, message: str = "", code: Optional[int] = None):
        super().__init__(message or kind.value)
        self.kind = kind
        self.code = code

    @property
    def fatal(self) -> bool:
        return self.kind is ErrorKind.FATAL

    def __repr__(self) -> str:
        return f"VenueError({self.kind.value}, code={self.code}, {self.args[0]!r})"


@dataclass
class OrderBookLevel:
    price: float
    size: float


@dataclass
class OrderBookSnapshot:
    bids: List[OrderBookLevel]  # descending
    asks: List[OrderBookLevel]  # ascending
    timestamp: Optional[int] = None  # ms

    @classmethod
    def from_pairs(cls, bids, asks, timestamp: Optional[int] = None) -> "OrderBookSnapshot":
        return cls(
            bids=[OrderBookLevel(float(p), float(q)) for p, q in bids],
            asks=[OrderBookLevel(float(p), float(q)) for p, q in asks],
            timestamp=timestamp,
        )

    @property
    def usable(self) -> bool:
        return bool(self.bids) and bool(self.asks)


@dataclass
class Ticker:
    last: Optional[float] = None


@dataclass
class MarketSnapshot:
    ticker: Optional[Ticker]
    order_book: Optional[OrderBookSnapshot]
    quote_balance_free: float
    position: Optional[float] = None  # +long / -short, None = flat or spot

    @property
    def position_size(self) -> float:
        return float(self.position or 0.0)


@dataclass
class Trade:
    trade_id: str
    timestamp: int  # ms
    amount: float   # base currency
    price: float
    side: Side


@dataclass
class MarketRules:
    """Venue filters for the traded instrument."""

    symbol: str
    base_asset: str
    quote_asset: str
    tick_size: Optional[float]
    step_size: Optional[float]
    min_amount: float = 0.0
    min_notional: float = 0.0
    price_precision: Optional[int] = None
    amount_precision: Optional[int] = None


class BaseConnector(abc.ABC):
    """Minimal async interface every concrete venue gateway must satisfy."""

    def __init__(self, config: Dict[str, Any], logger):
        self.config = config
        self.logger = logger

    # ---------- Capabilities ---------- #

    @property
    @abc.abstractmethod
    def supports_edit(self) -> bool:
        """Whether :meth:`edit_order` amends resting orders on this venue."""

    # ---------- Market‑data ---------- #

    @abc.abstractmethod
    async def load_market(self) -> MarketRules:
        """Load instrument filters (tick, step, minimums)."""

    @abc.abstractmethod
    async def fetch_ticker(self) -> Optional[Ticker]:
        ...

    @abc.abstractmethod
    async def fetch_order_book(self, depth: int) -> OrderBookSnapshot:
        ...

    @abc.abstractmethod
    async def fetch_quote_balance(self) -> float:
        """Free balance of the quote asset."""

    @abc.abstractmethod
    async def fetch_position(self) -> Optional[float]:
        """Signed position size, or *None* where the venue has no positions."""

    async def fetch_market_snapshot(self, depth: int) -> MarketSnapshot:
        """Fetch ticker, book, balance and position concurrently."""
        ticker, book, balance, position = await asyncio.gather(
            self.fetch_ticker(),
            self.fetch_order_book(depth),
            self.fetch_quote_balance(),
            self.fetch_position(),
        )
        return MarketSnapshot(
            ticker=ticker,
            order_book=book,
            quote_balance_free=balance,
            position=position,
        )

    # ---------- Trading ---------- #

    @abc.abstractmethod
    async def place_limit_order(self, side: Side, amount: float, price: float) -> str:
        """Send a GTC limit order and return the venue order id."""

    @abc.abstractmethod
    async def edit_order(self, order_id: str, side: Side, amount: float, price: float) -> str:
        """Amend a resting order; returns the (possibly unchanged) order id."""

    @abc.abstractmethod
    async def cancel_order(self, order_id: str) -> None:  # noqa: D401
        """Cancel an open order."""

    @abc.abstractmethod
    async def cancel_all_orders(self) -> None:
        """Cancel every open order on the instrument."""

    @abc.abstractmethod
    async def fetch_trades_since(self, timestamp: int) -> List[Trade]:
        """Own trades at or after *timestamp* (ms), oldest first."""

    # ---------- Housekeeping ---------- #

    @abc.abstractmethod
    async def close(self):
        """Gracefully shut down sessions / sockets."""
