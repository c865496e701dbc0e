"""
Shared fixtures for the liquidbook tests.

``FakeGateway`` is an in-memory venue: every call is recorded, and errors can
be scripted per method so reconciliation and cycle paths are deterministic.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import pytest

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


def make_book(bids, asks) -> OrderBookSnapshot:
    return OrderBookSnapshot.from_pairs(bids, asks)


def make_rules(**overrides) -> MarketRules:
    params = dict(
        symbol="BTCUSDT",
        base_asset="BTC",
        quote_asset="USDT",
        tick_size=0.1,
        step_size=0.001,
        min_amount=0.001,
        min_notional=5.0,
        price_precision=1,
        amount_precision=3,
    )
    params.update(overrides)
    return MarketRules(**params)


def make_config(**trading_overrides) -> dict:
    trading = dict(
        symbol="BTCUSDT",
        interval_sec=0.01,
        order_book_depth_levels=2,
        target_spread_pct=0.001,
        min_spread=0.2,
        max_spread=5.0,
        base_amount=0.5,
        liquidity_volume_threshold=1.0,
        range_ticks_for_liquidity=30,
        min_notional_value=10.0,
    )
    trading.update(trading_overrides)
    return {
        "exchange": {"market_type": "future"},
        "trading": trading,
        "risk": {"position_limit": 0.0, "inventory_skew_intensity": 0.0},
        "runtime": {"transient_backoff_multiplier": 2, "cancel_on_start": True, "cancel_on_exit": True},
        "metrics": {"path": None},
    }


class FakeGateway(BaseConnector):
    """Scriptable in-memory connector."""

    def __init__(self, supports_edit: bool = True, rules: Optional[MarketRules] = None):
        super().__init__({}, logging.getLogger("liquidbook.test"))
        self._supports_edit = supports_edit
        self.rules = rules or make_rules()
        self.book = make_book([[100.0, 5], [99.9, 5]], [[100.1, 5], [100.2, 5]])
        self.ticker = Ticker(last=100.05)
        self.balance = 10_000.0
        self.position: Optional[float] = 1.0
        self.trades: List[Trade] = []

        self.calls: List[tuple] = []
        self.errors: Dict[str, List[Exception]] = {}
        self._next_id = 0
        self.closed = False

    # ---- scripting ---- #

    def fail(self, method: str, *errors: Exception):
        """Queue errors raised by the next calls of *method*, in order."""
        self.errors.setdefault(method, []).extend(errors)

    def _record(self, method: str, *args):
        self.calls.append((method,) + args)
        queued = self.errors.get(method)
        if queued:
            raise queued.pop(0)

    def called(self, method: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == method]

    # ---- BaseConnector ---- #

    @property
    def supports_edit(self) -> bool:
        return self._supports_edit

    async def load_market(self) -> MarketRules:
        self._record("load_market")
        return self.rules

    async def fetch_ticker(self):
        self._record("fetch_ticker")
        return self.ticker

    async def fetch_order_book(self, depth: int) -> OrderBookSnapshot:
        self._record("fetch_order_book", depth)
        return self.book

    async def fetch_quote_balance(self) -> float:
        self._record("fetch_quote_balance")
        return self.balance

    async def fetch_position(self):
        self._record("fetch_position")
        return self.position

    async def place_limit_order(self, side: Side, amount: float, price: float) -> str:
        self._record("place_limit_order", side, amount, price)
        self._next_id += 1
        return f"o{self._next_id}"

    async def edit_order(self, order_id: str, side: Side, amount: float, price: float) -> str:
        if not self._supports_edit:
            raise VenueError(ErrorKind.UNSUPPORTED, "no amend")
        self._record("edit_order", order_id, side, amount, price)
        return order_id

    async def cancel_order(self, order_id: str) -> None:
        self._record("cancel_order", order_id)

    async def cancel_all_orders(self) -> None:
        self._record("cancel_all_orders")

    async def fetch_trades_since(self, timestamp: int) -> List[Trade]:
        self._record("fetch_trades_since", timestamp)
        return [t for t in self.trades if t.timestamp >= timestamp]

    async def close(self):
        self.closed = True


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def rules():
    return make_rules()
