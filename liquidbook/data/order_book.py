"""In‑memory order book helper: best bid/ask, depth‑weighted mid and near‑price liquidity."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from liquidbook.connectors.base import OrderBookLevel, OrderBookSnapshot

logger = logging.getLogger(__name__)


class NoPriceError(ValueError):
    """Neither a depth‑weighted nor a simple mid price can be derived."""


def _valid(level: OrderBookLevel) -> bool:
    return level.price > 0 and level.size > 0


def vwap(levels: Sequence[OrderBookLevel], depth: int) -> Optional[float]:
    """Volume‑weighted average price over the first *depth* levels of one side.

    Levels with a non‑positive price or size are ignored. Returns *None* when
    ``depth <= 0`` or no volume is left to weight.
    """
    if not levels or depth <= 0:
        return None
    notional = 0.0
    volume = 0.0
    for lvl in levels[:depth]:
        if not _valid(lvl):
            continue
        notional += lvl.price * lvl.size
        volume += lvl.size
    if volume == 0:
        return None
    return notional / volume


def depth_mid_price(book: Optional[OrderBookSnapshot], levels: int) -> float:
    """Average of bid and ask VWAPs, kept inside the touch.

    The clamp keeps the reference between best bid and best ask even when one
    side's depth is far heavier than the other; a plain VWAP average can land
    outside the spread there. Falls back to the simple best bid/ask mid when
    either VWAP is unavailable.
    """
    if book is None:
        raise NoPriceError("no order book")

    best_bid = book.bids[0].price if book.bids else None
    best_ask = book.asks[0].price if book.asks else None

    bid_vwap = vwap(book.bids, levels)
    ask_vwap = vwap(book.asks, levels)
    if bid_vwap is not None and ask_vwap is not None:
        mid = (bid_vwap + ask_vwap) / 2
        if best_bid is not None and best_ask is not None and best_bid <= best_ask:
            # a lopsided deep book must not drag the reference outside the touch
            mid = max(best_bid, min(best_ask, mid))
        return mid

    if best_bid is not None and best_ask is not None:
        logger.warning("VWAP calculation failed, falling back to simple mid-price")
        return (best_bid + best_ask) / 2

    raise NoPriceError("could not calculate depth mid-price or fallback mid-price")


def volume_near_price(levels: Sequence[OrderBookLevel], target: float, abs_range: float) -> float:
    """Total size resting within ``[target - abs_range, target + abs_range]``."""
    if not levels or abs_range < 0:
        return 0.0
    lower = target - abs_range
    upper = target + abs_range
    return sum(lvl.size for lvl in levels if lower <= lvl.price <= upper)


def volume_near_price_ticks(
    levels: Sequence[OrderBookLevel],
    target: float,
    range_ticks: float,
    tick_size: Optional[float],
) -> float:
    """Like :func:`volume_near_price` with the range given in ticks."""
    if not tick_size or tick_size <= 0:
        logger.warning("Invalid tick size %r for near-price volume, returning 0", tick_size)
        return 0.0
    return volume_near_price(levels, target, range_ticks * tick_size)


class OrderBook:
    """Lightweight order‑book representation."""

    def __init__(self, snapshot: OrderBookSnapshot):
        self._bids: List[OrderBookLevel] = snapshot.bids
        self._asks: List[OrderBookLevel] = snapshot.asks
        self._snapshot = snapshot

    # ---------- Core quotes ---------- #

    @property
    def best_bid(self) -> float:
        return self._bids[0].price if self._bids else 0.0

    @property
    def best_ask(self) -> float:
        return self._asks[0].price if self._asks else 0.0

    @property
    def mid_price(self) -> float:
        if not (self._bids and self._asks):
            return 0.0
        return (self.best_bid + self.best_ask) / 2

    def depth_mid_price(self, levels: int) -> float:
        return depth_mid_price(self._snapshot, levels)

    def liquidity_near(self, side: str, price: float, range_ticks: float, tick_size: Optional[float]) -> float:
        """Resting size near *price* on our own side of the book (bids for a buy)."""
        levels = self._bids if side.lower() == "buy" else self._asks
        return volume_near_price_ticks(levels, price, range_ticks, tick_size)

