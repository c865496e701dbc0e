"""High‑level order book utilities (depth‑weighted pricing & near‑price liquidity)."""

from .order_book import (
    NoPriceError,
    OrderBook,
    depth_mid_price,
    volume_near_price,
    volume_near_price_ticks,
    vwap,
)

__all__ = [
    "NoPriceError",
    "OrderBook",
    "depth_mid_price",
    "volume_near_price",
    "volume_near_price_ticks",
    "vwap",
]
