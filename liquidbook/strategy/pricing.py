"""Small numeric helpers for tick/step alignment and price-band calculations."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Optional


def _dec(value: float) -> Decimal:
    return Decimal(repr(float(value)))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def align_price(price: float, tick_size: Optional[float]) -> float:
    """Round *price* to the nearest multiple of *tick_size* (half up).

    A missing or non-positive tick size leaves the price untouched.
    """
    if not tick_size or tick_size <= 0:
        return price
    tick = _dec(tick_size)
    ticks = (_dec(price) / tick).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(ticks * tick)


def align_amount(amount: float, step_size: Optional[float]) -> float:
    """Floor *amount* to a multiple of *step_size*; never negative."""
    if amount <= 0:
        return 0.0
    if not step_size or step_size <= 0:
        return amount
    step = _dec(step_size)
    steps = (_dec(amount) / step).quantize(Decimal(1), rounding=ROUND_FLOOR)
    return float(steps * step)


def decimals_from_increment(increment: Optional[float]) -> Optional[int]:
    """Number of decimal places implied by a tick/step size (0.001 -> 3)."""
    if not increment or increment <= 0:
        return None
    exponent = _dec(increment).normalize().as_tuple().exponent
    return max(0, -exponent)


def format_number(value: float, precision: Optional[int]) -> float:
    """Round for display; ``None`` precision returns the value as is."""
    if precision is None or precision < 0:
        return value
    return round(value, precision)


def format_decimal(value: float, precision: Optional[int]) -> str:
    """Render a number for a venue request without float noise."""
    if precision is None:
        return f"{value:.8f}".rstrip("0").rstrip(".") or "0"
    return f"{value:.{precision}f}"


@dataclass
class QuoteBand:
    """Represents a target bid/ask band around a reference price."""

    bid: float
    ask: float

    @property
    def crossed(self) -> bool:
        return self.bid >= self.ask

    def aligned(self, tick_size: Optional[float]) -> "QuoteBand":
        return QuoteBand(bid=align_price(self.bid, tick_size), ask=align_price(self.ask, tick_size))

    def uncrossed(self, tick_size: Optional[float]) -> Optional["QuoteBand"]:
        """Widen a crossed band by one tick per side, bid first.

        Returns *None* when the band is still crossed afterwards.
        """
        band = self
        if band.crossed and tick_size and tick_size > 0:
            band = QuoteBand(bid=align_price(band.bid - tick_size, tick_size), ask=band.ask)
            if band.crossed:
                band = QuoteBand(bid=band.bid, ask=align_price(band.ask + tick_size, tick_size))
        return None if band.crossed else band
