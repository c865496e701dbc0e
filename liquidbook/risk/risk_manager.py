"""Centralised sizing risk controls: position cap, min notional, balance and sell-side holdings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from liquidbook.connectors.base import Side
from liquidbook.strategy.inventory import InventoryManager
from liquidbook.strategy.pricing import align_amount


@dataclass
class RiskConfig:
    min_notional: float
    min_amount: float = 0.0
    step_size: Optional[float] = None


@dataclass
class SideSizing:
    """Mutable working copy of one side while the gates run."""

    side: Side
    price: float
    amount: float
    place: bool = True
    blocked_by: Optional[str] = None

    @property
    def notional(self) -> float:
        return self.amount * self.price

    def forbid(self, reason: str, zero: bool = True):
        self.place = False
        self.blocked_by = reason
        if zero:
            self.amount = 0.0


class RiskManager:
    """Applies the sizing gates to a bid/ask pair in a fixed order.

    Every gate is a plain branch: a side that fails one is marked as not to
    be placed (and usually zeroed) so the reconciler cancels what rests there.
    """

    def __init__(self, cfg: RiskConfig, inventory: InventoryManager, logger):
        self._cfg = cfg
        self._inv = inventory
        self._logger = logger

    # ------- public API ------- #

    def size(self, buy: SideSizing, sell: SideSizing, position: float, quote_balance: float):
        self.check_inventory(buy, sell, position)

        buy.amount = align_amount(buy.amount, self._cfg.step_size)
        sell.amount = align_amount(sell.amount, self._cfg.step_size)

        self.check_min_notional(buy)
        self.check_min_notional(sell)
        self.check_balance(buy, quote_balance)
        self.check_sell_holdings(sell, position)

    # ------- inventory ------- #

    def check_inventory(self, buy: SideSizing, sell: SideSizing, position: float):
        if not self._inv.breached_hard_cap(position):
            return
        size = abs(position)
        if position > 0:
            self._logger.warning(
                "Position limit %.8g reached (long %.8g): blocking new buys", self._inv.position_limit, position
            )
            buy.forbid("position_limit", zero=False)
            sell.amount = max(sell.amount, size)
        else:
            self._logger.warning(
                "Position limit %.8g reached (short %.8g): blocking new sells", self._inv.position_limit, position
            )
            sell.forbid("position_limit", zero=False)
            buy.amount = max(buy.amount, size)

    # ------- notional / balance ------- #

    def check_min_notional(self, quote: SideSizing):
        if not quote.place:
            return
        if quote.amount <= 0 or quote.notional < self._cfg.min_notional:
            self._logger.warning(
                "%s notional %.4f below minimum %.4f, skipping side",
                quote.side.value.upper(),
                quote.notional,
                self._cfg.min_notional,
            )
            quote.forbid("min_notional")

    def check_balance(self, buy: SideSizing, quote_balance: float):
        cost = buy.notional
        if buy.place and cost > 0 and cost > quote_balance:
            self._logger.warning("Insufficient balance %.4f for buy costing %.4f", quote_balance, cost)
            buy.forbid("balance")

    def check_sell_holdings(self, sell: SideSizing, position: float):
        """Flat or long: never offer more than is held (one step of slack)."""
        if not sell.place or sell.amount <= 0 or position < 0:
            return
        max_sellable = position + (self._cfg.step_size or 1e-8)
        if sell.amount <= max_sellable:
            return

        self._logger.warning("Trying to sell %.8g but only %.8g held, reducing", sell.amount, position)
        sell.amount = align_amount(max(0.0, position), self._cfg.step_size)
        if (
            sell.amount <= 0
            or sell.amount < self._cfg.min_amount
            or sell.notional < self._cfg.min_notional
        ):
            self._logger.warning("Reduced sell amount %.8g too small, skipping side", sell.amount)
            sell.forbid("holdings")
