"""Core quoting algorithm: depth mid, clamped spread, inventory skew and liquidity-scaled sizes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from liquidbook.connectors.base import MarketRules, MarketSnapshot, Side
from liquidbook.data.order_book import NoPriceError, OrderBook
from liquidbook.risk.risk_manager import RiskConfig, RiskManager, SideSizing
from liquidbook.utils.logger import get_child_logger
from .inventory import InventoryManager
from .pricing import QuoteBand, clamp, format_number


@dataclass
class PricingConfig:
    target_spread_pct: float
    min_spread: float
    max_spread: float
    base_amount: float
    liquidity_volume_threshold: float
    range_ticks_for_liquidity: float = 30
    min_notional_value: float = 10.0
    position_limit: float = 0.0
    inventory_skew_intensity: float = 0.0
    order_book_depth_levels: int = 10
    tick_size: Optional[float] = None
    step_size: Optional[float] = None
    min_amount: float = 0.0
    price_precision: Optional[int] = None
    amount_precision: Optional[int] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], rules: MarketRules) -> "PricingConfig":
        """Merge the ``trading``/``risk`` sections with the venue's filters."""
        trading = config["trading"]
        risk = config.get("risk", {})
        return cls(
            target_spread_pct=float(trading["target_spread_pct"]),
            min_spread=float(trading.get("min_spread", 0.0)),
            max_spread=float(trading.get("max_spread", float("inf"))),
            base_amount=float(trading["base_amount"]),
            liquidity_volume_threshold=float(trading["liquidity_volume_threshold"]),
            range_ticks_for_liquidity=float(trading.get("range_ticks_for_liquidity", 30)),
            # the venue floor wins over a looser configured one
            min_notional_value=max(float(trading.get("min_notional_value", 10.0)), rules.min_notional),
            position_limit=float(risk.get("position_limit", 0.0)),
            inventory_skew_intensity=float(risk.get("inventory_skew_intensity", 0.0)),
            order_book_depth_levels=int(trading.get("order_book_depth_levels", 10)),
            tick_size=rules.tick_size,
            step_size=rules.step_size,
            min_amount=rules.min_amount,
            price_precision=rules.price_precision,
            amount_precision=rules.amount_precision,
        )


@dataclass(frozen=True)
class TargetQuote:
    side: Side
    price: float
    amount: float
    should_place: bool


@dataclass(frozen=True)
class QuotePlan:
    buy: TargetQuote
    sell: TargetQuote
    mid_price: float
    spread: float
    skew: float = 0.0


@dataclass(frozen=True)
class NoQuote:
    """Nothing can be quoted this cycle; resting orders should be pulled."""

    reason: str


class QuotePlanner:
    """Compute target bid/ask prices & sizes from the order book and inventory state."""

    def __init__(self, cfg: PricingConfig, logger):
        self._cfg = cfg
        self._logger = get_child_logger(logger, "planner")
        self._sanitize()

        self._inv = InventoryManager(
            position_limit=cfg.position_limit,
            skew_intensity=cfg.inventory_skew_intensity,
        )
        self._risk = RiskManager(
            RiskConfig(
                min_notional=cfg.min_notional_value,
                min_amount=cfg.min_amount,
                step_size=cfg.step_size,
            ),
            self._inv,
            get_child_logger(logger, "risk"),
        )

    @property
    def config(self) -> PricingConfig:
        return self._cfg

    def _sanitize(self) -> None:
        cfg = self._cfg
        if cfg.target_spread_pct <= 0:
            self._logger.warning("target_spread_pct (%s) should be positive", cfg.target_spread_pct)
        if cfg.inventory_skew_intensity < 0:
            self._logger.warning("inventory_skew_intensity (%s) cannot be negative, using 0", cfg.inventory_skew_intensity)
            cfg.inventory_skew_intensity = 0.0
        if cfg.position_limit <= 0 and cfg.inventory_skew_intensity > 0:
            self._logger.warning(
                "Inventory skew needs a positive position_limit (%s), disabling skew", cfg.position_limit
            )
            cfg.inventory_skew_intensity = 0.0
        if not cfg.tick_size or cfg.tick_size <= 0:
            self._logger.warning("Tick size unknown (%s), every cycle will be skipped", cfg.tick_size)
        if cfg.step_size is None:
            self._logger.warning("Step size unknown, amounts will not be aligned")

    # ---- public API ---- #

    def plan(self, snapshot: MarketSnapshot) -> Union[QuotePlan, NoQuote]:
        """Return the target quote pair, or :class:`NoQuote` when quoting is unsafe."""
        cfg = self._cfg
        book = snapshot.order_book
        if book is None or not book.usable:
            return NoQuote("order book missing or one side empty")
        if not cfg.tick_size or cfg.tick_size <= 0:
            return NoQuote("tick size unknown, prices cannot be aligned")
        ob = OrderBook(book)

        try:
            mid = ob.depth_mid_price(cfg.order_book_depth_levels)
        except NoPriceError as exc:
            return NoQuote(f"no mid price: {exc}")

        spread = clamp(mid * cfg.target_spread_pct, cfg.min_spread, cfg.max_spread)
        position = snapshot.position_size

        skew = self._inv.skew(spread, position)
        band = QuoteBand(bid=mid - spread / 2 - skew, ask=mid + spread / 2 - skew)
        if skew:
            self._logger.debug(
                "Inventory ratio %.3f, skew %s", self._inv.ratio(position), format_number(skew, cfg.price_precision)
            )

        aligned = band.aligned(cfg.tick_size)
        if aligned.crossed:
            self._logger.warning("Bid %s >= ask %s after rounding/skew, widening by one tick", aligned.bid, aligned.ask)
        final = aligned.uncrossed(cfg.tick_size)
        if final is None:
            return NoQuote(f"crossed quotes {aligned.bid} >= {aligned.ask} after tick widening")

        buy = SideSizing(Side.BUY, final.bid, self._liquidity_amount(ob, Side.BUY, final.bid))
        sell = SideSizing(Side.SELL, final.ask, self._liquidity_amount(ob, Side.SELL, final.ask))
        self._risk.size(buy, sell, position, snapshot.quote_balance_free)

        plan = QuotePlan(
            buy=TargetQuote(Side.BUY, buy.price, buy.amount, buy.place),
            sell=TargetQuote(Side.SELL, sell.price, sell.amount, sell.place),
            mid_price=mid,
            spread=spread,
            skew=skew,
        )
        self._logger.info(
            "Mid %s spread %s | BUY %s @ %s (%s) | SELL %s @ %s (%s)",
            format_number(mid, cfg.price_precision),
            format_number(spread, cfg.price_precision),
            format_number(buy.amount, cfg.amount_precision),
            buy.price,
            "place" if buy.place else buy.blocked_by,
            format_number(sell.amount, cfg.amount_precision),
            sell.price,
            "place" if sell.place else sell.blocked_by,
        )
        return plan

    def _liquidity_amount(self, ob: OrderBook, side: Side, price: float) -> float:
        """Scale the base amount down when little size rests near *price*."""
        cfg = self._cfg
        liquidity = ob.liquidity_near(side, price, cfg.range_ticks_for_liquidity, cfg.tick_size)
        if cfg.liquidity_volume_threshold <= 0:
            return cfg.base_amount
        return cfg.base_amount * min(1.0, liquidity / cfg.liquidity_volume_threshold)
