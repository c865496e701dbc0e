"""High‑level orchestrator: one quoting cycle at a time, reconciling desired quotes vs. live orders."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional

from liquidbook.connectors.base import (
    BaseConnector,
    ErrorKind,
    MarketRules,
    MarketSnapshot,
    Side,
    VenueError,
)
from liquidbook.data.order_book import OrderBook
from liquidbook.execution.reconciler import Action, OrderReconciler, TrackedOrder
from liquidbook.strategy.market_maker import NoQuote, PricingConfig, QuotePlanner
from liquidbook.strategy.volume_tracker import VolumeTracker
from liquidbook.utils.logger import get_child_logger
from liquidbook.utils.metrics import Metrics


class CycleOutcome(str, enum.Enum):
    QUOTED = "quoted"
    SKIPPED = "skipped"                  # nothing safe to quote, resting orders pulled
    TRANSIENT_ERROR = "transient_error"  # venue busy / network, caller backs off
    FAILED = "failed"                    # unclassified error, next cycle as usual


@dataclass
class RuntimeConfig:
    interval_sec: float = 5.0
    transient_backoff_multiplier: float = 3.0
    cancel_on_start: bool = True
    cancel_on_exit: bool = True

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RuntimeConfig":
        runtime = config.get("runtime", {})
        return cls(
            interval_sec=float(config["trading"].get("interval_sec", 5.0)),
            transient_backoff_multiplier=float(runtime.get("transient_backoff_multiplier", 3.0)),
            cancel_on_start=bool(runtime.get("cancel_on_start", True)),
            cancel_on_exit=bool(runtime.get("cancel_on_exit", True)),
        )


class OrderManager:
    """Keeps the *actual* order state in sync with the strategy‑desired state.

    Owns the only mutable state of the worker: the tracked order per side and
    the volume tracker. Cycles never overlap, so none of it needs a lock.
    """

    def __init__(
        self,
        connector: BaseConnector,
        config: dict,
        logger,
        rules: MarketRules,
        metrics: Optional[Metrics] = None,
    ):
        self._c = connector
        self._logger = get_child_logger(logger, "order_mgr")
        self._rules = rules

        self._pricing = PricingConfig.from_config(config, rules)
        self._runtime = RuntimeConfig.from_config(config)
        self._planner = QuotePlanner(self._pricing, logger)
        self._reconciler = OrderReconciler(connector, self._pricing.min_amount, logger)
        self._volume = VolumeTracker(connector, logger=logger)
        self._metrics = metrics or Metrics(config.get("metrics", {}).get("path"))

        self._tracked: Dict[Side, TrackedOrder] = {side: TrackedOrder(side) for side in Side}

    @property
    def tracked(self) -> Dict[Side, TrackedOrder]:
        return dict(self._tracked)

    @property
    def volume(self) -> VolumeTracker:
        return self._volume

    # ------- driver loop ------- #

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Cycle every ``interval_sec`` until *stop* is set or a fatal venue error occurs."""
        stop = stop or asyncio.Event()
        if self._runtime.cancel_on_start:
            await self._cancel_leftovers()

        try:
            while not stop.is_set():
                outcome = await self.run_cycle()
                delay = self._runtime.interval_sec
                if outcome is CycleOutcome.TRANSIENT_ERROR:
                    delay *= self._runtime.transient_backoff_multiplier
                    self._logger.warning("Venue unavailable, backing off %.1fs", delay)
                if stop.is_set():
                    break
                self._logger.debug("Waiting %.1fs", delay)
                await self._wait(stop, delay)
        finally:
            if self._runtime.cancel_on_exit:
                await self._shutdown()

    @staticmethod
    async def _wait(stop: asyncio.Event, delay: float) -> None:
        try:
            await asyncio.wait_for(stop.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    # ------- one cycle ------- #

    async def run_cycle(self) -> CycleOutcome:
        """Run a single quoting cycle and classify how it ended.

        Fatal venue errors propagate; everything else is turned into a
        :class:`CycleOutcome` after a best-effort cancel of resting orders.
        """
        self._logger.info("--- cycle start ---")
        try:
            outcome = await self._cycle()
        except VenueError as exc:
            if exc.fatal:
                self._logger.critical("Fatal venue error, stopping: %s", exc)
                raise
            if exc.kind is ErrorKind.TRANSIENT:
                self._logger.warning("Transient venue error: %s", exc)
                outcome = CycleOutcome.TRANSIENT_ERROR
            else:
                self._logger.error("Venue error during cycle: %s", exc)
                outcome = CycleOutcome.FAILED
            await self._cleanup()
        except Exception:
            self._logger.exception("Unexpected error during cycle")
            outcome = CycleOutcome.FAILED
            await self._cleanup()

        self._record(outcome)
        self._logger.info("--- cycle end (%s) ---", outcome.value)
        return outcome

    async def _cycle(self) -> CycleOutcome:
        snapshot = await self._c.fetch_market_snapshot(self._pricing.order_book_depth_levels)
        self._log_market(snapshot)

        plan = self._planner.plan(snapshot)
        if isinstance(plan, NoQuote):
            self._logger.warning("Skipping quotes: %s", plan.reason)
            await self._cleanup()
            return CycleOutcome.SKIPPED

        targets = (plan.buy, plan.sell)
        results = await asyncio.gather(
            *(self._reconciler.reconcile(t, self._tracked[t.side]) for t in targets),
            return_exceptions=True,
        )

        fatal: Optional[VenueError] = None
        for target, result in zip(targets, results):
            if isinstance(result, VenueError) and result.fatal:
                fatal = result
            elif isinstance(result, Exception):
                # the side keeps its previous tracked order and is retried next cycle
                self._logger.error(
                    "%s reconciliation failed: %s", target.side.value.upper(), result, exc_info=result
                )
            elif isinstance(result, BaseException):
                raise result
            else:
                self._tracked[target.side] = result.tracked
                self._metrics.incr("orders_placed_total", result.placements)
                if result.action is Action.PLACE_FAILED:
                    self._metrics.incr("order_place_failures_total")
        if fatal is not None:
            raise fatal

        await self._volume.update()
        return CycleOutcome.QUOTED

    # ------- cleanup ------- #

    async def _cleanup(self) -> None:
        """Cancel whatever we still track, both sides concurrently."""
        sides = [t for t in self._tracked.values() if t.resting]
        if not sides:
            self._logger.debug("No stale orders to cancel")
            return

        results = await asyncio.gather(
            *(self._reconciler.cancel_stale(t) for t in sides), return_exceptions=True
        )
        fatal: Optional[VenueError] = None
        for tracked, result in zip(sides, results):
            if isinstance(result, VenueError) and result.fatal:
                fatal = result
            elif isinstance(result, Exception):
                self._logger.error("Stale %s order cleanup failed: %s", tracked.side.value, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                self._tracked[tracked.side] = result
        if fatal is not None:
            raise fatal

    async def _cancel_leftovers(self) -> None:
        """Pull orders a previous run may have left on the book."""
        self._logger.info("Cleaning up any existing orders...")
        try:
            await self._c.cancel_all_orders()
        except VenueError as exc:
            if exc.fatal:
                raise
            self._logger.error("Error cancelling existing orders: %s", exc)

    async def _shutdown(self) -> None:
        self._logger.info("Cancelling all open orders before exit")
        try:
            await self._c.cancel_all_orders()
        except Exception as e:
            self._logger.error("Final order cancellation failed: %s", e)
        else:
            self._tracked = {side: TrackedOrder(side) for side in Side}

    # ------- reporting ------- #

    def _log_market(self, snapshot: MarketSnapshot) -> None:
        if snapshot.order_book is not None and snapshot.order_book.usable:
            ob = OrderBook(snapshot.order_book)
            self._logger.info("Book: best bid %s, best ask %s, mid %s", ob.best_bid, ob.best_ask, ob.mid_price)
            self._metrics.set("book_mid_price", ob.mid_price)
        if snapshot.ticker is not None and snapshot.ticker.last is not None:
            self._logger.info("Ticker: last %s", snapshot.ticker.last)
        position = snapshot.position_size
        side = "long" if position > 0 else "short" if position < 0 else "flat"
        self._logger.info(
            "Balance %.4f %s | position %.8g %s (%s)",
            snapshot.quote_balance_free,
            self._rules.quote_asset,
            position,
            self._rules.base_asset,
            side,
        )
        self._metrics.set("position", position)

    def _record(self, outcome: CycleOutcome) -> None:
        self._metrics.incr("cycles_total")
        self._metrics.incr(f"cycles_{outcome.value}_total")
        self._metrics.set("traded_base_volume", self._volume.total_volume)
        try:
            self._metrics.flush()
        except OSError as e:
            self._logger.warning("Could not write metrics: %s", e)
