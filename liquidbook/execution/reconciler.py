"""Per-side reconciliation of a target quote against the order resting at the venue."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from liquidbook.connectors.base import BaseConnector, ErrorKind, Side, VenueError
from liquidbook.strategy.market_maker import TargetQuote
from liquidbook.utils.logger import get_child_logger


@dataclass(frozen=True)
class TrackedOrder:
    side: Side
    order_id: Optional[str] = None

    @property
    def resting(self) -> bool:
        return self.order_id is not None

    def cleared(self) -> "TrackedOrder":
        return TrackedOrder(self.side)


class Action(str, enum.Enum):
    NONE = "none"
    EDITED = "edited"
    UNCHANGED = "unchanged"
    CANCELLED = "cancelled"
    PLACED = "placed"
    REPLACED = "replaced"          # old order gone, new one placed this cycle
    PLACE_FAILED = "place_failed"


@dataclass(frozen=True)
class Reconciliation:
    tracked: TrackedOrder
    action: Action
    placements: int = 0  # orders the venue accepted this cycle


class OrderReconciler:
    """Drives one side of the book towards its target with edit / cancel / place.

    The reconciler never keeps order state itself: the caller passes the
    current :class:`TrackedOrder` in and stores the one that comes back.
    """

    def __init__(self, connector: BaseConnector, min_amount: float, logger):
        self._c = connector
        self._min_amount = min_amount
        self._logger = get_child_logger(logger, "reconciler")

    async def reconcile(self, target: TargetQuote, tracked: TrackedOrder) -> Reconciliation:
        side = target.side
        tag = side.value.upper()
        should_place = target.should_place
        needs_place = False
        action = Action.NONE

        if tracked.resting:
            if target.amount < self._min_amount:
                self._logger.info(
                    "%s: target amount %.8g below minimum %.8g, pulling order %s",
                    tag, target.amount, self._min_amount, tracked.order_id,
                )
                should_place = False

            if should_place:
                outcome = await self._amend(target, tracked)
                if outcome is not None:
                    return outcome
                tracked = tracked.cleared()
                needs_place = True
                action = Action.CANCELLED
            else:
                await self._cancel(tag, tracked.order_id)
                tracked = tracked.cleared()
                action = Action.CANCELLED
        else:
            needs_place = True

        if not (needs_place and should_place and target.amount >= self._min_amount):
            if needs_place and action is Action.NONE:
                self._logger.debug(
                    "%s: nothing to place (place=%s, amount %.8g)", tag, should_place, target.amount
                )
            return Reconciliation(tracked, action)

        try:
            order_id = await self._c.place_limit_order(side, target.amount, target.price)
        except VenueError as exc:
            if exc.fatal:
                raise
            self._logger.error("%s: placing %.8g @ %s failed: %s", tag, target.amount, target.price, exc)
            return Reconciliation(tracked.cleared(), Action.PLACE_FAILED)

        self._logger.info("%s: placed %.8g @ %s, id %s", tag, target.amount, target.price, order_id)
        placed = Action.REPLACED if action is Action.CANCELLED else Action.PLACED
        return Reconciliation(TrackedOrder(side, order_id), placed, placements=1)

    async def cancel_stale(self, tracked: TrackedOrder) -> TrackedOrder:
        """Best-effort cancel during cleanup; the side is untracked afterwards."""
        if tracked.resting:
            self._logger.info("%s: cancelling possibly stale order %s", tracked.side.value.upper(), tracked.order_id)
            await self._cancel(tracked.side.value.upper(), tracked.order_id)
        return tracked.cleared()

    # ------- helpers ------- #

    async def _amend(self, target: TargetQuote, tracked: TrackedOrder) -> Optional[Reconciliation]:
        """Try to edit in place.

        Returns the final reconciliation when the order stays resting, or
        *None* when it is gone and a fresh placement is needed.
        """
        tag = target.side.value.upper()
        if not self._c.supports_edit:
            self._logger.debug("%s: venue cannot amend, cancel + create", tag)
            await self._cancel(tag, tracked.order_id)
            return None

        try:
            new_id = await self._c.edit_order(tracked.order_id, target.side, target.amount, target.price)
        except VenueError as exc:
            if exc.kind is ErrorKind.NO_OP_UNCHANGED:
                self._logger.debug("%s: order %s already at target", tag, tracked.order_id)
                return Reconciliation(tracked, Action.UNCHANGED)
            if exc.kind is ErrorKind.NOT_FOUND:
                self._logger.info("%s: order %s no longer exists (filled or cancelled)", tag, tracked.order_id)
                return None
            if exc.fatal:
                raise
            self._logger.warning("%s: edit of %s failed (%s), cancelling it", tag, tracked.order_id, exc)
            await self._cancel(tag, tracked.order_id)
            return None

        self._logger.info("%s: edited %s to %.8g @ %s", tag, tracked.order_id, target.amount, target.price)
        return Reconciliation(TrackedOrder(target.side, new_id or tracked.order_id), Action.EDITED)

    async def _cancel(self, tag: str, order_id: str) -> None:
        try:
            await self._c.cancel_order(order_id)
        except VenueError as exc:
            if exc.kind is ErrorKind.NOT_FOUND:
                self._logger.info("%s: order %s not found on cancel (filled or already cancelled)", tag, order_id)
                return
            if exc.fatal:
                raise
            self._logger.error("%s: cancelling order %s failed: %s", tag, order_id, exc)
            return
        self._logger.info("%s: cancelled order %s", tag, order_id)
