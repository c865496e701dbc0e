from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from liquidbook.connectors.base import BaseConnector
from liquidbook.utils.logger import get_child_logger


@dataclass
class VolumeState:
    total_base_volume: float = 0.0
    last_trade_watermark: int = 0  # ms, exclusive lower bound


@dataclass
class VolumeTracker:
    """Accumulates our own traded base volume from incremental trade history.

    The watermark only moves forward after a successful fetch that brought
    new volume, so a failed fetch is simply retried on the next cycle.
    """

    connector: BaseConnector
    state: VolumeState = field(default_factory=VolumeState)
    logger: Optional[logging.Logger] = None

    def __post_init__(self):
        self._logger = get_child_logger(self.logger, "volume")

    @property
    def total_volume(self) -> float:
        return self.state.total_base_volume

    async def update(self) -> float:
        """Fetch trades newer than the watermark; return the volume added."""
        watermark = self.state.last_trade_watermark
        try:
            trades = await self.connector.fetch_trades_since(watermark)
        except Exception as e:
            self._logger.error("Failed to fetch trade history since %d: %s", watermark, e)
            return 0.0

        new_volume = 0.0
        max_ts = watermark
        for trade in trades:
            # the venue's "since" is inclusive; guard against re-counting the boundary
            if trade.timestamp <= watermark:
                continue
            new_volume += trade.amount
            max_ts = max(max_ts, trade.timestamp)
            self._logger.debug(
                "New fill: %s %.8g @ %.8g (ts %d)", trade.side.value, trade.amount, trade.price, trade.timestamp
            )

        if new_volume <= 0:
            self._logger.debug("No new trades since %d", watermark)
            return 0.0

        self.state = VolumeState(
            total_base_volume=self.state.total_base_volume + new_volume,
            last_trade_watermark=max_ts + 1,
        )
        self._logger.info(
            "Traded volume +%.8g, total %.8g", new_volume, self.state.total_base_volume
        )
        return new_volume
