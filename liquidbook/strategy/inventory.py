"""Translate the running position into a quoting skew."""

from __future__ import annotations

from dataclasses import dataclass

from .pricing import clamp


@dataclass
class InventoryManager:
    """Derives the inventory ratio and price skew from the signed position."""

    position_limit: float          # absolute cap in base units; 0 disables skew and the hard gate
    skew_intensity: float = 0.0    # fraction of the spread shifted at a full ratio

    @property
    def skew_enabled(self) -> bool:
        return self.skew_intensity > 0 and self.position_limit > 0

    def ratio(self, position: float) -> float:
        """Position relative to the limit, clipped to [-1, 1]."""
        if self.position_limit <= 0:
            return 0.0
        return clamp(position / self.position_limit, -1.0, 1.0)

    def skew(self, spread: float, position: float) -> float:
        """Amount both quotes move *down* by; negative moves them up."""
        if not self.skew_enabled:
            return 0.0
        return spread * self.ratio(position) * self.skew_intensity

    def breached_hard_cap(self, position: float) -> bool:
        return self.position_limit > 0 and abs(position) >= self.position_limit
