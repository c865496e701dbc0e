"""Quoting & position-control algorithms."""

from .inventory import InventoryManager
from .pricing import QuoteBand
from .volume_tracker import VolumeState, VolumeTracker

__all__ = [
    "InventoryManager",
    "QuoteBand",
    "VolumeState",
    "VolumeTracker",
]
