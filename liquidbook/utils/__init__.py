"""Utility helpers shared across the market maker (logging, metrics)."""

from .logger import get_child_logger, setup_from_config, setup_logger
from .metrics import Metrics

__all__ = [
    "setup_logger",
    "setup_from_config",
    "get_child_logger",
    "Metrics",
]
