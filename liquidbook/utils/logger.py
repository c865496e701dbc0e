"""Stdout + optional rotating‑file logging for the quoting worker."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER = "liquidbook"
LINE_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"

# aiohttp logs every connection hiccup we already surface as TRANSIENT
_NOISY = ("aiohttp.client", "aiohttp.internal", "asyncio")


def _build_handler(to_file: Optional[Path] = None, max_bytes: int = 5 * 1024 * 1024, backups: int = 3) -> logging.Handler:
    if to_file:
        to_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(to_file, maxBytes=max_bytes, backupCount=backups)
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LINE_FMT, datefmt=DATE_FMT))
    return handler


def setup_logger(
    level: str = "INFO",
    path: str | None = None,
    max_bytes: int = 5 * 1024 * 1024,
    backups: int = 3,
) -> logging.Logger:
    """Configure the ``liquidbook`` logger once per process and return it."""
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:  # already configured
        return root

    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root.setLevel(lvl)
    root.propagate = False

    root.addHandler(_build_handler())
    if path:
        root.addHandler(_build_handler(Path(path), max_bytes, backups))

    for name in _NOISY:
        logging.getLogger(name).setLevel(max(lvl, logging.WARNING))

    root.debug("Logger initialised at level %s", logging.getLevelName(lvl))
    return root


def setup_from_config(section: Optional[Dict[str, Any]]) -> logging.Logger:
    """Build the logger from the ``logging`` config section (all keys optional)."""
    section = section or {}
    return setup_logger(
        level=section.get("level", "INFO"),
        path=section.get("file"),
        max_bytes=int(section.get("max_bytes", 5 * 1024 * 1024)),
        backups=int(section.get("backup_count", 3)),
    )


def get_child_logger(parent: Optional[logging.Logger], name: str) -> logging.Logger:
    """Return a namespaced child logger under *parent* (the package root if omitted)."""
    if parent is None:
        parent = logging.getLogger(ROOT_LOGGER)
    return parent.getChild(name)
