"""Simple Prometheus‑style textfile metrics."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Dict, Optional


class Metrics:
    """Counter & gauge collector flushed to a node‑exporter textfile.

    Only the quoting worker writes to it, between cycles.
    """

    def __init__(self, path: str | Path | None = "/tmp/liquidbook_metrics.txt", prefix: str = "liquidbook_"):
        self._metrics: Dict[str, float] = defaultdict(float)
        self._path: Optional[Path] = Path(path) if path else None
        self._prefix = prefix

    def incr(self, key: str, amt: float = 1.0):
        self._metrics[key] += amt

    def set(self, key: str, val: float):
        self._metrics[key] = val

    def get(self, key: str) -> float:
        return self._metrics.get(key, 0.0)

    def render(self) -> str:
        return "".join(f"{self._prefix}{k} {v}\n" for k, v in sorted(self._metrics.items()))

    def flush(self):
        if self._path is None:
            return
        self._path.write_text(self.render())
