"""Thread-safe in-process counters, gauges and sample summaries."""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from statistics import mean, median
from typing import Deque, Dict, MutableMapping


class MetricsRegistry:
    """In-memory metrics store; the status timer logs its snapshot."""

    def __init__(self, *, max_samples: int = 512) -> None:
        self._lock = threading.RLock()
        self._max_samples = max_samples
        self._counters: MutableMapping[str, float] = defaultdict(float)
        self._gauges: MutableMapping[str, float] = {}
        self._samples: MutableMapping[str, Deque[float]] = defaultdict(
            lambda: deque(maxlen=self._max_samples)
        )

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            self._samples[name].append(float(value))

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            summaries = {key: self._summarize(values) for key, values in self._samples.items()}
        return {"counters": counters, "gauges": gauges, "summaries": summaries}

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._samples.clear()

    @staticmethod
    def _summarize(values: Deque[float]) -> Dict[str, float]:
        if not values:
            return {}
        ordered = sorted(values)
        return {
            "count": float(len(ordered)),
            "avg": mean(ordered),
            "p50": median(ordered),
            "max": ordered[-1],
        }


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
