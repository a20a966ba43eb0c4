"""In-process counters, gauges and duration summaries."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional, Union


@dataclass
class _BaseMetric:
    name: str
    _value: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def snapshot(self) -> float:
        with self._lock:
            return float(self._value)


class Counter(_BaseMetric):
    """Monotonically increasing counter."""

    def inc(self, amount: float = 1.0) -> None:
        if amount <= 0:
            return
        with self._lock:
            self._value += amount


class Gauge(_BaseMetric):
    """Point-in-time value that can move both ways."""

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def add(self, amount: float) -> None:
        if amount == 0:
            return
        with self._lock:
            self._value += amount


@dataclass
class Summary:
    """Count, total and maximum of observed durations (milliseconds)."""

    name: str
    _count: int = 0
    _total: float = 0.0
    _max: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def observe(self, value: float) -> None:
        with self._lock:
            self._count += 1
            self._total += value
            self._max = max(self._max, value)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            mean = self._total / self._count if self._count else 0.0
            return {"count": float(self._count), "mean": round(mean, 3), "max": round(self._max, 3)}


Metric = Union[Counter, Gauge, Summary]


class MetricsRegistry:
    """Thread-safe registry storing metrics by name."""

    def __init__(self) -> None:
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _get_or_create(self, name: str, kind: type) -> Metric:
        with self._lock:
            metric = self._metrics.get(name)
            if isinstance(metric, kind):
                return metric
            created = kind(name=name)
            self._metrics[name] = created
            return created

    def counter(self, name: str) -> Counter:
        return self._get_or_create(name, Counter)  # type: ignore[return-value]

    def gauge(self, name: str) -> Gauge:
        return self._get_or_create(name, Gauge)  # type: ignore[return-value]

    def summary(self, name: str) -> Summary:
        return self._get_or_create(name, Summary)  # type: ignore[return-value]

    def get(self, name: str) -> Optional[Metric]:
        with self._lock:
            return self._metrics.get(name)

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            metrics = list(self._metrics.items())
        return {name: metric.snapshot() for name, metric in metrics}


_DEFAULT_REGISTRY = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    return _DEFAULT_REGISTRY


__all__ = [
    "Counter",
    "Gauge",
    "MetricsRegistry",
    "Summary",
    "get_registry",
]
