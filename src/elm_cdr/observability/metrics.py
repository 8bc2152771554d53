"""
ELM CDR Metrics

In-process counters and histograms, exposed as a plain dict by GET /metrics.
Label sets are flattened to "k=v,k2=v2" keys; the empty string is the
unlabelled series.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Iterator


def _series_key(labels: dict[str, str] | None) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted((labels or {}).items()))


class Counter:
    """
    Monotonically increasing value per label set.

    Usage:
        requests = registry.counter("cdr_retrieval_requests_total")
        requests.inc(labels={"outcome": "valid"})
    """

    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description
        self._series: dict[str, float] = defaultdict(float)
        self._lock = Lock()

    def inc(self, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._series[_series_key(labels)] += value

    def get(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._series.get(_series_key(labels), 0.0)

    def total(self) -> float:
        """Sum over every label set."""
        with self._lock:
            return sum(self._series.values())

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            return dict(self._series)


@dataclass
class _Distribution:
    count: int = 0
    sum: float = 0.0
    buckets: dict[float, int] = field(default_factory=dict)


class Histogram:
    """
    Observation count, sum and cumulative buckets per label set.

    Usage:
        latency = registry.histogram("cdr_validator_latency_seconds")
        with latency.time():
            await client.validate(...)
    """

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, float("inf"))

    def __init__(
        self, name: str, description: str = "", buckets: tuple[float, ...] | None = None
    ) -> None:
        self.name = name
        self.description = description
        self.bucket_bounds = buckets or self.DEFAULT_BUCKETS
        self._series: dict[str, _Distribution] = {}
        self._lock = Lock()

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _series_key(labels)
        with self._lock:
            dist = self._series.get(key)
            if dist is None:
                dist = self._series[key] = _Distribution(
                    buckets={bound: 0 for bound in self.bucket_bounds}
                )
            dist.count += 1
            dist.sum += value
            for bound in self.bucket_bounds:
                if value <= bound:
                    dist.buckets[bound] += 1

    @contextmanager
    def time(self, labels: dict[str, str] | None = None) -> Iterator[None]:
        """Observe the elapsed seconds of the block, even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start, labels)

    def get_count(self, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            dist = self._series.get(_series_key(labels))
            return dist.count if dist else 0

    def get_sum(self, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            dist = self._series.get(_series_key(labels))
            return dist.sum if dist else 0.0

    def get_mean(self, labels: dict[str, str] | None = None) -> float:
        count = self.get_count(labels)
        return self.get_sum(labels) / count if count else 0.0

    def snapshot(self) -> dict[str, Any]:
        """Unlabelled series summary."""
        return {"count": self.get_count(), "sum": self.get_sum(), "mean": self.get_mean()}


class MetricsRegistry:
    """Named metrics, created on first use."""

    def __init__(self) -> None:
        self._metrics: dict[str, Counter | Histogram] = {}
        self._lock = Lock()

    def counter(self, name: str, description: str = "") -> Counter:
        with self._lock:
            metric = self._metrics.setdefault(name, Counter(name, description))
        if not isinstance(metric, Counter):
            raise TypeError(f"Metric {name} is a {type(metric).__name__}, not a Counter")
        return metric

    def histogram(
        self, name: str, description: str = "", buckets: tuple[float, ...] | None = None
    ) -> Histogram:
        with self._lock:
            metric = self._metrics.setdefault(name, Histogram(name, description, buckets))
        if not isinstance(metric, Histogram):
            raise TypeError(f"Metric {name} is a {type(metric).__name__}, not a Histogram")
        return metric

    def get_all(self) -> dict[str, Any]:
        """Current value of every metric, keyed by name."""
        with self._lock:
            metrics = list(self._metrics.values())
        return {metric.name: metric.snapshot() for metric in metrics}


_registry: MetricsRegistry | None = None


def get_registry() -> MetricsRegistry:
    """Process-wide metrics registry."""
    global _registry
    if _registry is None:
        _registry = MetricsRegistry()
    return _registry


def reset_metrics() -> None:
    """Discard the process-wide registry (for testing)."""
    global _registry
    _registry = None


class RetrievalMetrics:
    """The metrics recorded by the retrieval endpoint and validation client."""

    def __init__(self, registry: MetricsRegistry | None = None) -> None:
        self._registry = registry or get_registry()

    @property
    def requests(self) -> Counter:
        """Retrieval requests by outcome."""
        return self._registry.counter("cdr_retrieval_requests_total", "Retrieval requests")

    @property
    def validator_latency(self) -> Histogram:
        """Round-trip latency of validation calls, failures included."""
        return self._registry.histogram(
            "cdr_validator_latency_seconds", "Validation service latency"
        )

    @property
    def validator_errors(self) -> Counter:
        """Validation call failures by error type."""
        return self._registry.counter("cdr_validator_errors_total", "Validation call failures")


def get_retrieval_metrics() -> RetrievalMetrics:
    """Retrieval metrics bound to the process-wide registry."""
    return RetrievalMetrics()
