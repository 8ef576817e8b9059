"""
Prometheus Metrics Collector

In-process metrics for the delivery outbox, exported in the Prometheus
text exposition format (text/plain; version=0.0.4).

Registries are plain instances owned by the application (see
``outbox.api.main``); tests build their own so nothing leaks between runs.
"""
import threading
from typing import Dict, List, Optional
from dataclasses import dataclass, field


@dataclass
class MetricValue:
    """Single metric value with optional labels."""
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


class _Metric:
    """Shared label handling for all metric types."""

    kind = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[List[str]] = None):
        self.name = name
        self.description = description
        self.label_names = labels or []
        self._values: Dict[tuple, float] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _label_key(labels: Dict[str, str]) -> tuple:
        return tuple(sorted((k, str(v)) for k, v in labels.items()))

    def collect(self) -> List[MetricValue]:
        with self._lock:
            return [
                MetricValue(value=v, labels=dict(k))
                for k, v in self._values.items()
            ]

    def value(self, **labels: str) -> float:
        """Current value for one label combination (0 if never touched)."""
        with self._lock:
            return self._values.get(self._label_key(labels), 0.0)


class Counter(_Metric):
    """Cumulative metric that only goes up."""

    kind = "counter"

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        if amount < 0:
            raise ValueError("Counters can only be incremented")
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount


class Gauge(_Metric):
    """Metric that can go up and down (queue depth, health status)."""

    kind = "gauge"

    def set(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount

    def dec(self, amount: float = 1.0, **labels: str) -> None:
        self.inc(-amount, **labels)


class Histogram(_Metric):
    """
    Samples observations and counts them in cumulative buckets.
    Used for gateway latency and batch duration.
    """

    kind = "histogram"

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ):
        super().__init__(name, description, labels)
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self._series: Dict[tuple, Dict] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            data = self._series.setdefault(
                key,
                {"buckets": {b: 0 for b in self.buckets}, "sum": 0.0, "count": 0},
            )
            data["sum"] += value
            data["count"] += 1
            for bucket in self.buckets:
                if value <= bucket:
                    data["buckets"][bucket] += 1

    def collect(self) -> List[MetricValue]:
        """Bucket values plus +Inf, sum and count series."""
        result = []
        with self._lock:
            for key, data in self._series.items():
                base_labels = dict(key)
                for bucket in self.buckets:
                    result.append(MetricValue(
                        value=data["buckets"][bucket],
                        labels={**base_labels, "le": str(bucket)}
                    ))
                result.append(MetricValue(value=data["count"], labels={**base_labels, "le": "+Inf"}))
                result.append(MetricValue(value=data["sum"], labels={**base_labels, "_metric": "sum"}))
                result.append(MetricValue(value=data["count"], labels={**base_labels, "_metric": "count"}))
        return result


class MetricsRegistry:
    """
    Registry of all outbox metrics with Prometheus text export.
    """

    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Register application metrics."""
        # ============================================
        # ENQUEUE
        # ============================================
        self.messages_enqueued = self.counter(
            "outbox_messages_enqueued_total",
            "Messages accepted by the enqueue API",
            ["priority", "scheduled"]
        )

        # ============================================
        # DELIVERY OUTCOMES
        # ============================================
        self.delivery_attempts = self.counter(
            "outbox_delivery_attempts_total",
            "Gateway send attempts by outcome",
            ["outcome"]
        )

        self.messages_sent = self.counter(
            "outbox_messages_sent_total",
            "Messages delivered to the gateway (terminal success)"
        )

        self.messages_failed = self.counter(
            "outbox_messages_failed_total",
            "Messages that exhausted retries or were rejected permanently"
        )

        self.retries_scheduled = self.counter(
            "outbox_retries_scheduled_total",
            "Retries scheduled with backoff"
        )

        self.stuck_recovered = self.counter(
            "outbox_stuck_entries_recovered_total",
            "Entries reclaimed from a stale processing state"
        )

        # ============================================
        # LATENCY
        # ============================================
        self.gateway_latency = self.histogram(
            "outbox_gateway_latency_seconds",
            "Gateway send latency",
            ["outcome"]
        )

        self.batch_duration = self.histogram(
            "outbox_batch_duration_seconds",
            "Duration of one process_batch run",
            buckets=(0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0)
        )

        # ============================================
        # QUEUE STATE
        # ============================================
        self.queue_depth = self.gauge(
            "outbox_queue_entries",
            "Queue entries by status",
            ["status"]
        )

        self.health_status = self.gauge(
            "outbox_gateway_health",
            "Gateway health: 2=healthy, 1=degraded, 0=down"
        )

    def counter(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None
    ) -> Counter:
        """Create and register a counter."""
        metric = Counter(name, description, labels)
        self._metrics[name] = metric
        return metric

    def gauge(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None
    ) -> Gauge:
        """Create and register a gauge."""
        metric = Gauge(name, description, labels)
        self._metrics[name] = metric
        return metric

    def histogram(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ) -> Histogram:
        """Create and register a histogram."""
        metric = Histogram(name, description, labels, buckets)
        self._metrics[name] = metric
        return metric

    def export(self) -> str:
        """
        Export all metrics in Prometheus text exposition format.

        Exposition format:
        https://prometheus.io/docs/instrumenting/exposition_formats/
        """
        lines = []

        for name, metric in self._metrics.items():
            lines.append(f"# HELP {name} {metric.description}")
            lines.append(f"# TYPE {name} {metric.kind}")

            for mv in metric.collect():
                labels = dict(mv.labels)
                metric_name = name
                if isinstance(metric, Histogram):
                    if "_metric" in labels:
                        metric_name = f"{name}_{labels.pop('_metric')}"
                    elif "le" in labels:
                        metric_name = f"{name}_bucket"

                lines.append(f"{metric_name}{self._format_labels(labels)} {mv.value}")

            lines.append("")

        return "\n".join(lines)

    def _format_labels(self, labels: Dict[str, str]) -> str:
        if not labels:
            return ""
        parts = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(parts) + "}"
