"""Resolution counters.

The sink is created once at process start (see factory.py) and passed to
the Resolver. Recording is fire-and-forget: `record()` never raises.
"""

import logging
from collections import Counter as TallyCounter
from enum import Enum
from functools import lru_cache
from threading import Lock
from typing import Dict, Optional, Protocol

from prometheus_client import CollectorRegistry, Counter
from prometheus_client.registry import REGISTRY

logger = logging.getLogger(__name__)


class MetricEvent(str, Enum):
    """Events counted during resolution."""

    RESOLUTION_ATTEMPTED = "resolution_attempted"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    REFERENCE_RESOLVED = "reference_resolved"
    REFERENCE_MISSING = "reference_missing"
    CYCLE_DETECTED = "cycle_detected"


class MetricsSink(Protocol):
    """Anything that can count a MetricEvent."""

    def increment(self, event: MetricEvent, project_id: str = "") -> None:
        ...


def record(sink: Optional[MetricsSink], event: MetricEvent, project_id: str = "") -> None:
    """Count `event` on `sink`, swallowing any recording failure."""
    if sink is None:
        return
    try:
        sink.increment(event, project_id=project_id)
    except Exception as e:
        logger.debug("Dropping metric %s: %s", event.value, e)


class NullMetricsSink:
    """Discards every event."""

    def increment(self, event: MetricEvent, project_id: str = "") -> None:
        return None


class InMemoryMetricsSink:
    """Counts events in memory. Useful in tests and local runs."""

    def __init__(self):
        self._counts: "TallyCounter[MetricEvent]" = TallyCounter()
        self._lock = Lock()

    def increment(self, event: MetricEvent, project_id: str = "") -> None:
        with self._lock:
            self._counts[event] += 1

    def count(self, event: MetricEvent) -> int:
        with self._lock:
            return self._counts[event]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {event.value: n for event, n in self._counts.items()}


# ============================================================================
# Prometheus
# ============================================================================

_METRIC_HELP = {
    MetricEvent.RESOLUTION_ATTEMPTED: "Top-level prompt resolutions attempted",
    MetricEvent.CACHE_HIT: "Resolved prompt cache hits",
    MetricEvent.CACHE_MISS: "Resolved prompt cache misses",
    MetricEvent.REFERENCE_RESOLVED: "Prompt references resolved to a stored version",
    MetricEvent.REFERENCE_MISSING: "Prompt references whose target was not found",
    MetricEvent.CYCLE_DETECTED: "Cyclic prompt references detected",
}


class PrometheusMetricsSink:
    """Counts events as prometheus_client Counters labelled by project.

    Counters are registered on `registry` when the sink is created, so
    create exactly one sink per registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: str = "prompt"):
        registry = registry if registry is not None else REGISTRY
        self._counters: Dict[MetricEvent, Counter] = {
            event: Counter(
                f"{event.value}_total",
                help_text,
                ["project_id"],
                namespace=namespace,
                registry=registry,
            )
            for event, help_text in _METRIC_HELP.items()
        }

    def increment(self, event: MetricEvent, project_id: str = "") -> None:
        self._counters[event].labels(project_id=project_id).inc()


@lru_cache(maxsize=1)
def get_default_metrics_sink() -> PrometheusMetricsSink:
    """Process-wide sink on the global prometheus REGISTRY."""
    return PrometheusMetricsSink()
