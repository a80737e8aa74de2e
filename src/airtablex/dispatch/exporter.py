"""
Prometheus metrics exporter for the dispatcher.

Exports low-cardinality metrics only: no identity, endpoint, base or table
labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from airtablex.dispatch.cooldown import CooldownStore
    from airtablex.dispatch.dispatcher import DispatchMetrics


# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "identity",
        "user_id",
        "endpoint",
        "path",
        "base_id",
        "table",
        "record_id",
        "token",
    }
)

# (attribute on DispatchMetrics, metric name, help text)
_COUNTERS: tuple[tuple[str, str, str], ...] = (
    ("requests_sent", "airtablex_dispatch_requests_sent", "Requests sent to the API"),
    (
        "requests_delayed",
        "airtablex_dispatch_requests_delayed",
        "Requests that waited for a cooldown before sending",
    ),
    (
        "requests_succeeded",
        "airtablex_dispatch_requests_succeeded",
        "Requests answered with a 200 and a JSON body",
    ),
    (
        "requests_rate_limited",
        "airtablex_dispatch_requests_rate_limited",
        "Requests rejected with a 429",
    ),
    (
        "requests_failed",
        "airtablex_dispatch_requests_failed",
        "Requests that failed for a reason other than rate limiting",
    ),
    (
        "transport_faults",
        "airtablex_dispatch_transport_faults",
        "Requests that got no HTTP response",
    ),
    ("total_wait_ms", "airtablex_dispatch_wait_ms", "Total time spent waiting for cooldowns (ms)"),
)


class MetricsExporter:
    """
    Mirrors DispatchMetrics and cooldown store size into Prometheus.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(metrics=client.metrics, cooldown_store=client.cooldown_store)
        # generate_latest(registry) -> bytes for a /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self._registry = registry or CollectorRegistry()

        self._counters: dict[str, Counter] = {
            attr: Counter(name, help_text, registry=self._registry)
            for attr, name, help_text in _COUNTERS
        }
        self._max_wait_ms = Gauge(
            "airtablex_dispatch_max_wait_ms",
            "Longest single cooldown wait observed (ms)",
            registry=self._registry,
        )
        self._cooldown_entries = Gauge(
            "airtablex_cooldown_entries",
            "Identities currently tracked by the cooldown store",
            registry=self._registry,
        )
        self._cooldown_max_entries = Gauge(
            "airtablex_cooldown_max_entries",
            "Maximum identities the cooldown store keeps",
            registry=self._registry,
        )

        # Last seen values for counter increments (counters are monotonic)
        self._last: dict[str, int] = {attr: 0 for attr, _, _ in _COUNTERS}

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def update(
        self,
        metrics: DispatchMetrics | None = None,
        cooldown_store: CooldownStore | None = None,
    ) -> None:
        """
        Sync component state to Prometheus.

        Call on every scrape or on a timer.
        """
        if metrics is not None:
            for attr, counter in self._counters.items():
                current = int(getattr(metrics, attr))
                delta = current - self._last[attr]
                if delta > 0:
                    counter.inc(delta)
                self._last[attr] = current
            self._max_wait_ms.set(metrics.max_wait_ms)

        if cooldown_store is not None:
            self._cooldown_entries.set(len(cooldown_store))
            self._cooldown_max_entries.set(cooldown_store.max_entries)

    def reset_counter_tracking(self) -> None:
        """
        Reset internal counter tracking.

        Use when DispatchMetrics is replaced. Does NOT reset the Prometheus
        counters themselves.
        """
        self._last = dict.fromkeys(self._last, 0)


# Counters are exported with a _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {f"{name}_total" for _, name, _ in _COUNTERS}
    | {
        "airtablex_dispatch_max_wait_ms",
        "airtablex_cooldown_entries",
        "airtablex_cooldown_max_entries",
    }
)
