"""Prometheus metrics for election processes.

Provides metrics collection and exposure:
- Current role per namespace
- Election passes, watch installations and notifications
- Heartbeat writes by outcome
- Rejoins by reason

Usage:
    from succession.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.heartbeat_writes_total.labels(outcome="updated").inc()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from succession.config import settings

logger = logging.getLogger(__name__)

ROLE_VALUES = {
    "uninitialized": 0,
    "candidate": 1,
    "follower": 2,
    "leader": 3,
}


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> NoOpMetric:
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def dec(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    role: Any = field(default_factory=NoOpMetric)
    elections_total: Any = field(default_factory=NoOpMetric)
    election_duration_seconds: Any = field(default_factory=NoOpMetric)
    role_transitions_total: Any = field(default_factory=NoOpMetric)
    watches_installed_total: Any = field(default_factory=NoOpMetric)
    watch_events_total: Any = field(default_factory=NoOpMetric)
    heartbeat_writes_total: Any = field(default_factory=NoOpMetric)
    rejoins_total: Any = field(default_factory=NoOpMetric)
    election_errors_total: Any = field(default_factory=NoOpMetric)

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        from prometheus_client import REGISTRY, Counter, Gauge, Histogram

        self._registry = REGISTRY

        self.role = Gauge(
            "succession_role",
            "Current role (0=uninitialized, 1=candidate, 2=follower, 3=leader)",
            ["namespace"],
        )

        self.elections_total = Counter(
            "succession_elections_total",
            "Election passes (candidate listing and leadership computation)",
            ["namespace"],
        )

        self.election_duration_seconds = Histogram(
            "succession_election_duration_seconds",
            "Duration of an election pass in seconds",
            ["namespace"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.role_transitions_total = Counter(
            "succession_role_transitions_total",
            "Role transitions",
            ["namespace", "role"],
        )

        self.watches_installed_total = Counter(
            "succession_watches_installed_total",
            "Predecessor watches installed",
            ["namespace"],
        )

        self.watch_events_total = Counter(
            "succession_watch_events_total",
            "Watch notifications received",
            ["namespace", "event_type"],
        )

        self.heartbeat_writes_total = Counter(
            "succession_heartbeat_writes_total",
            "Leader heartbeat writes",
            ["outcome"],
        )

        self.rejoins_total = Counter(
            "succession_rejoins_total",
            "Full rejoins after candidate loss",
            ["namespace", "reason"],
        )

        self.election_errors_total = Counter(
            "succession_election_errors_total",
            "Election errors by kind",
            ["namespace", "kind"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def set_role(self, namespace: str, role: str) -> None:
        self.role.labels(namespace=namespace).set(ROLE_VALUES.get(role, 0))

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if self._registry is None:
            return b"# Metrics disabled\n"

        from prometheus_client import generate_latest

        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


def start_metrics_server(port: int) -> None:
    """Expose the registry over HTTP on the given port."""
    from prometheus_client import start_http_server

    get_metrics()
    start_http_server(port)
    logger.info(f"Serving metrics on port {port}")
