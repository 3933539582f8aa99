"""Observability module for succession.

Provides structured logging and metrics:
- JSON or console logging with election context
- Prometheus metrics for roles, elections, watches and heartbeats
"""

from succession.observability.logging import (
    LogContext,
    candidate_var,
    configure_logging,
    identity_var,
    namespace_var,
)
from succession.observability.metrics import (
    get_metrics,
    metrics_registry,
    start_metrics_server,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "candidate_var",
    "identity_var",
    "namespace_var",
    # Metrics
    "get_metrics",
    "metrics_registry",
    "start_metrics_server",
]
