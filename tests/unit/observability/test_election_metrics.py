"""Tests for election metrics."""

import pytest

from succession.coordination.memory import InMemoryCoordinationService
from succession.election.engine import ElectionEngine
from succession.observability.metrics import MetricsRegistry, NoOpMetric, get_metrics


class TestNoOpMetric:
    """Tests for the disabled-metrics stand-in."""

    def test_accepts_all_calls(self) -> None:
        """Every collector method is accepted and chained labels return itself."""
        metric = NoOpMetric()

        assert metric.labels(namespace="/election") is metric
        metric.inc()
        metric.dec()
        metric.set(3)
        metric.observe(0.5)


class TestMetricsRegistry:
    """Tests for the registry."""

    def test_uninitialized_registry(self) -> None:
        """A fresh registry holds no-op collectors and exports nothing."""
        registry = MetricsRegistry()

        registry.set_role("/election", "leader")

        assert isinstance(registry.role, NoOpMetric)
        assert registry.generate_latest() == b"# Metrics disabled\n"

    @pytest.mark.asyncio
    async def test_election_recorded(
        self, service: InMemoryCoordinationService, make_config, wait_until
    ) -> None:
        """An election pass and the leader role show up in the exposition."""
        client = service.client()
        await client.connect()
        engine = ElectionEngine(client, make_config("metrics", election_path="/metrics-election"))
        engine.start()
        try:
            await wait_until(lambda: engine.is_leader)
        finally:
            await engine.stop()
            await client.close()

        output = get_metrics().generate_latest().decode()

        assert 'succession_elections_total{namespace="/metrics-election"}' in output
        assert 'succession_role_transitions_total{namespace="/metrics-election",role="leader"}' in output
