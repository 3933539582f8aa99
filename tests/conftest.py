"""Global pytest configuration and fixtures.

Provides the in-memory coordination service and polling helpers used by
the election tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from succession.coordination.memory import InMemoryCoordinationService
from succession.election.config import ElectionConfig

WaitUntil = Callable[..., Awaitable[None]]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "scenario(name): mark test as an end-to-end election scenario"
    )


@pytest.fixture
def service() -> InMemoryCoordinationService:
    """Fresh in-memory coordination service."""
    return InMemoryCoordinationService()


@pytest.fixture
def make_config() -> Callable[..., ElectionConfig]:
    """Election config factory with fast timings for tests."""

    def factory(identity: str, **overrides: object) -> ElectionConfig:
        values: dict[str, object] = {
            "identity": identity,
            "heartbeat_interval": 0.02,
            "retry_delay_initial": 0.01,
            "retry_delay_max": 0.05,
            "missing_candidate_retries": 3,
        }
        values.update(overrides)
        return ElectionConfig(**values)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def wait_until() -> WaitUntil:
    """Poll a predicate on the event loop until it holds or time runs out."""

    async def wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return wait
