"""
Pytest configuration for dynamo-connector tests.
"""

import asyncio
from typing import Dict, List

import pytest

from dynamo_connector.config import ConnectorConfig
from dynamo_connector.types import ProbeResult

# Note: With pytest-asyncio in auto mode, no event_loop fixture needed


class FakeNetwork:
    """
    Stand-in for the probe: answers per port from a mutable table.

    Ports not in ``live`` or ``blocked`` are unreachable. ``delay`` makes each
    probe take that long, so tests can overlap rounds.
    """

    def __init__(self) -> None:
        self.live: set = set()
        self.blocked: set = set()
        self.delay = 0.0
        self.calls: List[int] = []

    async def __call__(self, port: int) -> ProbeResult:
        self.calls.append(port)
        if self.delay:
            await asyncio.sleep(self.delay)
        if port in self.live:
            return ProbeResult.live(port)
        if port in self.blocked:
            return ProbeResult.rejected(port, 503)
        return ProbeResult.unreachable(port)


@pytest.fixture
def config():
    """Default port range with a short retry interval."""
    return ConnectorConfig(retry_interval=0.05, probe_timeout=0.1)


@pytest.fixture
def network():
    """Fake probe network; every port unreachable until configured."""
    return FakeNetwork()


@pytest.fixture
def health_body() -> Dict[str, str]:
    """Identity returned by the local service's /health endpoint."""
    return {"name": "DynamoSandbox", "version": "3.4.1"}
