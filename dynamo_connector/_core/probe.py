"""
Liveness probe for a single candidate port.

A probe never raises for network failures; every outcome is encoded in the
returned ProbeResult.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from dynamo_connector.config import ConnectorConfig
from dynamo_connector.errors import FetchError
from dynamo_connector.service import fetch_health
from dynamo_connector.types import ProbeResult

logger = logging.getLogger(__name__)


def is_expected_service(body: Any, service_name: str) -> bool:
    """
    Check that a /health body identifies the expected service.

    The body must be a JSON object whose ``name`` or ``service`` field
    contains ``service_name`` (case-insensitive). An empty ``service_name``
    accepts any body.
    """
    if not service_name:
        return True

    if not isinstance(body, dict):
        return False

    expected = service_name.lower()
    for key in ("name", "service"):
        value = body.get(key)
        if isinstance(value, str) and expected in value.lower():
            return True
    return False


def probe_sync(port: int, config: ConnectorConfig) -> ProbeResult:
    """Blocking implementation of probe()."""
    url = config.url_for(port)

    try:
        body = fetch_health(url, timeout=config.probe_timeout)
    except FetchError as e:
        if e.status == 503:
            logger.debug(f"Port {port}: service is blocked by another client")
            return ProbeResult.rejected(port, 503)
        logger.debug(f"Port {port}: unreachable ({e.status or e.message})")
        return ProbeResult.unreachable(port)

    if not is_expected_service(body, config.service_name):
        logger.debug(f"Port {port}: answered but is not {config.service_name}")
        return ProbeResult.unreachable(port)

    logger.debug(f"Port {port}: live")
    return ProbeResult.live(port)


async def probe(port: int, config: Optional[ConnectorConfig] = None) -> ProbeResult:
    """
    Check whether the local service is live on ``port``.

    Args:
        port: Candidate port
        config: Connector configuration (host, timeout, expected identity)

    Returns:
        ProbeResult.live(port) if the service answered with its identity,
        ProbeResult.rejected(port, 503) if it is held by another client,
        ProbeResult.unreachable(port) otherwise
    """
    config = config or ConnectorConfig()

    # Run in thread pool to avoid blocking async loop
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(None, probe_sync, port, config)
