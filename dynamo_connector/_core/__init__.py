"""
Core connection machinery for dynamo-connector.

This module handles:
- Liveness probes against candidate ports
- Discovery rounds, connection state and the retry timer
- Serial execution of requests
"""

from dynamo_connector._core.probe import probe, is_expected_service
from dynamo_connector._core.discovery import DiscoveryController, classify_round
from dynamo_connector._core.queue import SerialRequestQueue, QueuedTask

__all__ = [
    # Probe
    "probe",
    "is_expected_service",
    # Discovery
    "DiscoveryController",
    "classify_round",
    # Queue
    "SerialRequestQueue",
    "QueuedTask",
]
