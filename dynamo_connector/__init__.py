"""
dynamo-connector: Resilient access to a local Dynamo service.

The local service listens on one of a small range of loopback ports and may
start, stop or run as several instances at any time. This package:
- Discovers the service by probing the candidate ports concurrently
- Tracks the connection as an explicit state machine with change notifications
- Serializes every request so operations against the service never overlap
- Demotes the connection and rediscovers when a request finds the service gone

Installation:
    pip install dynamo-connector

Quickstart:
    from dynamo_connector import DynamoConnector, ConnectionState, GraphTarget

    connector = await DynamoConnector.get_instance()
    connector.subscribe(lambda state: print(f"Dynamo: {state.value}"))

    if connector.state == ConnectionState.CONNECTED:
        info = await connector.current()
        result = await connector.run(GraphTarget.current(), {"height": 3.5})
"""

from dynamo_connector.types import (
    ConnectionState,
    Endpoint,
    ProbeStatus,
    ProbeResult,
    GraphTarget,
    GraphInfo,
    RunInputs,
)
from dynamo_connector.errors import (
    DynamoConnectorError,
    ConnectorConfigError,
    NotConnectedError,
    FetchError,
    GraphNotTrustedError,
)
from dynamo_connector.config import ConnectorConfig
from dynamo_connector.service import DynamoService
from dynamo_connector._core import (
    probe,
    classify_round,
    DiscoveryController,
    SerialRequestQueue,
)
from dynamo_connector.connector import DynamoConnector

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Types
    "ConnectionState",
    "Endpoint",
    "ProbeStatus",
    "ProbeResult",
    "GraphTarget",
    "GraphInfo",
    "RunInputs",
    # Errors
    "DynamoConnectorError",
    "ConnectorConfigError",
    "NotConnectedError",
    "FetchError",
    "GraphNotTrustedError",
    # Configuration
    "ConnectorConfig",
    # Service facade
    "DynamoService",
    # Discovery and queue
    "probe",
    "classify_round",
    "DiscoveryController",
    "SerialRequestQueue",
    # Connector
    "DynamoConnector",
]
