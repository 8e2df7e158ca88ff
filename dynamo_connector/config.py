"""
Configuration for dynamo-connector.

Defaults match the local Dynamo service: ten candidate ports starting at
55100, re-probed every two seconds while disconnected.

Environment Variables:
    DYNAMO_CONNECTOR_HOST: Host to probe (default: localhost)
    DYNAMO_CONNECTOR_BASE_PORT: First candidate port (default: 55100)
    DYNAMO_CONNECTOR_PORT_COUNT: Number of candidate ports (default: 10)
    DYNAMO_CONNECTOR_RETRY_INTERVAL: Seconds between discovery rounds (default: 2.0)
    DYNAMO_CONNECTOR_PROBE_TIMEOUT: Timeout of one liveness check (default: 1.0)
    DYNAMO_CONNECTOR_REQUEST_TIMEOUT: Timeout of service requests (default: 60.0)
    DYNAMO_CONNECTOR_SERVICE_NAME: Expected service identity (default: Dynamo)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, List, Mapping, Optional

from dynamo_connector.errors import ConnectorConfigError

DEFAULT_HOST = "localhost"
DEFAULT_BASE_PORT = 55100
DEFAULT_PORT_COUNT = 10
DEFAULT_RETRY_INTERVAL = 2.0
DEFAULT_PROBE_TIMEOUT = 1.0
DEFAULT_REQUEST_TIMEOUT = 60.0
DEFAULT_SERVICE_NAME = "Dynamo"

ENV_PREFIX = "DYNAMO_CONNECTOR_"


@dataclass
class ConnectorConfig:
    """
    Configuration for discovery and requests.

    Attributes:
        host: Host the local service runs on
        base_port: First candidate port
        port_count: Number of contiguous candidate ports
        retry_interval: Seconds between discovery rounds while not connected
        probe_timeout: Timeout in seconds of a single liveness check
        request_timeout: Timeout in seconds of a service request
        service_name: Identity expected in the /health body. Empty to accept
            any 2xx response.
    """
    host: str = DEFAULT_HOST
    base_port: int = DEFAULT_BASE_PORT
    port_count: int = DEFAULT_PORT_COUNT
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    service_name: str = DEFAULT_SERVICE_NAME

    def __post_init__(self) -> None:
        """Validate configuration on creation."""
        self.validate()

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.host:
            raise ConnectorConfigError("host must not be empty")

        if self.port_count < 1:
            raise ConnectorConfigError(f"port_count must be >= 1, got {self.port_count}")

        last_port = self.base_port + self.port_count - 1
        if self.base_port < 1 or last_port > 65535:
            raise ConnectorConfigError(
                f"candidate ports {self.base_port}-{last_port} are outside 1-65535"
            )

        for name in ("retry_interval", "probe_timeout", "request_timeout"):
            value = getattr(self, name)
            if value <= 0:
                raise ConnectorConfigError(f"{name} must be > 0, got {value}")

    @property
    def candidate_ports(self) -> List[int]:
        """Ports probed in each discovery round."""
        return [self.base_port + i for i in range(self.port_count)]

    def url_for(self, port: int) -> str:
        return f"http://{self.host}:{port}"

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "ConnectorConfig":
        """
        Build a configuration from DYNAMO_CONNECTOR_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            **overrides: Field values that take precedence over the environment

        Raises:
            ConnectorConfigError: If a variable cannot be parsed or a value is invalid
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _parse(f.name, raw, _PARSERS.get(f.name, str))

        values.update(overrides)
        return cls(**values)


_PARSERS: Dict[str, Callable[[str], Any]] = {
    "base_port": int,
    "port_count": int,
    "retry_interval": float,
    "probe_timeout": float,
    "request_timeout": float,
}


def _parse(name: str, raw: str, parser: Callable[[str], Any]) -> Any:
    try:
        return parser(raw.strip())
    except ValueError as e:
        raise ConnectorConfigError(
            f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}"
        ) from e
