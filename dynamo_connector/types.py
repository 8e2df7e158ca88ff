"""
Type definitions for dynamo-connector.

Defines the enums and dataclasses shared across the package for:
- Connection tracking (ConnectionState, Endpoint)
- Port discovery (ProbeStatus, ProbeResult)
- Local service payloads (GraphTarget, RunInputs, GraphInfo)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# =============================================================================
# Connection Types
# =============================================================================


class ConnectionState(str, Enum):
    """
    Connection state of the local Dynamo service.

    Exactly one state holds at any time:

    - INIT: No discovery round has completed yet.
    - CONNECTED: Exactly one live service found; an Endpoint is available.
    - MULTIPLE_CONNECTIONS: More than one live service found. The target is
      ambiguous, so no Endpoint is selected.
    - NOT_CONNECTED: No service answered on any candidate port.
    - BLOCKED: No live service, but at least one instance rejected the probe
      because another client holds exclusive access (HTTP 503).
    - LOST_CONNECTION: A request against the Endpoint failed with a
      connectivity error. Superseded by the next discovery round.
    """
    INIT = "INIT"
    CONNECTED = "CONNECTED"
    MULTIPLE_CONNECTIONS = "MULTIPLE_CONNECTIONS"
    NOT_CONNECTED = "NOT_CONNECTED"
    BLOCKED = "BLOCKED"
    LOST_CONNECTION = "LOST_CONNECTION"


# States in which the discovery timer keeps retrying
RETRY_STATES = frozenset({
    ConnectionState.NOT_CONNECTED,
    ConnectionState.MULTIPLE_CONNECTIONS,
    ConnectionState.BLOCKED,
    ConnectionState.LOST_CONNECTION,
})


@dataclass(frozen=True)
class Endpoint:
    """
    Discovered base address of the local service.

    Attributes:
        host: Host name (normally "localhost")
        port: TCP port the service answered on
    """
    host: str
    port: int

    @property
    def url(self) -> str:
        """Base URL of the service, e.g. http://localhost:55103"""
        return f"http://{self.host}:{self.port}"

    def __str__(self) -> str:
        return self.url


# =============================================================================
# Discovery Types
# =============================================================================


class ProbeStatus(str, Enum):
    """Outcome of a single liveness check."""
    LIVE = "live"
    UNREACHABLE = "unreachable"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ProbeResult:
    """
    Result of probing one candidate port.

    Attributes:
        port: The probed port
        status: LIVE, UNREACHABLE or REJECTED
        status_code: HTTP status for REJECTED results (503 when blocked)
    """
    port: int
    status: ProbeStatus
    status_code: Optional[int] = None

    @classmethod
    def live(cls, port: int) -> "ProbeResult":
        return cls(port=port, status=ProbeStatus.LIVE)

    @classmethod
    def unreachable(cls, port: int) -> "ProbeResult":
        return cls(port=port, status=ProbeStatus.UNREACHABLE)

    @classmethod
    def rejected(cls, port: int, status_code: int = 503) -> "ProbeResult":
        return cls(port=port, status=ProbeStatus.REJECTED, status_code=status_code)

    @property
    def is_live(self) -> bool:
        return self.status == ProbeStatus.LIVE

    @property
    def is_blocked(self) -> bool:
        """True if the service answered but refused us (HTTP 503)."""
        return self.status == ProbeStatus.REJECTED and self.status_code == 503


# =============================================================================
# Local Service Payloads
# =============================================================================


# Inputs for a graph run; forwarded as-is
RunInputs = Dict[str, Any]

# Graph description returned by the service; not interpreted
GraphInfo = Dict[str, Any]


CURRENT_GRAPH_TARGET = "CurrentGraphTarget"


@dataclass
class GraphTarget:
    """
    Identifies the graph an operation applies to.

    The connector does not interpret targets. ``type`` selects the kind of
    target and any ``fields`` are sent alongside it unchanged.

    Example:
        GraphTarget.current()
        GraphTarget("PathGraphTarget", {"path": "C:/graphs/wall.dyn"})
    """
    type: str
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def current(cls) -> "GraphTarget":
        """Target for the graph currently open in the local service."""
        return cls(type=CURRENT_GRAPH_TARGET)

    @property
    def is_current(self) -> bool:
        return self.type == CURRENT_GRAPH_TARGET

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the JSON envelope sent to the service."""
        payload = dict(self.fields)
        payload["type"] = self.type
        return payload
