"""
Exception types for dynamo-connector.

Provides typed exceptions for:
- Configuration errors
- Requests issued without a discovered endpoint
- Failed requests against the local service (connectivity or application)
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from dynamo_connector.types import ConnectionState


# Message the service returns when a graph has not been trusted by the user
GRAPH_NOT_TRUSTED_MESSAGE = "Graph is not trusted."


class DynamoConnectorError(Exception):
    """Base exception for all dynamo-connector errors."""
    pass


class ConnectorConfigError(DynamoConnectorError):
    """
    Raised when connector configuration is invalid.

    This includes:
    - Ports outside 1-65535
    - Non-positive intervals or timeouts
    - Unparseable environment variable values
    """
    pass


class NotConnectedError(DynamoConnectorError):
    """
    Raised when an operation is issued while no endpoint is known.

    Operations fail fast instead of reaching a stale address. The connection
    state is not changed; discovery keeps running in the background.

    Example:
        try:
            folder = await connector.folder("C:/graphs")
        except NotConnectedError as e:
            logger.info(f"Dynamo unavailable: {e.state.value}")
    """

    def __init__(self, state: "ConnectionState", operation: Optional[str] = None):
        self.state = state
        self.operation = operation

        message = f"Not connected to Dynamo (state={state.value})"
        if operation:
            message = f"Cannot run '{operation}': {message}"

        super().__init__(message)

    def __repr__(self) -> str:
        return f"NotConnectedError(state={self.state!r}, operation={self.operation!r})"


class FetchError(DynamoConnectorError):
    """
    Raised when a request to the local service fails.

    Attributes:
        message: Error message from the service, or the transport error text
        status: HTTP status code, or None when no response was received
            (connection refused, timeout)
        operation: Name of the operation that failed, if known
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        operation: Optional[str] = None,
    ):
        self.message = message
        self.status = status
        self.operation = operation
        super().__init__(message)

    @property
    def is_connectivity_failure(self) -> bool:
        """
        True if the failure indicates the service is unreachable.

        Transport failures (no status) and 5xx responses qualify. 4xx responses
        are application errors.
        """
        return self.status is None or self.status >= 500

    @property
    def is_graph_not_trusted(self) -> bool:
        return self.status == 500 and self.message == GRAPH_NOT_TRUSTED_MESSAGE

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, "
            f"status={self.status!r}, operation={self.operation!r})"
        )


class GraphNotTrustedError(FetchError):
    """
    Raised when the service refuses a graph that the user has not trusted.

    This is a business outcome, not a connectivity fault: the connection
    state is left untouched. Callers typically ask the user and then call
    ``trust(path)``.
    """
    pass
