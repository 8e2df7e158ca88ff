"""
Connector to the local Dynamo service.

Combines port discovery, the serial request queue and the service facade:

- Every call is queued and runs alone, in submission order
- Calls fail fast with NotConnectedError unless exactly one service is known
- A connectivity failure demotes the state to LOST_CONNECTION and triggers
  an immediate discovery round; the error is re-raised to the caller

Usage:
    # Singleton pattern (recommended)
    connector = await DynamoConnector.get_instance()
    connector.subscribe(lambda state: print(state.value))
    info = await connector.current()

    # Manual lifecycle
    async with DynamoConnector(ConnectorConfig(base_port=55100)) as connector:
        await connector.run(GraphTarget.current(), {"width": 10})
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from dynamo_connector._core.discovery import DiscoveryController, Probe, StateListener
from dynamo_connector._core.queue import SerialRequestQueue
from dynamo_connector.config import ConnectorConfig
from dynamo_connector.errors import FetchError, GraphNotTrustedError, NotConnectedError
from dynamo_connector.service import DynamoService
from dynamo_connector.types import (
    ConnectionState,
    Endpoint,
    GraphInfo,
    GraphTarget,
    RunInputs,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Operations whose "graph is not trusted" failure is a business outcome
_TRUST_CHECKED_OPERATIONS = frozenset({"info", "current"})


def _get_running_loop_id() -> int:
    """Get the ID of the currently running event loop, or 0 if none."""
    try:
        loop = asyncio.get_running_loop()
        return id(loop)
    except RuntimeError:
        return 0


class DynamoConnector:
    """
    Queued, self-healing access to the local Dynamo service.

    The singleton is event-loop aware: each event loop gets its own
    connector, so state, timers and the queue never cross loops.

    Attributes:
        config: Connector configuration
        discovery: The controller owning connection state and endpoint
    """

    # Per-loop instances: {loop_id: DynamoConnector}
    _instances: Dict[int, "DynamoConnector"] = {}
    _lock: Optional[asyncio.Lock] = None

    def __init__(
        self,
        config: Optional[ConnectorConfig] = None,
        probe: Optional[Probe] = None,
    ) -> None:
        self.config = config or ConnectorConfig.from_env()
        self.discovery = DiscoveryController(self.config, probe=probe)
        self._queue = SerialRequestQueue()
        self._service: Optional[DynamoService] = None

    @classmethod
    def _get_lock(cls) -> asyncio.Lock:
        if cls._lock is None:
            cls._lock = asyncio.Lock()
        return cls._lock

    @classmethod
    async def get_instance(cls) -> "DynamoConnector":
        """
        Get or create the started connector for the current event loop.

        The first call runs the initial discovery round. The connector is
        returned whatever the outcome; check ``state`` or use
        ``wait_connected()``.
        """
        loop_id = _get_running_loop_id()

        async with cls._get_lock():
            instance = cls._instances.get(loop_id)
            if instance is None:
                instance = DynamoConnector()
                await instance.start()
                cls._instances[loop_id] = instance
            return instance

    @classmethod
    async def reset(cls) -> None:
        """Close and forget the connector of the current event loop."""
        loop_id = _get_running_loop_id()

        async with cls._get_lock():
            instance = cls._instances.pop(loop_id, None)
            if instance is not None:
                await instance.close()

    @classmethod
    async def reset_all(cls) -> None:
        """Close every connector (for testing/cleanup)."""
        for instance in list(cls._instances.values()):
            await instance.close()
        cls._instances.clear()
        cls._lock = None

    # -------------------------------------------------------------------------
    # Lifecycle and state
    # -------------------------------------------------------------------------

    async def start(self) -> ConnectionState:
        """Run the initial discovery round and start background retries."""
        self._queue.open()
        return await self.discovery.start()

    async def close(self) -> None:
        """Stop discovery and cancel queued calls that have not started."""
        await self.discovery.stop()
        await self._queue.close()
        logger.debug("DynamoConnector closed")

    async def reconnect(self) -> ConnectionState:
        """Run a discovery round now, regardless of state or timer phase."""
        return await self.discovery.discover()

    async def wait_connected(self, timeout: Optional[float] = None) -> Endpoint:
        """
        Wait until a single service is connected and its endpoint is known.

        Raises:
            asyncio.TimeoutError: If no service is found within ``timeout``
        """
        return await self.discovery.wait_connected(timeout=timeout)

    @property
    def state(self) -> ConnectionState:
        return self.discovery.state

    @property
    def endpoint(self) -> Optional[Endpoint]:
        return self.discovery.endpoint

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self.endpoint is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback for state changes; returns an unsubscribe function."""
        return self.discovery.subscribe(listener)

    # -------------------------------------------------------------------------
    # Error feedback
    # -------------------------------------------------------------------------

    def _bound_service(self, operation: str) -> DynamoService:
        endpoint = self.endpoint
        if self.state != ConnectionState.CONNECTED or endpoint is None:
            raise NotConnectedError(self.state, operation)

        if self._service is None or self._service.base_url != endpoint.url:
            self._service = DynamoService(endpoint.url, timeout=self.config.request_timeout)
        return self._service

    async def _call(
        self,
        operation: str,
        call: Callable[[DynamoService], Awaitable[T]],
    ) -> T:
        service = self._bound_service(operation)
        try:
            return await call(service)
        except GraphNotTrustedError:
            if operation not in _TRUST_CHECKED_OPERATIONS:
                self.discovery.lose_connection()
            raise
        except FetchError as e:
            if e.is_connectivity_failure:
                logger.warning(f"{operation} failed against {service.base_url}: {e}")
                self.discovery.lose_connection()
            raise

    def _enqueue(
        self,
        operation: str,
        call: Callable[[DynamoService], Awaitable[T]],
    ) -> Awaitable[T]:
        return self._queue.enqueue(operation, lambda: self._call(operation, call))

    # -------------------------------------------------------------------------
    # Queued service operations
    # -------------------------------------------------------------------------

    async def folder(self, path: str) -> Any:
        """List the graphs and subfolders in ``path``."""
        return await self._enqueue("folder", lambda service: service.folder(path))

    async def current(self) -> GraphInfo:
        """
        Describe the graph currently open in Dynamo.

        Raises:
            GraphNotTrustedError: If the open graph is not trusted (state unchanged)
        """
        return await self._enqueue("current", lambda service: service.current())

    async def info(self, target: GraphTarget) -> GraphInfo:
        """
        Describe the graph identified by ``target``.

        Raises:
            GraphNotTrustedError: If the graph is not trusted (state unchanged)
            NotConnectedError: If no endpoint is known
            FetchError: On any other failure
        """
        return await self._enqueue("info", lambda service: service.info(target))

    async def run(self, target: GraphTarget, inputs: RunInputs) -> Any:
        """Run the graph identified by ``target`` with ``inputs``."""
        return await self._enqueue("run", lambda service: service.run(target, inputs))

    async def trust(self, path: str) -> Any:
        """Mark the graph or folder at ``path`` as trusted."""
        return await self._enqueue("trust", lambda service: service.trust(path))

    async def server_info(self) -> Any:
        """Return version and host information of the connected service."""
        return await self._enqueue("server_info", lambda service: service.server_info())

    async def health(self, port: Optional[int] = None) -> Any:
        """
        Call the liveness endpoint of the connected service, or of ``port``.

        With a port the call needs no connection and never changes the state.
        It still runs through the queue.
        """
        if port is None:
            return await self._enqueue("health", lambda service: service.health())

        return await self._queue.enqueue(
            "health",
            lambda: DynamoService.health_at(
                port,
                host=self.config.host,
                timeout=self.config.probe_timeout,
            ),
        )

    async def __aenter__(self) -> "DynamoConnector":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
