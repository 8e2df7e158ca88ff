"""
HTTP facade for the local Dynamo service.

Each operation is a JSON request/response pair against a base URL. Payloads
are forwarded without interpretation.

Usage:
    service = DynamoService("http://localhost:55100")
    listing = await service.folder("C:/graphs")
    info = await service.current()

Blocking ``requests`` calls run in the default executor so the event loop is
never blocked.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from dynamo_connector.config import DEFAULT_HOST, DEFAULT_PROBE_TIMEOUT, DEFAULT_REQUEST_TIMEOUT
from dynamo_connector.errors import FetchError, GraphNotTrustedError, GRAPH_NOT_TRUSTED_MESSAGE
from dynamo_connector.types import GraphInfo, GraphTarget, RunInputs

logger = logging.getLogger(__name__)


HEALTH_PATH = "/health"
FOLDER_PATH = "/folder"
GRAPH_INFO_PATH = "/graph/info"
GRAPH_RUN_PATH = "/graph/run"
TRUST_PATH = "/trust"
SERVER_INFO_PATH = "/server"


def _error_message(response: requests.Response) -> str:
    """Extract the error message from a failed response."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])

    return response.text or f"HTTP {response.status_code}"


def _request_sync(
    method: str,
    url: str,
    timeout: float,
    operation: str,
    payload: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Perform one request and decode its JSON body.

    Returns:
        The decoded JSON body, or None for an empty body

    Raises:
        GraphNotTrustedError: If the service refuses an untrusted graph
        FetchError: On transport failure or a non-2xx response
    """
    try:
        response = requests.request(method, url, json=payload, timeout=timeout)
    except requests.RequestException as e:
        raise FetchError(f"Request to {url} failed: {e}", operation=operation) from e

    if not response.ok:
        message = _error_message(response)
        if response.status_code == 500 and message == GRAPH_NOT_TRUSTED_MESSAGE:
            raise GraphNotTrustedError(message, status=500, operation=operation)
        raise FetchError(message, status=response.status_code, operation=operation)

    if not response.content:
        return None

    try:
        return response.json()
    except ValueError as e:
        raise FetchError(
            f"Invalid JSON from {url}: {e}",
            status=response.status_code,
            operation=operation,
        ) from e


def fetch_health(url: str, timeout: float = DEFAULT_PROBE_TIMEOUT) -> Any:
    """
    Call the liveness endpoint of the service at ``url``.

    Returns:
        The decoded health body

    Raises:
        FetchError: If the service is unreachable or answered with an error
    """
    return _request_sync("GET", f"{url.rstrip('/')}{HEALTH_PATH}", timeout, "health")


class DynamoService:
    """
    Typed calls to the local Dynamo service bound to one base URL.

    The service does not track connection state. Failures surface as
    FetchError and are classified by the caller.

    Attributes:
        base_url: Address of the service, e.g. http://localhost:55103
        timeout: Request timeout in seconds
    """

    def __init__(self, base_url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        # Run in thread pool to avoid blocking async loop
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None,
            _request_sync,
            method,
            f"{self.base_url}{path}",
            self.timeout,
            operation,
            payload,
        )

    async def folder(self, path: str) -> Any:
        """List the graphs and subfolders in ``path``."""
        return await self._request("POST", FOLDER_PATH, "folder", {"path": path})

    async def info(self, target: GraphTarget) -> GraphInfo:
        """
        Describe the graph identified by ``target``.

        Raises:
            GraphNotTrustedError: If the graph has not been trusted yet
            FetchError: On any other failure
        """
        return await self._request(
            "POST", GRAPH_INFO_PATH, "info", {"target": target.to_payload()}
        )

    async def current(self) -> GraphInfo:
        """Describe the graph currently open in Dynamo."""
        return await self.info(GraphTarget.current())

    async def run(self, target: GraphTarget, inputs: RunInputs) -> Any:
        """Run the graph identified by ``target`` with ``inputs``."""
        return await self._request(
            "POST",
            GRAPH_RUN_PATH,
            "run",
            {"target": target.to_payload(), "inputs": inputs},
        )

    async def trust(self, path: str) -> Any:
        """Mark the graph or folder at ``path`` as trusted."""
        return await self._request("POST", TRUST_PATH, "trust", {"path": path})

    async def server_info(self) -> Any:
        """Return version and host information of the service."""
        return await self._request("GET", SERVER_INFO_PATH, "server_info")

    async def health(self) -> Any:
        """Call the liveness endpoint of this service."""
        return await self._request("GET", HEALTH_PATH, "health")

    @staticmethod
    async def health_at(
        port: int,
        host: str = DEFAULT_HOST,
        timeout: float = DEFAULT_PROBE_TIMEOUT,
    ) -> Any:
        """Call the liveness endpoint on an arbitrary local port."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            None, fetch_health, f"http://{host}:{port}", timeout
        )

    def __repr__(self) -> str:
        return f"DynamoService(base_url={self.base_url!r})"
