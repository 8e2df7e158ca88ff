"""
Port discovery and connection state for the local Dynamo service.

A discovery round probes every candidate port concurrently and reduces the
results to a ConnectionState:

- exactly one live port     -> CONNECTED (endpoint set)
- several live ports        -> MULTIPLE_CONNECTIONS (no endpoint)
- none live, any 503        -> BLOCKED
- none live, no rejections  -> NOT_CONNECTED

While the state is not CONNECTED (and not INIT), a background timer runs a
new round every ``retry_interval`` seconds until a single service is found.

Usage:
    controller = DiscoveryController(ConnectorConfig())
    unsubscribe = controller.subscribe(lambda state: print(state.value))
    await controller.start()
    if controller.state == ConnectionState.CONNECTED:
        print(controller.endpoint.url)
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Tuple, Union

from dynamo_connector._core.probe import probe as probe_port
from dynamo_connector.config import ConnectorConfig
from dynamo_connector.types import (
    ConnectionState,
    Endpoint,
    ProbeResult,
    RETRY_STATES,
)

logger = logging.getLogger(__name__)


Probe = Callable[[int], Awaitable[ProbeResult]]
StateListener = Callable[[ConnectionState], None]


def classify_round(
    results: Sequence[ProbeResult],
) -> Tuple[ConnectionState, Optional[int]]:
    """
    Reduce the probe results of one round to a state and an optional port.

    Ambiguity is never resolved by picking one of several live ports.

    Returns:
        Tuple of (state, port). ``port`` is set only for CONNECTED.
    """
    live = [r.port for r in results if r.is_live]

    if len(live) == 1:
        return ConnectionState.CONNECTED, live[0]
    if len(live) > 1:
        return ConnectionState.MULTIPLE_CONNECTIONS, None
    if any(r.is_blocked for r in results):
        return ConnectionState.BLOCKED, None
    return ConnectionState.NOT_CONNECTED, None


class DiscoveryController:
    """
    Owns the ConnectionState and Endpoint of the local service.

    State changes only through discovery rounds and lose_connection(). All
    methods must be called from the event loop that runs the controller.

    Attributes:
        config: Candidate ports, retry interval and probe settings
    """

    def __init__(
        self,
        config: Optional[ConnectorConfig] = None,
        probe: Optional[Probe] = None,
    ) -> None:
        self.config = config or ConnectorConfig()
        self._probe: Probe = probe or partial(probe_port, config=self.config)

        self._state = ConnectionState.INIT
        self._endpoint: Optional[Endpoint] = None
        self._listeners: List[StateListener] = []

        # Sequence number of the most recently started round
        self._round_seq = 0
        self._round_tasks: Set[asyncio.Task] = set()
        self._retry_task: Optional[asyncio.Task] = None
        self._stopped = False
        # Set whenever a round applies its outcome or the state is demoted
        self._settled: Optional[asyncio.Event] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def endpoint(self) -> Optional[Endpoint]:
        """The discovered endpoint; None unless CONNECTED."""
        return self._endpoint

    @property
    def rounds_started(self) -> int:
        return self._round_seq

    @property
    def is_retrying(self) -> bool:
        """True while the background retry timer is active."""
        return self._retry_task is not None and not self._retry_task.done()

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a callback invoked with the new state on every change.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, state: ConnectionState) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning(f"Connection state listener {listener!r} failed: {e}")

    def _set_state(self, state: ConnectionState) -> None:
        previous = self._state
        self._state = state

        if state != previous:
            logger.info(f"Dynamo connection state: {previous.value} -> {state.value}")
            self._publish(state)

        self._update_timer()

        if self._settled is not None:
            self._settled.set()
            self._settled = None

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    async def discover(self) -> ConnectionState:
        """
        Run one discovery round and apply its outcome.

        The endpoint is cleared when the round starts; the state keeps its
        current value until the round completes. If a newer round starts
        before this one finishes, this round's outcome is discarded.
        If the newest round is cancelled, the state drops to LOST_CONNECTION
        so the retry timer takes over.

        Returns:
            The connection state after the round
        """
        self._round_seq += 1
        seq = self._round_seq
        self._endpoint = None

        ports = self.config.candidate_ports
        logger.debug(f"Discovery round {seq}: probing ports {ports[0]}-{ports[-1]}")

        try:
            outcomes = await asyncio.gather(
                *(self._probe(port) for port in ports),
                return_exceptions=True,
            )
        except asyncio.CancelledError:
            if seq == self._round_seq and not self._stopped:
                logger.debug(f"Discovery round {seq} cancelled, falling back to retries")
                self._set_state(ConnectionState.LOST_CONNECTION)
            raise

        results = [
            self._absorb(port, outcome) for port, outcome in zip(ports, outcomes)
        ]

        if seq != self._round_seq:
            logger.debug(f"Discovery round {seq} superseded by round {self._round_seq}")
            return self._state

        state, port = classify_round(results)
        if port is not None:
            self._endpoint = Endpoint(self.config.host, port)
            logger.info(f"Found Dynamo at {self._endpoint.url}")

        logger.debug(f"Discovery round {seq} result: {state.value}")
        self._set_state(state)
        return state

    def _absorb(
        self,
        port: int,
        outcome: Union[ProbeResult, BaseException],
    ) -> ProbeResult:
        """Map a probe that raised to an unreachable result."""
        if isinstance(outcome, BaseException):
            logger.debug(f"Probe of port {port} raised: {outcome!r}")
            return ProbeResult.unreachable(port)
        return outcome

    def schedule_round(self) -> asyncio.Task:
        """Start a discovery round in the background."""
        task = asyncio.get_running_loop().create_task(self.discover())
        self._round_tasks.add(task)
        task.add_done_callback(self._round_tasks.discard)
        return task

    def lose_connection(self) -> asyncio.Task:
        """
        Demote to LOST_CONNECTION and immediately start one discovery round.

        Called when a request reveals the service is unreachable. The round's
        outcome supersedes LOST_CONNECTION.

        Returns:
            The task running the re-discovery round
        """
        logger.warning("Lost connection to Dynamo, rediscovering")
        self._endpoint = None
        self._set_state(ConnectionState.LOST_CONNECTION)
        return self.schedule_round()

    async def start(self) -> ConnectionState:
        """Run the initial discovery round if none has run yet."""
        self._stopped = False
        if self._state == ConnectionState.INIT:
            return await self.discover()
        self._update_timer()
        return self._state

    async def stop(self) -> None:
        """Stop the retry timer and cancel in-flight rounds."""
        self._stopped = True

        tasks = list(self._round_tasks)
        if self._retry_task is not None:
            tasks.append(self._retry_task)
            self._retry_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def wait_for(
        self,
        *states: ConnectionState,
        timeout: Optional[float] = None,
    ) -> ConnectionState:
        """
        Wait until the state is one of ``states`` (default: CONNECTED).

        Raises:
            asyncio.TimeoutError: If the timeout expires first
        """
        wanted = set(states) or {ConnectionState.CONNECTED}
        if self._state in wanted:
            return self._state

        reached = asyncio.Event()

        def on_change(state: ConnectionState) -> None:
            if state in wanted:
                reached.set()

        unsubscribe = self.subscribe(on_change)
        try:
            await asyncio.wait_for(reached.wait(), timeout=timeout)
        finally:
            unsubscribe()
        return self._state

    async def wait_connected(self, timeout: Optional[float] = None) -> Endpoint:
        """
        Wait until a round has applied CONNECTED with an endpoint.

        A round started while CONNECTED clears the endpoint without changing
        the state, so this waits for the round to settle rather than for a
        state change.

        Raises:
            asyncio.TimeoutError: If the timeout expires first
        """

        async def settled() -> Endpoint:
            while self._state != ConnectionState.CONNECTED or self._endpoint is None:
                if self._settled is None:
                    self._settled = asyncio.Event()
                await self._settled.wait()
            return self._endpoint

        return await asyncio.wait_for(settled(), timeout=timeout)

    # -------------------------------------------------------------------------
    # Retry timer
    # -------------------------------------------------------------------------

    def _update_timer(self) -> None:
        if self._stopped:
            return

        if self._state in RETRY_STATES:
            if not self.is_retrying:
                self._retry_task = asyncio.get_running_loop().create_task(
                    self._retry_loop()
                )
        elif self._retry_task is not None:
            if self._retry_task is not asyncio.current_task():
                self._retry_task.cancel()
            self._retry_task = None

    async def _retry_loop(self) -> None:
        interval = self.config.retry_interval
        logger.debug(f"Retrying discovery every {interval}s")

        while self._state in RETRY_STATES:
            await asyncio.sleep(interval)
            if self._state not in RETRY_STATES:
                break
            await self.discover()
