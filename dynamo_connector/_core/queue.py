"""
Serial execution of requests against the local service.

Every operation is submitted as a named thunk. A single worker task runs the
thunks one at a time in submission order and reports each outcome to its
submitter through a future. A failing task does not stop the queue.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class QueuedTask:
    """
    An operation waiting in the queue.

    Attributes:
        name: Operation name, used for logging
        thunk: Zero-argument callable returning the awaitable to run
        future: Resolved with the thunk's result or exception
    """
    name: str
    thunk: Callable[[], Awaitable[Any]]
    future: asyncio.Future


class SerialRequestQueue:
    """
    FIFO queue that runs one task at a time.

    There is no queue-level timeout: a task that never settles stalls every
    task behind it. Callers may bound their own wait with asyncio.wait_for;
    a task whose caller gave up before it started is skipped, a task that
    already started runs to completion.

    Usage:
        queue = SerialRequestQueue()
        listing = await queue.enqueue("folder", lambda: service.folder(path))
    """

    def __init__(self) -> None:
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def pending(self) -> int:
        """Number of tasks waiting to start."""
        return self._queue.qsize() if self._queue is not None else 0

    def _ensure_worker(self) -> asyncio.Queue:
        # Created lazily so the queue binds to the loop it is first used on
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run(self._queue))
        return self._queue

    async def enqueue(self, name: str, thunk: Callable[[], Awaitable[T]]) -> T:
        """
        Submit a task and wait for its outcome.

        Args:
            name: Operation name, used for logging
            thunk: Zero-argument callable returning an awaitable

        Returns:
            The thunk's result

        Raises:
            Whatever the thunk raised
            RuntimeError: If the queue has been closed
        """
        if self._closed:
            raise RuntimeError(f"Cannot enqueue '{name}': queue is closed")

        queue = self._ensure_worker()
        future = asyncio.get_running_loop().create_future()
        queue.put_nowait(QueuedTask(name=name, thunk=thunk, future=future))

        return await future

    async def _run(self, queue: asyncio.Queue) -> None:
        """Worker loop - execute tasks strictly one after another."""
        while True:
            task = await queue.get()
            try:
                await self._execute(task)
            finally:
                queue.task_done()

    async def _execute(self, task: QueuedTask) -> None:
        if task.future.done():
            logger.debug(f"skipping: {task.name} (caller no longer waiting)")
            return

        logger.debug(f"executing: {task.name}")
        try:
            result = await task.thunk()
        except asyncio.CancelledError:
            if not task.future.done():
                task.future.cancel()
            if self._closed:
                raise
        except Exception as e:
            if not task.future.done():
                task.future.set_exception(e)
            else:
                logger.debug(f"{task.name} failed after its caller stopped waiting: {e!r}")
        else:
            if not task.future.done():
                task.future.set_result(result)

    async def join(self) -> None:
        """Wait until every submitted task has settled."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        """Stop the worker and cancel tasks that have not started."""
        self._closed = True

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                task = self._queue.get_nowait()
                task.future.cancel()
                self._queue.task_done()
            self._queue = None

    def open(self) -> None:
        """Accept tasks again after close()."""
        self._closed = False
