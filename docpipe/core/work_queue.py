"""
Bounded in-process work queue.

A FIFO admission queue feeds a fixed pool of asyncio workers, so no more than
``max_parallelism`` handlers ever run at once. Every enqueue returns an opaque
handle immediately; the handle's status, result and completion hook are
tracked here.

Completion is delivered exactly once per handle: the first completion signal
resolves the handle's future and fires its ``on_complete`` hook, later signals
for the same handle are ignored.
"""

import asyncio
import inspect
import logging
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from docpipe.core.errors import QueueSaturated, UnknownHandleError

logger = logging.getLogger(__name__)


class WorkStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({WorkStatus.SUCCEEDED, WorkStatus.FAILED, WorkStatus.CANCELED})


@dataclass(frozen=True)
class WorkResult:
    """Outcome of one work item, delivered once per handle."""

    handle: str
    status: WorkStatus
    value: Any = None
    error: str | None = None


OnComplete = Callable[[WorkResult], Awaitable[None] | None]


@dataclass
class _WorkItem:
    handle: str
    handler: Callable[..., Awaitable[Any]]
    args: tuple
    kwargs: dict
    on_complete: OnComplete | None
    done: asyncio.Future
    status: WorkStatus = WorkStatus.PENDING
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: WorkResult | None = None


_STOP = object()


def _describe_error(exc: BaseException) -> str:
    message = str(exc)
    return message if message else type(exc).__name__


class WorkQueue:
    """
    Runs async handlers with a hard ceiling on concurrency.

    Args:
        max_parallelism: Number of workers, i.e. maximum concurrently running handlers
        max_queue_depth: Admission bound; enqueue raises QueueSaturated beyond it (0 = unbounded)
        max_retained: Number of finished items whose status and result stay queryable.
            Older finished items are evicted and their handles become unknown.
    """

    def __init__(self, max_parallelism: int = 3, max_queue_depth: int = 0, max_retained: int = 1000):
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be at least 1")
        if max_queue_depth < 0:
            raise ValueError("max_queue_depth must not be negative")
        if max_retained < 1:
            raise ValueError("max_retained must be at least 1")

        self.max_parallelism = max_parallelism
        self.max_queue_depth = max_queue_depth
        self.max_retained = max_retained
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_depth)
        self._items: dict[str, _WorkItem] = {}
        self._completed: set[str] = set()
        self._finished: deque[str] = deque()
        self._workers: list[asyncio.Task] = []
        self._running = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return bool(self._workers)

    @property
    def running_count(self) -> int:
        """Number of handlers executing right now."""
        return self._running

    @property
    def depth(self) -> int:
        """Number of admitted items not yet picked up by a worker."""
        return self._queue.qsize()

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"work-queue-worker-{index}")
            for index in range(self.max_parallelism)
        ]
        logger.info(f"Work queue started with {self.max_parallelism} workers")

    async def stop(self, drain: bool = True) -> None:
        """
        Stop the workers.

        With ``drain`` every admitted item runs first. Without it, items that
        have not started are canceled; in-flight handlers always finish.
        """
        if not self._workers:
            return

        if not drain:
            for item in list(self._items.values()):
                if item.status is WorkStatus.PENDING:
                    await self.cancel(item.handle)

        await self._queue.join()
        for _ in self._workers:
            await self._queue.put(_STOP)
        await asyncio.gather(*self._workers)
        self._workers = []
        logger.info("Work queue stopped")

    async def join(self) -> None:
        """Wait until every admitted item has been processed."""
        await self._queue.join()

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def enqueue(
        self,
        handler: Callable[..., Awaitable[Any]],
        *args: Any,
        on_complete: OnComplete | None = None,
        handle: str | None = None,
        **kwargs: Any,
    ) -> str:
        """
        Admit a work item without blocking.

        Must be called from within the running event loop. A caller that needs
        to persist the handle before the item can run may pass its own unused
        ``handle``.

        Returns:
            The opaque handle for the item

        Raises:
            QueueSaturated: If the admission queue is at ``max_queue_depth``
        """
        if handle is None:
            handle = uuid.uuid4().hex
        elif handle in self._items:
            raise ValueError(f"Handle {handle} is already in use")
        item = _WorkItem(
            handle=handle,
            handler=handler,
            args=args,
            kwargs=kwargs,
            on_complete=on_complete,
            done=asyncio.get_running_loop().create_future(),
        )
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull as e:
            raise QueueSaturated(f"Work queue is saturated ({self.max_queue_depth} items waiting)") from e

        self._items[handle] = item
        logger.debug(f"Enqueued work item {handle}")
        return handle

    def status(self, handle: str) -> WorkStatus:
        return self._get(handle).status

    def result(self, handle: str) -> WorkResult | None:
        """The final result, or None while the item is pending or running."""
        return self._get(handle).result

    async def wait(self, handle: str) -> WorkResult:
        """Wait for the item behind ``handle`` to reach a terminal status."""
        return await asyncio.shield(self._get(handle).done)

    async def cancel(self, handle: str) -> bool:
        """
        Cancel an item that has not started yet.

        Returns:
            True if the item was canceled, False if it is already running or finished
        """
        item = self._get(handle)
        if item.status is not WorkStatus.PENDING:
            return False

        item.status = WorkStatus.CANCELED
        await self.complete(handle, WorkResult(handle=handle, status=WorkStatus.CANCELED, error="Canceled"))
        logger.info(f"Canceled work item {handle}")
        return True

    def forget(self, handle: str) -> None:
        """Drop bookkeeping for a finished item."""
        item = self._get(handle)
        if item.status not in TERMINAL_STATUSES:
            raise ValueError(f"Work item {handle} is still {item.status.value}")
        self._finished.remove(handle)
        self._evict(handle)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def complete(self, handle: str, result: WorkResult) -> bool:
        """
        Record the terminal result of ``handle`` and fire its hook.

        Returns:
            False if a completion for this handle was already delivered or the
            handle is no longer tracked
        """
        item = self._items.get(handle)
        if item is None or handle in self._completed:
            logger.debug(f"Ignoring duplicate completion for work item {handle}")
            return False
        self._completed.add(handle)
        self._finished.append(handle)

        item.status = result.status
        item.result = result
        item.finished_at = datetime.now(timezone.utc)

        # Waiters are released only after the hook, so they observe its effects
        if item.on_complete is not None:
            try:
                outcome = item.on_complete(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception:
                logger.error(f"on_complete hook for work item {handle} raised", exc_info=True)

        if not item.done.done():
            item.done.set_result(result)

        while len(self._finished) > self.max_retained:
            self._evict(self._finished.popleft())
        return True

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def _evict(self, handle: str) -> None:
        if self._items.pop(handle, None) is not None:
            self._completed.discard(handle)

    def _get(self, handle: str) -> _WorkItem:
        try:
            return self._items[handle]
        except KeyError:
            raise UnknownHandleError(handle) from None

    async def _worker(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                if item.status is WorkStatus.CANCELED:
                    continue
                await self._run(item)
            finally:
                self._queue.task_done()

    async def _run(self, item: _WorkItem) -> None:
        item.status = WorkStatus.RUNNING
        item.started_at = datetime.now(timezone.utc)
        self._running += 1
        try:
            value = await item.handler(*item.args, **item.kwargs)
        except Exception as e:
            logger.error(f"Work item {item.handle} failed: {e}", exc_info=True)
            result = WorkResult(handle=item.handle, status=WorkStatus.FAILED, error=_describe_error(e))
        else:
            result = WorkResult(handle=item.handle, status=WorkStatus.SUCCEEDED, value=value)
        finally:
            self._running -= 1

        await self.complete(item.handle, result)
