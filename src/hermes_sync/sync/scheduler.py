"""Bounded-parallel sync runs with a single-close progress channel.

The scheduler dispatches one synchronizer call per project.  Dispatch is
done by a single coroutine, in project order, and assigns each project its
``index`` (1..total) as it goes.  Each dispatch first takes a slot from an
``asyncio.Semaphore``; the worker runs the blocking synchronizer in a
thread and gives the slot back when it finishes.  Once every worker has
finished, the progress channel is closed exactly once.  The workers are
shielded from cancellation of the run itself: an interrupted run sets the
cancel event and still waits for them before closing the channel.

A deadline sets a shared ``threading.Event``.  The ``ProcessRunner``
terminates git commands that are still running, and projects that have
not started yet fail with ``cancelled``.  Every project still produces
exactly one progress event.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from ..core.async_utils import run_sync
from ..core.errors import ChannelClosedError
from .models import ProgressEvent, RemoteProject, SyncAction, SyncReport, SyncResult
from .synchronizer import RepositorySynchronizer

logger = logging.getLogger(__name__)

_CLOSED = object()


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


class ProgressChannel:
    """Append-only stream of ``ProgressEvent`` with a single close.

    Producers call ``publish``, from the event loop or from a worker
    thread; the consumer iterates with ``async for``, which ends once
    ``close`` has been called and every event delivered.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        self._lock = threading.Lock()
        self._closed = False
        self.published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, item: object) -> None:
        loop = self._loop
        if loop is not None and not _on_loop(loop):
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        else:
            self._queue.put_nowait(item)

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            if self._closed:
                raise ChannelClosedError(
                    f"Cannot publish event for {event.name}: channel is closed"
                )
            self.published += 1
            self._put(event)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                raise ChannelClosedError("Channel already closed")
            self._closed = True
            self._put(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the sentinel for any other consumer.
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item


class SyncScheduler:
    """Run a ``RepositorySynchronizer`` over many projects concurrently.

    Args:
        synchronizer: Performs the per-repository work.
        max_parallel: Number of concurrent slots.
        cancel_event: Event shared with the synchronizer's ``ProcessRunner``.
    """

    def __init__(
        self,
        synchronizer: RepositorySynchronizer,
        max_parallel: int = 10,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}")
        self.synchronizer = synchronizer
        self.max_parallel = max_parallel
        self.cancel_event = cancel_event or threading.Event()

    async def run(
        self,
        projects: Sequence[RemoteProject],
        channel: ProgressChannel | None = None,
        timeout: float | None = None,
    ) -> SyncReport:
        """Sync every project and return the report.

        Args:
            projects: Projects to sync, in dispatch order.
            channel: Receives one event per project and is closed at the end.
            timeout: Deadline for the whole run in seconds.

        Returns:
            ``SyncReport`` with results in dispatch order.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        start = time.monotonic()
        total = len(projects)
        semaphore = asyncio.Semaphore(self.max_parallel)
        loop = asyncio.get_running_loop()
        deadline = None
        if timeout:
            deadline = loop.call_later(timeout, self._expire, timeout)

        logger.info(
            "Syncing %d projects (%s, max_parallel=%d)",
            total,
            self.synchronizer.policy.describe(),
            self.max_parallel,
        )

        workers: list[asyncio.Task] = []
        try:
            for index, project in enumerate(projects, start=1):
                await semaphore.acquire()
                workers.append(
                    asyncio.create_task(
                        self._worker(project, index, total, semaphore, channel)
                    )
                )
            if workers:
                await asyncio.shield(asyncio.wait(workers))
        finally:
            if deadline is not None:
                deadline.cancel()
            if any(not worker.done() for worker in workers):
                logger.warning("Sync interrupted, waiting for running projects")
                self.cancel_event.set()
                await asyncio.shield(asyncio.wait(workers))
            if channel is not None:
                channel.close()

        results: list[SyncResult] = [worker.result() for worker in workers]

        report = SyncReport(
            policy=self.synchronizer.policy.describe(),
            results=results,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc).isoformat(),
            elapsed=round(time.monotonic() - start, 3),
            timed_out=self.cancel_event.is_set(),
        )
        logger.info(
            "Sync finished: %d ok, %d failed in %.1fs",
            total - len(report.errors),
            len(report.errors),
            report.elapsed,
        )
        return report

    def _expire(self, timeout: float) -> None:
        logger.warning("Sync deadline of %ss reached, cancelling", timeout)
        self.cancel_event.set()

    async def _worker(
        self,
        project: RemoteProject,
        index: int,
        total: int,
        semaphore: asyncio.Semaphore,
        channel: ProgressChannel | None,
    ) -> SyncResult:
        try:
            if self.cancel_event.is_set():
                result = SyncResult(
                    name=project.name,
                    path="",
                    action=SyncAction.UPDATE,
                    success=False,
                    error="cancelled",
                )
            else:
                result = await run_sync(self.synchronizer.sync, project)
        finally:
            semaphore.release()

        if channel is not None:
            channel.publish(
                ProgressEvent(
                    name=project.name,
                    success=result.success,
                    index=index,
                    total=total,
                    error=result.error,
                )
            )
        return result
