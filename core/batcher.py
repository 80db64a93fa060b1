"""Background coordinator that turns logical deletes into batched purges.

Every successful logical delete calls :meth:`DeleteBatcher.signal`. The
batcher counts signals on its own asyncio task; when the count reaches
``capacity`` it runs the purge callable exactly once and resets the count.
Signals are counted, not matched to rows: a purge removes every logically
deleted row, so over-counting is harmless and under-counting only delays
cleanup.

State machine::

    idle --signal--> accumulating --capacity-th signal--> flushing
     ^                                                        |
     +------------------------ purge ok ---------------------+
                                                              |
                                               purge error -> failed

``stop()`` moves any non-failed state to ``stopped``.

Without ``flush_interval`` there is no time-based fallback: fewer than
``capacity`` deletes stay unpurged until more deletes arrive. The interval is
opt-in, and the unpurged count is logged at shutdown.
"""

from __future__ import annotations

import asyncio
import enum
from collections.abc import Callable
from contextlib import suppress

import structlog

log = structlog.get_logger(__name__)

PurgeFn = Callable[[], object]
ErrorCallback = Callable[[BaseException], object]


class BatcherState(str, enum.Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    STOPPED = "stopped"
    FAILED = "failed"


class BatcherNotRunningError(RuntimeError):
    """Raised when the batcher is used before ``start()``."""


class DeleteBatcher:
    def __init__(
        self,
        purge: PurgeFn,
        *,
        capacity: int = 5,
        flush_interval: float | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        if flush_interval is not None and flush_interval <= 0:
            raise ValueError("flush_interval must be positive")
        self._purge = purge
        self.capacity = capacity
        self.flush_interval = flush_interval
        self._on_error = on_error

        self._inbox: asyncio.Queue[None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._inflight: asyncio.Future[object] | None = None
        self._inflight_signals = 0
        self._accepting = False

        self.state = BatcherState.IDLE
        self.pending = 0
        self.purges = 0
        self.error: BaseException | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        """Spawn the consumer task on the running event loop."""

        if self._task is not None:
            raise RuntimeError("DeleteBatcher already started")
        self._loop = asyncio.get_running_loop()
        self._accepting = True
        self._task = self._loop.create_task(self._run(), name="delete-batcher")
        log.debug(
            "batcher.started", capacity=self.capacity, flush_interval=self.flush_interval
        )
        return self._task

    def signal(self) -> bool:
        """Record one pending delete. Never blocks; safe from any thread.

        Returns ``False`` when the signal was dropped because the batcher is
        stopped or failed.
        """

        loop = self._loop
        if loop is None:
            raise BatcherNotRunningError("DeleteBatcher.start() has not been called")
        if not self._accepting or loop.is_closed():
            log.warning("batcher.signal_dropped", state=self.state.value)
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._inbox.put_nowait(None)
        else:
            loop.call_soon_threadsafe(self._inbox.put_nowait, None)
        return True

    async def join(self) -> None:
        """Wait until every signal received so far has been processed."""

        await self._inbox.join()

    async def stop(self) -> None:
        """Stop accepting signals, let an in-flight purge finish, end the task."""

        self._accepting = False
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        inflight = self._inflight
        if inflight is not None:
            try:
                await inflight
            except Exception as exc:
                self._inflight = None
                log.error("batcher.purge_failed_on_shutdown", error=str(exc))
            else:
                self._settle()
        if self.state is not BatcherState.FAILED:
            self.state = BatcherState.STOPPED
        if self.pending:
            log.warning("batcher.unpurged_on_shutdown", pending=self.pending)
        log.debug("batcher.stopped", purges=self.purges)

    async def _next_signal(self) -> bool:
        if self.flush_interval is None or self.pending == 0:
            await self._inbox.get()
            return True
        try:
            await asyncio.wait_for(self._inbox.get(), timeout=self.flush_interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _run(self) -> None:
        try:
            while True:
                if not await self._next_signal():
                    await self._flush(reason="interval")
                    continue
                try:
                    self.pending += 1
                    self.state = BatcherState.ACCUMULATING
                    if self.pending >= self.capacity:
                        await self._flush(reason="threshold")
                finally:
                    self._inbox.task_done()
        except _PurgeFailed as failure:
            self._fail(failure.cause)

    async def _flush(self, *, reason: str) -> None:
        self.state = BatcherState.FLUSHING
        self._inflight_signals = self.pending
        log.info("batcher.flush", reason=reason, signals=self._inflight_signals)
        # Shielded so that stop() can cancel the task without abandoning the purge.
        self._inflight = asyncio.ensure_future(asyncio.to_thread(self._purge))
        try:
            await asyncio.shield(self._inflight)
        except Exception as exc:
            self._inflight = None
            raise _PurgeFailed(exc) from exc
        self._settle()
        self.state = BatcherState.ACCUMULATING if self.pending else BatcherState.IDLE

    def _settle(self) -> None:
        self._inflight = None
        self.pending -= self._inflight_signals
        self._inflight_signals = 0
        self.purges += 1

    def _fail(self, exc: BaseException) -> None:
        self._accepting = False
        self.state = BatcherState.FAILED
        self.error = exc
        log.error("batcher.purge_failed", error=str(exc), pending=self.pending)
        # Signals still queued will never be processed; release join() waiters.
        while not self._inbox.empty():
            self._inbox.get_nowait()
            self._inbox.task_done()
        if self._on_error is not None:
            self._on_error(exc)


class _PurgeFailed(Exception):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.cause = cause


__all__ = ["BatcherNotRunningError", "BatcherState", "DeleteBatcher"]
