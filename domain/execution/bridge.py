"""Execution Bounded Context - Async Execution Bridge.

Runs work items either on the calling thread (`run`) or on a bounded worker
pool (`submit`, `run_async`). Both paths go through the per-handle scheduler
and the same SyncCallFacade, so a blocking call and its async variant are
observably equivalent.

Ordering:
- items on distinct lock keys complete in any relative order
- items sharing a lock key run one at a time, in submission order
- futures settle in completion order; chain them to sequence work

Cancellation (`WorkFuture.cancel`):
- not started: withdrawn, rejects with Cancelled, zero native calls
- running: flags the progress channel; the native algorithm aborts at its
  next progress callback (best effort)
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

from domain.errors import BridgeShutdownError, Cancelled, ReentrantCallError
from domain.execution.facade import ErrorTranslator, SyncCallFacade
from domain.execution.progress import ProgressChannel
from domain.execution.scheduler import HandleScheduler
from domain.execution.work import WorkFuture, WorkItem, WorkState
from domain.handles.registry import Handle, HandleRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")


def resolve_max_workers(max_workers: int | None) -> int:
    """Pool size: explicit value, else available parallelism."""
    if max_workers is None or max_workers <= 0:
        return max(1, os.cpu_count() or 1)
    return max_workers


class ExecutionBridge:
    """Dual execution model over a HandleRegistry.

    Parameters
    ----------
    registry: HandleRegistry
        Source of truth for open/closed state.
    max_workers: int | None
        Worker pool size; None or <= 0 derives it from the CPU count.
    translator: ErrorTranslator | None
        Maps collaborator exceptions to NativeOperationError.
    """

    def __init__(
        self,
        registry: HandleRegistry,
        *,
        max_workers: int | None = None,
        translator: ErrorTranslator | None = None,
    ) -> None:
        self._registry = registry
        self._facade = SyncCallFacade(registry, translator)
        self._scheduler = HandleScheduler()
        self._max_workers = resolve_max_workers(max_workers)
        self._pool = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="geobridge-worker"
        )
        self._local = threading.local()
        self._shutdown = False
        logger.info("ExecutionBridge started (max_workers: %d)", self._max_workers)

    @property
    def registry(self) -> HandleRegistry:
        return self._registry

    @property
    def scheduler(self) -> HandleScheduler:
        return self._scheduler

    @property
    def max_workers(self) -> int:
        return self._max_workers

    # -- blocking form ------------------------------------------------------
    def run(self, item: WorkItem[T]) -> T:
        """Execute `item` on the calling thread, blocking until done.

        A call nested inside a running item (its operation or an inline
        progress handler) reuses the turns this thread already holds. When it
        also needs keys the thread does not hold, it runs only if those keys
        are idle and raises ReentrantCallError otherwise.
        """
        self._reject_if_shut_down(item)
        item.channel.bind_inline()
        held = self._held_keys()
        if item.keys and set(item.keys) <= held:
            # Re-entrant call from inside an operation holding these turns
            return self._facade.call(item)

        if held.intersection(item.keys):
            return self._run_nested(item, held)

        future = self._attach(item)
        item.inline = True
        if self._scheduler.enqueue(item):
            item.turn.set()
        item.turn.wait()
        self._execute(item)
        return future.result()

    def _run_nested(self, item: WorkItem[T], held: set[int]) -> T:
        granted = tuple(key for key in item.keys if key in held)
        item.keys = tuple(key for key in item.keys if key not in held)
        if not self._scheduler.enqueue_if_idle(item):
            raise ReentrantCallError(
                f"{item.label} needs lock keys {item.keys} that are busy while this "
                f"thread holds {granted}"
            )
        future = self._attach(item)
        item.inline = True
        self._execute(item)
        return future.result()

    # -- non-blocking forms -------------------------------------------------
    def submit(self, item: WorkItem[T]) -> WorkFuture[T]:
        """Schedule `item` on the worker pool and return its future."""
        self._reject_if_shut_down(item)
        future = self._attach(item)
        ready = self._scheduler.enqueue(item)
        logger.debug("Queued %s (keys=%s, ready=%s)", item.label, item.keys, ready)
        if ready:
            self._dispatch(item)
        return future

    async def run_async(self, item: WorkItem[T]) -> T:
        """Await `item` from a coroutine; ticks and result arrive on the loop."""
        loop = asyncio.get_running_loop()
        item.channel.bind(loop.call_soon_threadsafe)
        future = self.submit(item)
        try:
            result = await asyncio.wrap_future(future)
        except BaseException:
            self._raise_handler_error(item.channel)
            raise
        self._raise_handler_error(item.channel)
        return result

    # -- lifecycle ----------------------------------------------------------
    def close_handle(self, handle: Handle) -> None:
        """Close `handle` after the work already queued on it. Idempotent."""
        if not handle.is_open:
            return
        if self._shutdown:
            # No worker can hold a turn on it any more
            self._registry.close(handle)
            return
        item: WorkItem[None] = WorkItem(
            operation=lambda _channel: self._registry.close(handle),
            handles=(handle,),
            label=f"close {handle!r}",
            check_open=False,
        )
        self.run(item)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work, cancel items that never started."""
        if self._shutdown:
            return
        self._shutdown = True
        pending = self._scheduler.pending()
        for item in pending:
            if item.future is not None and not item.inline:
                item.future.cancel()
        self._pool.shutdown(wait=wait)
        logger.info("ExecutionBridge shut down (%d pending items cancelled)", len(pending))

    def __enter__(self) -> ExecutionBridge:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # -- internals ----------------------------------------------------------
    def _attach(self, item: WorkItem[T]) -> WorkFuture[T]:
        if item.future is not None:
            raise RuntimeError(f"{item.label} was already scheduled")
        item.future = WorkFuture(item, self._cancel)
        return item.future

    def _dispatch(self, item: WorkItem) -> None:
        if item.inline:
            item.turn.set()
        else:
            self._pool.submit(self._execute, item)

    def _execute(self, item: WorkItem) -> None:
        if not self._scheduler.start(item):
            logger.debug("Skipping %s (cancelled before start)", item.label)
            return
        logger.debug("Started %s", item.label)
        held = self._held_keys()
        held.update(item.keys)
        error: Exception | None = None
        result = None
        try:
            result = self._facade.call(item)
        except Exception as exc:
            error = exc
        finally:
            held.difference_update(item.keys)
            for ready in self._scheduler.complete(item):
                self._dispatch(ready)

        assert item.future is not None
        if error is not None:
            logger.debug("Settled %s with %s", item.label, type(error).__name__)
            item.future.set_exception(error)
        else:
            logger.debug("Settled %s", item.label)
            item.future.set_result(result)

    def _cancel(self, item: WorkItem) -> bool:
        withdrawn, ready = self._scheduler.withdraw(item)
        if withdrawn:
            logger.debug("Withdrew %s before start", item.label)
            assert item.future is not None
            item.future.set_exception(Cancelled(f"{item.label} cancelled before start"))
            if item.inline:
                item.turn.set()
            for other in ready:
                self._dispatch(other)
            return True
        if item.state is WorkState.RUNNING:
            item.channel.cancel()
        return False

    def _reject_if_shut_down(self, item: WorkItem) -> None:
        if not self._shutdown:
            return
        if item.check_open:
            for handle in item.handles:
                self._registry.ensure_open(handle)
        raise BridgeShutdownError(f"Cannot run {item.label}: ExecutionBridge is shut down")

    def _held_keys(self) -> set[int]:
        held = getattr(self._local, "held", None)
        if held is None:
            held = self._local.held = set()
        return held

    @staticmethod
    def _raise_handler_error(channel: ProgressChannel) -> None:
        channel.drain()
        if channel.handler_error is not None:
            raise channel.handler_error
