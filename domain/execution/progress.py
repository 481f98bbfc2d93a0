"""Execution Bounded Context - Progress/Cancellation Channel.

A per-work-item mailbox crossing the worker/caller thread boundary.

Native side (worker thread):
- `report(fraction, message)` enqueues a numbered tick, returns the
  continue flag
- `is_cancelled()` is polled by the algorithm before continuing

Caller side:
- `drain()` delivers pending ticks to the handler in arrival order
- Delivery context is chosen by the bridge: inline for blocking calls,
  the event loop (`call_soon_threadsafe`) for coroutines, or explicit
  `drain()` calls for bare futures. The worker never calls the handler
  through a bound dispatcher; it only schedules `drain` on the caller side.
"""

from __future__ import annotations

import itertools
import logging
import math
import threading
from collections import deque
from collections.abc import Callable

from domain.execution.value_objects import ProgressTick

logger = logging.getLogger(__name__)

# Handler returning exactly False cancels the rest of the work item
ProgressHandler = Callable[[ProgressTick], "bool | None"]
Dispatcher = Callable[[Callable[[], object]], object]

DEFAULT_QUEUE_SIZE = 1024


class ProgressChannel:
    """Bounded, lock-protected tick queue plus a cancellation flag.

    Parameters
    ----------
    handler: ProgressHandler | None
        Caller-side tick consumer. May be None: ticks are still recorded.
    maxsize: int
        Queue bound. On overflow the oldest undelivered tick is dropped.
    """

    def __init__(
        self, handler: ProgressHandler | None = None, *, maxsize: int = DEFAULT_QUEUE_SIZE
    ) -> None:
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._handler = handler
        self._lock = threading.Lock()
        self._pending: deque[ProgressTick] = deque(maxlen=maxsize)
        self._seq = itertools.count()
        self._cancelled = threading.Event()
        self._dispatch: Dispatcher | None = None
        self._inline = False
        self._handler_error: Exception | None = None
        self.dropped = 0
        self.history: list[ProgressTick] = []

    @property
    def handler(self) -> ProgressHandler | None:
        return self._handler

    @property
    def handler_error(self) -> Exception | None:
        """Exception raised by the handler, if any (it also cancels the item)."""
        return self._handler_error

    def bind_inline(self) -> None:
        """Deliver ticks on the reporting thread (blocking calls)."""
        with self._lock:
            self._inline = True
            self._dispatch = None

    def bind(self, dispatch: Dispatcher) -> None:
        """Deliver ticks by scheduling `drain` through `dispatch`."""
        with self._lock:
            self._inline = False
            self._dispatch = dispatch

    # -- native side --------------------------------------------------------
    def report(self, fraction: float, message: str | None = "") -> bool:
        """Record a tick; returns False once the work item is cancelled."""
        fraction = float(fraction)
        if math.isnan(fraction):
            fraction = 0.0
        fraction = min(1.0, max(0.0, fraction))
        with self._lock:
            if len(self._pending) == self._pending.maxlen:
                self.dropped += 1
                logger.debug("Progress queue full, dropping oldest tick (%d dropped)", self.dropped)
            tick = ProgressTick(seq=next(self._seq), fraction=fraction, message=message or "")
            self._pending.append(tick)
            inline, dispatch = self._inline, self._dispatch
        if inline:
            self.drain()
        elif dispatch is not None:
            dispatch(self.drain)
        return not self.is_cancelled()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    # -- caller side --------------------------------------------------------
    def drain(self) -> list[ProgressTick]:
        """Deliver pending ticks to the handler, in arrival order."""
        with self._lock:
            ticks = list(self._pending)
            self._pending.clear()
        for tick in ticks:
            self.history.append(tick)
            if self._handler is None or self._handler_error is not None:
                continue
            try:
                keep_going = self._handler(tick)
            except Exception as exc:
                # Re-raised to the caller by the façade / bridge
                self._handler_error = exc
                self.cancel()
                continue
            if keep_going is False:
                self.cancel()
        return ticks
