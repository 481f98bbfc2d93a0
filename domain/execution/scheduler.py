"""Execution Bounded Context - Per-handle FIFO scheduling.

Native objects of one dataset are not reentrant, so work items sharing a lock
key run strictly one at a time, in submission order. An item spanning several
keys (source band and destination layer on different datasets) is appended
to every key's queue atomically and runs only once it heads all of them.
Because every queue receives items in the same global order, two items can
never wait on each other.

The lock below guards only the queues and item states; native code never
runs under it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque

from domain.execution.work import WorkItem, WorkState

logger = logging.getLogger(__name__)


class HandleScheduler:
    """Turn bookkeeping for work items keyed by handle lock keys."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._queues: dict[int, deque[WorkItem]] = {}

    def enqueue(self, item: WorkItem) -> bool:
        """Queue `item`; returns True when it may start immediately."""
        with self._lock:
            for key in item.keys:
                self._queues.setdefault(key, deque()).append(item)
            if self._at_head(item):
                item.state = WorkState.READY
                return True
            return False

    def enqueue_if_idle(self, item: WorkItem) -> bool:
        """Queue `item` only when none of its keys has queued work.

        On success the item is READY at once; otherwise nothing changes.
        """
        with self._lock:
            if any(self._queues.get(key) for key in item.keys):
                return False
            for key in item.keys:
                self._queues[key] = deque([item])
            item.state = WorkState.READY
            return True

    def start(self, item: WorkItem) -> bool:
        """READY -> RUNNING; False if the item was withdrawn meanwhile."""
        with self._lock:
            if item.state is not WorkState.READY:
                return False
            item.state = WorkState.RUNNING
            return True

    def complete(self, item: WorkItem) -> list[WorkItem]:
        """Release the item's turn; returns the items that became ready."""
        with self._lock:
            item.state = WorkState.DONE
            return self._remove(item)

    def withdraw(self, item: WorkItem) -> tuple[bool, list[WorkItem]]:
        """Remove a not-yet-started item.

        Returns:
            (withdrawn, newly_ready). `withdrawn` is False when the item
            already started or settled.
        """
        with self._lock:
            if item.state not in (WorkState.QUEUED, WorkState.READY):
                return False, []
            item.state = WorkState.CANCELLED
            return True, self._remove(item)

    def pending(self) -> list[WorkItem]:
        """Items not yet started, in no particular order."""
        with self._lock:
            seen: dict[int, WorkItem] = {}
            for queue in self._queues.values():
                for item in queue:
                    if item.state in (WorkState.QUEUED, WorkState.READY):
                        seen[id(item)] = item
            return list(seen.values())

    def queued_on(self, key: int) -> int:
        with self._lock:
            return len(self._queues.get(key, ()))

    def _at_head(self, item: WorkItem) -> bool:
        return all(self._queues[key][0] is item for key in item.keys)

    def _remove(self, item: WorkItem) -> list[WorkItem]:
        heads: list[WorkItem] = []
        for key in item.keys:
            queue = self._queues.get(key)
            if queue is None:
                continue
            try:
                queue.remove(item)
            except ValueError:
                continue
            if queue:
                heads.append(queue[0])
            else:
                del self._queues[key]

        ready: list[WorkItem] = []
        for head in dict.fromkeys(heads):
            if head.state is WorkState.QUEUED and self._at_head(head):
                head.state = WorkState.READY
                ready.append(head)
        return ready
