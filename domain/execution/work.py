"""Execution Bounded Context - Work Items and their futures."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from domain.execution.progress import ProgressChannel
from domain.handles.registry import Handle

T = TypeVar("T")

Operation = Callable[[ProgressChannel], T]


class WorkState(Enum):
    QUEUED = "queued"  # waiting for its turn on every lock key
    READY = "ready"  # turn granted, not started
    RUNNING = "running"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class WorkItem(Generic[T]):
    """A deferred invocation of one native operation.

    Attributes:
        operation: Callable receiving the item's ProgressChannel
        handles: Handles validated before the call; their lock keys
            decide which other items this one is serialized with
        channel: Progress/cancellation channel (one per item)
        label: Human-readable name used in logs and errors
        persist: Objects kept alive until the item settles (wrappers
            whose reclamation would release a handle in use)
        check_open: Validate handles before running (False only for close)
    """

    operation: Operation[T]
    handles: tuple[Handle, ...] = ()
    channel: ProgressChannel = field(default_factory=ProgressChannel)
    label: str = "native call"
    persist: tuple[Any, ...] = ()
    check_open: bool = True
    state: WorkState = field(default=WorkState.QUEUED, init=False)
    inline: bool = field(default=False, init=False)
    future: WorkFuture[T] | None = field(default=None, init=False, repr=False)
    turn: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    keys: tuple[int, ...] = field(default=(), init=False)

    def __post_init__(self) -> None:
        # dict preserves first-seen order while deduplicating
        self.keys = tuple(dict.fromkeys(h.lock_key for h in self.handles))


class WorkFuture(Future, Generic[T]):
    """Future settled exactly once by the bridge.

    `cancel()` is routed to the bridge: a not-yet-started item is withdrawn
    and rejects with `Cancelled` (returns True); a running item only gets its
    channel flagged (returns False). A cancelled item ends in the finished
    state carrying `Cancelled`, so `cancelled()` stays False.
    """

    def __init__(self, item: WorkItem[T], canceller: Callable[[WorkItem[T]], bool]) -> None:
        super().__init__()
        self.item = item
        self._canceller = canceller

    @property
    def progress(self) -> ProgressChannel:
        return self.item.channel

    def cancel(self) -> bool:
        return self._canceller(self.item)
