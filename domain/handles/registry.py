"""Handles Bounded Context - Handle Registry.

Tracks every live wrapper around a native resource and its open/closed state.

Lifecycle of a Handle:
1) Created by `HandleRegistry.register` when the collaborator returns a new
   native object (collection `get`, `create`, cursor advance, open)
2) Used by the façade and the bridge, which call `ensure_open` first
3) Released by `close` (explicit or scope exit) or `finalize` (wrapper
   reclaimed), whichever comes first; the open flag is a single-release
   latch so the native release callback runs exactly once
4) Closing a handle closes its live children first (a dataset close
   invalidates its bands, layers and features)
"""

from __future__ import annotations

import itertools
import logging
import threading
import weakref
from collections.abc import Callable
from typing import Any

from domain.errors import ClosedHandleError
from domain.handles.value_objects import HandleKind

logger = logging.getLogger(__name__)

ReleaseFunc = Callable[[Any], None]


class Handle:
    """One native resource plus its lifecycle state.

    The owner is held weakly and only used for child bookkeeping and to
    derive `lock_key`; the registry keeps open handles alive.
    """

    __slots__ = ("uid", "kind", "_native", "_owner", "_release", "_open", "__weakref__")

    def __init__(
        self,
        uid: int,
        kind: HandleKind,
        native: Any,
        owner: Handle | None = None,
        release: ReleaseFunc | None = None,
    ) -> None:
        self.uid = uid
        self.kind = kind
        self._native = native
        self._owner = weakref.ref(owner) if owner is not None else None
        self._release = release
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def native(self) -> Any:
        """The wrapped native object; raises ClosedHandleError once released."""
        native = self._native
        if not self._open or native is None:
            raise ClosedHandleError(self)
        return native

    @property
    def owner(self) -> Handle | None:
        return self._owner() if self._owner is not None else None

    @property
    def lock_key(self) -> int:
        """uid of the root owner; work on one root is serialized."""
        node = self
        while True:
            parent = node.owner
            if parent is None:
                return node.uid
            node = parent

    def __repr__(self) -> str:
        state = "open" if self._open else "closed"
        return f"<Handle {self.kind.value}#{self.uid} {state}>"


class HandleRegistry:
    """Registry of live handles.

    Thread-safe: the open flags and the child index are the only state touched
    from both the calling context and worker threads.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._uids = itertools.count(1)
        self._live: dict[int, Handle] = {}
        # owner uid -> child uids, insertion ordered
        self._children: dict[int, dict[int, None]] = {}

    def register(
        self,
        native: Any,
        kind: HandleKind,
        *,
        owner: Handle | None = None,
        release: ReleaseFunc | None = None,
    ) -> Handle:
        """Wrap a native object in a new open Handle.

        Args:
            native: The collaborator object
            kind: Resource kind
            owner: Parent handle (a band's dataset, a feature's layer)
            release: Called exactly once with `native` when the handle closes

        Raises:
            ClosedHandleError: If `owner` is already closed
        """
        if native is None:
            raise ValueError("Cannot register a null native object")
        with self._lock:
            if owner is not None and not owner.is_open:
                raise ClosedHandleError(owner)
            handle = Handle(next(self._uids), kind, native, owner, release)
            self._live[handle.uid] = handle
            if owner is not None:
                self._children.setdefault(owner.uid, {})[handle.uid] = None
        logger.debug("Registered %r (owner=%r)", handle, owner)
        return handle

    def is_open(self, handle: Handle) -> bool:
        return handle.is_open

    def ensure_open(self, handle: Handle) -> None:
        """Fail fast with ClosedHandleError if `handle` was released."""
        if not handle.is_open:
            raise ClosedHandleError(handle)

    def close(self, handle: Handle) -> None:
        """Release `handle` and its children. Closing twice is a no-op."""
        self._release(handle, reclaimed=False)

    def finalize(self, handle: Handle) -> None:
        """Release hook for the host's reclamation mechanism."""
        if handle.is_open:
            level = logging.WARNING if handle.kind is HandleKind.DATASET else logging.DEBUG
            logger.log(level, "%r reclaimed without explicit close", handle)
        self._release(handle, reclaimed=True)

    def children(self, handle: Handle) -> list[Handle]:
        """Live handles registered directly under `handle`."""
        with self._lock:
            uids = self._children.get(handle.uid, {})
            return [self._live[uid] for uid in uids if uid in self._live]

    def close_all(self) -> None:
        """Close every live root handle (children follow their owners)."""
        with self._lock:
            roots = [h for h in self._live.values() if h.owner is None]
        for handle in reversed(roots):
            self.close(handle)

    def live_count(self, kind: HandleKind | None = None) -> int:
        with self._lock:
            if kind is None:
                return len(self._live)
            return sum(1 for h in self._live.values() if h.kind is kind)

    def _release(self, handle: Handle, *, reclaimed: bool) -> None:
        with self._lock:
            if not handle._open:
                return
            handle._open = False
            child_uids = self._children.pop(handle.uid, {})
            children = [self._live[uid] for uid in child_uids if uid in self._live]
            self._live.pop(handle.uid, None)
            owner = handle.owner
            if owner is not None:
                self._children.get(owner.uid, {}).pop(handle.uid, None)

        # Children before parent: a band must not outlive its dataset
        for child in reversed(children):
            self._release(child, reclaimed=reclaimed)

        native, release = handle._native, handle._release
        handle._native = None
        handle._release = None
        if release is not None:
            release(native)
        logger.debug("Released %r%s", handle, " (reclaimed)" if reclaimed else "")
