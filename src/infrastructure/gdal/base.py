"""Common base of the handle-backed GDAL wrappers.

A wrapper owns exactly one Handle. Every native access goes through a
WorkItem run by the ExecutionBridge, so each wrapper method gets the open
check, the per-dataset serialization and the error translation for free.

Child wrappers (a band, a layer, a feature) keep a strong reference to their
parent wrapper: reclaiming a dataset wrapper while one of its bands is still
referenced would otherwise close the band under the caller.
"""

from __future__ import annotations

import weakref
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from domain.execution.progress import ProgressChannel, ProgressHandler
from domain.execution.work import WorkItem
from domain.handles.registry import Handle, ReleaseFunc
from domain.handles.value_objects import HandleKind

if TYPE_CHECKING:
    from infrastructure.gdal.runtime import GeoBridge

T = TypeVar("T")
W = TypeVar("W", bound="NativeWrapper")


class NativeWrapper:
    """Wrapper around one registered native object."""

    kind: ClassVar[HandleKind]

    def __init__(self, runtime: GeoBridge, handle: Handle, parent: NativeWrapper | None = None):
        self._runtime = runtime
        self._handle = handle
        self._parent = parent
        self._finalizer = weakref.finalize(self, runtime.registry.finalize, handle)

    @property
    def runtime(self) -> GeoBridge:
        return self._runtime

    @property
    def handle(self) -> Handle:
        return self._handle

    @property
    def closed(self) -> bool:
        return not self._handle.is_open

    def _native(self) -> Any:
        return self._handle.native

    # -- work helpers --------------------------------------------------------
    def _work(
        self,
        label: str,
        fn: Callable[[ProgressChannel], T],
        *,
        others: Iterable[NativeWrapper] = (),
        progress: ProgressHandler | None = None,
    ) -> WorkItem[T]:
        wrappers = (self, *others)
        return self._runtime.work(
            f"{self.kind.value}.{label}",
            fn,
            handles=[w.handle for w in wrappers],
            persist=wrappers,
            progress=progress,
        )

    def _run(self, label: str, fn: Callable[[ProgressChannel], T], **kwargs: Any) -> T:
        return self._runtime.bridge.run(self._work(label, fn, **kwargs))

    async def _run_async(self, label: str, fn: Callable[[ProgressChannel], T], **kwargs: Any) -> T:
        return await self._runtime.bridge.run_async(self._work(label, fn, **kwargs))

    def _adopt(
        self,
        cls: type[W],
        native: Any,
        *,
        release: ReleaseFunc | None = None,
        **kwargs: Any,
    ) -> W:
        """Register a native child of this wrapper and wrap it in `cls`."""
        handle = self._runtime.registry.register(
            native, cls.kind, owner=self._handle, release=release
        )
        return cls(self._runtime, handle, parent=self, **kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._handle!r}>"
