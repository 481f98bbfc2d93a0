"""Execution Bounded Context - Synchronous Call Façade.

Invokes one work item's native operation on the current thread and maps
every failure into the bridge error taxonomy. The async bridge schedules this
exact call on its workers, so both paths share native entry points and
argument marshaling.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from domain.errors import (
    BridgeError,
    Cancelled,
    ClosedHandleError,
    MarshalingError,
    NativeOperationError,
)
from domain.execution.work import WorkItem
from domain.handles.registry import HandleRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Maps a raw collaborator exception to a typed failure. Runs on the thread
# that executed the native call, right after it failed.
ErrorTranslator = Callable[[Exception], BridgeError]


def default_translator(exc: Exception) -> BridgeError:
    return NativeOperationError(-1, str(exc))


class SyncCallFacade:
    """Blocking invocation of native operations."""

    def __init__(
        self, registry: HandleRegistry, translator: ErrorTranslator | None = None
    ) -> None:
        self._registry = registry
        self._translate = translator or default_translator

    def call(self, item: WorkItem[T]) -> T:
        """Run `item.operation` with its channel and return the result.

        Raises:
            ClosedHandleError: A handle of the item was released
            Cancelled: The channel was cancelled before or during the call
            MarshalingError: Arguments or result failed conversion
            NativeOperationError: The collaborator reported a failure
        """
        if item.check_open:
            for handle in item.handles:
                self._registry.ensure_open(handle)
        channel = item.channel
        if channel.is_cancelled():
            raise Cancelled(f"{item.label} cancelled before start")

        try:
            result = item.operation(channel)
        except Exception as exc:
            if channel.handler_error is not None:
                raise channel.handler_error from exc
            if channel.is_cancelled() and not isinstance(
                exc, (ClosedHandleError, MarshalingError)
            ):
                raise Cancelled(f"{item.label} cancelled") from exc
            if isinstance(exc, BridgeError):
                raise
            if isinstance(exc, (TypeError, ValueError)):
                raise MarshalingError(f"{item.label}: {exc}") from exc
            error = self._translate(exc)
            logger.debug("%s failed: %s", item.label, error)
            raise error from exc

        if channel.handler_error is not None:
            raise channel.handler_error
        return result
