"""GeoBridge Domain - Error Hierarchy.

Errors shared by every bounded context of the bridge. Callers branch on the
type: a `Cancelled` is user intent, a `NativeOperationError` is a genuine
collaborator failure, `ClosedHandleError` and `MarshalingError` are always
fatal to the call that raised them.

Nothing in this package retries; retry policy belongs to the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domain.handles.registry import Handle


class BridgeError(Exception):
    """Base error for bridge operations."""


class ClosedHandleError(BridgeError):
    """Operation attempted on a handle whose native resource was released.

    Attributes:
        handle: The offending Handle (may be None when unknown)
    """

    def __init__(self, handle: "Handle | None" = None, message: str | None = None) -> None:
        self.handle = handle
        if message is None:
            if handle is None:
                message = "Handle already closed"
            else:
                message = f"{handle.kind.value.capitalize()} object already closed"
        super().__init__(message)


class NativeOperationError(BridgeError):
    """The native collaborator reported a failure.

    The collaborator's status code and message are carried verbatim.

    Attributes:
        code: Native error number (CPLE_* for GDAL); -1 when unknown
        message: Native error message
    """

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}" if message else f"[{code}] native failure")


class Cancelled(BridgeError):
    """A work item was cancelled before or during execution."""


class MarshalingError(BridgeError):
    """An argument or result could not be converted across the call boundary."""


class BridgeShutdownError(BridgeError):
    """Work was submitted to a bridge that has been shut down."""


class ReentrantCallError(BridgeError):
    """A nested blocking call would have to wait for a turn held elsewhere.

    Raised instead of blocking when the calling thread already runs an item
    holding some of the nested call's lock keys: waiting on the others could
    never end while the outer item keeps its turn.
    """
