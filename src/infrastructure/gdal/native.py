"""GDAL call-boundary helpers.

- Error translation: GDAL raises RuntimeError (exceptions enabled) or returns
  a non-zero CPLErr/OGRErr; both become NativeOperationError carrying the
  thread-local CPL error number and message.
- Progress: adapts a ProgressChannel to GDAL's `(complete, message, data)`
  callback, returning 0 to ask the algorithm to stop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from osgeo import gdal, ogr

from domain.errors import BridgeError, Cancelled, NativeOperationError
from domain.execution.progress import ProgressChannel

logger = logging.getLogger(__name__)

# CPLE_UserInterrupt: a progress callback returned 0
CPLE_USER_INTERRUPT = 11

GdalProgressFunc = Callable[[float, str, object], int]


def enable_exceptions() -> None:
    """Make GDAL and OGR raise RuntimeError instead of returning silently."""
    gdal.UseExceptions()
    ogr.UseExceptions()


def translate_gdal_error(exc: Exception) -> BridgeError:
    """Map a GDAL failure raised on this thread to a typed bridge error."""
    code = gdal.GetLastErrorNo()
    message = gdal.GetLastErrorMsg() or str(exc)
    if code == CPLE_USER_INTERRUPT:
        return Cancelled(message)
    return NativeOperationError(code if code else -1, message)


def check_status(status: int | None, what: str) -> None:
    """Raise NativeOperationError for a non-zero CPLErr/OGRErr return code."""
    if status:
        message = gdal.GetLastErrorMsg() or f"{what} failed"
        raise NativeOperationError(int(status), message)


def gdal_progress(channel: ProgressChannel) -> GdalProgressFunc:
    """Build the GDAL progress callback reporting into `channel`."""

    def _progress(complete: float, message: str, _data: object) -> int:
        return 1 if channel.report(complete, message) else 0

    return _progress
