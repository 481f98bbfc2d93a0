"""Long-running GDAL algorithms, blocking and async.

Every algorithm accepts an optional progress handler `(tick) -> bool | None`.
Returning False (or cancelling the future) asks GDAL to stop at its next
progress callback; the call then fails with Cancelled. The blocking and the
async form of an algorithm share one work builder, so for the same inputs
they leave the collaborator in the same state.

Work items lock every handle they touch: an algorithm reading one dataset
and writing another is serialized with the pending work of both.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from osgeo import gdal

from domain.errors import MarshalingError
from domain.execution.progress import ProgressChannel, ProgressHandler
from domain.execution.work import WorkItem
from infrastructure.gdal.base import NativeWrapper
from infrastructure.gdal.native import check_status, gdal_progress
from infrastructure.gdal.raster import RasterBand
from infrastructure.gdal.vector import Layer

logger = logging.getLogger(__name__)

__all__ = [
    "contour_generate",
    "contour_generate_async",
    "polygonize",
    "polygonize_async",
    "sieve_filter",
    "sieve_filter_async",
    "fill_nodata",
    "fill_nodata_async",
    "checksum_image",
    "checksum_image_async",
]


def _expect(value: Any, cls: type, name: str, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, cls):
        raise MarshalingError(f"{name} must be a {cls.__name__}, got {type(value).__name__}")


def _connectedness(value: int) -> int:
    if value not in (4, 8):
        raise MarshalingError(f"connectedness must be 4 or 8, got {value!r}")
    return value


def _native_or_none(wrapper: NativeWrapper | None) -> Any:
    return wrapper._native() if wrapper is not None else None


def _work(label, fn, wrappers: Sequence[NativeWrapper | None], progress) -> WorkItem:
    used = [w for w in wrappers if w is not None]
    runtime = used[0].runtime
    if any(w.runtime is not runtime for w in used):
        raise MarshalingError(f"{label}: all inputs must come from the same GeoBridge")
    return runtime.work(
        label,
        fn,
        handles=[w.handle for w in used],
        persist=used,
        progress=progress,
    )


def _run(item: WorkItem) -> Any:
    return item.persist[0].runtime.bridge.run(item)


async def _run_async(item: WorkItem) -> Any:
    return await item.persist[0].runtime.bridge.run_async(item)


# ---------------------------------------------------------------------------
# Contours
# ---------------------------------------------------------------------------
def _contour_work(
    src: RasterBand,
    dst: Layer,
    *,
    interval: float,
    offset: float,
    fixed_levels: Sequence[float] | None,
    nodata: float | None,
    id_field: int,
    elev_field: int,
    progress: ProgressHandler | None,
) -> WorkItem[None]:
    _expect(src, RasterBand, "src")
    _expect(dst, Layer, "dst")
    levels = [float(v) for v in fixed_levels or []]
    if not levels and interval <= 0:
        raise MarshalingError(f"interval must be positive, got {interval!r}")

    def _contour(channel: ProgressChannel) -> None:
        status = gdal.ContourGenerate(
            src._native(),
            float(interval),
            float(offset),
            levels,
            0 if nodata is None else 1,
            0.0 if nodata is None else float(nodata),
            dst._native(),
            int(id_field),
            int(elev_field),
            gdal_progress(channel),
        )
        check_status(status, "ContourGenerate")

    return _work("contour_generate", _contour, (src, dst), progress)


def contour_generate(
    src: RasterBand,
    dst: Layer,
    *,
    interval: float = 100.0,
    offset: float = 0.0,
    fixed_levels: Sequence[float] | None = None,
    nodata: float | None = None,
    id_field: int = -1,
    elev_field: int = -1,
    progress: ProgressHandler | None = None,
) -> None:
    """Write contour lines of `src` as features of `dst`.

    Args:
        src: Elevation band
        dst: Line layer receiving one feature per contour segment
        interval: Spacing between levels (ignored with `fixed_levels`)
        offset: Level the interval is counted from
        fixed_levels: Explicit levels instead of an interval
        nodata: Pixel value to ignore
        id_field: Index of the field receiving a unique id, -1 for none
        elev_field: Index of the field receiving the level, -1 for none
        progress: Receives ProgressTick values; returning False cancels

    Raises:
        MarshalingError: Invalid arguments, no native call made
        Cancelled: The handler or the caller stopped the run
        NativeOperationError: GDAL reported a failure
    """
    _run(
        _contour_work(
            src,
            dst,
            interval=interval,
            offset=offset,
            fixed_levels=fixed_levels,
            nodata=nodata,
            id_field=id_field,
            elev_field=elev_field,
            progress=progress,
        )
    )


async def contour_generate_async(
    src: RasterBand,
    dst: Layer,
    *,
    interval: float = 100.0,
    offset: float = 0.0,
    fixed_levels: Sequence[float] | None = None,
    nodata: float | None = None,
    id_field: int = -1,
    elev_field: int = -1,
    progress: ProgressHandler | None = None,
) -> None:
    await _run_async(
        _contour_work(
            src,
            dst,
            interval=interval,
            offset=offset,
            fixed_levels=fixed_levels,
            nodata=nodata,
            id_field=id_field,
            elev_field=elev_field,
            progress=progress,
        )
    )


# ---------------------------------------------------------------------------
# Polygonize
# ---------------------------------------------------------------------------
def _polygonize_work(
    src: RasterBand,
    dst: Layer,
    *,
    mask: RasterBand | None,
    pix_val_field: int,
    connectedness: int,
    use_floats: bool,
    progress: ProgressHandler | None,
) -> WorkItem[None]:
    _expect(src, RasterBand, "src")
    _expect(dst, Layer, "dst")
    _expect(mask, RasterBand, "mask", optional=True)
    options = ["8CONNECTED=8"] if _connectedness(connectedness) == 8 else []
    polygonize_fn = gdal.FPolygonize if use_floats else gdal.Polygonize

    def _polygonize(channel: ProgressChannel) -> None:
        status = polygonize_fn(
            src._native(),
            _native_or_none(mask),
            dst._native(),
            int(pix_val_field),
            options,
            gdal_progress(channel),
        )
        check_status(status, "Polygonize")

    return _work("polygonize", _polygonize, (src, dst, mask), progress)


def polygonize(
    src: RasterBand,
    dst: Layer,
    *,
    mask: RasterBand | None = None,
    pix_val_field: int = -1,
    connectedness: int = 4,
    use_floats: bool = False,
    progress: ProgressHandler | None = None,
) -> None:
    """Create one polygon feature in `dst` per connected region of `src`.

    `pix_val_field` is the index of the field receiving the region value
    (-1 for none). `use_floats` compares pixels as floats instead of ints.
    """
    _run(
        _polygonize_work(
            src,
            dst,
            mask=mask,
            pix_val_field=pix_val_field,
            connectedness=connectedness,
            use_floats=use_floats,
            progress=progress,
        )
    )


async def polygonize_async(
    src: RasterBand,
    dst: Layer,
    *,
    mask: RasterBand | None = None,
    pix_val_field: int = -1,
    connectedness: int = 4,
    use_floats: bool = False,
    progress: ProgressHandler | None = None,
) -> None:
    await _run_async(
        _polygonize_work(
            src,
            dst,
            mask=mask,
            pix_val_field=pix_val_field,
            connectedness=connectedness,
            use_floats=use_floats,
            progress=progress,
        )
    )


# ---------------------------------------------------------------------------
# Sieve
# ---------------------------------------------------------------------------
def _sieve_work(
    src: RasterBand,
    dst: RasterBand,
    *,
    threshold: int,
    connectedness: int,
    mask: RasterBand | None,
    progress: ProgressHandler | None,
) -> WorkItem[None]:
    _expect(src, RasterBand, "src")
    _expect(dst, RasterBand, "dst")
    _expect(mask, RasterBand, "mask", optional=True)
    connectedness = _connectedness(connectedness)
    if threshold < 0:
        raise MarshalingError(f"threshold must be >= 0, got {threshold!r}")

    def _sieve(channel: ProgressChannel) -> None:
        status = gdal.SieveFilter(
            src._native(),
            _native_or_none(mask),
            dst._native(),
            int(threshold),
            connectedness,
            [],
            gdal_progress(channel),
        )
        check_status(status, "SieveFilter")

    return _work("sieve_filter", _sieve, (src, dst, mask), progress)


def sieve_filter(
    src: RasterBand,
    dst: RasterBand,
    *,
    threshold: int,
    connectedness: int = 4,
    mask: RasterBand | None = None,
    progress: ProgressHandler | None = None,
) -> None:
    """Replace regions smaller than `threshold` pixels with their largest neighbour.

    `src` and `dst` may be the same band for an in-place sieve.
    """
    _run(
        _sieve_work(
            src,
            dst,
            threshold=threshold,
            connectedness=connectedness,
            mask=mask,
            progress=progress,
        )
    )


async def sieve_filter_async(
    src: RasterBand,
    dst: RasterBand,
    *,
    threshold: int,
    connectedness: int = 4,
    mask: RasterBand | None = None,
    progress: ProgressHandler | None = None,
) -> None:
    await _run_async(
        _sieve_work(
            src,
            dst,
            threshold=threshold,
            connectedness=connectedness,
            mask=mask,
            progress=progress,
        )
    )


# ---------------------------------------------------------------------------
# Fill nodata
# ---------------------------------------------------------------------------
def _fill_nodata_work(
    src: RasterBand,
    *,
    search_dist: float,
    smoothing_iterations: int,
    mask: RasterBand | None,
    progress: ProgressHandler | None,
) -> WorkItem[None]:
    _expect(src, RasterBand, "src")
    _expect(mask, RasterBand, "mask", optional=True)
    if search_dist <= 0:
        raise MarshalingError(f"search_dist must be positive, got {search_dist!r}")
    if smoothing_iterations < 0:
        raise MarshalingError(
            f"smoothing_iterations must be >= 0, got {smoothing_iterations!r}"
        )

    def _fill(channel: ProgressChannel) -> None:
        status = gdal.FillNodata(
            src._native(),
            _native_or_none(mask),
            float(search_dist),
            int(smoothing_iterations),
            [],
            gdal_progress(channel),
        )
        check_status(status, "FillNodata")

    return _work("fill_nodata", _fill, (src, mask), progress)


def fill_nodata(
    src: RasterBand,
    *,
    search_dist: float,
    smoothing_iterations: int = 0,
    mask: RasterBand | None = None,
    progress: ProgressHandler | None = None,
) -> None:
    """Interpolate nodata pixels of `src` in place from valid neighbours.

    Without `mask`, the band's nodata value marks the pixels to fill.
    """
    _run(
        _fill_nodata_work(
            src,
            search_dist=search_dist,
            smoothing_iterations=smoothing_iterations,
            mask=mask,
            progress=progress,
        )
    )


async def fill_nodata_async(
    src: RasterBand,
    *,
    search_dist: float,
    smoothing_iterations: int = 0,
    mask: RasterBand | None = None,
    progress: ProgressHandler | None = None,
) -> None:
    await _run_async(
        _fill_nodata_work(
            src,
            search_dist=search_dist,
            smoothing_iterations=smoothing_iterations,
            mask=mask,
            progress=progress,
        )
    )


# ---------------------------------------------------------------------------
# Checksum
# ---------------------------------------------------------------------------
def _checksum_work(
    src: RasterBand,
    *,
    x: int,
    y: int,
    width: int | None,
    height: int | None,
) -> WorkItem[int]:
    _expect(src, RasterBand, "src")
    if x < 0 or y < 0:
        raise MarshalingError(f"Window origin must be >= 0, got ({x}, {y})")

    def _checksum(_channel: ProgressChannel) -> int:
        band = src._native()
        w = band.XSize - x if width is None else width
        h = band.YSize - y if height is None else height
        return band.Checksum(x, y, w, h)

    return _work("checksum_image", _checksum, (src,), None)


def checksum_image(
    src: RasterBand,
    *,
    x: int = 0,
    y: int = 0,
    width: int | None = None,
    height: int | None = None,
) -> int:
    """GDAL's 16-bit checksum of a window (default: the whole band)."""
    return _run(_checksum_work(src, x=x, y=y, width=width, height=height))


async def checksum_image_async(
    src: RasterBand,
    *,
    x: int = 0,
    y: int = 0,
    width: int | None = None,
    height: int | None = None,
) -> int:
    return await _run_async(_checksum_work(src, x=x, y=y, width=width, height=height))
