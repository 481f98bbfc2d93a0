"""Raster band wrapper, pixel access and overview collection."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
from osgeo import gdal, gdal_array

from domain.errors import MarshalingError, NativeOperationError
from domain.handles.value_objects import HandleKind
from domain.iteration.cursors import IndexedCollection
from infrastructure.gdal.base import NativeWrapper
from infrastructure.gdal.native import check_status
from infrastructure.gdal.value_objects import RasterSize

logger = logging.getLogger(__name__)


class RasterBand(NativeWrapper):
    """One band of a raster dataset (or one of its overviews).

    `id` is the 1-based band number inside the dataset; overview bands carry
    None since GDAL does not number them.
    """

    kind = HandleKind.BAND

    def __init__(self, runtime, handle, parent=None, band_id: int | None = None):
        super().__init__(runtime, handle, parent)
        self._id = band_id

    @property
    def id(self) -> int | None:
        return self._id

    @property
    def size(self) -> RasterSize:
        def _size(_ch: Any) -> RasterSize:
            band = self._native()
            return RasterSize(x=band.XSize, y=band.YSize)

        return self._run("size", _size)

    @property
    def data_type(self) -> str:
        return self._run(
            "data_type", lambda _ch: gdal.GetDataTypeName(self._native().DataType)
        )

    @property
    def no_data_value(self) -> float | None:
        return self._run("no_data_value", lambda _ch: self._native().GetNoDataValue())

    @no_data_value.setter
    def no_data_value(self, value: float | None) -> None:
        if value is not None and not isinstance(value, (int, float)):
            raise MarshalingError(f"No data value must be a number or None, got {value!r}")

        def _set(_ch: Any) -> None:
            band = self._native()
            if value is None:
                check_status(band.DeleteNoDataValue(), "DeleteNoDataValue")
            else:
                check_status(band.SetNoDataValue(float(value)), "SetNoDataValue")

        self._run("set_no_data_value", _set)

    @property
    def pixels(self) -> RasterBandPixels:
        return RasterBandPixels(self)

    @property
    def overviews(self) -> RasterBandOverviews:
        return RasterBandOverviews(self)

    def flush(self) -> None:
        self._run("flush", lambda _ch: self._native().FlushCache())

    async def flush_async(self) -> None:
        await self._run_async("flush", lambda _ch: self._native().FlushCache())


class Overview(RasterBand):
    """Reduced-resolution band reached through `RasterBand.overviews`.

    Registered under the band it belongs to, so it shares the dataset's turn
    and closes with it.
    """

    kind = HandleKind.OVERVIEW



class RasterBandPixels:
    """Pixel reads and writes; windows are (x, y, width, height) in pixels."""

    def __init__(self, band: RasterBand) -> None:
        self._band = band

    def _numpy_type(self) -> np.dtype:
        code = gdal_array.GDALTypeCodeToNumericTypeCode(self._band._native().DataType)
        if code is None:
            raise NativeOperationError(-1, "Band data type has no numpy equivalent")
        return np.dtype(code)

    def _read(self, x: int, y: int, width: int, height: int):
        def _op(_ch: Any) -> np.ndarray:
            return self._band._native().ReadAsArray(x, y, width, height)

        return _op

    def _write(self, x: int, y: int, width: int, height: int, data: Any):
        array = np.asarray(data)
        if array.size != width * height:
            raise MarshalingError(
                f"Array of {array.size} values does not fit a {width}x{height} window"
            )

        def _op(_ch: Any) -> None:
            values = array.reshape(height, width).astype(self._numpy_type(), copy=False)
            check_status(self._band._native().WriteArray(values, x, y), "WriteArray")

        return _op

    def get(self, x: int, y: int) -> Any:
        """Value of the pixel at column x, row y as a Python number."""
        return self._band._run("pixels.get", self._read(x, y, 1, 1))[0, 0].item()

    def set(self, x: int, y: int, value: float) -> None:
        if not isinstance(value, (int, float, np.number)):
            raise MarshalingError(f"Pixel value must be a number, got {value!r}")
        self._band._run("pixels.set", self._write(x, y, 1, 1, [value]))

    def read(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Read a window as a (height, width) array in the band's data type."""
        return self._band._run("pixels.read", self._read(x, y, width, height))

    def write(self, x: int, y: int, width: int, height: int, data: Any) -> None:
        """Write `width * height` values (any shape) row-major into the window."""
        self._band._run("pixels.write", self._write(x, y, width, height, data))

    async def get_async(self, x: int, y: int) -> Any:
        array = await self._band._run_async("pixels.get", self._read(x, y, 1, 1))
        return array[0, 0].item()

    async def set_async(self, x: int, y: int, value: float) -> None:
        if not isinstance(value, (int, float, np.number)):
            raise MarshalingError(f"Pixel value must be a number, got {value!r}")
        await self._band._run_async("pixels.set", self._write(x, y, 1, 1, [value]))

    async def read_async(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        return await self._band._run_async("pixels.read", self._read(x, y, width, height))

    async def write_async(self, x: int, y: int, width: int, height: int, data: Any) -> None:
        await self._band._run_async("pixels.write", self._write(x, y, width, height, data))


class RasterBandOverviews(IndexedCollection[Overview]):
    """Overviews of a band, 0-based."""

    def __init__(self, band: RasterBand) -> None:
        self._band = band

    def _count(self, _ch: Any) -> int:
        return self._band._native().GetOverviewCount()

    def _wrap(self, native: Any, what: str) -> Overview:
        if native is None:
            raise NativeOperationError(-1, f"No overview for {what}")
        return self._band._adopt(Overview, native)

    def _getter(self, index: int):
        def _get(_ch: Any) -> Overview:
            band = self._band._native()
            if not 0 <= index < band.GetOverviewCount():
                raise NativeOperationError(-1, f"Invalid overview index {index}")
            return self._wrap(band.GetOverview(index), f"index {index}")

        return _get

    def _by_samples(self, samples: int):
        def _get(_ch: Any) -> Overview:
            native = self._band._native().GetRasterSampleOverview(samples)
            return self._wrap(native, f"{samples} samples")

        return _get

    def count(self) -> int:
        return self._band._run("overviews.count", self._count)

    def get(self, index: int) -> Overview:
        return self._band._run("overviews.get", self._getter(index))

    def get_by_sample_count(self, samples: int) -> Overview:
        """Smallest overview (or the band itself) with at least `samples` pixels."""
        return self._band._run("overviews.get_by_sample_count", self._by_samples(samples))

    async def count_async(self) -> int:
        return await self._band._run_async("overviews.count", self._count)

    async def get_async(self, index: int) -> Overview:
        return await self._band._run_async("overviews.get", self._getter(index))

    async def get_by_sample_count_async(self, samples: int) -> Overview:
        return await self._band._run_async(
            "overviews.get_by_sample_count", self._by_samples(samples)
        )
