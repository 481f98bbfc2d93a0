"""Dataset wrapper with its band and layer collections."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from affine import Affine
from osgeo import gdal, ogr

from domain.errors import MarshalingError, NativeOperationError
from domain.handles.value_objects import HandleKind
from domain.iteration.cursors import IndexedCollection
from infrastructure.gdal.base import NativeWrapper
from infrastructure.gdal.native import check_status
from infrastructure.gdal.raster import RasterBand
from infrastructure.gdal.srs import from_wkt, to_crs, to_osr
from infrastructure.gdal.value_objects import RasterSize
from infrastructure.gdal.vector import Layer

logger = logging.getLogger(__name__)


def data_type_code(data_type: str | int) -> int:
    """GDAL data type code from a name ("Byte", "Float32") or a code."""
    if isinstance(data_type, str):
        code = gdal.GetDataTypeByName(data_type)
    elif isinstance(data_type, int) and not isinstance(data_type, bool):
        code = data_type if gdal.GetDataTypeName(data_type) else gdal.GDT_Unknown
    else:
        code = gdal.GDT_Unknown
    if code == gdal.GDT_Unknown:
        raise MarshalingError(f"Unknown data type {data_type!r}")
    return code


def geometry_type_code(geom_type: str | int) -> int:
    """OGR geometry type code from a name ("Polygon", "LineString") or a code."""
    if isinstance(geom_type, int) and not isinstance(geom_type, bool):
        return geom_type
    if isinstance(geom_type, str):
        code = getattr(ogr, f"wkb{geom_type}", None)
        if isinstance(code, int):
            return code
    raise MarshalingError(f"Unknown geometry type {geom_type!r}")


def release_dataset(native: Any) -> None:
    """Flush and close a native dataset."""
    close = getattr(native, "Close", None)
    if close is not None:
        close()
    else:
        native.FlushCache()


class Dataset(NativeWrapper):
    """A raster and/or vector dataset opened through GeoBridge.open()."""

    kind = HandleKind.DATASET

    def __enter__(self) -> Dataset:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Close after pending work on this dataset; bands and layers go with it."""
        self._runtime.bridge.close_handle(self._handle)

    @property
    def description(self) -> str:
        return self._run("description", lambda _ch: self._native().GetDescription())

    @property
    def driver(self) -> str:
        """Short name of the driver, e.g. "GTiff" or "MEM"."""
        return self._run("driver", lambda _ch: self._native().GetDriver().ShortName)

    @property
    def raster_size(self) -> RasterSize:
        def _size(_ch: Any) -> RasterSize:
            ds = self._native()
            return RasterSize(x=ds.RasterXSize, y=ds.RasterYSize)

        return self._run("raster_size", _size)

    @property
    def geo_transform(self) -> tuple[float, ...] | None:
        """GDAL-ordered geotransform, None when the dataset has none."""

        def _get(_ch: Any) -> tuple[float, ...] | None:
            gt = self._native().GetGeoTransform(can_return_null=True)
            return tuple(gt) if gt is not None else None

        return self._run("geo_transform", _get)

    @property
    def transform(self) -> Affine | None:
        gt = self.geo_transform
        return Affine.from_gdal(*gt) if gt is not None else None

    @transform.setter
    def transform(self, value: Affine | Sequence[float]) -> None:
        if isinstance(value, Affine):
            gt = value.to_gdal()
        elif isinstance(value, Sequence) and len(value) == 6:
            gt = tuple(float(v) for v in value)
        else:
            raise MarshalingError("Transform must be an Affine or a 6-item GDAL geotransform")
        self._run(
            "set_transform",
            lambda _ch: check_status(self._native().SetGeoTransform(list(gt)), "SetGeoTransform"),
        )

    @property
    def srs(self):
        """Dataset CRS as a pyproj.CRS, or None."""
        return self._run("srs", lambda _ch: from_wkt(self._native().GetProjection()))

    @srs.setter
    def srs(self, value: Any) -> None:
        wkt = to_crs(value).to_wkt() if value is not None else ""
        self._run(
            "set_srs",
            lambda _ch: check_status(self._native().SetProjection(wkt), "SetProjection"),
        )

    @property
    def bands(self) -> DatasetBands:
        return DatasetBands(self)

    @property
    def layers(self) -> DatasetLayers:
        return DatasetLayers(self)

    def flush(self) -> None:
        self._run("flush", lambda _ch: self._native().FlushCache())

    async def flush_async(self) -> None:
        await self._run_async("flush", lambda _ch: self._native().FlushCache())


class DatasetBands(IndexedCollection[RasterBand]):
    """Raster bands of a dataset, numbered from 1 like GDAL does."""

    base = 1

    def __init__(self, dataset: Dataset) -> None:
        self._ds = dataset

    def _count(self, _ch: Any) -> int:
        return self._ds._native().RasterCount

    def _getter(self, band_id: int):
        def _get(_ch: Any) -> RasterBand:
            ds = self._ds._native()
            if not 1 <= band_id <= ds.RasterCount:
                raise NativeOperationError(-1, f"Invalid band id {band_id}")
            return self._ds._adopt(RasterBand, ds.GetRasterBand(band_id), band_id=band_id)

        return _get

    def _creator(self, data_type: str | int, options: Sequence[str] | None):
        code = data_type_code(data_type)

        def _create(_ch: Any) -> RasterBand:
            ds = self._ds._native()
            check_status(ds.AddBand(code, list(options or [])), "AddBand")
            band_id = ds.RasterCount
            return self._ds._adopt(RasterBand, ds.GetRasterBand(band_id), band_id=band_id)

        return _create

    def count(self) -> int:
        return self._ds._run("bands.count", self._count)

    def get(self, band_id: int) -> RasterBand:
        return self._ds._run("bands.get", self._getter(band_id))

    def create(
        self, data_type: str | int = "Byte", options: Sequence[str] | None = None
    ) -> RasterBand:
        """Append a band (drivers such as MEM support it) and return it."""
        return self._ds._run("bands.create", self._creator(data_type, options))

    async def count_async(self) -> int:
        return await self._ds._run_async("bands.count", self._count)

    async def get_async(self, band_id: int) -> RasterBand:
        return await self._ds._run_async("bands.get", self._getter(band_id))

    async def create_async(
        self, data_type: str | int = "Byte", options: Sequence[str] | None = None
    ) -> RasterBand:
        return await self._ds._run_async("bands.create", self._creator(data_type, options))


class DatasetLayers(IndexedCollection[Layer]):
    """Vector layers of a dataset, 0-based; `get` also accepts a layer name."""

    def __init__(self, dataset: Dataset) -> None:
        self._ds = dataset

    def _count(self, _ch: Any) -> int:
        return self._ds._native().GetLayerCount()

    def _getter(self, key: int | str):
        if isinstance(key, bool) or not isinstance(key, (int, str)):
            raise MarshalingError(f"Layer key must be an index or a name, got {key!r}")

        def _get(_ch: Any) -> Layer:
            ds = self._ds._native()
            if isinstance(key, str):
                native = ds.GetLayerByName(key)
            elif 0 <= key < ds.GetLayerCount():
                native = ds.GetLayer(key)
            else:
                native = None
            if native is None:
                raise NativeOperationError(-1, f"Invalid layer {key!r}")
            return self._ds._adopt(Layer, native)

        return _get

    def _creator(self, name: str, srs: Any, geom_type: str | int, options: Sequence[str] | None):
        code = geometry_type_code(geom_type)
        osr_ref = to_osr(srs)

        def _create(_ch: Any) -> Layer:
            native = self._ds._native().CreateLayer(name, osr_ref, code, list(options or []))
            if native is None:
                raise NativeOperationError(-1, f"Error creating layer {name!r}")
            return self._ds._adopt(Layer, native)

        return _create

    def _copier(self, src: Layer, name: str, options: Sequence[str] | None):
        if not isinstance(src, Layer):
            raise MarshalingError(f"Expected a Layer, got {type(src).__name__}")

        def _copy(_ch: Any) -> Layer:
            native = self._ds._native().CopyLayer(src._native(), name, list(options or []))
            if native is None:
                raise NativeOperationError(-1, f"Error copying layer to {name!r}")
            return self._ds._adopt(Layer, native)

        return _copy

    def _remover(self, index: int):
        if isinstance(index, bool) or not isinstance(index, int):
            raise MarshalingError(f"Layer index must be an int, got {index!r}")

        def _remove(_ch: Any) -> None:
            ds = self._ds._native()
            if not 0 <= index < ds.GetLayerCount():
                raise NativeOperationError(-1, f"Invalid layer index {index}")
            name = ds.GetLayer(index).GetName()
            registry = self._ds.runtime.registry
            # Wrappers of the deleted layer must not reach the freed native
            stale = [
                h
                for h in registry.children(self._ds.handle)
                if h.kind is HandleKind.LAYER and h.native.GetName() == name
            ]
            check_status(ds.DeleteLayer(index), "DeleteLayer")
            for handle in stale:
                registry.close(handle)
            logger.debug("Deleted layer %r, closed %d wrapper(s)", name, len(stale))

        return _remove

    def count(self) -> int:
        return self._ds._run("layers.count", self._count)

    def get(self, key: int | str) -> Layer:
        return self._ds._run("layers.get", self._getter(key))

    def create(
        self,
        name: str,
        srs: Any = None,
        geom_type: str | int = "Unknown",
        options: Sequence[str] | None = None,
    ) -> Layer:
        """Create a layer; `srs` is anything pyproj.CRS.from_user_input accepts."""
        return self._ds._run("layers.create", self._creator(name, srs, geom_type, options))

    def copy(self, src: Layer, name: str, options: Sequence[str] | None = None) -> Layer:
        """Copy `src` (possibly from another dataset) into a new layer."""
        return self._ds._run("layers.copy", self._copier(src, name, options), others=(src,))

    def remove(self, index: int) -> None:
        self._ds._run("layers.remove", self._remover(index))

    async def count_async(self) -> int:
        return await self._ds._run_async("layers.count", self._count)

    async def get_async(self, key: int | str) -> Layer:
        return await self._ds._run_async("layers.get", self._getter(key))

    async def create_async(
        self,
        name: str,
        srs: Any = None,
        geom_type: str | int = "Unknown",
        options: Sequence[str] | None = None,
    ) -> Layer:
        return await self._ds._run_async(
            "layers.create", self._creator(name, srs, geom_type, options)
        )

    async def copy_async(
        self, src: Layer, name: str, options: Sequence[str] | None = None
    ) -> Layer:
        return await self._ds._run_async(
            "layers.copy", self._copier(src, name, options), others=(src,)
        )

    async def remove_async(self, index: int) -> None:
        await self._ds._run_async("layers.remove", self._remover(index))
