"""OGR layer, feature and field wrappers."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from osgeo import ogr

from domain.errors import MarshalingError, NativeOperationError
from domain.handles.value_objects import HandleKind
from domain.iteration.cursors import CursorCollection, IndexedCollection, MaterializedMap
from infrastructure.gdal.base import NativeWrapper
from infrastructure.gdal.geometry import Geometry
from infrastructure.gdal.native import check_status
from infrastructure.gdal.srs import from_wkt
from infrastructure.gdal.value_objects import FieldDefn

logger = logging.getLogger(__name__)

FIELD_TYPES: dict[str, int] = {
    "Integer": ogr.OFTInteger,
    "IntegerList": ogr.OFTIntegerList,
    "Integer64": ogr.OFTInteger64,
    "Integer64List": ogr.OFTInteger64List,
    "Real": ogr.OFTReal,
    "RealList": ogr.OFTRealList,
    "String": ogr.OFTString,
    "StringList": ogr.OFTStringList,
    "Binary": ogr.OFTBinary,
    "Date": ogr.OFTDate,
    "Time": ogr.OFTTime,
    "DateTime": ogr.OFTDateTime,
}

FieldValue = int | float | str | list | None


def field_type_code(field_type: str | int) -> int:
    if isinstance(field_type, bool):
        raise MarshalingError(f"Unknown field type {field_type!r}")
    if isinstance(field_type, int):
        if field_type not in FIELD_TYPES.values():
            raise MarshalingError(f"Unknown field type {field_type!r}")
        return field_type
    try:
        return FIELD_TYPES[field_type]
    except (KeyError, TypeError):
        raise MarshalingError(f"Unknown field type {field_type!r}") from None


def _check_field_value(value: Any) -> None:
    if value is not None and not isinstance(value, (int, float, str, list)):
        raise MarshalingError(f"Unsupported field value type: {type(value).__name__}")


# ---------------------------------------------------------------------------
# Layer
# ---------------------------------------------------------------------------
class Layer(NativeWrapper):
    kind = HandleKind.LAYER

    @property
    def name(self) -> str:
        return self._run("name", lambda _ch: self._native().GetName())

    @property
    def geom_type(self) -> int:
        """OGR geometry type code (ogr.wkbPoint, ogr.wkbPolygon, ...)."""
        return self._run("geom_type", lambda _ch: self._native().GetGeomType())

    @property
    def srs(self):
        """Layer CRS as a pyproj.CRS, or None."""

        def _srs(_ch: Any):
            ref = self._native().GetSpatialRef()
            return from_wkt(ref.ExportToWkt() if ref is not None else None)

        return self._run("srs", _srs)

    @property
    def fields(self) -> LayerFields:
        return LayerFields(self)

    @property
    def features(self) -> LayerFeatures:
        return LayerFeatures(self)

    def new_feature(self) -> Feature:
        """Blank feature built on this layer's schema, not yet stored."""

        def _new(_ch: Any) -> Feature:
            return self._adopt(Feature, ogr.Feature(self._native().GetLayerDefn()))

        return self._run("new_feature", _new)

    def flush(self) -> None:
        self._run("flush", lambda _ch: check_status(self._native().SyncToDisk(), "SyncToDisk"))


class LayerFields(IndexedCollection[FieldDefn]):
    """Field definitions of a layer, 0-based."""

    def __init__(self, layer: Layer) -> None:
        self._layer = layer

    def _count(self, _ch: Any) -> int:
        return self._layer._native().GetLayerDefn().GetFieldCount()

    def _getter(self, index: int):
        def _get(_ch: Any) -> FieldDefn:
            defn = self._layer._native().GetLayerDefn()
            if not 0 <= index < defn.GetFieldCount():
                raise NativeOperationError(-1, f"Invalid field index {index}")
            field = defn.GetFieldDefn(index)
            return FieldDefn(
                name=field.GetName(),
                type=field.GetTypeName(),
                width=field.GetWidth(),
                precision=field.GetPrecision(),
            )

        return _get

    def count(self) -> int:
        return self._layer._run("fields.count", self._count)

    def get(self, index: int) -> FieldDefn:
        return self._layer._run("fields.get", self._getter(index))

    async def count_async(self) -> int:
        return await self._layer._run_async("fields.count", self._count)

    async def get_async(self, index: int) -> FieldDefn:
        return await self._layer._run_async("fields.get", self._getter(index))

    def _adder(self, name: str, field_type: str | int, width: int, precision: int):
        code = field_type_code(field_type)
        if not isinstance(name, str) or not name:
            raise MarshalingError("Field name must be a non-empty string")

        def _add(_ch: Any) -> None:
            field = ogr.FieldDefn(name, code)
            field.SetWidth(width)
            field.SetPrecision(precision)
            check_status(self._layer._native().CreateField(field), "CreateField")

        return _add

    def _remover(self, field: int | str):
        if isinstance(field, bool) or not isinstance(field, (int, str)):
            raise MarshalingError(f"Field must be an index or a name, got {field!r}")

        def _remove(_ch: Any) -> None:
            layer = self._layer._native()
            count = layer.GetLayerDefn().GetFieldCount()
            index = layer.FindFieldIndex(field, 1) if isinstance(field, str) else field
            if not 0 <= index < count:
                raise NativeOperationError(-1, f"Invalid field {field!r}")
            check_status(layer.DeleteField(index), "DeleteField")

        return _remove

    def _reorderer(self, order: Sequence[int]):
        if isinstance(order, (str, bytes)) or not isinstance(order, Sequence):
            raise MarshalingError("Field order must be a sequence of indices")
        order = list(order)
        if any(isinstance(i, bool) or not isinstance(i, int) for i in order):
            raise MarshalingError("Field order must only contain integers")

        def _reorder(_ch: Any) -> None:
            layer = self._layer._native()
            count = layer.GetLayerDefn().GetFieldCount()
            if len(order) != count:
                raise MarshalingError(f"Field order has {len(order)} entries for {count} fields")
            if sorted(order) != list(range(count)):
                raise MarshalingError("Field order must be a permutation of 0..count-1")
            check_status(layer.ReorderFields(order), "ReorderFields")

        return _reorder

    def add(
        self, name: str, field_type: str | int = "String", *, width: int = 0, precision: int = 0
    ) -> None:
        """Append a field to the layer schema."""
        self._layer._run("fields.add", self._adder(name, field_type, width, precision))

    def remove(self, field: int | str) -> None:
        """Delete a field, given by position or by name."""
        self._layer._run("fields.remove", self._remover(field))

    def reorder(self, order: Sequence[int]) -> None:
        """Reorder the schema: `order[i]` is the current index of the field moved to `i`."""
        self._layer._run("fields.reorder", self._reorderer(order))

    async def add_async(
        self, name: str, field_type: str | int = "String", *, width: int = 0, precision: int = 0
    ) -> None:
        await self._layer._run_async("fields.add", self._adder(name, field_type, width, precision))

    async def remove_async(self, field: int | str) -> None:
        await self._layer._run_async("fields.remove", self._remover(field))

    async def reorder_async(self, order: Sequence[int]) -> None:
        await self._layer._run_async("fields.reorder", self._reorderer(order))

    def index_of(self, name: str) -> int:
        """Position of `name` in the schema, -1 if absent."""
        return self._layer._run(
            "fields.index_of", lambda _ch: self._layer._native().FindFieldIndex(name, 1)
        )

    def names(self) -> list[str]:
        def _names(_ch: Any) -> list[str]:
            defn = self._layer._native().GetLayerDefn()
            return [defn.GetFieldDefn(i).GetName() for i in range(defn.GetFieldCount())]

        return self._layer._run("fields.names", _names)


class LayerFeatures(CursorCollection["Feature"]):
    """Features of a layer behind OGR's single shared reading cursor."""

    def __init__(self, layer: Layer) -> None:
        self._layer = layer

    def _wrap(self, native: Any) -> Feature | None:
        if native is None:
            return None
        return self._layer._adopt(Feature, native)

    def _first(self, _ch: Any) -> Feature | None:
        layer = self._layer._native()
        layer.ResetReading()
        return self._wrap(layer.GetNextFeature())

    def _next(self, _ch: Any) -> Feature | None:
        return self._wrap(self._layer._native().GetNextFeature())

    def _getter(self, fid: int):
        def _get(_ch: Any) -> Feature:
            native = self._layer._native().GetFeature(fid)
            if native is None:
                raise NativeOperationError(-1, f"No feature with fid {fid}")
            return self._layer._adopt(Feature, native)

        return _get

    def _counter(self, force: bool):
        return lambda _ch: self._layer._native().GetFeatureCount(1 if force else 0)

    def _writer(self, feature: Feature, method: str):
        if not isinstance(feature, Feature):
            raise MarshalingError(f"Expected a Feature, got {type(feature).__name__}")

        def _write(_ch: Any) -> None:
            status = getattr(self._layer._native(), method)(feature._native())
            check_status(status, method)

        return _write

    def _remover(self, fid: int):
        return lambda _ch: check_status(self._layer._native().DeleteFeature(fid), "DeleteFeature")

    # -- cursor --------------------------------------------------------------
    def first(self) -> Feature | None:
        return self._layer._run("features.first", self._first)

    def next(self) -> Feature | None:
        return self._layer._run("features.next", self._next)

    async def first_async(self) -> Feature | None:
        return await self._layer._run_async("features.first", self._first)

    async def next_async(self) -> Feature | None:
        return await self._layer._run_async("features.next", self._next)

    # -- random access and mutation ------------------------------------------
    def count(self, force: bool = True) -> int:
        """Feature count; with force=False drivers may answer -1 rather than scan."""
        return self._layer._run("features.count", self._counter(force))

    def get(self, fid: int) -> Feature:
        return self._layer._run("features.get", self._getter(fid))

    def add(self, feature: Feature) -> None:
        """Store a new feature; its fid is assigned by the driver."""
        self._layer._run(
            "features.add", self._writer(feature, "CreateFeature"), others=(feature,)
        )

    def set(self, feature: Feature) -> None:
        """Rewrite the stored feature carrying the same fid."""
        self._layer._run("features.set", self._writer(feature, "SetFeature"), others=(feature,))

    def remove(self, fid: int) -> None:
        self._layer._run("features.remove", self._remover(fid))

    async def count_async(self, force: bool = True) -> int:
        return await self._layer._run_async("features.count", self._counter(force))

    async def get_async(self, fid: int) -> Feature:
        return await self._layer._run_async("features.get", self._getter(fid))

    async def add_async(self, feature: Feature) -> None:
        await self._layer._run_async(
            "features.add", self._writer(feature, "CreateFeature"), others=(feature,)
        )

    async def set_async(self, feature: Feature) -> None:
        await self._layer._run_async(
            "features.set", self._writer(feature, "SetFeature"), others=(feature,)
        )

    async def remove_async(self, fid: int) -> None:
        await self._layer._run_async("features.remove", self._remover(fid))


# ---------------------------------------------------------------------------
# Feature
# ---------------------------------------------------------------------------
class Feature(NativeWrapper):
    kind = HandleKind.FEATURE

    @property
    def fid(self) -> int:
        return self._run("fid", lambda _ch: self._native().GetFID())

    @property
    def fields(self) -> FeatureFields:
        return self._adopt(FeatureFields, self._native())

    def get_geometry(self) -> Geometry | None:
        """Copy of the feature geometry, or None when it has none."""

        def _get(_ch: Any) -> Geometry | None:
            ref = self._native().GetGeometryRef()
            if ref is None:
                return None
            return self._runtime.adopt_geometry(ref.Clone())

        return self._run("get_geometry", _get)

    def set_geometry(self, geometry: Geometry | None) -> None:
        """Replace the geometry with a copy of `geometry` (None clears it)."""
        if geometry is not None and not isinstance(geometry, Geometry):
            raise MarshalingError(f"Expected a Geometry, got {type(geometry).__name__}")

        def _set(_ch: Any) -> None:
            native = geometry._native() if geometry is not None else None
            check_status(self._native().SetGeometry(native), "SetGeometry")

        others = (geometry,) if geometry is not None else ()
        self._run("set_geometry", _set, others=others)


class FeatureFields(NativeWrapper, MaterializedMap[FieldValue]):
    """Attribute values of one feature keyed by field name, in schema order.

    Registered under its feature and sharing the feature's native object, so
    it closes when the feature (or its dataset) does.
    """

    kind = HandleKind.FIELD_SET

    def _snapshot(self, _ch: Any) -> dict[str, FieldValue]:
        feature = self._native()
        defn = feature.GetDefnRef()
        return {
            defn.GetFieldDefn(i).GetName(): _read_field(feature, i)
            for i in range(defn.GetFieldCount())
        }

    def _index(self, feature: Any, name: str) -> int:
        index = feature.GetFieldIndex(name)
        if index < 0:
            raise NativeOperationError(-1, f"Specified field name does not exist: {name}")
        return index

    def to_object(self) -> dict[str, FieldValue]:
        return self._run("to_object", self._snapshot)

    async def to_object_async(self) -> dict[str, FieldValue]:
        return await self._run_async("to_object", self._snapshot)

    def count(self) -> int:
        return self._run("count", lambda _ch: self._native().GetFieldCount())

    def names(self) -> list[str]:
        def _names(_ch: Any) -> list[str]:
            defn = self._native().GetDefnRef()
            return [defn.GetFieldDefn(i).GetName() for i in range(defn.GetFieldCount())]

        return self._run("names", _names)

    def get(self, name: str) -> FieldValue:
        def _get(_ch: Any) -> FieldValue:
            feature = self._native()
            return _read_field(feature, self._index(feature, name))

        return self._run("get", _get)

    def set(self, name: str, value: FieldValue) -> None:
        _check_field_value(value)

        def _set(_ch: Any) -> None:
            feature = self._native()
            index = self._index(feature, name)
            if value is None:
                feature.SetFieldNull(index)
            elif isinstance(value, list):
                feature.SetField2(index, value)
            else:
                feature.SetField(index, value)

        self._run("set", _set)


def _read_field(feature: Any, index: int) -> FieldValue:
    if not feature.IsFieldSetAndNotNull(index):
        return None
    return feature.GetField(index)
