"""OGR geometry wrapper and its point/ring collections.

Geometries handed out by features are clones: they own their native object
and are not tied to the feature's dataset, so their lock key is their own.
"""

from __future__ import annotations

import json
from typing import Any

from osgeo import ogr

from domain.errors import MarshalingError, NativeOperationError
from domain.handles.value_objects import HandleKind
from domain.iteration.cursors import IndexedCollection
from infrastructure.gdal.base import NativeWrapper
from infrastructure.gdal.native import check_status

Point = tuple[float, ...]


class Geometry(NativeWrapper):
    kind = HandleKind.GEOMETRY

    @property
    def geometry_type(self) -> str:
        """OGR geometry name, e.g. "LINESTRING" or "POLYGON"."""
        return self._run("geometry_type", lambda _ch: self._native().GetGeometryName())

    def is_empty(self) -> bool:
        return self._run("is_empty", lambda _ch: bool(self._native().IsEmpty()))

    def to_wkt(self) -> str:
        return self._run("to_wkt", lambda _ch: self._native().ExportToWkt())

    def to_json(self) -> str:
        """GeoJSON text of this geometry."""
        return self._run("to_json", lambda _ch: self._native().ExportToJson())

    def to_object(self) -> dict[str, Any]:
        return json.loads(self.to_json())

    async def to_json_async(self) -> str:
        return await self._run_async("to_json", lambda _ch: self._native().ExportToJson())

    @property
    def points(self) -> LineStringPoints:
        return LineStringPoints(self)

    @property
    def rings(self) -> PolygonRings:
        return PolygonRings(self)

    @property
    def curves(self) -> CompoundCurves:
        return CompoundCurves(self)


def wkt_to_native(wkt: str) -> ogr.Geometry:
    if not isinstance(wkt, str):
        raise MarshalingError(f"WKT must be a string, got {type(wkt).__name__}")
    return _created(ogr.CreateGeometryFromWkt(wkt), "WKT")


def geojson_to_native(value: str | dict[str, Any]) -> ogr.Geometry:
    if isinstance(value, dict):
        value = json.dumps(value)
    if not isinstance(value, str):
        raise MarshalingError(f"GeoJSON must be a str or dict, got {type(value).__name__}")
    return _created(ogr.CreateGeometryFromJson(value), "GeoJSON")


def _coords(point: Any) -> Point:
    """Validate a 2D or 3D point given as a tuple or list of numbers."""
    if not isinstance(point, (tuple, list)) or len(point) not in (2, 3):
        raise MarshalingError(f"Point must be (x, y) or (x, y, z), got {point!r}")
    if any(isinstance(c, bool) or not isinstance(c, (int, float)) for c in point):
        raise MarshalingError(f"Point coordinates must be numbers, got {point!r}")
    return tuple(float(c) for c in point)


def _geometries(value: Any, what: str) -> tuple[Geometry, ...]:
    items = tuple(value) if isinstance(value, (list, tuple)) else (value,)
    if not items or not all(isinstance(g, Geometry) for g in items):
        raise MarshalingError(f"{what} must be a Geometry or a list of Geometry objects")
    return items


def _put(geom: ogr.Geometry, index: int | None, point: Point) -> None:
    """Append `point` (index None) or overwrite the vertex at `index`."""
    if index is None:
        if len(point) == 3:
            geom.AddPoint(*point)
        else:
            geom.AddPoint_2D(*point)
    elif len(point) == 3:
        geom.SetPoint(index, *point)
    else:
        geom.SetPoint_2D(index, *point)


def _created(native: ogr.Geometry | None, what: str) -> ogr.Geometry:
    if native is None:
        raise NativeOperationError(-1, f"Invalid {what} geometry")
    return native


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------
class LineStringPoints(IndexedCollection[Point]):
    """Vertices of a line string, 0-based; 3D geometries yield (x, y, z)."""

    def __init__(self, geometry: Geometry) -> None:
        self._geometry = geometry

    def _count(self, _channel: Any) -> int:
        return self._geometry._native().GetPointCount()

    def _getter(self, index: int):
        def _get(_channel: Any) -> Point:
            geom = self._geometry._native()
            if not 0 <= index < geom.GetPointCount():
                raise NativeOperationError(-1, f"Invalid point index {index}")
            return self._point(geom, index)

        return _get

    def _setter(self, index: int, point: Any):
        coords = _coords(point)

        def _set(_channel: Any) -> None:
            geom = self._geometry._native()
            if not 0 <= index < geom.GetPointCount():
                raise NativeOperationError(-1, "Point index out of range")
            _put(geom, index, coords)

        return _set

    def _adder(self, points: Any):
        if isinstance(points, list):
            coords = [_coords(p) for p in points]
        else:
            coords = [_coords(points)]

        def _add(_channel: Any) -> None:
            geom = self._geometry._native()
            for point in coords:
                _put(geom, None, point)

        return _add

    def _reverse(self, _channel: Any) -> None:
        geom = self._geometry._native()
        points = [self._point(geom, i) for i in range(geom.GetPointCount())]
        for i, point in enumerate(reversed(points)):
            _put(geom, i, point)

    def _resizer(self, count: int):
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise MarshalingError(f"Point count must be a non-negative int, got {count!r}")

        def _resize(_channel: Any) -> None:
            geom = self._geometry._native()
            points = [self._point(geom, i) for i in range(min(count, geom.GetPointCount()))]
            # New trailing points start at the origin
            filler = (0.0,) * geom.GetCoordinateDimension()
            points.extend([filler] * (count - len(points)))
            geom.Empty()
            for point in points:
                _put(geom, None, point)

        return _resize

    @staticmethod
    def _point(geom: ogr.Geometry, index: int) -> Point:
        if geom.GetCoordinateDimension() == 3:
            return tuple(geom.GetPoint(index))
        return tuple(geom.GetPoint_2D(index))

    def count(self) -> int:
        return self._geometry._run("points.count", self._count)

    def get(self, index: int) -> Point:
        return self._geometry._run("points.get", self._getter(index))

    def set(self, index: int, point: Point) -> None:
        """Replace the vertex at `index` with (x, y) or (x, y, z)."""
        self._geometry._run("points.set", self._setter(index, point))

    def add(self, points: Point | list[Point]) -> None:
        """Append one point, or every point of a list, to the end."""
        self._geometry._run("points.add", self._adder(points))

    def reverse(self) -> None:
        self._geometry._run("points.reverse", self._reverse)

    def resize(self, count: int) -> None:
        """Truncate to `count` points, or pad with points at the origin."""
        self._geometry._run("points.resize", self._resizer(count))

    async def count_async(self) -> int:
        return await self._geometry._run_async("points.count", self._count)

    async def get_async(self, index: int) -> Point:
        return await self._geometry._run_async("points.get", self._getter(index))


class PolygonRings(IndexedCollection[Geometry]):
    """Rings of a polygon, 0-based: the exterior ring first, then holes."""

    def __init__(self, geometry: Geometry) -> None:
        self._geometry = geometry

    def _count(self, _channel: Any) -> int:
        return self._geometry._native().GetGeometryCount()

    def _getter(self, index: int):
        def _get(_channel: Any) -> Geometry:
            geom = self._geometry._native()
            if not 0 <= index < geom.GetGeometryCount():
                raise NativeOperationError(-1, f"Invalid ring index {index}")
            return self._geometry.runtime.adopt_geometry(geom.GetGeometryRef(index).Clone())

        return _get

    def _adder(self, rings: Any):
        parts = _geometries(rings, "Rings")

        def _add(_channel: Any) -> None:
            geom = self._geometry._native()
            natives = [ring._native() for ring in parts]
            for native in natives:
                if native.GetGeometryType() != ogr.wkbLinearRing:
                    raise MarshalingError(
                        f"Polygon rings must be LinearRings, got {native.GetGeometryName()}"
                    )
            for native in natives:
                check_status(geom.AddGeometry(native), "AddGeometry")

        return _add, parts

    def count(self) -> int:
        return self._geometry._run("rings.count", self._count)

    def get(self, index: int) -> Geometry:
        return self._geometry._run("rings.get", self._getter(index))

    def add(self, rings: Geometry | list[Geometry]) -> None:
        """Append a copy of one LinearRing, or of each ring in a list."""
        fn, parts = self._adder(rings)
        self._geometry._run("rings.add", fn, others=parts)

    async def count_async(self) -> int:
        return await self._geometry._run_async("rings.count", self._count)

    async def get_async(self, index: int) -> Geometry:
        return await self._geometry._run_async("rings.get", self._getter(index))


class CompoundCurves(IndexedCollection[Geometry]):
    """Connected curves of a compound curve, 0-based; each one a clone."""

    def __init__(self, geometry: Geometry) -> None:
        self._geometry = geometry

    def _count(self, _channel: Any) -> int:
        return self._geometry._native().GetGeometryCount()

    def _getter(self, index: int):
        def _get(_channel: Any) -> Geometry:
            geom = self._geometry._native()
            if not 0 <= index < geom.GetGeometryCount():
                raise NativeOperationError(-1, f"Invalid curve index {index}")
            return self._geometry.runtime.adopt_geometry(geom.GetGeometryRef(index).Clone())

        return _get

    def _adder(self, curves: Any):
        parts = _geometries(curves, "Curves")

        def _add(_channel: Any) -> None:
            geom = self._geometry._native()
            for curve in parts:
                check_status(geom.AddGeometry(curve._native()), "AddGeometry")

        return _add, parts

    def count(self) -> int:
        return self._geometry._run("curves.count", self._count)

    def get(self, index: int) -> Geometry:
        return self._geometry._run("curves.get", self._getter(index))

    def add(self, curves: Geometry | list[Geometry]) -> None:
        """Append a copy of one simple curve, or of each curve in a list.

        Each curve must start where the previous one ends.
        """
        fn, parts = self._adder(curves)
        self._geometry._run("curves.add", fn, others=parts)

    async def count_async(self) -> int:
        return await self._geometry._run_async("curves.count", self._count)

    async def get_async(self, index: int) -> Geometry:
        return await self._geometry._run_async("curves.get", self._getter(index))
