"""Spatial reference conversion between pyproj and OGR.

pyproj CRS objects are the public currency; OGR SpatialReference objects
only live on the native side of the call boundary.
"""

from __future__ import annotations

from typing import Any

from osgeo import osr
from pyproj import CRS
from pyproj.exceptions import CRSError

from domain.errors import MarshalingError


def to_crs(value: Any) -> CRS:
    """Coerce EPSG codes, WKT/PROJ strings or CRS objects to a pyproj CRS."""
    if isinstance(value, CRS):
        return value
    try:
        return CRS.from_user_input(value)
    except CRSError as e:
        raise MarshalingError(f"Invalid spatial reference: {value!r}") from e


def to_osr(value: Any) -> osr.SpatialReference | None:
    """Build an OGR SpatialReference (traditional GIS axis order) or None."""
    if value is None:
        return None
    srs = osr.SpatialReference()
    srs.ImportFromWkt(to_crs(value).to_wkt())
    srs.SetAxisMappingStrategy(osr.OAMS_TRADITIONAL_GIS_ORDER)
    return srs


def from_wkt(wkt: str | None) -> CRS | None:
    """pyproj CRS from a native WKT string; empty means no CRS."""
    if not wkt:
        return None
    return CRS.from_wkt(wkt)
