"""GDAL adapters: handle-backed wrappers, collections and algorithms.

Every native call made through these wrappers is validated against the
handle registry, serialized per dataset and translated into the domain
error taxonomy by the ExecutionBridge.
"""

from infrastructure.gdal.algorithms import (
    checksum_image,
    checksum_image_async,
    contour_generate,
    contour_generate_async,
    fill_nodata,
    fill_nodata_async,
    polygonize,
    polygonize_async,
    sieve_filter,
    sieve_filter_async,
)
from infrastructure.gdal.dataset import Dataset, DatasetBands, DatasetLayers
from infrastructure.gdal.geometry import CompoundCurves, Geometry, LineStringPoints, PolygonRings
from infrastructure.gdal.raster import Overview, RasterBand, RasterBandOverviews, RasterBandPixels
from infrastructure.gdal.runtime import GeoBridge
from infrastructure.gdal.value_objects import FieldDefn, RasterSize
from infrastructure.gdal.vector import Feature, FeatureFields, Layer, LayerFeatures, LayerFields

__all__ = [
    "GeoBridge",
    "Dataset",
    "DatasetBands",
    "DatasetLayers",
    "RasterBand",
    "RasterBandPixels",
    "RasterBandOverviews",
    "Overview",
    "Layer",
    "LayerFields",
    "LayerFeatures",
    "Feature",
    "FeatureFields",
    "Geometry",
    "LineStringPoints",
    "PolygonRings",
    "CompoundCurves",
    "FieldDefn",
    "RasterSize",
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
