#!/usr/bin/env python3
"""Generate synthetic GeoTIFF fixtures for the GDAL integration tests.

Fixtures are minimal synthetic rasters, not real terrain data. They are
written with rasterio so the files under test are not produced by the code
under test.

Usage:
    python scripts/gen_fixtures.py [output_dir]

Requirements:
    pip install rasterio numpy

Output:
    tests/fixtures/*.tif (default)

Dependencies:
    This script imports from shared/fixtures_expected.py (not tests/) to avoid
    circular dependencies between scripts and tests packages.
"""

from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Any

import numpy as np
import rasterio
from affine import Affine
from numpy.typing import NDArray
from rasterio.crs import CRS
from rasterio.enums import Resampling

from shared.fixtures_expected import (
    EXPECTED_FIXTURE_COUNT,
    EXPECTED_FIXTURES,
    NODATA_HOLE,
    NODATA_VALUE,
    RAMP_SIZE,
    RAMP_STEP,
)

FIXTURES_DIR = Path(__file__).parent.parent / "tests" / "fixtures"

# All georeferenced fixtures share one origin and a 0.01 degree pixel
ORIGIN_TRANSFORM = Affine.translation(-45.0, -20.0) * Affine.scale(0.01, -0.01)


# =============================================================================
# Helper: write_raster
# =============================================================================
def write_raster(
    path: Path,
    data: NDArray[Any],
    transform: Affine = ORIGIN_TRANSFORM,
    crs: CRS | None = None,
    nodata: float | None = None,
    **creation_options: Any,
) -> None:
    """Write a GeoTIFF from a 2D (one band) or 3D (bands x rows x cols) array."""
    if data.ndim == 2:
        data = data[np.newaxis, ...]
    elif data.ndim != 3:
        raise ValueError(f"Data must be 2D or 3D, got {data.ndim}D")
    count, height, width = data.shape

    kwargs: dict[str, Any] = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": count,
        "dtype": str(data.dtype),
        "transform": transform,
        **creation_options,
    }
    if crs is not None:
        kwargs["crs"] = crs
    if nodata is not None:
        kwargs["nodata"] = nodata

    with rasterio.open(path, "w", **kwargs) as dst:
        dst.write(data)


def ramp(size: int = RAMP_SIZE, step: int = RAMP_STEP) -> NDArray[np.uint8]:
    """Square uint8 raster where every pixel of row y holds `step * y`."""
    rows = np.arange(size, dtype=np.uint16) * step
    return np.repeat(rows[:, np.newaxis], size, axis=1).astype(np.uint8)


# =============================================================================
# Fixtures
# =============================================================================
def gen_sample_deflate(out: Path) -> None:
    """4x4 three-band uint8 TIFF with DEFLATE compression."""
    data = np.arange(48, dtype=np.uint8).reshape(3, 4, 4)
    write_raster(
        out / "sample_deflate.tif", data, crs=CRS.from_epsg(4326), compress="deflate"
    )


def gen_dem_ramp(out: Path) -> None:
    """64x64 uint8 ramp (4 * row), EPSG:4326."""
    write_raster(out / "dem_ramp.tif", ramp(), crs=CRS.from_epsg(4326))


def gen_dem_overviews(out: Path) -> None:
    """64x64 uint8 ramp with internal 2x and 4x overviews."""
    path = out / "dem_overviews.tif"
    write_raster(path, ramp(), crs=CRS.from_epsg(4326))
    with rasterio.open(path, "r+") as dst:
        dst.build_overviews([2, 4], Resampling.nearest)


def gen_dem_with_nodata(out: Path) -> None:
    """20x20 float32 gradient with a square nodata hole."""
    data = np.linspace(100, 200, 400, dtype=np.float32).reshape(20, 20)
    x, y, w, h = NODATA_HOLE
    data[y : y + h, x : x + w] = NODATA_VALUE
    write_raster(
        out / "dem_with_nodata.tif", data, crs=CRS.from_epsg(4326), nodata=NODATA_VALUE
    )


def gen_corrupted(out: Path) -> None:
    """Little-endian TIFF header followed by a truncated IFD."""
    header = b"II" + struct.pack("<H", 42) + struct.pack("<I", 8)
    (out / "corrupted.tif").write_bytes(header + b"\x00" * 50)


GENERATORS = (
    gen_sample_deflate,
    gen_dem_ramp,
    gen_dem_overviews,
    gen_dem_with_nodata,
    gen_corrupted,
)


def generate_all(out: Path) -> list[str]:
    """Write every fixture into `out` and return the generated file names."""
    out.mkdir(parents=True, exist_ok=True)
    for gen in GENERATORS:
        gen(out)
    return sorted(f.name for f in out.iterdir() if f.suffix.lower() == ".tif")


# =============================================================================
# Main
# =============================================================================
def main(argv: list[str]) -> int:
    out = Path(argv[1]) if len(argv) > 1 else FIXTURES_DIR
    generated = generate_all(out)

    if generated != EXPECTED_FIXTURES:
        missing = sorted(set(EXPECTED_FIXTURES) - set(generated))
        extra = sorted(set(generated) - set(EXPECTED_FIXTURES))
        print("ERROR: Fixture filenames do not match expected list!")
        print(f"  Missing: {missing}")
        print(f"  Extra: {extra}")
        return 1

    for name in generated:
        size = (out / name).stat().st_size
        print(f"  {name:30} {size:>8}B")
    print(f"\nAll {EXPECTED_FIXTURE_COUNT} fixtures written to {out}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
