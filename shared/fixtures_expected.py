"""Single source of truth for the raster fixtures used by the GDAL tests.

Used by:
- scripts/gen_fixtures.py (generation verification)
- tests/gdal/conftest.py (session fixture generating them on demand)

Location: shared/ (not tests/) to avoid a scripts->tests dependency.
"""

from __future__ import annotations

# Sorted alphabetically for deterministic comparison.
EXPECTED_FIXTURES: list[str] = sorted(
    [
        "corrupted.tif",  # Valid TIFF magic, garbage IFD: open must fail
        "dem_overviews.tif",  # 64x64 uint8 with 2x and 4x overviews
        "dem_ramp.tif",  # 64x64 uint8, value 4 * row, EPSG:4326
        "dem_with_nodata.tif",  # 20x20 float32, -9999 hole in the middle
        "sample_deflate.tif",  # 4x4, 3 bands, DEFLATE compressed
    ]
)

EXPECTED_FIXTURE_COUNT: int = len(EXPECTED_FIXTURES)

# Values shared between the generator and the assertions
RAMP_SIZE = 64
RAMP_STEP = 4
NODATA_VALUE = -9999.0
NODATA_HOLE = (8, 8, 4, 4)  # x, y, width, height
